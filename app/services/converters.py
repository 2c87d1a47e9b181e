"""Converters from source platform records to the canonical product schema."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from app.constants.sync import Platform, ProductSyncStatus, WEIGHT_TO_GRAMS
from app.schemas.source_records import (
    ShopifyBulkProduct,
    ShopifyRestProduct,
    SourceRecord,
    WooCommerceProduct,
)
from app.schemas.sync_schemas import CanonicalProduct
from app.utils.time_helpers import parse_source_datetime, utcnow

__logger__ = logging.getLogger(__name__)

SHOPIFY_PRODUCT_GID = "gid://shopify/Product/"


def to_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """Coerce prices and weights sent as strings, numbers or null."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def to_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def normalize_weight_to_grams(value: Any, unit: Optional[str]) -> Optional[float]:
    """
    Convert a source weight to grams.

    Accepts short units (lb, oz, kg, g), long forms and Shopify enum spellings
    (POUNDS, OUNCES, KILOGRAMS, GRAMS). Unknown units are treated as grams.

    Returns:
        Weight in grams rounded to 2 decimals, or None when no weight is set
    """
    weight = to_float(value, default=None)
    if weight is None:
        return None
    factor = WEIGHT_TO_GRAMS.get((unit or "g").strip().lower())
    if factor is None:
        __logger__.warning(f"Unknown weight unit {unit!r}, assuming grams")
        factor = 1.0
    return round(weight * factor, 2)


def strip_gid(value: Any) -> Optional[str]:
    """'gid://shopify/Product/123' -> '123'"""
    if value is None:
        return None
    text = str(value)
    if text.startswith("gid://"):
        return text.rsplit("/", 1)[-1]
    return text


def derive_handle(platform: str, slug: Optional[str], source_id: Optional[str]) -> str:
    """
    Stable catalog key of a product.

    The source slug wins when present; otherwise the key is built from the
    source id so replays of the same record always land on the same row.
    """
    if slug and str(slug).strip():
        return str(slug).strip().lower()
    if source_id:
        return f"{platform}-{source_id}"
    raise ValueError("Product record has neither a handle nor an id")


def _join_tags(tags: Any) -> Optional[str]:
    if not tags:
        return None
    if isinstance(tags, str):
        return tags
    names = [t.get("name", "") if isinstance(t, dict) else str(t) for t in tags]
    names = [n for n in names if n]
    return ", ".join(names) or None


def _edges(connection: Any) -> List[Dict[str, Any]]:
    """Flatten a GraphQL connection ({edges: [{node}]}) or a plain list."""
    if not connection:
        return []
    if isinstance(connection, list):
        return connection
    return [edge.get("node", {}) for edge in connection.get("edges", [])]


# ==================== Extractors ====================

def _extract_shopify_rest(record: ShopifyRestProduct) -> Dict[str, Any]:
    product = record.data
    variant = (product.get("variants") or [{}])[0] or {}
    image = (product.get("images") or [{}])[0] or {}
    source_id = strip_gid(product.get("id"))

    if variant.get("weight") is not None and variant.get("weight_unit"):
        grams = normalize_weight_to_grams(variant.get("weight"), variant.get("weight_unit"))
    else:
        grams = normalize_weight_to_grams(variant.get("grams"), "g")

    status = (product.get("status") or "").lower()
    return {
        "handle": derive_handle(Platform.SHOPIFY, product.get("handle"), source_id),
        "source_product_id": source_id,
        "title": product.get("title") or "",
        "vendor": product.get("vendor") or None,
        "product_type": product.get("product_type") or None,
        "tags": _join_tags(product.get("tags")),
        "description": product.get("body_html") or None,
        "seo_title": product.get("seo_title") or None,
        "seo_description": product.get("seo_description") or None,
        "active": status == "active" if status else bool(product.get("published_at")),
        "variant_sku": variant.get("sku") or None,
        "variant_price": to_float(variant.get("price")),
        "variant_compare_at_price": to_float(variant.get("compare_at_price"), default=None),
        "variant_inventory_qty": to_int(variant.get("inventory_quantity")),
        "variant_grams": grams,
        "variant_barcode": variant.get("barcode") or None,
        "variant_requires_shipping": variant.get("requires_shipping"),
        "variant_taxable": variant.get("taxable"),
        "image_src": image.get("src") or None,
        "image_position": to_int(image.get("position"), default=1) if image else None,
        "source_created_at": parse_source_datetime(product.get("created_at")),
        "source_updated_at": parse_source_datetime(product.get("updated_at")),
    }


def _bulk_variant_weight(variant: Dict[str, Any]) -> Optional[float]:
    if variant.get("weight") is not None:
        return normalize_weight_to_grams(variant.get("weight"), variant.get("weightUnit"))
    # 2024-04+ moved weight under inventoryItem.measurement
    measurement = ((variant.get("inventoryItem") or {}).get("measurement") or {})
    weight = measurement.get("weight") or {}
    if weight.get("value") is not None:
        return normalize_weight_to_grams(weight.get("value"), weight.get("unit"))
    return None


def _extract_shopify_bulk(record: ShopifyBulkProduct) -> Dict[str, Any]:
    product = record.data
    variants = record.variants or _edges(product.get("variants"))
    images = record.images or _edges(product.get("images"))
    variant = variants[0] if variants else {}
    image = images[0] if images else {}
    source_id = strip_gid(product.get("id"))
    seo = product.get("seo") or {}

    return {
        "handle": derive_handle(Platform.SHOPIFY, product.get("handle"), source_id),
        "source_product_id": source_id,
        "title": product.get("title") or "",
        "vendor": product.get("vendor") or None,
        "product_type": product.get("productType") or None,
        "tags": _join_tags(product.get("tags")),
        "description": product.get("description") or product.get("descriptionHtml") or None,
        "seo_title": seo.get("title") or None,
        "seo_description": seo.get("description") or None,
        "active": (product.get("status") or "").upper() == "ACTIVE",
        "variant_sku": variant.get("sku") or None,
        "variant_price": to_float(variant.get("price")),
        "variant_compare_at_price": to_float(variant.get("compareAtPrice"), default=None),
        "variant_inventory_qty": to_int(variant.get("inventoryQuantity")),
        "variant_grams": _bulk_variant_weight(variant) if variant else None,
        "variant_barcode": variant.get("barcode") or None,
        "variant_requires_shipping": variant.get(
            "requiresShipping", (variant.get("inventoryItem") or {}).get("requiresShipping")),
        "variant_taxable": variant.get("taxable"),
        "image_src": (image.get("src") or image.get("url")) if image else None,
        "image_position": 1 if image else None,
        "source_created_at": parse_source_datetime(product.get("createdAt")),
        "source_updated_at": parse_source_datetime(product.get("updatedAt")),
    }


def _extract_woocommerce(record: WooCommerceProduct) -> Dict[str, Any]:
    product = record.data
    images = product.get("images") or []
    image = images[0] if images else {}
    categories = product.get("categories") or []
    source_id = strip_gid(product.get("id"))

    sale_price = to_float(product.get("sale_price"), default=None)
    regular_price = to_float(product.get("regular_price"), default=None)
    price = to_float(product.get("price"), default=None)
    if price is None:
        price = sale_price if sale_price is not None else regular_price
    compare_at = regular_price if sale_price is not None else None

    return {
        "handle": derive_handle(Platform.WOOCOMMERCE, product.get("slug"), source_id),
        "source_product_id": source_id,
        "title": product.get("name") or "",
        "vendor": None,
        "product_type": categories[0].get("name") if categories else None,
        "tags": _join_tags(product.get("tags")),
        "description": product.get("description") or product.get("short_description") or None,
        "seo_title": None,
        "seo_description": product.get("short_description") or None,
        "active": product.get("status") == "publish",
        "variant_sku": product.get("sku") or None,
        "variant_price": price if price is not None else 0.0,
        "variant_compare_at_price": compare_at,
        "variant_inventory_qty": to_int(product.get("stock_quantity")),
        "variant_grams": normalize_weight_to_grams(product.get("weight"), record.store_weight_unit),
        "variant_barcode": product.get("global_unique_id") or None,
        "variant_requires_shipping": product.get("shipping_required"),
        "variant_taxable": (product.get("tax_status") == "taxable") if product.get("tax_status") else None,
        "image_src": image.get("src") or None,
        "image_position": to_int(image.get("position"), default=0) + 1 if image else None,
        "source_created_at": parse_source_datetime(product.get("date_created_gmt") or product.get("date_created")),
        "source_updated_at": parse_source_datetime(product.get("date_modified_gmt") or product.get("date_modified")),
    }


EXTRACTORS: Dict[str, Callable[[Any], Dict[str, Any]]] = {
    "shopify_rest": _extract_shopify_rest,
    "shopify_bulk": _extract_shopify_bulk,
    "woocommerce": _extract_woocommerce,
}


def to_canonical_product(
    record: SourceRecord,
    synced_at: Optional[datetime] = None
) -> CanonicalProduct:
    """
    Convert one source record to a CanonicalProduct.

    Args:
        record: One member of the SourceRecord union
        synced_at: Timestamp stamped on the row (defaults to now)

    Returns:
        CanonicalProduct ready for the catalog upsert
    """
    fields = EXTRACTORS[record.kind](record)
    return CanonicalProduct(
        **fields,
        sync_status=ProductSyncStatus.SYNCED,
        synced_at=synced_at or utcnow(),
    )


def wrap_page_item(
    platform: str,
    item: Dict[str, Any],
    weight_unit: Optional[str] = None
) -> SourceRecord:
    """Tag a raw REST page item with its source shape."""
    if platform == Platform.SHOPIFY:
        return ShopifyRestProduct(data=item)
    if platform == Platform.WOOCOMMERCE:
        return WooCommerceProduct(data=item, store_weight_unit=weight_unit or "kg")
    raise ValueError(f"Unsupported platform: {platform}")
