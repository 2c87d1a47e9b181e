"""
Source record shapes.

The same logical product arrives in different layouts depending on where it
was read from. Each layout is one member of the `SourceRecord` union and is
converted by its own extractor in app.services.converters.
"""
from typing import Annotated, Any, Dict, List, Literal, Union
from pydantic import BaseModel, Field


class ShopifyRestProduct(BaseModel):
    """Item of /admin/api/<version>/products.json"""
    kind: Literal["shopify_rest"] = "shopify_rest"
    data: Dict[str, Any]


class ShopifyBulkProduct(BaseModel):
    """Product line of a bulk export JSONL file plus its child lines"""
    kind: Literal["shopify_bulk"] = "shopify_bulk"
    data: Dict[str, Any]
    variants: List[Dict[str, Any]] = Field(default_factory=list)
    images: List[Dict[str, Any]] = Field(default_factory=list)


class WooCommerceProduct(BaseModel):
    """Item of wc/v3/products"""
    kind: Literal["woocommerce"] = "woocommerce"
    data: Dict[str, Any]
    store_weight_unit: str = "kg"


SourceRecord = Annotated[
    Union[ShopifyRestProduct, ShopifyBulkProduct, WooCommerceProduct],
    Field(discriminator="kind"),
]
