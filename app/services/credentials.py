"""
Credential normalization for source platforms.

Store credentials are pasted by sellers and arrive in many shapes (JSON
blobs, tokens with trailing text, URLs with schemes or suffixes). They are
cleaned exactly once, when a sync is started, and the resulting
SourceCredentials object is passed down to every client call.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Optional

from app.constants.sync import Platform
from app.core.exceptions import CredentialError, StoreConnectionError
from app.models.sync_models import StoreConnection

logger = logging.getLogger(__name__)

SHOPIFY_TOKEN_RE = re.compile(r"shpat_[a-zA-Z0-9]+")


@dataclass(frozen=True)
class SourceCredentials:
    """Normalized credentials for one store connection."""
    platform: str
    store_domain: str
    access_token: Optional[str] = None
    consumer_key: Optional[str] = None
    consumer_secret: Optional[str] = None
    weight_unit: Optional[str] = None
    store_id: Optional[int] = None

    @property
    def base_url(self) -> str:
        return f"https://{self.store_domain}"


def normalize_store_domain(store_url: Optional[str]) -> str:
    """
    Strip scheme, trailing slashes and timestamp suffixes from a store URL.

    "https://shop.myshopify.com/" -> "shop.myshopify.com"
    "shop.myshopify.com_1712345" -> "shop.myshopify.com"
    """
    if not store_url or not store_url.strip():
        raise CredentialError("Store URL is required")
    domain = re.sub(r"^https?://", "", store_url.strip(), flags=re.IGNORECASE)
    domain = domain.rstrip("/")
    if "_" in domain:
        domain = domain.split("_")[0]
    if not domain:
        raise CredentialError(f"Invalid store URL: {store_url!r}")
    return domain


def normalize_access_token(raw_token: Optional[str]) -> str:
    """Unwrap JSON-encoded tokens and drop whitespace and trailing text."""
    if raw_token is None:
        raise CredentialError("Access token is required")
    token = str(raw_token).strip()
    try:
        parsed = json.loads(token)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        token = str(parsed.get("access_token") or parsed.get("accessToken") or "")
    elif isinstance(parsed, str):
        token = parsed

    token = token.strip().split()[0] if token.strip() else ""
    token = re.sub(r"[^\w-]", "", token)
    if not token:
        raise CredentialError("Access token is required")
    return token


def normalize_shopify_token(raw_token: Optional[str]) -> str:
    token = normalize_access_token(raw_token)
    match = SHOPIFY_TOKEN_RE.search(token)
    if match:
        token = match.group(0)
    if not token.startswith("shpat_"):
        logger.error(f"Invalid Shopify token format (prefix {token[:6]!r})")
        raise CredentialError(
            "Invalid Shopify access token format. Please check your store configuration."
        )
    return token


def credentials_from_connection(connection: Optional[StoreConnection]) -> SourceCredentials:
    """
    Build SourceCredentials from a stored connection.

    Raises:
        StoreConnectionError: connection missing or deactivated
        CredentialError: credentials missing or malformed
    """
    if connection is None:
        raise StoreConnectionError("Store connection not found. Please connect your store first.")
    if not connection.is_active:
        raise StoreConnectionError(
            f"Store connection for {connection.platform} is not active"
        )

    domain = normalize_store_domain(connection.store_url)
    if connection.platform == Platform.SHOPIFY:
        return SourceCredentials(
            platform=Platform.SHOPIFY,
            store_domain=domain,
            access_token=normalize_shopify_token(connection.access_token),
            weight_unit=connection.weight_unit,
            store_id=connection.id,
        )
    if connection.platform == Platform.WOOCOMMERCE:
        key = (connection.consumer_key or "").strip()
        secret = (connection.consumer_secret or "").strip()
        if not key or not secret:
            raise CredentialError("WooCommerce consumer key and secret are required")
        return SourceCredentials(
            platform=Platform.WOOCOMMERCE,
            store_domain=domain,
            consumer_key=key,
            consumer_secret=secret,
            weight_unit=connection.weight_unit or "kg",
            store_id=connection.id,
        )
    raise CredentialError(f"Unsupported platform: {connection.platform}")
