"""
Source platform clients.

get_source_client() maps normalized credentials to the client of their
platform; the sync engine only talks to the SourceClient interface.
"""
from app.constants.sync import Platform
from app.core.exceptions import CredentialError
from app.services.credentials import SourceCredentials
from app.services.sources.base import SourceClient
from app.services.sources.shopify import ShopifyClient
from app.services.sources.woocommerce import WooCommerceClient

SOURCE_CLIENTS = {
    Platform.SHOPIFY: ShopifyClient,
    Platform.WOOCOMMERCE: WooCommerceClient,
}


def get_source_client(credentials: SourceCredentials) -> SourceClient:
    client_class = SOURCE_CLIENTS.get(credentials.platform)
    if client_class is None:
        raise CredentialError(f"Unsupported platform: {credentials.platform}")
    return client_class(credentials)


__all__ = [
    "SourceClient",
    "ShopifyClient",
    "WooCommerceClient",
    "get_source_client",
]
