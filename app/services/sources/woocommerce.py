"""WooCommerce REST client for paginated product listing."""

import logging
from typing import Optional

import requests
from woocommerce import API

from app.constants.sync import Platform
from app.core.config import settings
from app.core.exceptions import CredentialError, SourceAPIError
from app.schemas.sync_schemas import PageResult
from app.services.credentials import SourceCredentials
from app.services.sources.base import SourceClient

__logger__ = logging.getLogger(__name__)


class WooCommerceClientFactory:
    """Factory for creating WooCommerce API clients."""

    @staticmethod
    def from_credentials(credentials: SourceCredentials, timeout: Optional[int] = None) -> API:
        """
        Create a WooCommerce API client from normalized credentials.

        Args:
            credentials: SourceCredentials of a woocommerce store
            timeout: Per-request timeout in seconds

        Returns:
            API: Configured WooCommerce API client
        """
        return API(
            url=credentials.base_url,
            consumer_key=credentials.consumer_key,
            consumer_secret=credentials.consumer_secret,
            wp_api=True,
            version=settings.wc_api_version,
            timeout=timeout or settings.source_request_timeout,
            verify_ssl=settings.wc_verify_ssl
        )


class WooCommerceClient(SourceClient):
    """WooCommerce has no bulk export; catalogs are always paginated."""

    platform = Platform.WOOCOMMERCE
    supports_bulk_export = False

    def __init__(self, credentials: SourceCredentials, wcapi: Optional[API] = None):
        super().__init__(credentials)
        self.wcapi = wcapi or WooCommerceClientFactory.from_credentials(credentials)

    def _get(self, path: str, params=None):
        try:
            r = self.wcapi.get(path, params=params) if params else self.wcapi.get(path)
        except requests.Timeout as exc:
            raise SourceAPIError(f"WooCommerce request timed out: {path}") from exc
        except requests.RequestException as exc:
            raise SourceAPIError(f"WooCommerce request failed: {exc}") from exc

        if r.status_code in (401, 403):
            raise CredentialError(
                f"WooCommerce rejected the store credentials ({r.status_code})")
        if not r.ok:
            __logger__.error(f"WooCommerce GET error on {path}: {r.status_code} - {r.text[:500]}")
            raise SourceAPIError(f"WooCommerce API error ({r.status_code})")
        return r

    def check_connection(self) -> bool:
        self._get("products", params={"per_page": 1})
        return True

    def count_products(self) -> Optional[int]:
        r = self._get("products", params={"per_page": 1})
        total = r.headers.get("X-WP-Total")
        return int(total) if total is not None else None

    def fetch_page(self, page_number: int, page_size: int) -> PageResult:
        r = self._get("products", params={"page": page_number, "per_page": page_size})
        total = r.headers.get("X-WP-Total")
        items = r.json() or []
        __logger__.info(f"Fetched {len(items)} WooCommerce products for page {page_number}")
        return PageResult(
            items=items,
            reported_total=int(total) if total is not None else None
        )
