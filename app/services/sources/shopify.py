"""Shopify Admin API client (REST listing + GraphQL bulk export)."""

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import requests

from app.constants.sync import BulkState, Platform, SHOPIFY_BULK_STATES
from app.core.config import settings
from app.core.exceptions import BulkOperationError, CredentialError, SourceAPIError
from app.schemas.sync_schemas import BulkOperation, PageResult
from app.services.credentials import SourceCredentials
from app.services.sources.base import SourceClient

logger = logging.getLogger(__name__)

REST_PRODUCT_FIELDS = (
    "id,title,handle,vendor,product_type,tags,published_at,created_at,"
    "updated_at,status,variants,images,body_html"
)

PRODUCT_EXPORT_QUERY = """
{
  products(sortKey: UPDATED_AT, reverse: true) {
    edges {
      node {
        __typename
        id
        title
        handle
        vendor
        productType
        tags
        status
        createdAt
        updatedAt
        description
        seo { title description }
        variants {
          edges {
            node {
              __typename
              id
              sku
              barcode
              price
              compareAtPrice
              inventoryQuantity
              taxable
              inventoryItem {
                requiresShipping
                measurement { weight { value unit } }
              }
            }
          }
        }
        images {
          edges {
            node {
              __typename
              id
              src
            }
          }
        }
      }
    }
  }
}
"""

BULK_OPERATION_FIELDS = """
    id
    status
    errorCode
    createdAt
    completedAt
    objectCount
    fileSize
    url
    partialDataUrl
"""

BULK_RUN_MUTATION = """
mutation bulkOperationRunQuery($query: String!) {
  bulkOperationRunQuery(query: $query) {
    bulkOperation { %s }
    userErrors { field message }
  }
}
""" % BULK_OPERATION_FIELDS

BULK_STATUS_QUERY = """
query getBulkOperation($id: ID!) {
  node(id: $id) {
    ... on BulkOperation { %s }
  }
}
""" % BULK_OPERATION_FIELDS


def _to_bulk_operation(node: Dict[str, Any]) -> BulkOperation:
    object_count = node.get("objectCount")
    return BulkOperation(
        id=node["id"],
        state=SHOPIFY_BULK_STATES.get((node.get("status") or "").upper(), BulkState.RUNNING),
        result_url=node.get("url"),
        object_count=int(object_count) if object_count is not None else None,
        error_code=node.get("errorCode"),
    )


def _next_page_info(response: requests.Response) -> Optional[str]:
    """Extract page_info of the rel="next" Link header, if any."""
    next_link = response.links.get("next", {}).get("url")
    if not next_link:
        return None
    values = parse_qs(urlparse(next_link).query).get("page_info")
    return values[0] if values else None


class ShopifyClient(SourceClient):
    """
    Shopify client.

    Shopify paginates REST listings with opaque cursors; this client keeps
    the cursor of every page it has seen so the engine can keep addressing
    pages by number. Asking for an unseen page walks forward from the
    closest known cursor.
    """

    platform = Platform.SHOPIFY
    supports_bulk_export = True

    def __init__(
        self,
        credentials: SourceCredentials,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None
    ):
        super().__init__(credentials)
        self.timeout = timeout or settings.source_request_timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "X-Shopify-Access-Token": credentials.access_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": settings.source_user_agent,
        })
        self.rest_base = f"{credentials.base_url}/admin/api/{settings.shopify_api_version}"
        self.graphql_url = f"{self.rest_base}/graphql.json"
        self._cursors: Dict[int, Optional[str]] = {1: None}
        self._cursor_page_size: Optional[int] = None
        self._last_page: Optional[int] = None
        self._reported_total: Optional[int] = None

    # ==================== HTTP ====================

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as exc:
            raise SourceAPIError(f"Shopify request timed out after {self.timeout}s: {url}") from exc
        except requests.RequestException as exc:
            raise SourceAPIError(f"Shopify request failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise CredentialError(
                f"Shopify rejected the store credentials ({response.status_code})")
        if response.status_code == 429:
            raise SourceAPIError("Shopify rate limit exceeded (429)", recoverable=True)
        if not response.ok:
            logger.error(f"Shopify {method} error on {url}: {response.status_code} - {response.text[:500]}")
            raise SourceAPIError(
                f"Shopify API error: {response.status_code} {response.reason}")
        return response

    def _graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = self._request(
            "POST", self.graphql_url, json={"query": query, "variables": variables or {}})
        payload = response.json()
        if payload.get("errors"):
            messages = ", ".join(e.get("message", "") for e in payload["errors"])
            raise BulkOperationError(f"GraphQL errors: {messages}")
        return payload.get("data") or {}

    # ==================== REST listing ====================

    def check_connection(self) -> bool:
        self._request("GET", f"{self.rest_base}/shop.json")
        return True

    def count_products(self) -> Optional[int]:
        response = self._request("GET", f"{self.rest_base}/products/count.json")
        count = response.json().get("count")
        self._reported_total = int(count) if count is not None else None
        return self._reported_total

    def _fetch_with_cursor(
        self,
        cursor: Optional[str],
        page_size: int,
        fields: str = REST_PRODUCT_FIELDS
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        params = {"limit": page_size, "fields": fields}
        if cursor:
            params["page_info"] = cursor
        response = self._request("GET", f"{self.rest_base}/products.json", params=params)
        return response.json().get("products", []), _next_page_info(response)

    def _remember(self, page_number: int, next_cursor: Optional[str]) -> None:
        if next_cursor:
            self._cursors[page_number + 1] = next_cursor
        else:
            self._last_page = page_number

    def _beyond_end(self, page_number: int) -> bool:
        return self._last_page is not None and page_number > self._last_page

    def fetch_page(self, page_number: int, page_size: int) -> PageResult:
        if page_size != self._cursor_page_size:
            self._cursors = {1: None}
            self._last_page = None
            self._cursor_page_size = page_size

        if self._reported_total is None:
            self.count_products()

        # Walk forward to the requested page when its cursor is unknown
        known = max(p for p in self._cursors if p <= page_number)
        while known < page_number and not self._beyond_end(known + 1):
            logger.debug(f"Resolving Shopify cursor for page {known + 1}")
            _, next_cursor = self._fetch_with_cursor(self._cursors[known], page_size, fields="id")
            self._remember(known, next_cursor)
            known += 1

        if self._beyond_end(page_number):
            return PageResult(items=[], reported_total=self._reported_total)

        items, next_cursor = self._fetch_with_cursor(self._cursors[page_number], page_size)
        self._remember(page_number, next_cursor)
        logger.info(f"Fetched {len(items)} Shopify products for page {page_number}")
        return PageResult(items=items, reported_total=self._reported_total)

    # ==================== Bulk export ====================

    def submit_bulk_export(self, query: str = None) -> BulkOperation:
        data = self._graphql(BULK_RUN_MUTATION, {"query": query or PRODUCT_EXPORT_QUERY})
        result = data.get("bulkOperationRunQuery") or {}
        user_errors = result.get("userErrors") or []
        if user_errors:
            messages = ", ".join(e.get("message", "") for e in user_errors)
            raise BulkOperationError(f"User errors: {messages}")
        node = result.get("bulkOperation")
        if not node:
            raise BulkOperationError("Shopify did not return a bulk operation")
        operation = _to_bulk_operation(node)
        logger.info(f"Shopify bulk operation submitted: {operation.id} ({operation.state})")
        return operation

    def get_bulk_operation(self, job_id: str) -> BulkOperation:
        data = self._graphql(BULK_STATUS_QUERY, {"id": job_id})
        node = data.get("node")
        if not node:
            raise BulkOperationError(f"Bulk operation {job_id} not found")
        return _to_bulk_operation(node)

    def download_bulk_result(self, url: str) -> Iterator[str]:
        """Stream the JSONL result file line by line."""
        try:
            response = requests.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as exc:
            raise SourceAPIError(f"Failed to download bulk data: {exc}") from exc
        if not response.ok:
            response.close()
            raise SourceAPIError(f"Failed to download bulk data: {response.status_code}")
        with response:
            for line in response.iter_lines(decode_unicode=True):
                if line:
                    yield line
