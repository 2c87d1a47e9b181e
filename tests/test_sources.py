"""
Source platform clients against canned HTTP responses
"""
import pytest
import requests

from app.constants.sync import BulkState, Platform
from app.core.exceptions import BulkOperationError, CredentialError, SourceAPIError
from app.services.credentials import SourceCredentials
from app.services.sources import ShopifyClient, WooCommerceClient, get_source_client

SHOPIFY = SourceCredentials(platform=Platform.SHOPIFY, store_domain="shop.myshopify.com",
                            access_token="shpat_abc123")
WOOCOMMERCE = SourceCredentials(platform=Platform.WOOCOMMERCE, store_domain="woo.example.com",
                                consumer_key="ck_test", consumer_secret="cs_test")


class FakeResponse:
    def __init__(self, status_code=200, payload=None, next_cursor=None, headers=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self.reason = "Error"
        self.text = ""
        self.headers = headers or {}
        self._payload = payload
        self.links = {}
        if next_cursor:
            self.links["next"] = {"url": f"https://shop.myshopify.com/products.json?page_info={next_cursor}"}

    def json(self):
        return self._payload


class FakeShopifySession:
    """Three product pages of two, one and one items, chained by cursors."""

    pages = {
        None: ([{"id": 1}, {"id": 2}], "c2"),
        "c2": ([{"id": 3}], "c3"),
        "c3": ([{"id": 4}], None),
    }

    def __init__(self, status_code=200, graphql=None, error=None):
        self.headers = {}
        self.calls = []
        self.status_code = status_code
        self.graphql = graphql
        self.error = error

    def request(self, method, url, timeout=None, params=None, json=None):
        self.calls.append((method, url, params))
        if self.error:
            raise self.error
        if self.status_code != 200:
            return FakeResponse(self.status_code)
        if url.endswith("graphql.json"):
            return FakeResponse(payload=self.graphql)
        if url.endswith("count.json"):
            return FakeResponse(payload={"count": 4})
        items, next_cursor = self.pages[(params or {}).get("page_info")]
        return FakeResponse(payload={"products": items}, next_cursor=next_cursor)

    def product_calls(self, fields=None):
        return [c for c in self.calls if c[1].endswith("products.json")
                and (fields is None or c[2]["fields"] == fields)]


def test_get_source_client_by_platform():
    assert isinstance(get_source_client(SHOPIFY), ShopifyClient)


def test_shopify_first_page():
    session = FakeShopifySession()
    client = ShopifyClient(SHOPIFY, session=session)

    page = client.fetch_page(1, 2)

    assert [item["id"] for item in page.items] == [1, 2]
    assert page.reported_total == 4
    assert session.headers["X-Shopify-Access-Token"] == "shpat_abc123"


def test_shopify_walks_cursors_to_requested_page():
    """Test: An unseen page is reached by following cursors from page 1"""
    session = FakeShopifySession()
    client = ShopifyClient(SHOPIFY, session=session)

    page = client.fetch_page(3, 2)

    assert [item["id"] for item in page.items] == [4]
    assert len(session.product_calls(fields="id")) == 2


def test_shopify_page_past_the_end_is_empty():
    session = FakeShopifySession()
    client = ShopifyClient(SHOPIFY, session=session)
    for page_number in (1, 2, 3):
        client.fetch_page(page_number, 2)
    requests_made = len(session.calls)

    page = client.fetch_page(4, 2)

    assert page.items == []
    assert len(session.calls) == requests_made


@pytest.mark.parametrize("status_code, error", [
    (401, CredentialError),
    (403, CredentialError),
    (429, SourceAPIError),
    (500, SourceAPIError),
])
def test_shopify_http_errors(status_code, error):
    client = ShopifyClient(SHOPIFY, session=FakeShopifySession(status_code=status_code))
    with pytest.raises(error):
        client.fetch_page(1, 250)


def test_shopify_timeout_is_recoverable():
    client = ShopifyClient(SHOPIFY, session=FakeShopifySession(error=requests.Timeout("slow")))
    with pytest.raises(SourceAPIError) as excinfo:
        client.count_products()
    assert excinfo.value.recoverable is True


def test_bulk_submission_user_errors():
    graphql = {"data": {"bulkOperationRunQuery": {
        "bulkOperation": None,
        "userErrors": [{"field": None, "message": "A bulk query operation is already in progress"}],
    }}}
    client = ShopifyClient(SHOPIFY, session=FakeShopifySession(graphql=graphql))

    with pytest.raises(BulkOperationError, match="already in progress"):
        client.submit_bulk_export()


def test_bulk_status_is_normalized():
    graphql = {"data": {"node": {
        "id": "gid://shopify/BulkOperation/1",
        "status": "COMPLETED",
        "objectCount": "12",
        "url": "https://storage.example.com/export.jsonl",
        "errorCode": None,
    }}}
    client = ShopifyClient(SHOPIFY, session=FakeShopifySession(graphql=graphql))

    operation = client.get_bulk_operation("gid://shopify/BulkOperation/1")

    assert operation.state == BulkState.COMPLETED
    assert operation.object_count == 12
    assert operation.result_url.endswith("export.jsonl")


class FakeWcApi:
    def __init__(self, status_code=200, items=None, total="3"):
        self.status_code = status_code
        self.items = items if items is not None else [{"id": 1}, {"id": 2}]
        self.total = total
        self.calls = []

    def get(self, path, params=None):
        self.calls.append((path, params))
        return FakeResponse(self.status_code, payload=self.items, headers={"X-WP-Total": self.total})


def test_woocommerce_fetch_page():
    wcapi = FakeWcApi()
    page = WooCommerceClient(WOOCOMMERCE, wcapi=wcapi).fetch_page(2, 50)

    assert len(page.items) == 2
    assert page.reported_total == 3
    assert wcapi.calls == [("products", {"page": 2, "per_page": 50})]


def test_woocommerce_rejected_credentials():
    client = WooCommerceClient(WOOCOMMERCE, wcapi=FakeWcApi(status_code=401))
    with pytest.raises(CredentialError):
        client.count_products()


def test_woocommerce_has_no_bulk_export():
    client = WooCommerceClient(WOOCOMMERCE, wcapi=FakeWcApi())
    assert client.supports_bulk_export is False
