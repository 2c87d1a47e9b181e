"""
Credential normalization
"""
import pytest
from sqlalchemy.orm import Session

from app.constants.sync import Platform
from app.core.exceptions import CredentialError, StoreConnectionError
from app.models.sync_models import StoreConnection
from app.repositories.store_connection_repository import StoreConnectionRepository
from app.services.credentials import (
    credentials_from_connection,
    normalize_access_token,
    normalize_shopify_token,
    normalize_store_domain,
)


@pytest.mark.parametrize("raw, expected", [
    ("https://shop.myshopify.com/", "shop.myshopify.com"),
    ("HTTP://shop.myshopify.com", "shop.myshopify.com"),
    ("shop.myshopify.com_1712345", "shop.myshopify.com"),
    ("  shop.myshopify.com  ", "shop.myshopify.com"),
])
def test_store_domain_normalization(raw, expected):
    assert normalize_store_domain(raw) == expected


def test_store_domain_required():
    with pytest.raises(CredentialError):
        normalize_store_domain("   ")


@pytest.mark.parametrize("raw", [
    "shpat_abc123",
    "  shpat_abc123\n",
    '{"access_token": "shpat_abc123"}',
    '"shpat_abc123"',
    "shpat_abc123 (copied from admin)",
])
def test_shopify_token_normalization(raw):
    """Test: Tokens pasted in any shape normalize to the bare shpat_ token"""
    assert normalize_shopify_token(raw) == "shpat_abc123"


def test_shopify_token_rejects_other_formats():
    with pytest.raises(CredentialError):
        normalize_shopify_token("not-a-token")


def test_access_token_required():
    with pytest.raises(CredentialError):
        normalize_access_token(None)
    with pytest.raises(CredentialError):
        normalize_access_token('{"access_token": ""}')


def test_credentials_from_shopify_connection(db: Session, shopify_connection):
    credentials = credentials_from_connection(shopify_connection)

    assert credentials.platform == Platform.SHOPIFY
    assert credentials.store_domain == "test-shop.myshopify.com"
    assert credentials.base_url == "https://test-shop.myshopify.com"
    assert credentials.access_token == "shpat_abc123"
    assert credentials.store_id == shopify_connection.id


def test_credentials_from_woocommerce_connection(db: Session, woocommerce_connection):
    credentials = credentials_from_connection(woocommerce_connection)

    assert credentials.consumer_key == "ck_test"
    assert credentials.consumer_secret == "cs_test"
    assert credentials.weight_unit == "lbs"


def test_missing_or_inactive_connection(db: Session, user_id: str, shopify_connection):
    """Test: Missing and deactivated connections cannot start a sync"""
    with pytest.raises(StoreConnectionError):
        credentials_from_connection(None)

    StoreConnectionRepository(db).deactivate(user_id, Platform.SHOPIFY)
    with pytest.raises(StoreConnectionError):
        credentials_from_connection(shopify_connection)


def test_woocommerce_keys_required():
    connection = StoreConnection(
        user_id="u", platform=Platform.WOOCOMMERCE, store_url="woo.example.com",
        consumer_key="ck", consumer_secret=" ", is_active=True,
    )
    with pytest.raises(CredentialError):
        credentials_from_connection(connection)
