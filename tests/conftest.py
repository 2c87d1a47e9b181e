"""
Shared fixtures: an in-memory SQLite database per test and a saved store
connection for each platform.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers every table on Base.metadata
from app.constants.sync import Platform
from app.core.config import settings
from app.db.base import Base
from app.db.session import enable_sqlite_savepoints
from app.repositories.store_connection_repository import StoreConnectionRepository

USER_ID = "user-1"


@pytest.fixture(autouse=True)
def local_locks_only(monkeypatch):
    """Tests never talk to Redis; run locks stay process-local."""
    monkeypatch.setattr(settings, "sync_redis_locks", False)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user_id() -> str:
    return USER_ID


@pytest.fixture
def shopify_connection(db: Session, user_id: str):
    return StoreConnectionRepository(db).save(
        user_id,
        Platform.SHOPIFY,
        "https://test-shop.myshopify.com/",
        access_token="shpat_abc123",
        weight_unit="kg",
    )


@pytest.fixture
def woocommerce_connection(db: Session, user_id: str):
    return StoreConnectionRepository(db).save(
        user_id,
        Platform.WOOCOMMERCE,
        "https://woo.example.com",
        consumer_key="ck_test",
        consumer_secret="cs_test",
        weight_unit="lbs",
    )
