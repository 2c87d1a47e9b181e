"""
Paginated batch syncer
"""
import pytest
from sqlalchemy.orm import Session

from app.constants.sync import Platform, SyncMethod, SyncState
from app.core.exceptions import SourceAPIError, StoreConnectionError, SyncCancelled
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.store_connection_repository import StoreConnectionRepository
from app.repositories.sync_status_repository import SyncStatusRepository
from app.schemas.sync_schemas import SyncSettings
from app.services.credentials import credentials_from_connection
from app.services.sync.cancellation import CancellationToken
from app.services.sync.context import SyncContext
from app.services.sync.paginated import PaginatedBatchSyncer
from tests.fakes import FakeSourceClient, shopify_item


def _settings(**overrides) -> SyncSettings:
    values = dict(
        batch_size=250,
        max_pages=500,
        early_termination_threshold=10,
        rate_limit_delay=0,
        rate_limit_jitter=0,
        auto_recovery=False,
        validation_checks=True,
    )
    values.update(overrides)
    return SyncSettings(**values)


def _syncer(db: Session, user_id: str, connection, client, sync_settings, observer=None, token=None):
    status_repo = SyncStatusRepository(db)
    status_repo.mark_in_progress(
        user_id, Platform.SHOPIFY, SyncMethod.PAGINATED_BATCH, sync_settings.model_dump()
    )
    context = SyncContext(
        user_id=user_id,
        platform=Platform.SHOPIFY,
        credentials=credentials_from_connection(connection),
        client=client,
        status_repo=status_repo,
        catalog_repo=CatalogRepository(db),
        connection_repo=StoreConnectionRepository(db),
        token=token or CancellationToken(),
        observer=observer,
    )
    return PaginatedBatchSyncer(context, sync_settings)


def _items(count: int, **kwargs):
    return [shopify_item(i, **kwargs) for i in range(count)]


def test_stops_after_empty_page_threshold(db: Session, user_id: str, shopify_connection):
    """Test: 3 full pages then empty pages stop once more than 10 are empty in a row"""
    client = FakeSourceClient(items=_items(750))
    result = _syncer(db, user_id, shopify_connection, client, _settings()).run()

    assert client.requested_pages == list(range(1, 15))
    assert result.status == "success"
    assert result.products_synced == 750
    assert result.pages_fetched == 14

    row = SyncStatusRepository(db).get(user_id, Platform.SHOPIFY)
    assert row.status == SyncState.SUCCESS
    assert row.products_synced == 750
    assert row.last_sync_at is not None
    assert CatalogRepository(db).count_products(user_id, Platform.SHOPIFY) == 750


def test_zero_threshold_stops_at_first_empty_page(db: Session, user_id: str, shopify_connection):
    client = FakeSourceClient(items=_items(20))
    _syncer(db, user_id, shopify_connection, client,
            _settings(batch_size=10, early_termination_threshold=0)).run()

    assert client.requested_pages == [1, 2, 3]


def test_stops_at_page_ceiling(db: Session, user_id: str, shopify_connection):
    """Test: The page ceiling ends a run even when every page is full"""
    client = FakeSourceClient(items=_items(1000))
    result = _syncer(db, user_id, shopify_connection, client,
                     _settings(batch_size=10, max_pages=1)).run()

    # max_pages below the minimum ceiling is raised to it
    assert len(client.requested_pages) == 50
    assert result.products_synced == 500
    assert result.status == "success"
    assert result.incomplete is True
    assert result.warnings


def test_stops_when_reported_total_reached(db: Session, user_id: str, shopify_connection):
    client = FakeSourceClient(items=_items(30), reported_total=30)
    result = _syncer(db, user_id, shopify_connection, client, _settings(batch_size=10)).run()

    assert client.requested_pages == [1, 2, 3]
    assert result.total_products_found == 30
    assert result.incomplete is False


def test_incomplete_sync_is_flagged(db: Session, user_id: str, shopify_connection):
    """Test: Syncing under 95% of the reported total succeeds with a warning"""
    client = FakeSourceClient(items=_items(1000), reported_total=1000)
    result = _syncer(db, user_id, shopify_connection, client,
                     _settings(batch_size=10, max_pages=80)).run()

    assert result.status == "success"
    assert result.products_synced == 800
    assert result.incomplete is True
    assert "800 of 1000" in result.warnings[0]

    row = SyncStatusRepository(db).get(user_id, Platform.SHOPIFY)
    assert row.status == SyncState.SUCCESS
    assert row.settings["incomplete"] is True
    assert "800 of 1000" in row.settings["warning"]


def test_auto_recovery_resumes_after_last_page(db: Session, user_id: str, shopify_connection):
    """Test: A recovery pass continues from the page after the ceiling"""
    client = FakeSourceClient(items=_items(1000), reported_total=1000)
    result = _syncer(db, user_id, shopify_connection, client,
                     _settings(batch_size=10, max_pages=80, auto_recovery=True,
                               max_recovery_passes=1)).run()

    assert client.requested_pages[80] == 81
    assert result.products_synced == 1000
    assert result.incomplete is False
    assert result.warnings == []


def test_progress_is_monotonic(db: Session, user_id: str, shopify_connection):
    """Test: Counters and percentages observed during a run never go backwards"""
    status_repo = SyncStatusRepository(db)
    observed = []

    def observer(progress):
        row = status_repo.get(user_id, Platform.SHOPIFY)
        observed.append((progress.current, row.products_synced))

    client = FakeSourceClient(items=_items(95))
    _syncer(db, user_id, shopify_connection, client,
            _settings(batch_size=10, early_termination_threshold=0), observer=observer).run()

    percents = [p for p, _ in observed]
    counts = [c for _, c in observed]
    assert percents == sorted(percents)
    assert counts == sorted(counts)
    assert percents[-1] == 100
    assert max(percents[:-1]) <= 90


def test_page_failure_keeps_persisted_progress(db: Session, user_id: str, shopify_connection):
    """Test: A failing page ends the run in error without losing earlier pages"""
    client = FakeSourceClient(items=_items(50), fail_on_page=3)
    syncer = _syncer(db, user_id, shopify_connection, client, _settings(batch_size=10))

    with pytest.raises(SourceAPIError):
        syncer.run()

    row = SyncStatusRepository(db).get(user_id, Platform.SHOPIFY)
    assert row.status == SyncState.ERROR
    assert row.products_synced == 20
    assert "HTTP 500" in row.error_message
    assert CatalogRepository(db).count_products(user_id, Platform.SHOPIFY) == 20


def test_cancellation_between_pages(db: Session, user_id: str, shopify_connection):
    """Test: Cancelling stops before the next page and is recoverable"""
    token = CancellationToken()

    def cancel_on_third(page):
        if page == 3:
            token.cancel()

    client = FakeSourceClient(items=_items(100), on_fetch=cancel_on_third)
    syncer = _syncer(db, user_id, shopify_connection, client, _settings(batch_size=10), token=token)

    with pytest.raises(SyncCancelled):
        syncer.run()

    assert client.requested_pages == [1, 2, 3]
    row = SyncStatusRepository(db).get(user_id, Platform.SHOPIFY)
    assert row.status == SyncState.ERROR
    assert row.settings["recoverable"] is True
    assert row.products_synced == 30


def test_deactivated_store_aborts(db: Session, user_id: str, shopify_connection):
    """Test: Deactivating the store connection aborts at the next page"""
    connection_repo = StoreConnectionRepository(db)

    def deactivate(page):
        if page == 2:
            connection_repo.deactivate(user_id, Platform.SHOPIFY)

    client = FakeSourceClient(items=_items(100), on_fetch=deactivate)
    syncer = _syncer(db, user_id, shopify_connection, client, _settings(batch_size=10))

    with pytest.raises(StoreConnectionError):
        syncer.run()

    assert client.requested_pages == [1, 2]
    assert SyncStatusRepository(db).get(user_id, Platform.SHOPIFY).status == SyncState.ERROR


def test_active_only_skips_inactive(db: Session, user_id: str, shopify_connection):
    items = _items(6) + [shopify_item(i, status="draft") for i in range(6, 10)]
    client = FakeSourceClient(items=items, reported_total=10)
    result = _syncer(db, user_id, shopify_connection, client,
                     _settings(batch_size=10, active_only=True)).run()

    assert result.products_synced == 6
    assert result.active_products_synced == 6
    assert result.inactive_products_skipped == 4
    assert result.incomplete is False


def test_single_batch_records_resume_point(db: Session, user_id: str, shopify_connection):
    client = FakeSourceClient(items=_items(25), reported_total=25)
    syncer = _syncer(db, user_id, shopify_connection, client, _settings(batch_size=10))

    result = syncer.run_single_batch(1)

    assert result.products_synced == 10
    assert result.has_more is True
    row = SyncStatusRepository(db).get(user_id, Platform.SHOPIFY)
    assert row.settings["next_page"] == 2
    assert row.settings["has_more"] is True
