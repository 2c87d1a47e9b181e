"""
Sync status reconciliation
"""
from datetime import timedelta

from sqlalchemy.orm import Session

from app.constants.sync import ConflictType, Platform, SyncMethod, SyncState
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.sync_status_repository import SyncStatusRepository
from app.schemas.sync_schemas import CanonicalProduct
from app.services.sync.reconcile import SyncStatusReconciler
from app.utils.time_helpers import utcnow


def _later(minutes: int):
    return utcnow() + timedelta(minutes=minutes)


def test_stuck_sync_is_marked_error(db: Session, user_id: str):
    """Test: A run without updates for longer than the stale window ends in error"""
    SyncStatusRepository(db).mark_in_progress(
        user_id, Platform.SHOPIFY, SyncMethod.PAGINATED_BATCH, {"batch_size": 250}
    )

    report = SyncStatusReconciler(db).reconcile(user_id, Platform.SHOPIFY, now=_later(45))

    assert [c.type for c in report.conflicts_detected] == [ConflictType.STUCK_SYNC]
    assert report.conflicts_resolved[0].resolution_action == "marked_error"
    assert report.final_status == SyncState.ERROR
    row = SyncStatusRepository(db).get(user_id, Platform.SHOPIFY)
    assert row.error_message.startswith("Sync stalled")
    assert row.settings["recoverable"] is True


def test_recent_run_is_left_alone(db: Session, user_id: str):
    SyncStatusRepository(db).mark_in_progress(
        user_id, Platform.SHOPIFY, SyncMethod.PAGINATED_BATCH, {}
    )

    report = SyncStatusReconciler(db).reconcile(user_id, Platform.SHOPIFY, now=_later(5))

    assert report.conflicts_detected == []
    assert report.final_status == SyncState.IN_PROGRESS


def test_abandoned_bulk_operation_is_cleared(db: Session, user_id: str):
    """Test: A stuck bulk run drops its operation id and falls back to paginated"""
    SyncStatusRepository(db).mark_in_progress(
        user_id, Platform.SHOPIFY, SyncMethod.BULK_EXPORT,
        {"bulk_operation_id": "gid://shopify/BulkOperation/9", "operation": "in_progress"}
    )

    report = SyncStatusReconciler(db).reconcile(user_id, Platform.SHOPIFY, now=_later(31))

    types = {c.type for c in report.conflicts_resolved}
    assert types == {ConflictType.STUCK_SYNC, ConflictType.ABANDONED_BULK_OPERATION}
    row = SyncStatusRepository(db).get(user_id, Platform.SHOPIFY)
    assert row.status == SyncState.ERROR
    assert row.method == SyncMethod.PAGINATED_BATCH
    assert "bulk_operation_id" not in row.settings


def test_count_mismatch_aligns_counters(db: Session, user_id: str):
    """Test: Counters drifting from the catalog by more than 5 are realigned"""
    CatalogRepository(db).upsert_batch(
        user_id, Platform.SHOPIFY,
        [CanonicalProduct(handle=f"p-{i}", title="P") for i in range(20)]
    )
    SyncStatusRepository(db).mark_success(user_id, Platform.SHOPIFY, products_synced=3)

    report = SyncStatusReconciler(db).reconcile(user_id, Platform.SHOPIFY)

    assert report.actual_product_count == 20
    assert [c.type for c in report.conflicts_resolved] == [ConflictType.COUNT_MISMATCH]
    row = SyncStatusRepository(db).get(user_id, Platform.SHOPIFY)
    assert row.products_synced == 20
    assert row.total_products_found == 20


def test_small_count_difference_is_tolerated(db: Session, user_id: str):
    CatalogRepository(db).upsert_batch(
        user_id, Platform.SHOPIFY,
        [CanonicalProduct(handle=f"p-{i}", title="P") for i in range(8)]
    )
    SyncStatusRepository(db).mark_success(user_id, Platform.SHOPIFY, products_synced=5)

    report = SyncStatusReconciler(db).reconcile(user_id, Platform.SHOPIFY)

    assert report.conflicts_detected == []


def test_reconcile_stale_covers_every_stuck_row(db: Session):
    status_repo = SyncStatusRepository(db)
    status_repo.mark_in_progress("a", Platform.SHOPIFY, SyncMethod.PAGINATED_BATCH, {})
    status_repo.mark_in_progress("b", Platform.WOOCOMMERCE, SyncMethod.PAGINATED_BATCH, {})
    status_repo.mark_success("c", Platform.SHOPIFY)

    reports = SyncStatusReconciler(db).reconcile_stale(now=_later(60))

    assert sorted(r.user_id for r in reports) == ["a", "b"]
    assert all(r.final_status == SyncState.ERROR for r in reports)


def test_no_status_row(db: Session, user_id: str):
    report = SyncStatusReconciler(db).reconcile(user_id, Platform.SHOPIFY)
    assert report.final_status is None
    assert report.recommendations
