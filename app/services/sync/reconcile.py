"""
Sync status reconciliation.

Repairs SyncStatus rows left inconsistent by crashed workers or partial
runs: runs stuck in progress, bulk exports nobody is polling any more and
counters that drifted from the catalog.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from app.constants.sync import ConflictType, SyncMethod, SyncState
from app.core.config import settings
from app.models.sync_models import SyncStatus
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.sync_status_repository import SyncStatusRepository
from app.schemas.sync_schemas import ReconciliationReport, SyncConflict
from app.utils.time_helpers import utcnow

logger = logging.getLogger(__name__)

BUSY_STATES = (SyncState.IN_PROGRESS, SyncState.PENDING)


class SyncStatusReconciler:
    """Detects and resolves SyncStatus conflicts."""

    def __init__(
        self,
        db: Session,
        stale_minutes: Optional[int] = None,
        count_tolerance: Optional[int] = None
    ):
        self.db = db
        self.status_repo = SyncStatusRepository(db)
        self.catalog_repo = CatalogRepository(db)
        self.stale_after = timedelta(minutes=stale_minutes or settings.stale_sync_minutes)
        self.count_tolerance = (
            settings.count_mismatch_tolerance if count_tolerance is None else count_tolerance
        )

    def reconcile(
        self,
        user_id: str,
        platform: str,
        now: Optional[datetime] = None
    ) -> ReconciliationReport:
        """
        Reconcile the status row of (user, platform) with the catalog.

        Args:
            user_id: Owning account
            platform: Source platform
            now: Reference time for staleness (defaults to utcnow)

        Returns:
            ReconciliationReport with detected and resolved conflicts
        """
        now = now or utcnow()
        actual = self.catalog_repo.count_products(user_id, platform)
        report = ReconciliationReport(
            user_id=user_id, platform=platform, actual_product_count=actual
        )

        row = self.status_repo.get_fresh(user_id, platform)
        if row is None:
            report.recommendations.append("No sync has been run for this platform yet")
            return report

        if row.status in BUSY_STATES and row.updated_at and now - row.updated_at > self.stale_after:
            self._resolve_stuck(row, now, report)
        elif row.status in SyncState.FINAL:
            self._resolve_count_mismatch(row, actual, report)

        row = self.status_repo.get(user_id, platform)
        report.final_status = row.status
        if report.conflicts_detected:
            logger.info(
                f"Reconciled {platform} status of user {user_id}: "
                f"{len(report.conflicts_resolved)}/{len(report.conflicts_detected)} conflicts resolved"
            )
        return report

    def reconcile_stale(self, now: Optional[datetime] = None) -> List[ReconciliationReport]:
        """Reconcile every row stuck in a busy state."""
        now = now or utcnow()
        cutoff = now - self.stale_after
        rows = self.db.query(SyncStatus).filter(
            SyncStatus.status.in_(BUSY_STATES),
            SyncStatus.updated_at < cutoff
        ).all()
        return [self.reconcile(row.user_id, row.platform, now=now) for row in rows]

    def _resolve_stuck(self, row: SyncStatus, now: datetime, report: ReconciliationReport) -> None:
        minutes = int((now - row.updated_at).total_seconds() // 60)
        stuck = SyncConflict(
            type=ConflictType.STUCK_SYNC,
            description=f"Sync {row.status} with no update for {minutes} minutes",
            severity="high",
        )
        report.conflicts_detected.append(stuck)

        stored = row.settings or {}
        abandoned = None
        if stored.get("bulk_operation_id"):
            abandoned = SyncConflict(
                type=ConflictType.ABANDONED_BULK_OPERATION,
                description=f"Bulk operation {stored['bulk_operation_id']} is no longer polled",
                severity="medium",
            )
            report.conflicts_detected.append(abandoned)

        self.status_repo.mark_error(
            row.user_id, row.platform,
            f"Sync stalled: no progress for {minutes} minutes",
            error_code="SYNC_STALLED",
            recoverable=True,
        )
        stuck.resolved = True
        stuck.resolution_action = "marked_error"
        report.conflicts_resolved.append(stuck)

        if abandoned is not None:
            self.status_repo.merge_settings(
                row.user_id, row.platform, {},
                drop=["bulk_operation_id", "bulk_status", "operation"],
                method=SyncMethod.PAGINATED_BATCH,
            )
            abandoned.resolved = True
            abandoned.resolution_action = "cleared_bulk_operation"
            report.conflicts_resolved.append(abandoned)
            report.recommendations.append("Restart with a paginated sync or a new bulk export")
        else:
            report.recommendations.append("Restart the sync; progress already saved is kept")

    def _resolve_count_mismatch(
        self,
        row: SyncStatus,
        actual: int,
        report: ReconciliationReport
    ) -> None:
        recorded = row.products_synced or 0
        if abs(recorded - actual) <= self.count_tolerance:
            return

        conflict = SyncConflict(
            type=ConflictType.COUNT_MISMATCH,
            description=f"Status reports {recorded} products but the catalog holds {actual}",
            severity="low",
        )
        report.conflicts_detected.append(conflict)

        fields = {"products_synced": actual}
        if (row.total_products_found or 0) < actual:
            fields["total_products_found"] = actual
        self.status_repo.upsert(row.user_id, row.platform, **fields)

        conflict.resolved = True
        conflict.resolution_action = "aligned_counters"
        report.conflicts_resolved.append(conflict)
