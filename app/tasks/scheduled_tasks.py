"""
Scheduled Celery tasks: automatic catalog syncs and status reconciliation.
"""
import logging
from typing import Dict, Any

from app.celery_app import celery_app
from app.constants.sync import SyncState
from app.repositories.store_connection_repository import StoreConnectionRepository
from app.repositories.sync_status_repository import SyncStatusRepository
from app.services.sync.reconcile import SyncStatusReconciler
from app.tasks.sync_tasks import DatabaseTask, run_auto_sync

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="app.tasks.scheduled_tasks.schedule_auto_syncs"
)
def schedule_auto_syncs(self) -> Dict[str, Any]:
    """
    Queue an auto sync for every active connection with auto_sync_products.

    Connections whose status is already pending or in progress are skipped.

    Returns:
        Dict with scheduling statistics
    """
    logger.info("Starting scheduled catalog sync")
    connection_repo = StoreConnectionRepository(self.db)
    status_repo = SyncStatusRepository(self.db)

    queued = 0
    skipped = 0
    task_ids = []
    for connection in connection_repo.get_auto_sync_connections():
        row = status_repo.get(connection.user_id, connection.platform)
        if row is not None and row.status in (SyncState.IN_PROGRESS, SyncState.PENDING):
            logger.info(
                f"Skipping {connection.platform} for user {connection.user_id}: "
                f"sync already {row.status}"
            )
            skipped += 1
            continue

        status_repo.upsert(connection.user_id, connection.platform, status=SyncState.PENDING)
        task = run_auto_sync.delay(connection.user_id, connection.platform)
        task_ids.append(task.id)
        queued += 1

    logger.info(f"Scheduled catalog sync: {queued} queued, {skipped} skipped")
    return {"queued": queued, "skipped": skipped, "task_ids": task_ids}


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="app.tasks.scheduled_tasks.reconcile_stale_syncs"
)
def reconcile_stale_syncs(self) -> Dict[str, Any]:
    """Move syncs abandoned by crashed workers out of in_progress."""
    reports = SyncStatusReconciler(self.db).reconcile_stale()
    resolved = sum(len(report.conflicts_resolved) for report in reports)
    if reports:
        logger.warning(f"Reconciled {len(reports)} stale syncs ({resolved} conflicts resolved)")
    return {
        "reconciled": len(reports),
        "conflicts_resolved": resolved,
        "reports": [report.model_dump() for report in reports],
    }
