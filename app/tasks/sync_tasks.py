"""
Celery tasks running catalog syncs.
"""
import logging
from typing import Any, Dict, Optional
from celery import Task

from app.celery_app import celery_app
from app.core.alerts import send_sync_error_alert
from app.core.exceptions import SyncInProgressError
from app.db.session import SessionLocal
from app.repositories.sync_status_repository import SyncStatusRepository
from app.services.sync import CancellationToken, SyncOrchestrator
from app.tasks.task_logger import log_sync_task
from app.tasks.task_monitoring import progress_observer

logger = logging.getLogger(__name__)


class DatabaseTask(Task):
    """Base task with database session management."""
    _db = None

    @property
    def db(self):
        if self._db is None:
            self._db = SessionLocal()
        return self._db

    def after_return(self, *args, **kwargs):
        if self._db is not None:
            self._db.close()
            self._db = None


def _build_orchestrator(task: DatabaseTask, user_id: str, platform: str) -> SyncOrchestrator:
    """Orchestrator whose token observes cancellation requested through the API."""
    status_repo = SyncStatusRepository(task.db)
    token = CancellationToken(
        probe=lambda: status_repo.is_cancel_requested(user_id, platform)
    )
    return SyncOrchestrator(
        task.db,
        user_id,
        platform,
        observer=progress_observer(task, {"user_id": user_id, "platform": platform}),
        token=token,
    )


def _execute(task: DatabaseTask, user_id: str, platform: str, start) -> Dict[str, Any]:
    """Run `start(orchestrator)` and turn the outcome into the task result."""
    orchestrator = _build_orchestrator(task, user_id, platform)
    try:
        result = start(orchestrator)
    except SyncInProgressError as exc:
        logger.warning(f"Skipping {platform} sync for user {user_id}: {exc.message}")
        return {"status": "skipped", **exc.to_dict()}

    if not result.success:
        send_sync_error_alert(
            user_id=user_id,
            platform=platform,
            method=result.method,
            error=result.error or "unknown error",
            error_code=result.error_code,
            recoverable=result.recoverable,
            task_id=task.request.id,
        )
    return result.model_dump()


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="app.tasks.sync_tasks.run_full_sync"
)
@log_sync_task
def run_full_sync(self, user_id: str, platform: str, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Paginated sync of a whole catalog.

    Returns:
        SyncResult as a dict
    """
    return _execute(self, user_id, platform, lambda o: o.start_full_sync(overrides))


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="app.tasks.sync_tasks.run_bulk_sync"
)
@log_sync_task
def run_bulk_sync(self, user_id: str, platform: str) -> Dict[str, Any]:
    """Bulk export sync (Shopify)."""
    return _execute(self, user_id, platform, lambda o: o.start_bulk_sync())


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="app.tasks.sync_tasks.run_batch_sync"
)
@log_sync_task
def run_batch_sync(self, user_id: str, platform: str, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Sync the next page of a resumable run."""
    return _execute(self, user_id, platform, lambda o: o.sync_one_batch(overrides))


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="app.tasks.sync_tasks.run_auto_sync"
)
@log_sync_task
def run_auto_sync(self, user_id: str, platform: str, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Let the orchestrator pick bulk or paginated based on catalog size."""
    return _execute(self, user_id, platform, lambda o: o.start_auto_sync(overrides))


SYNC_TASKS = {
    "full": run_full_sync,
    "bulk": run_bulk_sync,
    "batch": run_batch_sync,
    "auto": run_auto_sync,
}
