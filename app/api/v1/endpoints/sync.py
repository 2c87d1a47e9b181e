"""
Catalog sync endpoints.

Runs are executed by Celery workers; these endpoints queue them, expose the
SyncStatus row and relay cancellation and reconciliation requests.
"""
import logging
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, get_platform
from app.constants.sync import SyncMethod, SyncState
from app.core.exceptions import BulkExportNotSupported, SyncInProgressError
from app.db.session import get_db
from app.repositories.store_connection_repository import StoreConnectionRepository
from app.repositories.sync_status_repository import SyncStatusRepository
from app.repositories.task_log_repository import TaskLogRepository
from app.schemas.sync_schemas import (
    ReconciliationReport,
    SyncSettings,
    SyncStartRequest,
    SyncStatusResponse,
    SyncTaskResponse,
)
from app.services.credentials import credentials_from_connection
from app.services.sources import SOURCE_CLIENTS
from app.services.sync.reconcile import SyncStatusReconciler
from app.tasks.sync_tasks import SYNC_TASKS
from app.tasks.task_monitoring import create_task_response, get_task_info

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["Catalog Sync"])

BUSY_STATES = (SyncState.PENDING, SyncState.IN_PROGRESS)


def _overrides(request: Optional[SyncStartRequest]) -> Dict[str, Any]:
    if request is None:
        return {}
    overrides = dict(request.settings or {})
    if request.preset:
        overrides["preset"] = request.preset
    return overrides


def _queue(
    kind: str,
    method: str,
    user_id: str,
    platform: str,
    db: Session,
    overrides: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Validate the connection, mark the row pending and enqueue the task."""
    status_repo = SyncStatusRepository(db)
    row = status_repo.get_fresh(user_id, platform)
    if row is not None and row.status in BUSY_STATES:
        raise SyncInProgressError(f"A {platform} sync is already {row.status}")

    # Fail fast on missing or malformed credentials and out-of-range settings
    credentials_from_connection(StoreConnectionRepository(db).get(user_id, platform))
    SyncSettings.validated(overrides)

    status_repo.upsert(user_id, platform, status=SyncState.PENDING, error_message=None)
    task_fn = SYNC_TASKS[kind]
    if kind == "bulk":
        task = task_fn.delay(user_id, platform)
    else:
        task = task_fn.delay(user_id, platform, overrides or None)
    logger.info(f"Queued {kind} sync of {platform} for user {user_id}: task {task.id}")
    return create_task_response(task, platform, method)


@router.post("/{platform}/full", response_model=SyncTaskResponse, status_code=202)
async def start_full_sync(
    request: Optional[SyncStartRequest] = None,
    platform: str = Depends(get_platform),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Queue a paginated sync of the whole catalog."""
    return _queue("full", SyncMethod.PAGINATED_BATCH, user_id, platform, db, _overrides(request))


@router.post("/{platform}/bulk", response_model=SyncTaskResponse, status_code=202)
async def start_bulk_sync(
    platform: str = Depends(get_platform),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Queue a bulk export sync (platforms with an asynchronous export only)."""
    if not SOURCE_CLIENTS[platform].supports_bulk_export:
        raise BulkExportNotSupported(f"{platform} does not support bulk export")
    return _queue("bulk", SyncMethod.BULK_EXPORT, user_id, platform, db)


@router.post("/{platform}/batch", response_model=SyncTaskResponse, status_code=202)
async def sync_one_batch(
    request: Optional[SyncStartRequest] = None,
    platform: str = Depends(get_platform),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Queue the next page of a resumable paginated sync."""
    return _queue("batch", SyncMethod.PAGINATED_BATCH, user_id, platform, db, _overrides(request))


@router.post("/{platform}/auto", response_model=SyncTaskResponse, status_code=202)
async def start_auto_sync(
    request: Optional[SyncStartRequest] = None,
    platform: str = Depends(get_platform),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Queue a sync whose strategy is chosen from the catalog size."""
    return _queue("auto", SyncMethod.PAGINATED_BATCH, user_id, platform, db, _overrides(request))


@router.get("/{platform}/status", response_model=SyncStatusResponse)
async def get_sync_status(
    platform: str = Depends(get_platform),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    row = SyncStatusRepository(db).get_fresh(user_id, platform)
    if row is None:
        raise HTTPException(status_code=404, detail=f"No {platform} sync has been run yet")
    return row


@router.post("/{platform}/cancel")
async def cancel_sync(
    platform: str = Depends(get_platform),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Ask a running or queued sync to stop.

    Cancellation is cooperative: the worker notices the flag at its next
    checkpoint, or before it starts when the run is still queued, and ends
    the run in error with recoverable=True.
    """
    status_repo = SyncStatusRepository(db)
    row = status_repo.get_fresh(user_id, platform)
    if row is None or row.status not in BUSY_STATES:
        return {
            "cancel_requested": False,
            "status": row.status if row else SyncState.IDLE,
            "message": "No sync in progress",
        }
    status_repo.request_cancel(user_id, platform)
    return {
        "cancel_requested": True,
        "status": row.status,
        "message": "Cancellation requested",
    }


@router.post("/{platform}/reconcile", response_model=ReconciliationReport)
async def reconcile_sync_status(
    platform: str = Depends(get_platform),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Repair a stuck or inconsistent SyncStatus row."""
    return SyncStatusReconciler(db).reconcile(user_id, platform)


@router.get("/tasks/{task_id}")
async def get_task_detail(task_id: str, db: Session = Depends(get_db)):
    """Celery state, live progress and stored result of a sync task."""
    return get_task_info(task_id, db=db)


@router.get("/{platform}/tasks")
async def list_sync_tasks(
    limit: int = 20,
    platform: str = Depends(get_platform),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Most recent sync tasks of this account on the platform."""
    logs = TaskLogRepository(db).get_recent_logs(user_id, platform, limit=min(limit, 100))
    return [
        {
            "task_id": log.task_id,
            "task_name": log.task_name,
            "status": log.status,
            "error": log.error_message,
            "started_at": log.started_at.isoformat() if log.started_at else None,
            "completed_at": log.completed_at.isoformat() if log.completed_at else None,
        }
        for log in logs
    ]
