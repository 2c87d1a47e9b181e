"""
Sync task tracking.

Provides:
1. Signal handlers logging task lifecycle and alerting on crashes
2. Real-time progress updates published as PROGRESS task state
3. Helper returning task_id + metadata when a task is queued
4. Combined Celery + database view of a task
"""
import logging
from typing import Dict, Any, Optional
from celery import Task
from celery.result import AsyncResult
from celery.signals import task_failure, task_revoked

from app.db.session import SessionLocal
from app.repositories.task_log_repository import TaskLogRepository
from app.core.alerts import AlertLevel, alert_manager
from app.utils.time_helpers import utcnow

logger = logging.getLogger(__name__)


# ==================== Signal Handlers ====================

@task_failure.connect
def task_failure_handler(sender=None, task_id=None, exception=None, **kwargs):
    """Runs when a task raises instead of returning a SyncResult."""
    task_name = getattr(sender, 'name', 'unknown')
    logger.error(f"[SIGNAL] Task {task_name} [{task_id}] crashed: {exception}")
    alert_manager.send_alert(
        title=f"Task crashed: {task_name}",
        message=f"{type(exception).__name__}: {exception}",
        level=AlertLevel.CRITICAL,
        context={'task_id': task_id, 'task_name': task_name}
    )


@task_revoked.connect
def task_revoked_handler(sender=None, request=None, terminated=None, signum=None, **kwargs):
    task_id = getattr(request, 'id', None)
    logger.warning(
        f"[SIGNAL] Task [{task_id}] was revoked "
        f"(terminated={terminated}, signal={signum})"
    )
    if not task_id:
        return

    db = SessionLocal()
    try:
        TaskLogRepository(db).update_task_log(
            task_id=task_id,
            status="revoked",
            error_message=f"Task revoked (signal={signum})",
            completed_at=utcnow()
        )
    except Exception as e:
        logger.error(f"Error updating revoked task status: {e}")
    finally:
        db.close()


# ==================== Helper Functions ====================

def create_task_response(task, platform: str, method: str) -> Dict[str, Any]:
    """
    Consistent response when a sync task is queued.

    Usage:
        task = run_full_sync.delay(user_id, platform)
        return create_task_response(task, platform, "paginated_batch")
    """
    return {
        "task_id": task.id,
        "status": "queued",
        "platform": platform,
        "method": method,
        "created_at": utcnow().isoformat(),
        "check_url": f"/api/v1/sync/tasks/{task.id}"
    }


def update_task_progress(
    task: Task,
    current: int,
    total: int,
    message: str = None,
    metadata: Dict[str, Any] = None
):
    """
    Publish task progress in real time.

    Usage inside a task:
        update_task_progress(self, 40, 100, "Synced 1000 products (page 4)")
    """
    progress_data = {
        'current': current,
        'total': total,
        'percentage': round((current / total * 100), 2) if total > 0 else 0,
    }

    if message:
        progress_data['message'] = message

    if metadata:
        progress_data['metadata'] = metadata

    task.update_state(
        state='PROGRESS',
        meta=progress_data
    )


def get_task_info(task_id: str, db=None) -> Dict[str, Any]:
    """
    Full view of a task: Celery state plus its SyncTaskLog record.

    Returns:
        {
            "task_id": "uuid",
            "celery_state": "PROGRESS",
            "db_status": "started",
            "progress": {...},
            "result": {...},
            "error": None,
            ...
        }
    """
    task_result = AsyncResult(task_id)
    celery_state = task_result.state
    celery_result = task_result.result if task_result.ready() else None
    progress = task_result.info if celery_state == 'PROGRESS' else None

    own_session = db is None
    db = db or SessionLocal()
    try:
        db_log = TaskLogRepository(db).get_task_log(task_id)

        if not db_log:
            return {
                "task_id": task_id,
                "celery_state": celery_state,
                "db_status": None,
                "found_in_db": False,
                "progress": progress,
                "result": celery_result,
                "error": str(task_result.info) if celery_state == 'FAILURE' else None
            }

        duration = None
        if db_log.started_at and db_log.completed_at:
            duration = (db_log.completed_at - db_log.started_at).total_seconds()

        return {
            "task_id": task_id,
            "task_name": db_log.task_name,
            "user_id": db_log.user_id,
            "platform": db_log.platform,
            "celery_state": celery_state,
            "db_status": db_log.status,
            "progress": progress,
            "result": db_log.result or celery_result,
            "error": db_log.error_message,
            "created_at": db_log.created_at.isoformat() if db_log.created_at else None,
            "started_at": db_log.started_at.isoformat() if db_log.started_at else None,
            "completed_at": db_log.completed_at.isoformat() if db_log.completed_at else None,
            "duration_seconds": duration,
            "found_in_db": True
        }

    finally:
        if own_session:
            db.close()


def progress_observer(task: Task, metadata: Optional[Dict[str, Any]] = None):
    """Adapt SyncProgress callbacks to PROGRESS task state updates."""
    def observe(progress):
        update_task_progress(task, progress.current, progress.total, progress.message, metadata)
    return observe
