"""
Decorator for automatic logging of sync Celery tasks.
"""
import functools
import logging
from typing import Callable, Any
from celery import Task

from app.db.session import SessionLocal
from app.repositories.task_log_repository import TaskLogRepository
from app.utils.time_helpers import utcnow

logger = logging.getLogger(__name__)


def log_sync_task(func: Callable) -> Callable:
    """
    Record the execution of a sync task in SyncTaskLog.

    The task's first two positional arguments (or the user_id / platform
    keywords) identify the sync. A returned dict with status "error" is
    logged as a failed run; raised exceptions are logged and re-raised.

    Usage:
        @celery_app.task(bind=True)
        @log_sync_task
        def my_task(self, user_id, platform):
            ...
    """
    @functools.wraps(func)
    def wrapper(self: Task, *args, **kwargs) -> Any:
        db = SessionLocal()
        task_log_repo = TaskLogRepository(db)
        task_id = self.request.id
        user_id = kwargs.get('user_id', args[0] if len(args) > 0 else None)
        platform = kwargs.get('platform', args[1] if len(args) > 1 else None)

        try:
            task_log_repo.create_task_log(
                task_id=task_id,
                task_name=self.name,
                user_id=user_id,
                platform=platform,
                task_args=list(args),
                task_kwargs=kwargs,
                status="started"
            )
            logger.info(f"Task {self.name} [{task_id}] started")

            result = func(self, *args, **kwargs)

            failed = isinstance(result, dict) and result.get('status') == 'error'
            task_log_repo.update_task_log(
                task_id=task_id,
                status="failure" if failed else "success",
                result=result if isinstance(result, dict) else {"data": result},
                error_message=result.get('error') if failed else None,
                completed_at=utcnow()
            )
            if failed:
                logger.warning(f"Task {self.name} [{task_id}] finished with error: {result.get('error')}")
            else:
                logger.info(f"Task {self.name} [{task_id}] completed successfully")
            return result

        except Exception as exc:
            logger.error(f"Task {self.name} [{task_id}] failed: {exc}")
            db.rollback()
            task_log_repo.update_task_log(
                task_id=task_id,
                status="failure",
                error_message=str(exc),
                completed_at=utcnow()
            )
            raise

        finally:
            db.close()

    return wrapper
