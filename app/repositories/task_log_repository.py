"""
Task log repository.

Handles sync task audit records.
"""
from typing import Optional, List, Dict
from datetime import datetime
from sqlalchemy.orm import Session

from app.models.sync_models import SyncTaskLog
from app.utils.time_helpers import utcnow


class TaskLogRepository:
    """Repository for sync task log operations."""

    def __init__(self, db: Session):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def create_task_log(
        self,
        task_id: str,
        task_name: str,
        user_id: Optional[str] = None,
        platform: Optional[str] = None,
        task_args: List = None,
        task_kwargs: Dict = None,
        status: str = "pending"
    ) -> SyncTaskLog:
        """
        Create a task log record, or reset the existing one on a redelivery.

        Args:
            task_id: Unique Celery task ID
            task_name: Name of the task
            user_id: Account the task syncs for
            platform: Source platform
            task_args: Positional arguments passed to task
            task_kwargs: Keyword arguments passed to task
            status: Initial task status (default: "pending")

        Returns:
            Stored SyncTaskLog record
        """
        log = self.get_task_log(task_id)
        if log is None:
            log = SyncTaskLog(task_id=task_id, task_name=task_name)
            self.db.add(log)
        log.user_id = user_id
        log.platform = platform
        log.task_args = task_args or []
        log.task_kwargs = task_kwargs or {}
        log.status = status
        if status == "started":
            log.started_at = utcnow()
        self.db.commit()
        self.db.refresh(log)
        return log

    def get_task_log(self, task_id: str) -> Optional[SyncTaskLog]:
        """
        Get task log by task ID.

        Args:
            task_id: Celery task ID

        Returns:
            SyncTaskLog record or None
        """
        return self.db.query(SyncTaskLog).filter(
            SyncTaskLog.task_id == task_id
        ).first()

    def update_task_log(
        self,
        task_id: str,
        status: Optional[str] = None,
        result: Optional[Dict] = None,
        error_message: Optional[str] = None,
        completed_at: Optional[datetime] = None
    ) -> Optional[SyncTaskLog]:
        """
        Update task log record.

        Args:
            task_id: Celery task ID
            status: New task status
            result: Task result dictionary
            error_message: Error message if task failed
            completed_at: Task completion timestamp

        Returns:
            Updated SyncTaskLog record or None
        """
        log = self.get_task_log(task_id)
        if not log:
            return None
        if status:
            log.status = status
        if result is not None:
            log.result = result
        if error_message is not None:
            log.error_message = error_message
        if completed_at:
            log.completed_at = completed_at
        self.db.commit()
        self.db.refresh(log)
        return log

    def get_recent_logs(
        self,
        user_id: str,
        platform: Optional[str] = None,
        limit: int = 20
    ) -> List[SyncTaskLog]:
        query = self.db.query(SyncTaskLog).filter(SyncTaskLog.user_id == user_id)
        if platform:
            query = query.filter(SyncTaskLog.platform == platform)
        return query.order_by(SyncTaskLog.id.desc()).limit(limit).all()
