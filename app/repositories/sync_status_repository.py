"""
Sync status repository.

One SyncStatus row per (user, platform). Writes are last-writer-wins
upserts; callers guard against concurrent runs before writing in_progress.
"""
import logging
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from app.constants.sync import SyncState
from app.models.sync_models import SyncStatus
from app.utils.time_helpers import utcnow

logger = logging.getLogger(__name__)

CANCEL_FLAG = "cancel_requested"


class SyncStatusRepository:
    """Repository for SyncStatus rows."""

    def __init__(self, db: Session):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def get(self, user_id: str, platform: str) -> Optional[SyncStatus]:
        return self.db.query(SyncStatus).filter(
            SyncStatus.user_id == user_id,
            SyncStatus.platform == platform
        ).first()

    def get_fresh(self, user_id: str, platform: str) -> Optional[SyncStatus]:
        """Re-read the row, discarding what this session has cached."""
        row = self.get(user_id, platform)
        if row is not None:
            self.db.refresh(row)
        return row

    def upsert(self, user_id: str, platform: str, **fields) -> SyncStatus:
        """
        Insert or update the status row of (user, platform).

        Args:
            user_id: Owning account
            platform: Source platform
            **fields: Columns to set; unknown names are ignored

        Returns:
            The stored SyncStatus row
        """
        row = self.get(user_id, platform)
        if row is None:
            row = SyncStatus(
                user_id=user_id,
                platform=platform,
                status=SyncState.IDLE,
                products_synced=0,
                total_products_found=0,
                active_products_synced=0,
                inactive_products_skipped=0,
                settings={},
            )
            self.db.add(row)

        for key, value in fields.items():
            if hasattr(row, key):
                setattr(row, key, value)
        row.updated_at = utcnow()

        self.db.commit()
        self.db.refresh(row)
        return row

    def merge_settings(
        self,
        user_id: str,
        platform: str,
        values: Dict[str, Any],
        drop: Optional[List[str]] = None,
        **fields
    ) -> SyncStatus:
        """
        Merge keys into SyncStatus.settings (and optionally set columns).

        The settings dict is replaced, not mutated, so the JSON column is
        flagged dirty.
        """
        row = self.get(user_id, platform)
        current = dict(row.settings or {}) if row else {}
        for key in drop or []:
            current.pop(key, None)
        current.update(values)
        return self.upsert(user_id, platform, settings=current, **fields)

    def is_in_progress(self, user_id: str, platform: str) -> bool:
        row = self.get_fresh(user_id, platform)
        return row is not None and row.status == SyncState.IN_PROGRESS

    def mark_in_progress(
        self,
        user_id: str,
        platform: str,
        method: str,
        settings: Dict[str, Any],
        reset_counters: bool = True
    ) -> SyncStatus:
        fields = {
            "status": SyncState.IN_PROGRESS,
            "method": method,
            "error_message": None,
        }
        if reset_counters:
            fields.update(
                products_synced=0,
                total_products_found=0,
                active_products_synced=0,
                inactive_products_skipped=0,
            )
        values = dict(settings)
        values["started_at"] = utcnow().isoformat()
        return self.merge_settings(
            user_id, platform, values,
            drop=[CANCEL_FLAG, "warning", "incomplete", "error_code", "recoverable"],
            **fields
        )

    def update_progress(
        self,
        user_id: str,
        platform: str,
        products_synced: int,
        total_products_found: Optional[int] = None,
        active_products_synced: Optional[int] = None,
        inactive_products_skipped: Optional[int] = None,
        settings: Optional[Dict[str, Any]] = None
    ) -> SyncStatus:
        """Record a progress tick; counters never move backwards within a run."""
        row = self.get(user_id, platform)
        fields: Dict[str, Any] = {}
        if row is None or products_synced >= (row.products_synced or 0):
            fields["products_synced"] = products_synced
        if total_products_found is not None:
            fields["total_products_found"] = total_products_found
        if active_products_synced is not None:
            fields["active_products_synced"] = active_products_synced
        if inactive_products_skipped is not None:
            fields["inactive_products_skipped"] = inactive_products_skipped
        if settings:
            return self.merge_settings(user_id, platform, settings, **fields)
        return self.upsert(user_id, platform, **fields)

    def mark_success(
        self,
        user_id: str,
        platform: str,
        settings: Optional[Dict[str, Any]] = None,
        **fields
    ) -> SyncStatus:
        fields.setdefault("last_sync_at", utcnow())
        return self.merge_settings(
            user_id, platform, settings or {},
            drop=[CANCEL_FLAG],
            status=SyncState.SUCCESS,
            error_message=None,
            **fields
        )

    def mark_error(
        self,
        user_id: str,
        platform: str,
        message: str,
        error_code: Optional[str] = None,
        recoverable: bool = False
    ) -> SyncStatus:
        logger.error(f"Sync {platform} for user {user_id} failed: {message}")
        return self.merge_settings(
            user_id, platform,
            {"error_code": error_code, "recoverable": recoverable,
             "failed_at": utcnow().isoformat()},
            drop=[CANCEL_FLAG],
            status=SyncState.ERROR,
            error_message=message,
        )

    def request_cancel(self, user_id: str, platform: str) -> Optional[SyncStatus]:
        """
        Flag a running or queued sync for cancellation.

        A running worker polls the flag; a queued run checks it before it
        marks the row in_progress and ends in error without syncing.
        """
        row = self.get(user_id, platform)
        if row is None or row.status not in (SyncState.IN_PROGRESS, SyncState.PENDING):
            return row
        logger.info(f"Cancellation requested for {platform} sync of user {user_id}")
        return self.merge_settings(user_id, platform, {CANCEL_FLAG: True})

    def is_cancel_requested(self, user_id: str, platform: str) -> bool:
        row = self.get_fresh(user_id, platform)
        return bool(row and (row.settings or {}).get(CANCEL_FLAG))
