"""
Exception hierarchy for the sync engine.

Every error that can end a run derives from SyncError so callers (Celery
tasks, API endpoints, schedulers) can read `recoverable` and decide whether
to re-invoke the orchestrator without inspecting messages.
"""
from typing import Any, Dict, Optional


class SyncError(Exception):
    """Base error of the sync engine."""

    status_code = 500
    error_code = "SYNC_ERROR"
    recoverable = False

    def __init__(
        self,
        message: str,
        recoverable: Optional[bool] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        if recoverable is not None:
            self.recoverable = recoverable
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_code": self.error_code,
            "recoverable": self.recoverable,
            "details": self.details,
        }


class CredentialError(SyncError):
    """Missing, malformed or rejected store credentials."""
    status_code = 400
    error_code = "INVALID_CREDENTIALS"


class StoreConnectionError(SyncError):
    """The store connection does not exist or was deactivated."""
    status_code = 404
    error_code = "STORE_CONNECTION_UNAVAILABLE"


class SyncInProgressError(SyncError):
    """Another run already owns the (user, platform) status row."""
    status_code = 409
    error_code = "SYNC_IN_PROGRESS"
    recoverable = True


class SourceAPIError(SyncError):
    """Network failure, timeout or error response from the source platform."""
    status_code = 502
    error_code = "SOURCE_API_ERROR"
    recoverable = True


class BulkExportNotSupported(SyncError):
    status_code = 400
    error_code = "BULK_EXPORT_NOT_SUPPORTED"


class BulkOperationError(SyncError):
    """The bulk job was rejected, failed or was cancelled on the platform."""
    status_code = 502
    error_code = "BULK_OPERATION_FAILED"


class BulkOperationTimeout(SyncError):
    """The poll loop ran out of checks before the job finished."""
    status_code = 504
    error_code = "BULK_OPERATION_TIMEOUT"
    recoverable = True


class SyncCancelled(SyncError):
    status_code = 409
    error_code = "SYNC_CANCELLED"
    recoverable = True


class InvalidSyncSettings(SyncError):
    """A settings override is outside the accepted bounds."""
    status_code = 422
    error_code = "INVALID_SYNC_SETTINGS"
