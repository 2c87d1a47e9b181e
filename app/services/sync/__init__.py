from app.services.sync.bulk import BulkExportController, parse_bulk_jsonl
from app.services.sync.cancellation import CancellationToken
from app.services.sync.context import SyncContext
from app.services.sync.locks import RunLock
from app.services.sync.orchestrator import SyncOrchestrator
from app.services.sync.paginated import PaginatedBatchSyncer
from app.services.sync.reconcile import SyncStatusReconciler

__all__ = [
    "BulkExportController",
    "CancellationToken",
    "PaginatedBatchSyncer",
    "RunLock",
    "SyncContext",
    "SyncOrchestrator",
    "SyncStatusReconciler",
    "parse_bulk_jsonl",
]
