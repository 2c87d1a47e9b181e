"""
Sync orchestrator.

Entry point for every catalog sync of one (user, platform). Resolves
credentials, guards against concurrent runs, picks the strategy and turns
whatever happens into a SyncResult.
"""
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.constants.sync import SyncMethod, SyncState
from app.core.config import settings
from app.core.exceptions import BulkExportNotSupported, SyncCancelled, SyncError, SyncInProgressError
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.store_connection_repository import StoreConnectionRepository
from app.repositories.sync_status_repository import SyncStatusRepository
from app.schemas.sync_schemas import SyncResult, SyncSettings, SyncStatusResponse
from app.services.credentials import SourceCredentials, credentials_from_connection
from app.services.sources import get_source_client
from app.services.sources.base import SourceClient
from app.services.sync.bulk import BulkExportController
from app.services.sync.cancellation import CancellationToken
from app.services.sync.context import ProgressObserver, SyncContext
from app.services.sync.locks import RunLock
from app.services.sync.paginated import PaginatedBatchSyncer

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """
    Runs catalog syncs for one (user, platform).

    Usage:
        orchestrator = SyncOrchestrator(db, user_id, "shopify")
        result = orchestrator.start_auto_sync()
    """

    def __init__(
        self,
        db: Session,
        user_id: str,
        platform: str,
        source_factory: Optional[Callable[[SourceCredentials], SourceClient]] = None,
        observer: Optional[ProgressObserver] = None,
        token: Optional[CancellationToken] = None,
        poll_interval: Optional[float] = None,
        max_checks: Optional[int] = None
    ):
        self.db = db
        self.user_id = user_id
        self.platform = platform
        self.source_factory = source_factory or get_source_client
        self.observer = observer
        self.token = token or CancellationToken()
        self.poll_interval = poll_interval
        self.max_checks = max_checks

        self.status_repo = SyncStatusRepository(db)
        self.catalog_repo = CatalogRepository(db)
        self.connection_repo = StoreConnectionRepository(db)
        self._syncing = False

    # ==================== Read-only state ====================

    @property
    def sync_status(self) -> Optional[SyncStatusResponse]:
        row = self.status_repo.get_fresh(self.user_id, self.platform)
        return SyncStatusResponse.model_validate(row) if row else None

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    def cancel(self) -> None:
        """Request cancellation of the current run of this orchestrator."""
        logger.info(f"Cancelling {self.platform} sync for user {self.user_id}")
        self.token.cancel()

    # ==================== Entry points ====================

    def start_full_sync(self, overrides: Optional[Dict[str, Any]] = None) -> SyncResult:
        """Paginated sync of the whole catalog."""
        return self._run(SyncMethod.PAGINATED_BATCH, self._full, overrides)

    def start_bulk_sync(self) -> SyncResult:
        """Sync through the platform's asynchronous bulk export."""
        return self._run(SyncMethod.BULK_EXPORT, self._bulk, None)

    def sync_one_batch(self, overrides: Optional[Dict[str, Any]] = None) -> SyncResult:
        """Sync the next page of a resumable paginated run."""
        return self._run(SyncMethod.PAGINATED_BATCH, self._one_batch, overrides)

    def start_auto_sync(self, overrides: Optional[Dict[str, Any]] = None) -> SyncResult:
        """Bulk export for large catalogs on platforms that offer it, otherwise paginated."""
        return self._run(SyncMethod.PAGINATED_BATCH, self._auto, overrides)

    # ==================== Strategies ====================

    def _full(self, context: SyncContext, sync_settings: SyncSettings) -> SyncResult:
        self.status_repo.mark_in_progress(
            self.user_id, self.platform,
            method=SyncMethod.PAGINATED_BATCH,
            settings={**sync_settings.model_dump(), "next_page": 1, "has_more": True},
        )
        return PaginatedBatchSyncer(context, sync_settings).run()

    def _bulk(self, context: SyncContext, sync_settings: SyncSettings) -> SyncResult:
        controller = BulkExportController(
            context,
            poll_interval=self.poll_interval,
            max_checks=self.max_checks,
            active_only=sync_settings.active_only,
        )
        return controller.run()

    def _one_batch(self, context: SyncContext, sync_settings: SyncSettings) -> SyncResult:
        row = self.status_repo.get(self.user_id, self.platform)
        stored = (row.settings or {}) if row else {}
        resuming = (
            row is not None
            and row.method == SyncMethod.PAGINATED_BATCH
            and bool(stored.get("has_more"))
        )
        page = int(stored.get("next_page") or 1) if resuming else 1

        self.status_repo.mark_in_progress(
            self.user_id, self.platform,
            method=SyncMethod.PAGINATED_BATCH,
            settings={**sync_settings.model_dump(), "next_page": page},
            reset_counters=page == 1,
        )
        return PaginatedBatchSyncer(context, sync_settings).run_single_batch(page)

    def _auto(self, context: SyncContext, sync_settings: SyncSettings) -> SyncResult:
        if context.client.supports_bulk_export:
            try:
                total = context.client.count_products()
            except SyncError as exc:
                logger.warning(f"Could not size catalog, using paginated sync: {exc.message}")
                total = None
            if total is not None and total >= settings.bulk_threshold:
                logger.info(
                    f"{total} products reported; using bulk export for {self.platform}"
                )
                try:
                    return self._bulk(context, sync_settings)
                except BulkExportNotSupported:
                    logger.warning("Bulk export unavailable, falling back to paginated sync")
        return self._full(context, sync_settings)

    # ==================== Run lifecycle ====================

    def _run(
        self,
        method: str,
        strategy: Callable[[SyncContext, SyncSettings], SyncResult],
        overrides: Optional[Dict[str, Any]]
    ) -> SyncResult:
        lock = RunLock(self.user_id, self.platform)
        if not lock.acquire():
            raise SyncInProgressError(
                f"A {self.platform} sync is already running for this account"
            )
        try:
            if self.status_repo.is_in_progress(self.user_id, self.platform):
                raise SyncInProgressError(
                    f"A {self.platform} sync is already running for this account"
                )
            self._syncing = True

            try:
                if self._cancelled_before_start():
                    raise SyncCancelled("Sync cancelled before it started")
                context = self._build_context()
                sync_settings = self._resolve_settings(overrides)
            except SyncError as exc:
                self.status_repo.mark_error(
                    self.user_id, self.platform, exc.message,
                    error_code=exc.error_code, recoverable=exc.recoverable,
                )
                return self._error_result(method, exc)

            try:
                return strategy(context, sync_settings)
            except SyncError as exc:
                self._ensure_final(exc)
                return self._error_result(method, exc)
            except Exception as exc:
                logger.error(f"Unexpected error in {self.platform} sync: {exc}", exc_info=True)
                error = SyncError(f"Unexpected error during sync: {exc}")
                self.db.rollback()
                self._ensure_final(error)
                return self._error_result(method, error)
        finally:
            self._syncing = False
            lock.release()

    def _build_context(self) -> SyncContext:
        connection = self.connection_repo.get(self.user_id, self.platform)
        credentials = credentials_from_connection(connection)
        return SyncContext(
            user_id=self.user_id,
            platform=self.platform,
            credentials=credentials,
            client=self.source_factory(credentials),
            status_repo=self.status_repo,
            catalog_repo=self.catalog_repo,
            connection_repo=self.connection_repo,
            token=self.token,
            observer=self.observer,
        )

    def _cancelled_before_start(self) -> bool:
        row = self.status_repo.get_fresh(self.user_id, self.platform)
        return (
            row is not None
            and row.status == SyncState.PENDING
            and self.status_repo.is_cancel_requested(self.user_id, self.platform)
        )

    def _resolve_settings(self, overrides: Optional[Dict[str, Any]]) -> SyncSettings:
        row = self.status_repo.get(self.user_id, self.platform)
        stored = dict(row.settings or {}) if row else {}
        stored.update(overrides or {})
        return SyncSettings.validated(stored)

    def _ensure_final(self, error: SyncError) -> None:
        """Every failed run ends with the row in error, whoever raised."""
        row = self.status_repo.get_fresh(self.user_id, self.platform)
        if row is None or row.status != SyncState.ERROR:
            self.status_repo.mark_error(
                self.user_id, self.platform, error.message,
                error_code=error.error_code, recoverable=error.recoverable,
            )

    def _error_result(self, method: str, error: SyncError) -> SyncResult:
        row = self.status_repo.get(self.user_id, self.platform)
        return SyncResult(
            status="error",
            method=(row.method if row and row.method else method),
            products_synced=row.products_synced if row else 0,
            total_products_found=row.total_products_found if row else 0,
            active_products_synced=row.active_products_synced if row else 0,
            inactive_products_skipped=row.inactive_products_skipped if row else 0,
            error=row.error_message if row and row.error_message else error.message,
            error_code=error.error_code,
            recoverable=error.recoverable,
        )
