"""
Paginated batch syncer.

Walks the source catalog one page at a time, persisting each page before
requesting the next. A run stops on whichever comes first: too many
consecutive empty pages, the page ceiling, or the reported total being
reached. Progress is written to SyncStatus after every page so a failure
never loses work already persisted.
"""
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.constants.sync import SyncMethod
from app.core.exceptions import SyncCancelled, SyncError
from app.schemas.sync_schemas import SyncResult, SyncSettings
from app.services.converters import wrap_page_item
from app.services.sync.context import SyncContext

logger = logging.getLogger(__name__)

# Share of the reported total that must be synced for a run to count as complete
COMPLETENESS_RATIO = 0.95


class StopReason:
    EXHAUSTED = "exhausted"
    PAGE_CEILING = "page_ceiling"
    COMPLETE = "complete"


@dataclass
class RunState:
    """Counters accumulated across the passes of one run."""
    synced: int = 0
    active: int = 0
    skipped: int = 0
    failed: int = 0
    seen: int = 0
    pages_fetched: int = 0
    last_page: int = 0
    reported_total: Optional[int] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def accounted(self) -> int:
        """Products either written or intentionally skipped."""
        return self.synced + self.skipped

    @property
    def total_found(self) -> int:
        if self.reported_total is not None:
            return self.reported_total
        return self.seen

    def is_complete(self) -> bool:
        if self.reported_total is None:
            return True
        return self.accounted >= COMPLETENESS_RATIO * self.reported_total


class PaginatedBatchSyncer:
    """Syncs a catalog page by page using the REST listing of the source."""

    def __init__(
        self,
        context: SyncContext,
        sync_settings: SyncSettings,
        rng: Optional[random.Random] = None
    ):
        self.context = context
        self.settings = sync_settings
        self.rng = rng or random.Random()

    # ==================== Full run ====================

    def run(self, start_page: int = 1) -> SyncResult:
        """
        Run a complete paginated sync.

        The caller has already marked the status row in_progress. On failure
        the row is moved to error with the progress reached so far and the
        SyncError is re-raised.

        Args:
            start_page: First page to request (1-indexed)

        Returns:
            SyncResult of a successful (possibly incomplete) run
        """
        ctx = self.context
        state = RunState()
        logger.info(
            f"Starting paginated sync of {ctx.platform} for user {ctx.user_id} "
            f"(batch_size={self.settings.batch_size}, "
            f"max_pages={self.settings.effective_max_pages})"
        )

        try:
            state.reported_total = self._count_products()
            reason = self._run_pass(state, start_page)
            self._validate(state, reason)
        except SyncCancelled as exc:
            self._fail(state, "Sync cancelled by user", exc)
            raise
        except SyncError as exc:
            self._fail(state, exc.message, exc)
            raise
        except Exception as exc:
            logger.error(f"Unexpected error during paginated sync: {exc}", exc_info=True)
            error = SyncError(f"Unexpected error during sync: {exc}")
            self._fail(state, error.message, error)
            raise error from exc

        incomplete = bool(state.warnings)
        final_settings: Dict[str, Any] = {
            "next_page": 1,
            "has_more": False,
            "last_page": state.last_page,
            "pages_fetched": state.pages_fetched,
            "failed_records": state.failed,
            "incomplete": incomplete,
        }
        if incomplete:
            final_settings["warning"] = "; ".join(state.warnings)

        ctx.status_repo.mark_success(
            ctx.user_id, ctx.platform,
            settings=final_settings,
            method=SyncMethod.PAGINATED_BATCH,
            products_synced=state.synced,
            total_products_found=max(state.total_found, state.synced),
            active_products_synced=state.active,
            inactive_products_skipped=state.skipped,
        )
        ctx.notify(100, 100, f"Sync complete: {state.synced} products")
        logger.info(
            f"Paginated sync of {ctx.platform} for user {ctx.user_id} finished: "
            f"{state.synced} synced over {state.pages_fetched} pages"
            + (" (incomplete)" if incomplete else "")
        )

        return SyncResult(
            status="success",
            method=SyncMethod.PAGINATED_BATCH,
            products_synced=state.synced,
            total_products_found=max(state.total_found, state.synced),
            active_products_synced=state.active,
            inactive_products_skipped=state.skipped,
            pages_fetched=state.pages_fetched,
            incomplete=incomplete,
            warnings=list(state.warnings),
        )

    def _count_products(self) -> Optional[int]:
        try:
            total = self.context.client.count_products()
        except SyncError as exc:
            if not exc.recoverable:
                raise
            logger.warning(f"Could not count {self.context.platform} products: {exc.message}")
            return None
        if total is not None:
            logger.info(f"{self.context.platform} reports {total} products")
        return total

    def _run_pass(self, state: RunState, start_page: int) -> str:
        """Fetch pages from `start_page` until a termination rule fires."""
        ctx = self.context
        ceiling = start_page - 1 + self.settings.effective_max_pages
        empty_streak = 0
        page = start_page

        while True:
            ctx.token.raise_if_cancelled()
            ctx.ensure_store_active()
            ctx.notify(self._percent(state), 100, f"Fetching page {page}")

            result = ctx.client.fetch_page(page, self.settings.batch_size)
            state.pages_fetched += 1
            state.last_page = page
            if result.reported_total is not None:
                state.reported_total = result.reported_total

            if result.items:
                empty_streak = 0
                self._persist_page(state, result.items)
            else:
                empty_streak += 1
                logger.debug(f"Page {page} empty ({empty_streak} in a row)")

            self._record_progress(state, page, empty_streak)
            ctx.notify(
                self._percent(state), 100,
                f"Synced {state.synced} products (page {page})"
            )

            if not result.items and empty_streak > self.settings.early_termination_threshold:
                logger.info(f"Stopping after {empty_streak} consecutive empty pages")
                return StopReason.EXHAUSTED
            if page >= ceiling:
                logger.warning(f"Page ceiling of {self.settings.effective_max_pages} pages reached")
                return StopReason.PAGE_CEILING
            if state.reported_total is not None and state.accounted >= state.reported_total:
                return StopReason.COMPLETE

            self._pause()
            page += 1

    def _validate(self, state: RunState, reason: str) -> None:
        """Compare what was synced with the reported total, recovering if allowed."""
        if not self.settings.validation_checks or state.is_complete():
            if reason == StopReason.PAGE_CEILING and state.reported_total is None:
                state.warnings.append(
                    f"Stopped at the page ceiling ({self.settings.effective_max_pages} pages); "
                    "more products may remain"
                )
            return

        if self.settings.auto_recovery:
            for recovery_pass in range(1, self.settings.max_recovery_passes + 1):
                before = state.accounted
                resume_page = state.last_page + 1
                logger.warning(
                    f"Synced {state.accounted} of {state.reported_total} products; "
                    f"recovery pass {recovery_pass} resuming at page {resume_page}"
                )
                self.context.status_repo.merge_settings(
                    self.context.user_id, self.context.platform,
                    {"recovery_pass": recovery_pass, "next_page": resume_page}
                )
                self._pause()
                self._run_pass(state, resume_page)
                if state.is_complete() or state.accounted == before:
                    break

        if not state.is_complete():
            state.warnings.append(
                f"Only {state.accounted} of {state.reported_total} products were synced"
            )

    # ==================== Single batch ====================

    def run_single_batch(self, page: int) -> SyncResult:
        """
        Fetch and persist exactly one page, then record where to resume.

        Counters accumulate across batches of a resumable run and restart
        when `page` is 1.
        """
        ctx = self.context
        row = ctx.status_repo.get(ctx.user_id, ctx.platform)
        state = RunState()
        if row is not None and page > 1:
            state.synced = row.products_synced or 0
            state.active = row.active_products_synced or 0
            state.skipped = row.inactive_products_skipped or 0
            state.seen = state.accounted

        try:
            ctx.token.raise_if_cancelled()
            ctx.ensure_store_active()
            if page == 1 or row is None or not row.total_products_found:
                state.reported_total = self._count_products()
            else:
                state.reported_total = row.total_products_found

            result = ctx.client.fetch_page(page, self.settings.batch_size)
            state.pages_fetched = 1
            state.last_page = page
            if result.reported_total is not None:
                state.reported_total = result.reported_total
            if result.items:
                self._persist_page(state, result.items)
        except SyncCancelled as exc:
            self._fail(state, "Sync cancelled by user", exc)
            raise
        except SyncError as exc:
            self._fail(state, exc.message, exc)
            raise

        if state.reported_total is not None:
            has_more = bool(result.items) and state.accounted < state.reported_total
        else:
            has_more = len(result.items) >= self.settings.batch_size
        next_page = page + 1 if has_more else 1

        ctx.status_repo.mark_success(
            ctx.user_id, ctx.platform,
            settings={"next_page": next_page, "has_more": has_more, "last_page": page},
            method=SyncMethod.PAGINATED_BATCH,
            products_synced=state.synced,
            total_products_found=max(state.total_found, state.synced),
            active_products_synced=state.active,
            inactive_products_skipped=state.skipped,
        )
        ctx.notify(self._percent(state), 100, f"Synced page {page}")
        logger.info(
            f"Batch {page} of {ctx.platform} for user {ctx.user_id}: "
            f"{state.synced} synced so far, has_more={has_more}"
        )

        return SyncResult(
            status="success",
            method=SyncMethod.PAGINATED_BATCH,
            products_synced=state.synced,
            total_products_found=max(state.total_found, state.synced),
            active_products_synced=state.active,
            inactive_products_skipped=state.skipped,
            pages_fetched=1,
            has_more=has_more,
        )

    # ==================== Helpers ====================

    def _persist_page(self, state: RunState, items: List[Dict[str, Any]]) -> None:
        ctx = self.context
        state.seen += len(items)
        records = [
            wrap_page_item(ctx.platform, item, ctx.credentials.weight_unit)
            for item in items
        ]
        outcome = ctx.persist(records, active_only=self.settings.active_only)
        state.synced += outcome.synced
        state.active += outcome.active
        state.skipped += outcome.skipped
        state.failed += outcome.failed

    def _record_progress(self, state: RunState, page: int, empty_streak: int) -> None:
        ctx = self.context
        ctx.status_repo.update_progress(
            ctx.user_id, ctx.platform,
            products_synced=state.synced,
            total_products_found=max(state.total_found, state.synced),
            active_products_synced=state.active,
            inactive_products_skipped=state.skipped,
            settings={
                "last_page": page,
                "next_page": page + 1,
                "empty_page_streak": empty_streak,
                "pages_fetched": state.pages_fetched,
            },
        )

    def _percent(self, state: RunState) -> int:
        """Progress estimate; never reports completion before the run ends."""
        if state.reported_total:
            ratio = min(state.accounted / state.reported_total, 0.95)
        else:
            estimated = max(state.synced * 1.2, 1000)
            ratio = min(state.synced / estimated, 0.90)
        return int(ratio * 100)

    def _pause(self) -> None:
        delay_ms = self.settings.rate_limit_delay
        if self.settings.rate_limit_jitter:
            delay_ms += self.rng.uniform(0, self.settings.rate_limit_jitter)
        self.context.token.wait(delay_ms / 1000.0)

    def _fail(self, state: RunState, message: str, error: SyncError) -> None:
        ctx = self.context
        # A failed flush leaves the session unusable until rolled back
        ctx.status_repo.db.rollback()
        try:
            ctx.status_repo.update_progress(
                ctx.user_id, ctx.platform,
                products_synced=state.synced,
                active_products_synced=state.active,
                inactive_products_skipped=state.skipped,
            )
        except Exception as exc:
            logger.warning(f"Could not save progress before failing: {exc}")
        ctx.status_repo.mark_error(
            ctx.user_id, ctx.platform, message,
            error_code=error.error_code,
            recoverable=error.recoverable,
        )
