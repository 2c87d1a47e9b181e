"""
Bulk export controller.

Submits an asynchronous catalog export to the source platform, polls it
until it reaches a terminal state, then streams the JSONL result and
upserts it in fixed-size batches.
"""
import json
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.constants.sync import BulkOperationStep, BulkState, SyncMethod
from app.core.config import settings
from app.core.exceptions import (
    BulkExportNotSupported,
    BulkOperationError,
    BulkOperationTimeout,
    SyncCancelled,
    SyncError,
)
from app.schemas.source_records import ShopifyBulkProduct
from app.schemas.sync_schemas import BulkOperation, SyncResult
from app.services.sync.context import SyncContext

logger = logging.getLogger(__name__)

PRODUCT_TYPENAMES = {"Product"}
VARIANT_TYPENAMES = {"ProductVariant"}
IMAGE_TYPENAMES = {"ProductImage", "Image", "MediaImage"}
PRODUCT_GID_PREFIX = "gid://shopify/Product/"
CANCEL_CHECK_EVERY = 500


@dataclass
class ParseStats:
    lines: int = 0
    malformed: int = 0
    ignored: int = 0


def _classify(record: Dict) -> Optional[str]:
    typename = record.get("__typename")
    if typename in PRODUCT_TYPENAMES:
        return "product"
    if typename in VARIANT_TYPENAMES:
        return "variant"
    if typename in IMAGE_TYPENAMES:
        return "image"
    if typename:
        return None
    # Exports without __typename: infer from the id and parent link
    if "__parentId" not in record:
        return "product" if str(record.get("id", "")).startswith(PRODUCT_GID_PREFIX) else None
    if "sku" in record or "price" in record:
        return "variant"
    if "url" in record or "src" in record or "originalSrc" in record:
        return "image"
    return None


def parse_bulk_jsonl(
    lines: Iterable[str],
    check: Optional[Callable[[], None]] = None,
    check_every: int = CANCEL_CHECK_EVERY
):
    """
    Rebuild products from a bulk export stream.

    Each line is one JSON object. Child lines (variants, images) reference
    their product through `__parentId`. Malformed lines are logged and
    skipped without aborting the parse.

    Args:
        lines: JSONL lines, str or bytes
        check: Called every `check_every` lines; raising from it stops the parse
        check_every: Lines between two calls of `check`

    Returns:
        Tuple of (list of ShopifyBulkProduct, ParseStats)
    """
    stats = ParseStats()
    products: Dict[str, ShopifyBulkProduct] = {}
    orphans: List[Dict] = []

    for line in lines:
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        line = line.strip()
        if not line:
            continue
        stats.lines += 1
        if check is not None and stats.lines % check_every == 0:
            check()
        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            stats.malformed += 1
            logger.warning(f"Skipping malformed bulk line {stats.lines}: {exc}")
            continue
        if not isinstance(record, dict):
            stats.malformed += 1
            continue

        kind = _classify(record)
        if kind == "product":
            product_id = record.get("id")
            if product_id in products:
                products[product_id].data.update(record)
            else:
                products[product_id] = ShopifyBulkProduct(data=record)
        elif kind in ("variant", "image"):
            parent = products.get(record.get("__parentId"))
            if parent is None:
                orphans.append(record)
                continue
            _attach(parent, kind, record)
        else:
            stats.ignored += 1

    # Children normally follow their parent, but tolerate any order
    for record in orphans:
        parent = products.get(record.get("__parentId"))
        if parent is None:
            stats.ignored += 1
            continue
        _attach(parent, _classify(record), record)

    if stats.malformed:
        logger.warning(f"Bulk export contained {stats.malformed} malformed lines")
    return list(products.values()), stats


def _attach(parent: ShopifyBulkProduct, kind: str, record: Dict) -> None:
    if kind == "variant":
        parent.variants.append(record)
    else:
        parent.images.append(record)


class BulkExportController:
    """Drives one bulk export from submission to catalog upsert."""

    def __init__(
        self,
        context: SyncContext,
        poll_interval: Optional[float] = None,
        max_checks: Optional[int] = None,
        batch_size: Optional[int] = None,
        active_only: bool = False
    ):
        self.context = context
        self.poll_interval = settings.bulk_poll_interval if poll_interval is None else poll_interval
        self.max_checks = max_checks or settings.bulk_max_checks
        self.batch_size = batch_size or settings.bulk_upsert_batch_size
        self.active_only = active_only

    def submit(self) -> BulkOperation:
        """
        Start the export. Nothing is written to SyncStatus when submission
        fails, so a rejected export never leaves the row in_progress.
        """
        ctx = self.context
        if not ctx.client.supports_bulk_export:
            raise BulkExportNotSupported(f"{ctx.platform} does not support bulk export")
        ctx.token.raise_if_cancelled()

        operation = ctx.client.submit_bulk_export()
        ctx.status_repo.mark_in_progress(
            ctx.user_id, ctx.platform,
            method=SyncMethod.BULK_EXPORT,
            settings={
                "operation": BulkOperationStep.STARTED,
                "bulk_operation_id": operation.id,
                "bulk_status": operation.state,
                "checks": 0,
            },
        )
        ctx.notify(0, 100, "Bulk export submitted")
        return operation

    def run(self) -> SyncResult:
        """Submit, wait for and load a bulk export."""
        operation = self.submit()
        try:
            operation = self.wait(operation)
            return self.load(operation)
        except SyncCancelled as exc:
            self._fail("Sync cancelled by user", exc)
            raise
        except SyncError as exc:
            self._fail(exc.message, exc)
            raise
        except Exception as exc:
            logger.error(f"Unexpected error during bulk sync: {exc}", exc_info=True)
            error = SyncError(f"Unexpected error during bulk sync: {exc}")
            self._fail(error.message, error)
            raise error from exc

    def wait(self, operation: BulkOperation) -> BulkOperation:
        """Poll until completed; raises on failure, cancellation or timeout."""
        ctx = self.context
        for check in range(1, self.max_checks + 1):
            ctx.token.raise_if_cancelled()
            operation = ctx.client.get_bulk_operation(operation.id)
            logger.info(
                f"Bulk operation {operation.id}: {operation.state} "
                f"(check {check}/{self.max_checks}, objects={operation.object_count})"
            )
            ctx.status_repo.merge_settings(
                ctx.user_id, ctx.platform,
                {
                    "operation": BulkOperationStep.IN_PROGRESS,
                    "bulk_status": operation.state,
                    "checks": check,
                    "object_count": operation.object_count,
                },
            )
            ctx.notify(min(int(check / self.max_checks * 50), 50), 100,
                       f"Bulk export {operation.state}")

            if operation.state == BulkState.COMPLETED:
                if operation.result_url:
                    return operation
                if not operation.object_count:
                    logger.info(f"Bulk operation {operation.id} completed with no data")
                    return operation
            elif operation.state in (BulkState.FAILED, BulkState.CANCELLED):
                raise BulkOperationError(
                    f"Bulk operation {operation.state}: {operation.error_code or 'unknown error'}",
                    details={"bulk_operation_id": operation.id, "error_code": operation.error_code},
                )

            if check < self.max_checks:
                ctx.token.wait(self.poll_interval)

        raise BulkOperationTimeout(
            f"Bulk operation timed out after {self.max_checks} checks, please retry",
            details={"bulk_operation_id": operation.id},
        )

    def load(self, operation: BulkOperation) -> SyncResult:
        """Download the export and upsert it in batches."""
        ctx = self.context
        products: List[ShopifyBulkProduct] = []
        stats = ParseStats()

        if operation.result_url:
            ctx.status_repo.merge_settings(
                ctx.user_id, ctx.platform, {"operation": BulkOperationStep.DOWNLOADING}
            )
            ctx.notify(50, 100, "Downloading bulk export")
            ctx.token.raise_if_cancelled()
            products, stats = parse_bulk_jsonl(
                ctx.client.download_bulk_result(operation.result_url),
                check=ctx.token.raise_if_cancelled,
            )

        total = len(products)
        logger.info(f"Bulk export {operation.id}: {total} products from {stats.lines} lines")
        ctx.status_repo.update_progress(
            ctx.user_id, ctx.platform, products_synced=0, total_products_found=total
        )

        synced = active = skipped = failed = 0
        for start in range(0, total, self.batch_size):
            ctx.token.raise_if_cancelled()
            batch = products[start:start + self.batch_size]
            try:
                outcome = ctx.persist(batch, active_only=self.active_only)
            except SQLAlchemyError as exc:
                ctx.catalog_repo.db.rollback()
                logger.error(f"Bulk batch starting at {start} failed: {exc}")
                failed += len(batch)
                continue
            synced += outcome.synced
            active += outcome.active
            skipped += outcome.skipped
            failed += outcome.failed

            ctx.status_repo.update_progress(
                ctx.user_id, ctx.platform,
                products_synced=synced,
                active_products_synced=active,
                inactive_products_skipped=skipped,
            )
            done = start + len(batch)
            ctx.notify(50 + int(done / total * 45), 100, f"Processed {done}/{total} products")

        ctx.status_repo.mark_success(
            ctx.user_id, ctx.platform,
            settings={
                "operation": BulkOperationStep.COMPLETED,
                "bulk_status": operation.state,
                "lines_read": stats.lines,
                "malformed_lines": stats.malformed,
                "failed_records": failed,
            },
            method=SyncMethod.BULK_EXPORT,
            products_synced=synced,
            total_products_found=total,
            active_products_synced=active,
            inactive_products_skipped=skipped,
        )
        ctx.notify(100, 100, f"Bulk sync complete: {synced} products")

        warnings = []
        if stats.malformed:
            warnings.append(f"{stats.malformed} malformed lines skipped")
        if failed:
            warnings.append(f"{failed} products failed to save")
        return SyncResult(
            status="success",
            method=SyncMethod.BULK_EXPORT,
            products_synced=synced,
            total_products_found=total,
            active_products_synced=active,
            inactive_products_skipped=skipped,
            warnings=warnings,
        )

    def _fail(self, message: str, error: SyncError) -> None:
        ctx = self.context
        ctx.status_repo.db.rollback()
        ctx.status_repo.mark_error(
            ctx.user_id, ctx.platform, message,
            error_code=error.error_code,
            recoverable=error.recoverable,
        )
