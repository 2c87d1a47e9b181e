"""Collaborators shared by the syncers of one run."""
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from pydantic import ValidationError

from app.core.exceptions import StoreConnectionError
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.store_connection_repository import StoreConnectionRepository
from app.repositories.sync_status_repository import SyncStatusRepository
from app.schemas.source_records import SourceRecord
from app.schemas.sync_schemas import SyncProgress
from app.services.converters import to_canonical_product
from app.services.credentials import SourceCredentials
from app.services.sources.base import SourceClient
from app.services.sync.cancellation import CancellationToken

logger = logging.getLogger(__name__)

ProgressObserver = Callable[[SyncProgress], None]


@dataclass
class SyncContext:
    user_id: str
    platform: str
    credentials: SourceCredentials
    client: SourceClient
    status_repo: SyncStatusRepository
    catalog_repo: CatalogRepository
    connection_repo: StoreConnectionRepository
    token: CancellationToken = field(default_factory=CancellationToken)
    observer: Optional[ProgressObserver] = None

    def notify(self, current: int, total: int, message: Optional[str] = None) -> None:
        """Forward progress to the caller; observer failures never stop a run."""
        if self.observer is None:
            return
        try:
            self.observer(SyncProgress(current=current, total=total, message=message))
        except Exception as exc:
            logger.warning(f"Progress observer failed: {exc}")

    def ensure_store_active(self) -> None:
        if not self.connection_repo.is_active(self.user_id, self.platform):
            raise StoreConnectionError(
                f"Store connection for {self.platform} is no longer active; sync aborted"
            )

    def persist(self, records: Iterable[SourceRecord], active_only: bool = False) -> "PersistOutcome":
        """
        Convert source records and upsert them into the catalog.

        Records that fail conversion are logged and counted as failed; the
        rest of the batch is still written.
        """
        outcome = PersistOutcome()
        products = []
        for record in records:
            try:
                product = to_canonical_product(record)
            except (ValidationError, ValueError, TypeError) as exc:
                source_id = record.data.get("id") if hasattr(record, "data") else None
                logger.warning(f"Skipping unconvertible {self.platform} product {source_id}: {exc}")
                outcome.failed += 1
                continue
            if active_only and not product.active:
                outcome.skipped += 1
                continue
            products.append(product)

        if not products:
            return outcome

        result = self.catalog_repo.upsert_batch(
            self.user_id, self.platform, products, store_id=self.credentials.store_id
        )
        succeeded = set(result.succeeded)
        outcome.synced = len(succeeded)
        outcome.active = sum(1 for p in products if p.active and p.handle in succeeded)
        outcome.failed += len(result.failed)
        outcome.price_changes = result.price_changes
        if result.failed:
            logger.warning(
                f"{len(result.failed)} of {len(products)} {self.platform} products failed to upsert"
            )
        return outcome


@dataclass
class PersistOutcome:
    synced: int = 0
    active: int = 0
    skipped: int = 0
    failed: int = 0
    price_changes: int = 0
