"""
Catalog product repository.

Keyed upsert sink for CanonicalProduct rows. Each record is written inside
its own SAVEPOINT so a failing record is reported without discarding the
rest of the batch.
"""
import logging
from typing import Dict, List, Optional, Sequence
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.catalog_models import CatalogProduct, PriceChangeEvent
from app.schemas.sync_schemas import BatchUpsertResult, CanonicalProduct, FailedRecord

logger = logging.getLogger(__name__)


class CatalogRepository:
    """Repository for the synced product catalog."""

    def __init__(self, db: Session, price_change_threshold: Optional[float] = None):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
            price_change_threshold: Minimum absolute price delta recorded as a
                price change event
        """
        self.db = db
        self.price_change_threshold = (
            settings.price_change_threshold
            if price_change_threshold is None else price_change_threshold
        )

    def get_product(self, user_id: str, handle: str, platform: str) -> Optional[CatalogProduct]:
        return self.db.query(CatalogProduct).filter(
            CatalogProduct.user_id == user_id,
            CatalogProduct.handle == handle,
            CatalogProduct.platform == platform
        ).first()

    def count_products(self, user_id: str, platform: Optional[str] = None) -> int:
        query = self.db.query(CatalogProduct).filter(CatalogProduct.user_id == user_id)
        if platform:
            query = query.filter(CatalogProduct.platform == platform)
        return query.count()

    def list_products(
        self,
        user_id: str,
        platform: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[CatalogProduct]:
        query = self.db.query(CatalogProduct).filter(CatalogProduct.user_id == user_id)
        if platform:
            query = query.filter(CatalogProduct.platform == platform)
        return query.order_by(CatalogProduct.updated_at.desc()).offset(offset).limit(limit).all()

    def upsert_batch(
        self,
        user_id: str,
        platform: str,
        products: Sequence[CanonicalProduct],
        store_id: Optional[int] = None
    ) -> BatchUpsertResult:
        """
        Insert or update a batch of canonical products.

        Args:
            user_id: Owning account (partition key)
            platform: Source platform
            products: Canonical products to write
            store_id: StoreConnection id stamped on the rows

        Returns:
            BatchUpsertResult listing the handles written and the failures
        """
        result = BatchUpsertResult()
        # Later duplicates of a handle within one batch win
        by_handle: Dict[str, CanonicalProduct] = {}
        for product in products:
            by_handle[product.handle] = product

        for handle, product in by_handle.items():
            try:
                with self.db.begin_nested():
                    changed_price = self._upsert_one(user_id, platform, product, store_id)
                result.succeeded.append(handle)
            except SQLAlchemyError as exc:
                logger.warning(f"Upsert failed for {platform} product {handle}: {exc}")
                result.failed.append(FailedRecord(handle=handle, error=str(exc)))
                continue

            if changed_price is not None:
                if self._record_price_change(user_id, platform, handle, *changed_price):
                    result.price_changes += 1

        self.db.commit()
        return result

    def _upsert_one(
        self,
        user_id: str,
        platform: str,
        product: CanonicalProduct,
        store_id: Optional[int]
    ):
        """Write one row; returns (old_price, new_price) on a material price change."""
        values = product.model_dump()
        row = self.get_product(user_id, product.handle, platform)
        changed_price = None

        if row is None:
            row = CatalogProduct(user_id=user_id, platform=platform, store_id=store_id, **values)
            self.db.add(row)
        else:
            old_price = row.variant_price or 0.0
            # Rounded so a one-cent change meets a 0.01 threshold
            delta = round(abs(old_price - product.variant_price), 6)
            if delta > 0 and delta >= self.price_change_threshold:
                changed_price = (old_price, product.variant_price)
            for key, value in values.items():
                setattr(row, key, value)
            if store_id is not None:
                row.store_id = store_id

        self.db.flush()
        return changed_price

    def _record_price_change(
        self,
        user_id: str,
        platform: str,
        handle: str,
        old_price: float,
        new_price: float
    ) -> bool:
        """Best-effort price history; never fails the upsert."""
        try:
            with self.db.begin_nested():
                change = ((new_price - old_price) / old_price * 100) if old_price else None
                self.db.add(PriceChangeEvent(
                    user_id=user_id,
                    platform=platform,
                    handle=handle,
                    old_price=old_price,
                    new_price=new_price,
                    change_percentage=round(change, 2) if change is not None else None,
                ))
                self.db.flush()
            logger.info(f"Price change for {platform} product {handle}: {old_price} -> {new_price}")
            return True
        except SQLAlchemyError as exc:
            logger.warning(f"Could not record price change for {handle}: {exc}")
            return False

    def get_price_changes(self, user_id: str, handle: Optional[str] = None) -> List[PriceChangeEvent]:
        query = self.db.query(PriceChangeEvent).filter(PriceChangeEvent.user_id == user_id)
        if handle:
            query = query.filter(PriceChangeEvent.handle == handle)
        return query.order_by(PriceChangeEvent.id.asc()).all()
