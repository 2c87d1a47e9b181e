"""SQLAlchemy models for the synced product catalog."""

from sqlalchemy import (
    Boolean, Column, DateTime, Float, Integer, String, Text, UniqueConstraint, Index
)
from sqlalchemy.sql import func

from app.db.base import Base


class CatalogProduct(Base):
    """
    Canonical product row, partitioned by account.

    (user_id, handle, platform) is the upsert key.
    """

    __tablename__ = "catalog_products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    platform = Column(String(32), nullable=False)
    handle = Column(String(255), nullable=False)
    source_product_id = Column(String(64), nullable=True)
    store_id = Column(Integer, nullable=True)

    title = Column(String(512), nullable=False, default="")
    vendor = Column(String(255), nullable=True)
    product_type = Column(String(255), nullable=True)
    tags = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    seo_title = Column(String(512), nullable=True)
    seo_description = Column(Text, nullable=True)
    active = Column(Boolean, default=True, nullable=False)

    variant_sku = Column(String(255), nullable=True)
    variant_price = Column(Float, nullable=False, default=0.0)
    variant_compare_at_price = Column(Float, nullable=True)
    variant_inventory_qty = Column(Integer, nullable=False, default=0)
    variant_grams = Column(Float, nullable=True)
    variant_barcode = Column(String(255), nullable=True)
    variant_requires_shipping = Column(Boolean, nullable=True)
    variant_taxable = Column(Boolean, nullable=True)

    image_src = Column(Text, nullable=True)
    image_position = Column(Integer, nullable=True)

    sync_status = Column(String(20), nullable=False, default="synced")
    synced_at = Column(DateTime, nullable=True)
    source_created_at = Column(DateTime, nullable=True)
    source_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(),
                        onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'handle', 'platform',
                         name='uq_catalog_product_user_handle_platform'),
        Index('idx_catalog_product_user_platform', 'user_id', 'platform'),
    )

    def __repr__(self):
        return f"<CatalogProduct(handle={self.handle}, platform={self.platform}, user={self.user_id})>"


class PriceChangeEvent(Base):
    """Price change observed while upserting a catalog row."""

    __tablename__ = "price_change_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    platform = Column(String(32), nullable=False)
    handle = Column(String(255), nullable=False)
    old_price = Column(Float, nullable=False)
    new_price = Column(Float, nullable=False)
    change_percentage = Column(Float, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
