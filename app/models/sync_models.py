"""SQLAlchemy models for store connections and sync progress."""

from sqlalchemy import (
    Boolean, Column, DateTime, Integer, JSON, String, Text, UniqueConstraint, Index
)
from sqlalchemy.sql import func

from app.db.base import Base


class StoreConnection(Base):
    """
    Credentials of a seller's store on a source platform.

    Attributes:
        user_id: Owning account
        platform: shopify | woocommerce
        store_url: Store domain or base URL as entered by the seller
        access_token: Shopify admin token (may arrive JSON-wrapped)
        consumer_key / consumer_secret: WooCommerce REST keys
        weight_unit: Store weight unit, used when records carry none
        is_active: Deactivated connections abort running syncs
        auto_sync_products: Include in scheduled syncs
    """

    __tablename__ = "store_connections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    platform = Column(String(32), nullable=False)
    store_name = Column(String(255), nullable=True)
    store_url = Column(String(255), nullable=False)
    access_token = Column(Text, nullable=True)
    consumer_key = Column(String(255), nullable=True)
    consumer_secret = Column(String(255), nullable=True)
    weight_unit = Column(String(16), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    auto_sync_products = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(),
                        onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'platform',
                         name='uq_store_connection_user_platform'),
    )

    def __repr__(self):
        return f"<StoreConnection(id={self.id}, user={self.user_id}, platform={self.platform})>"


class SyncStatus(Base):
    """
    One row per (user, platform) describing the latest sync run.

    Never deleted, only overwritten. `settings` holds the run tunables plus
    bookkeeping written by the active syncer (bulk operation id and state,
    next page, warnings, cancel flag).
    """

    __tablename__ = "sync_status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    platform = Column(String(32), nullable=False)
    status = Column(String(20), nullable=False, default="idle")
    method = Column(String(32), nullable=True)
    products_synced = Column(Integer, nullable=False, default=0)
    total_products_found = Column(Integer, nullable=False, default=0)
    active_products_synced = Column(Integer, nullable=False, default=0)
    inactive_products_skipped = Column(Integer, nullable=False, default=0)
    last_sync_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(),
                        onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'platform',
                         name='uq_sync_status_user_platform'),
        Index('idx_sync_status_status', 'status'),
    )

    def __repr__(self):
        return (
            f"<SyncStatus(user={self.user_id}, platform={self.platform}, "
            f"status={self.status}, synced={self.products_synced})>"
        )


class SyncTaskLog(Base):
    """
    Audit record of one Celery sync task.

    Written by the task logging decorator; read back together with the
    Celery result when a client polls a task id.
    """

    __tablename__ = "sync_task_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(String(255), nullable=False, unique=True, index=True)
    task_name = Column(String(255), nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)
    platform = Column(String(32), nullable=True)
    task_args = Column(JSON, nullable=True)
    task_kwargs = Column(JSON, nullable=True)
    status = Column(String(50), nullable=False, default="pending")
    result = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<SyncTaskLog(task_id={self.task_id}, name={self.task_name}, status={self.status})>"
