"""
Repository layer for database operations.

This package provides specialized repositories for different domains:
- SyncStatusRepository: per (user, platform) sync progress and outcome
- CatalogRepository: keyed upsert of synced products and price history
- StoreConnectionRepository: store credentials used to start syncs
- TaskLogRepository: Celery task audit log
"""
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.store_connection_repository import StoreConnectionRepository
from app.repositories.sync_status_repository import SyncStatusRepository
from app.repositories.task_log_repository import TaskLogRepository

__all__ = [
    'CatalogRepository',
    'StoreConnectionRepository',
    'SyncStatusRepository',
    'TaskLogRepository',
]
