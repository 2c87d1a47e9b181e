from app.models.sync_models import StoreConnection, SyncStatus, SyncTaskLog
from app.models.catalog_models import CatalogProduct, PriceChangeEvent

__all__ = [
    "StoreConnection",
    "SyncStatus",
    "SyncTaskLog",
    "CatalogProduct",
    "PriceChangeEvent",
]
