"""Constants for sync operations."""


class Platform:
    """Source platforms a catalog can be synced from."""
    SHOPIFY = "shopify"
    WOOCOMMERCE = "woocommerce"

    ALL = (SHOPIFY, WOOCOMMERCE)


class SyncState:
    """Lifecycle of a SyncStatus row."""
    IDLE = "idle"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    ERROR = "error"

    FINAL = (SUCCESS, ERROR)


class SyncMethod:
    """Strategy used by the last run."""
    PAGINATED_BATCH = "paginated_batch"
    BULK_EXPORT = "bulk_export"


class BulkState:
    """Normalized bulk export job states."""
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    TERMINAL = (COMPLETED, FAILED, CANCELLED)


# Shopify reports more states than we track; everything else maps to running
SHOPIFY_BULK_STATES = {
    "CREATED": BulkState.CREATED,
    "RUNNING": BulkState.RUNNING,
    "COMPLETED": BulkState.COMPLETED,
    "FAILED": BulkState.FAILED,
    "CANCELED": BulkState.CANCELLED,
    "CANCELING": BulkState.RUNNING,
    "EXPIRED": BulkState.FAILED,
}


class BulkOperationStep:
    """Values of settings["operation"] written by the bulk controller."""
    STARTED = "bulk_started"
    IN_PROGRESS = "in_progress"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"


class ProductSyncStatus:
    """sync_status column of catalog rows."""
    SYNCED = "synced"
    ERROR = "error"


# Grams per source weight unit
WEIGHT_TO_GRAMS = {
    "g": 1.0,
    "gram": 1.0,
    "grams": 1.0,
    "kg": 1000.0,
    "kilogram": 1000.0,
    "kilograms": 1000.0,
    "lb": 453.59237,
    "lbs": 453.59237,
    "pound": 453.59237,
    "pounds": 453.59237,
    "oz": 28.349523125,
    "ounce": 28.349523125,
    "ounces": 28.349523125,
}


# Store size presets for paginated sync settings
SYNC_PRESETS = {
    "small": {"max_pages": 100, "batch_size": 100, "rate_limit_delay": 300},
    "medium": {"max_pages": 500, "batch_size": 250, "rate_limit_delay": 500},
    "large": {"max_pages": 1000, "batch_size": 250, "rate_limit_delay": 750},
    "enterprise": {"max_pages": 2000, "batch_size": 200, "rate_limit_delay": 1000},
}


class ConflictType:
    """Conflicts detected by the status reconciler."""
    STUCK_SYNC = "stuck_sync"
    ABANDONED_BULK_OPERATION = "abandoned_bulk_operation"
    COUNT_MISMATCH = "count_mismatch"
