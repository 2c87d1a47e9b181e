"""
Schemas for catalog sync runs.
"""
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, ValidationError

from app.core.config import settings
from app.core.exceptions import InvalidSyncSettings
from app.constants.sync import SYNC_PRESETS


class SyncSettings(BaseModel):
    """Tunables of a paginated sync, persisted in SyncStatus.settings"""
    batch_size: int = Field(default=settings.sync_batch_size, ge=1, le=250)
    max_pages: int = Field(default=settings.sync_max_pages, ge=1)
    early_termination_threshold: int = Field(
        default=settings.sync_early_termination_threshold, ge=0,
        description="Consecutive empty pages tolerated before stopping")
    rate_limit_delay: int = Field(
        default=settings.sync_rate_limit_delay_ms, ge=0,
        description="Base delay between page requests in milliseconds")
    rate_limit_jitter: int = Field(
        default=settings.sync_rate_limit_jitter_ms, ge=0,
        description="Upper bound of the random delay added to rate_limit_delay")
    auto_recovery: bool = settings.sync_auto_recovery
    validation_checks: bool = settings.sync_validation_checks
    max_recovery_passes: int = Field(default=settings.sync_max_recovery_passes, ge=0)
    active_only: bool = False

    @property
    def effective_max_pages(self) -> int:
        return max(self.max_pages, settings.sync_min_page_ceiling)

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "SyncSettings":
        """
        Build settings from a stored SyncStatus.settings map.

        Unknown keys (run bookkeeping) are ignored; a "preset" key applies
        one of the store size presets before explicit values.
        """
        data = dict(data or {})
        values: Dict[str, Any] = {}
        preset = data.get("preset")
        if preset in SYNC_PRESETS:
            values.update(SYNC_PRESETS[preset])
        for name in cls.model_fields:
            if name in data and data[name] is not None:
                values[name] = data[name]
        return cls(**values)

    @classmethod
    def validated(cls, data: Optional[Dict[str, Any]]) -> "SyncSettings":
        """Same as from_mapping, but out-of-range values raise InvalidSyncSettings (422)."""
        try:
            return cls.from_mapping(data)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            )
            raise InvalidSyncSettings(f"Invalid sync settings: {problems}") from exc


class CanonicalProduct(BaseModel):
    """Normalized product written to the catalog store"""
    handle: str
    source_product_id: Optional[str] = None

    title: str = ""
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    tags: Optional[str] = None
    description: Optional[str] = None
    seo_title: Optional[str] = None
    seo_description: Optional[str] = None
    active: bool = True

    variant_sku: Optional[str] = None
    variant_price: float = 0.0
    variant_compare_at_price: Optional[float] = None
    variant_inventory_qty: int = 0
    variant_grams: Optional[float] = None
    variant_barcode: Optional[str] = None
    variant_requires_shipping: Optional[bool] = None
    variant_taxable: Optional[bool] = None

    image_src: Optional[str] = None
    image_position: Optional[int] = None

    sync_status: str = "synced"
    synced_at: Optional[datetime] = None
    source_created_at: Optional[datetime] = None
    source_updated_at: Optional[datetime] = None


class PageResult(BaseModel):
    """One page returned by a source platform listing"""
    items: List[Dict[str, Any]] = Field(default_factory=list)
    reported_total: Optional[int] = None


class BulkOperation(BaseModel):
    """Snapshot of an asynchronous export job on the source platform"""
    id: str
    state: str
    result_url: Optional[str] = None
    object_count: Optional[int] = None
    error_code: Optional[str] = None


class FailedRecord(BaseModel):
    handle: str
    error: str


class BatchUpsertResult(BaseModel):
    """Per-record outcome of a catalog batch upsert"""
    succeeded: List[str] = Field(default_factory=list)
    failed: List[FailedRecord] = Field(default_factory=list)
    price_changes: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed


class SyncProgress(BaseModel):
    """Payload delivered to progress observers"""
    current: int
    total: int
    message: Optional[str] = None


class SyncResult(BaseModel):
    """Outcome of one orchestrated run"""
    status: str = Field(..., description="success or error")
    method: str
    products_synced: int = 0
    total_products_found: int = 0
    active_products_synced: int = 0
    inactive_products_skipped: int = 0
    pages_fetched: int = 0
    has_more: bool = False
    incomplete: bool = False
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None
    recoverable: bool = False

    @property
    def success(self) -> bool:
        return self.status == "success"


class SyncStatusResponse(BaseModel):
    """Read-only view of a SyncStatus row"""
    user_id: str
    platform: str
    status: str
    method: Optional[str] = None
    products_synced: int = 0
    total_products_found: int = 0
    active_products_synced: int = 0
    inactive_products_skipped: int = 0
    last_sync_at: Optional[datetime] = None
    error_message: Optional[str] = None
    settings: Dict[str, Any] = Field(default_factory=dict)
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SyncStartRequest(BaseModel):
    """Body of the sync trigger endpoints"""
    settings: Optional[Dict[str, Any]] = Field(
        default=None, description="Overrides persisted into SyncStatus.settings")
    preset: Optional[str] = Field(
        default=None, description="small, medium, large or enterprise")


class SyncTaskResponse(BaseModel):
    """Response returned when a sync job is queued"""
    task_id: str
    status: str
    platform: str
    method: str
    created_at: str
    check_url: str


class SyncConflict(BaseModel):
    type: str
    description: str
    severity: str = "medium"
    resolved: bool = False
    resolution_action: Optional[str] = None


class ReconciliationReport(BaseModel):
    """Result of reconciling a SyncStatus row against the catalog"""
    user_id: str
    platform: str
    actual_product_count: int
    conflicts_detected: List[SyncConflict] = Field(default_factory=list)
    conflicts_resolved: List[SyncConflict] = Field(default_factory=list)
    final_status: Optional[str] = None
    recommendations: List[str] = Field(default_factory=list)
