from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./catalog_sync.db"
    log_level: str = "INFO"

    # Celery
    celery_broker_url: str = "redis://redis:6379/0"
    celery_result_backend: str = "redis://redis:6379/1"
    celery_task_serializer: str = "json"
    celery_result_serializer: str = "json"
    celery_accept_content: List[str] = ["json"]
    celery_timezone: str = "UTC"
    celery_enable_utc: bool = True

    # Source platforms
    shopify_api_version: str = "2024-10"
    wc_api_version: str = "wc/v3"
    wc_verify_ssl: bool = True
    source_request_timeout: int = 30
    source_user_agent: str = "catalog-sync/1.0"

    # Paginated batch sync defaults
    sync_batch_size: int = 250
    sync_max_pages: int = 500
    sync_min_page_ceiling: int = 50
    sync_early_termination_threshold: int = 10
    sync_rate_limit_delay_ms: int = 500
    sync_rate_limit_jitter_ms: int = 200
    sync_auto_recovery: bool = True
    sync_validation_checks: bool = True
    sync_max_recovery_passes: int = 1

    # Bulk export defaults
    bulk_poll_interval: float = 5.0
    bulk_max_checks: int = 60
    bulk_upsert_batch_size: int = 50
    bulk_threshold: int = 2500

    # Run locks shared by all workers through the broker's Redis
    sync_redis_locks: bool = True
    sync_lock_timeout: int = 3600

    # Maintenance
    stale_sync_minutes: int = 30
    count_mismatch_tolerance: int = 5
    price_change_threshold: float = 0.01

    # Alerts
    alerts_enabled: bool = True
    alert_webhook_url: str = ""

    class Config:
        env_file = "../.env"


settings = Settings()
