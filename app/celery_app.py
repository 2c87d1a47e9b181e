"""
Celery application configuration for the catalog sync service.
"""
import logging

from celery import Celery
from celery.signals import setup_logging

from app.core.config import settings

# Create Celery instance
celery_app = Celery(
    "catalog_sync",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "app.tasks.sync_tasks",
        "app.tasks.scheduled_tasks",
        "app.tasks.task_monitoring",
    ]
)

celery_app.conf.update(
    # Serialization
    task_serializer=settings.celery_task_serializer,
    result_serializer=settings.celery_result_serializer,
    accept_content=settings.celery_accept_content,

    # Timezone
    timezone=settings.celery_timezone,
    enable_utc=settings.celery_enable_utc,

    # Task execution; a 500 page sync with rate limiting runs for several minutes
    task_track_started=True,
    task_time_limit=60 * 60,
    task_soft_time_limit=55 * 60,

    # Long I/O-bound tasks: do not prefetch work another worker could start
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,

    # Task acknowledgment
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Result backend
    result_expires=7200,

    task_routes={
        'app.tasks.sync_tasks.*': {
            'queue': 'sync_queue',
        },
        'app.tasks.scheduled_tasks.*': {
            'queue': 'scheduler_queue',
        },
    },

    # Broker connection
    broker_connection_retry_on_startup=True,
    broker_connection_retry=True,
    broker_connection_max_retries=10,
)

celery_app.conf.beat_schedule = {
    'reconcile-stale-syncs-every-10-minutes': {
        'task': 'app.tasks.scheduled_tasks.reconcile_stale_syncs',
        'schedule': 600.0,
    },
    'auto-sync-catalogs-every-6-hours': {
        'task': 'app.tasks.scheduled_tasks.schedule_auto_syncs',
        'schedule': 6 * 3600.0,
    },
}


@setup_logging.connect
def configure_logging(**kwargs):
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )


if __name__ == '__main__':
    celery_app.start()
