"""Celery application configuration for draining the wp-cron work queue."""

from celery import Celery

from config.settings import settings
from all_sites_cron.utils.state_store import mask_url

print(f"Celery broker: {mask_url(settings.redis.url)}")

celery_app = Celery(
    'all_sites_cron',
    include=['all_sites_cron.tasks.cron_tasks']
)

celery_app.conf.update(
    broker_url=settings.redis.url,
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    # Lock TTL bounds a run
    task_time_limit=settings.cron.lock_ttl_seconds,
    task_soft_time_limit=settings.cron.lock_ttl_seconds - 30,
    broker_connection_retry_on_startup=True,
    broker_connection_max_retries=10,
    result_expires=3600,
    # Acked on receipt
    task_acks_late=False,
    worker_prefetch_multiplier=1,
)

celery_app.conf.beat_schedule = {
    # Pop one deferred run per minute, matching the default cooldown
    'drain-cron-queue': {
        'task': 'all_sites_cron.tasks.cron_tasks.drain_cron_queue',
        'schedule': 60.0,
    },
}

__all__ = ['celery_app']
