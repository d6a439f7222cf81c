"""Process-wide wiring of the run coordination components.

Each web worker and Celery process builds its own objects lazily; the only
state they share lives in Redis.
"""

import logging
from typing import Optional

from config.settings import LAST_RUN_KEY, LOCK_KEY, settings
from all_sites_cron.coordination.dispatcher import SiteDispatcher
from all_sites_cron.coordination.lock_manager import LockManager
from all_sites_cron.coordination.orchestrator import RunOrchestrator
from all_sites_cron.coordination.queue_adapter import QueueAdapter
from all_sites_cron.coordination.rate_limiter import RateLimiter
from all_sites_cron.integrations.cron_trigger import CronTrigger
from all_sites_cron.integrations.site_catalog import (
    DatabaseSiteLister,
    SiteLister,
    WpCliSiteLister,
)
from all_sites_cron.utils.state_store import RedisStateStore

logger = logging.getLogger(__name__)

# Global singletons
_state_store: Optional[RedisStateStore] = None
_queue_store: Optional[RedisStateStore] = None
_site_lister: Optional[SiteLister] = None
_orchestrator: Optional[RunOrchestrator] = None
_queue_adapter: Optional[QueueAdapter] = None


def get_state_store() -> RedisStateStore:
    """Get or create the store holding the lock and the last-run marker."""
    global _state_store
    if _state_store is None:
        _state_store = RedisStateStore(redis_url=settings.redis.url)
    return _state_store


def get_queue_store() -> RedisStateStore:
    """Get or create the store backing the work queue."""
    global _queue_store
    if _queue_store is None:
        _queue_store = RedisStateStore(redis_url=settings.queue.url)
    return _queue_store


def get_site_lister() -> SiteLister:
    """Get or create the configured site lister."""
    global _site_lister
    if _site_lister is None:
        catalog = settings.sites
        if catalog.lister == "wpcli":
            _site_lister = WpCliSiteLister(catalog.wp_cli_path, catalog.wp_path)
        else:
            _site_lister = DatabaseSiteLister(
                database_url=catalog.database_url,
                table_prefix=catalog.table_prefix,
                scheme=catalog.site_scheme,
            )
        logger.info(f"Site lister initialized: {type(_site_lister).__name__}")
    return _site_lister


def get_orchestrator() -> RunOrchestrator:
    """Get or create the run orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        cron = settings.cron
        store = get_state_store()
        trigger = CronTrigger(
            request_timeout=cron.request_timeout,
            connect_timeout=cron.connect_timeout,
            ssl_verify=cron.ssl_verify,
            home_url=cron.home_url,
        )
        _orchestrator = RunOrchestrator(
            lock_manager=LockManager(store),
            rate_limiter=RateLimiter(store, LAST_RUN_KEY, cooldown=cron.rate_limit_seconds),
            dispatcher=SiteDispatcher(
                get_site_lister(),
                trigger,
                batch_size=cron.batch_size,
                max_sites=cron.max_sites,
            ),
            lock_name=LOCK_KEY,
            lock_ttl=cron.lock_ttl_seconds,
        )
    return _orchestrator


def get_queue_adapter() -> QueueAdapter:
    """Get or create the work queue adapter."""
    global _queue_adapter
    if _queue_adapter is None:
        _queue_adapter = QueueAdapter(get_queue_store(), get_orchestrator(), settings.queue.key)
    return _queue_adapter


def queue_enabled() -> bool:
    return settings.queue.enabled


def reset_runtime():
    """Drop every cached component, closing open connections."""
    global _state_store, _queue_store, _site_lister, _orchestrator, _queue_adapter

    for store in (_state_store, _queue_store):
        if store is not None:
            store.close()
    if _orchestrator is not None:
        _orchestrator.dispatcher.trigger.close()

    _state_store = None
    _queue_store = None
    _site_lister = None
    _orchestrator = None
    _queue_adapter = None
