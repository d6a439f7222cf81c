"""Install, activation and uninstall housekeeping.

Every entry point leaves the shared state store in a known state so a fresh
install never inherits a lock, a cooldown or queued jobs from a previous one.
"""

import logging
import time
from typing import Dict, Optional

from config.settings import (
    KEY_PREFIX,
    LAST_RUN_KEY,
    LEGACY_KEY_PREFIX,
    LOCK_KEY,
    MIGRATION_FLAG_KEY,
    SITES_CACHE_KEY,
)
from all_sites_cron.utils.state_store import SharedStateStore

logger = logging.getLogger(__name__)


def _clear_keys(store: SharedStateStore, *keys: str) -> Dict[str, bool]:
    return {key: store.delete(key) for key in keys}


def activate(store: SharedStateStore, queue_store: Optional[SharedStateStore] = None, queue_key: Optional[str] = None) -> Dict[str, bool]:
    """Clear the lock, the cooldown marker, the legacy site cache and the queue."""
    cleared = _clear_keys(store, LOCK_KEY, LAST_RUN_KEY, SITES_CACHE_KEY)
    if queue_store is not None and queue_key:
        cleared[queue_key] = queue_store.delete(queue_key)

    logger.info(f"✅ Activated: cleared {sum(cleared.values())} keys")
    return cleared


def deactivate(store: SharedStateStore) -> Dict[str, bool]:
    """Clear the lock and the cooldown marker."""
    cleared = _clear_keys(store, LOCK_KEY, LAST_RUN_KEY)
    logger.info(f"Deactivated: cleared {sum(cleared.values())} keys")
    return cleared


def uninstall(store: SharedStateStore, queue_store: Optional[SharedStateStore] = None, queue_key: Optional[str] = None) -> int:
    """Remove every key this service or its predecessor ever wrote.

    Returns:
        Number of keys deleted
    """
    cleared = activate(store, queue_store, queue_key)
    deleted = sum(cleared.values())
    deleted += int(store.delete(MIGRATION_FLAG_KEY))
    deleted += store.delete_matching(f"{LEGACY_KEY_PREFIX}*")
    deleted += store.delete_matching(f"{KEY_PREFIX}*")

    logger.info(f"Uninstalled: removed {deleted} keys")
    return deleted


def migrate_legacy_keys(store: SharedStateStore, now: Optional[int] = None) -> Optional[int]:
    """Delete keys left behind under the old dss_cron_ name, once.

    Returns:
        Number of keys deleted, or None if the migration already ran
    """
    if store.get(MIGRATION_FLAG_KEY):
        return None

    deleted = store.delete_matching(f"{LEGACY_KEY_PREFIX}*")
    store.set(MIGRATION_FLAG_KEY, int(time.time()) if now is None else int(now))

    logger.info(f"Legacy key migration complete: {deleted} keys removed")
    return deleted
