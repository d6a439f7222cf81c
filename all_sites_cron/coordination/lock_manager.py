"""Named run lock with staleness override.

Acquisition is a non-atomic check-then-set: two workers racing on an empty
slot can both acquire. A lock older than its TTL is overridden by the next
acquirer.
"""

import logging
import os
import socket
import time
from typing import Optional

from all_sites_cron.coordination.errors import LockedError
from all_sites_cron.models.dtos import Lock
from all_sites_cron.utils.state_store import SharedStateStore

logger = logging.getLogger(__name__)


def _owner_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class LockManager:
    """Acquires and releases named locks in the shared state store."""

    def __init__(self, store: SharedStateStore):
        self.store = store

    def current(self, lock_name: str) -> Optional[Lock]:
        """Return the lock currently stored under lock_name, if any."""
        return Lock.from_dict(self.store.get(lock_name))

    def acquire(self, lock_name: str, ttl: int, now: Optional[int] = None) -> Lock:
        """Acquire lock_name or raise LockedError.

        Args:
            lock_name: Store key of the lock
            ttl: Seconds after which the lock counts as stale
            now: Current epoch seconds (defaults to time.time())

        Returns:
            The newly written Lock
        """
        now = int(time.time()) if now is None else int(now)

        existing = self.current(lock_name)
        if existing is not None:
            if not existing.is_stale(now):
                logger.info(
                    f"Lock '{lock_name}' held by {existing.owner} since {existing.acquired_at} "
                    f"({now - existing.acquired_at}s ago)"
                )
                raise LockedError(lock_name, existing.acquired_at, existing.ttl)

            logger.warning(
                f"⚠️ Overriding stale lock '{lock_name}' held by {existing.owner} "
                f"(age {now - existing.acquired_at}s >= ttl {existing.ttl}s)"
            )

        lock = Lock(acquired_at=now, ttl=int(ttl), owner=_owner_id())
        self.store.set(lock_name, lock.to_dict(), ttl=int(ttl))
        logger.debug(f"Acquired lock '{lock_name}' as {lock.owner}")
        return lock

    def release(self, lock_name: str) -> None:
        """Release lock_name. Releasing an absent lock is not an error."""
        existed = self.store.delete(lock_name)
        logger.debug(f"Released lock '{lock_name}' (existed: {existed})")
