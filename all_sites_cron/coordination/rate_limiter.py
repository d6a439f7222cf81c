"""Cooldown gate keyed by the last-run marker."""

import logging
import time
from typing import Optional

from all_sites_cron.coordination.errors import RateLimitedError
from all_sites_cron.utils.state_store import SharedStateStore

logger = logging.getLogger(__name__)

# Marker TTL used when rate limiting is disabled
DEFAULT_MARKER_TTL = 60


class RateLimiter:
    """Denies a run while the previous one is inside the cooldown window."""

    def __init__(self, store: SharedStateStore, marker_key: str, cooldown: int = 60):
        self.store = store
        self.marker_key = marker_key
        self.cooldown = max(0, int(cooldown))

    def last_run(self) -> Optional[int]:
        """Epoch seconds of the last dispatch attempt, or None."""
        value = self.store.get(self.marker_key)
        if value in (None, "", 0):
            return None
        return int(value)

    def check(self, now: Optional[int] = None) -> None:
        """Raise RateLimitedError if the cooldown has not elapsed.

        A cooldown of zero disables the gate. A missing marker counts as
        infinitely long ago.
        """
        if self.cooldown <= 0:
            return

        now = int(time.time()) if now is None else int(now)
        last_run = self.last_run()
        if last_run is None:
            return

        elapsed = now - last_run
        if elapsed < self.cooldown:
            retry_after = self.cooldown - elapsed
            logger.info(f"Rate limited: last run {elapsed}s ago, retry in {retry_after}s")
            raise RateLimitedError(retry_after, self.cooldown, last_run)

    def mark(self, now: Optional[int] = None) -> None:
        """Record a dispatch attempt, starting a fresh cooldown window."""
        now = int(time.time()) if now is None else int(now)
        ttl = self.cooldown if self.cooldown > 0 else DEFAULT_MARKER_TTL
        self.store.set(self.marker_key, now, ttl=ttl)
