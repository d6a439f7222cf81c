"""Coordinated run: lock, cooldown gate, fan-out, marker, release.

State machine for one run:

    Idle -> LockAcquired -> RateLimitChecked -> Dispatching -> Completed(released)

A rate-limit denial jumps from RateLimitChecked straight to
Completed(released). A lock denial never enters LockAcquired.

The orchestrator is the fault boundary of the coordination core: nothing
raised while dispatching escapes `complete()`, and the lock is released on
every path out of it.
"""

import logging
import time
from typing import Optional

from all_sites_cron.coordination.dispatcher import SiteDispatcher
from all_sites_cron.coordination.lock_manager import LockManager
from all_sites_cron.coordination.rate_limiter import RateLimiter
from all_sites_cron.models.dtos import DispatchResult

logger = logging.getLogger(__name__)


class RunOrchestrator:
    """Runs the dispatcher under the lock and the rate limiter."""

    def __init__(
        self,
        lock_manager: LockManager,
        rate_limiter: RateLimiter,
        dispatcher: SiteDispatcher,
        lock_name: str,
        lock_ttl: int = 300,
    ):
        self.lock_manager = lock_manager
        self.rate_limiter = rate_limiter
        self.dispatcher = dispatcher
        self.lock_name = lock_name
        self.lock_ttl = lock_ttl

    def admit(self, now: Optional[int] = None, check_rate_limit: bool = True) -> int:
        """Acquire the lock and pass the cooldown gate.

        Anything raised after the lock was taken releases it first.

        Raises:
            LockedError: another run holds a fresh lock (nothing changed)
            RateLimitedError: cooldown not elapsed (lock already released)
            StateStoreError: the store failed (lock released when held)

        Returns:
            The `now` the run was admitted at
        """
        now = int(time.time()) if now is None else int(now)

        self.lock_manager.acquire(self.lock_name, self.lock_ttl, now=now)

        try:
            if check_rate_limit:
                self.rate_limiter.check(now)
        except Exception:
            self.abort()
            raise

        return now

    def complete(self, now: Optional[int] = None) -> DispatchResult:
        """Dispatch, then write the last-run marker and release the lock.

        Must only be called after a successful `admit()`.
        """
        now = int(time.time()) if now is None else int(now)

        try:
            result = self.dispatcher.run()
        except Exception as e:
            logger.error(f"❌ Internal error during wp-cron dispatch: {e}", exc_info=True)
            result = DispatchResult.failure(f"Internal error during dispatch: {e}")
        finally:
            self._finish(now)

        if result.success:
            logger.info(f"✅ wp-cron triggered on {result.count} sites")
        else:
            logger.warning(f"⚠️ wp-cron run finished with errors: {result.message}")
        return result

    def acknowledge(self, now: Optional[int] = None) -> None:
        """Close an admitted run without dispatching (the work was queued)."""
        now = int(time.time()) if now is None else int(now)
        self._finish(now)

    def execute(self, now: Optional[int] = None, check_rate_limit: bool = True) -> DispatchResult:
        """Admit and complete one run.

        Raises:
            LockedError, RateLimitedError: see `admit()`
        """
        now = self.admit(now, check_rate_limit=check_rate_limit)
        return self.complete(now)

    def abort(self) -> None:
        """Release an admitted run without dispatching or writing the marker."""
        try:
            self.lock_manager.release(self.lock_name)
        except Exception as e:
            logger.error(f"Failed to release lock '{self.lock_name}' (expires in {self.lock_ttl}s): {e}")

    def _finish(self, now: int) -> None:
        # Marker is written whatever the dispatch outcome
        try:
            self.rate_limiter.mark(now)
        except Exception as e:
            logger.error(f"Failed to write last-run marker: {e}")
        self.abort()
