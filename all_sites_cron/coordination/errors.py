"""Error taxonomy for run coordination."""

from typing import Optional


class CronError(Exception):
    """Base class for all run coordination errors."""


class NotMultisiteError(CronError):
    """The site catalog is not a multisite network. Not retryable."""

    def __init__(self, message: str = "All Sites Cron requires a WordPress Multisite network"):
        super().__init__(message)


class LockedError(CronError):
    """Another run holds a fresh lock."""

    def __init__(self, lock_name: str, acquired_at: int, ttl: int):
        self.lock_name = lock_name
        self.acquired_at = acquired_at
        self.ttl = ttl
        super().__init__("Another cron run is already in progress.")


class RateLimitedError(CronError):
    """The cooldown window since the last run has not elapsed."""

    def __init__(self, retry_after: int, cooldown: int, last_run: Optional[int] = None):
        self.retry_after = retry_after
        self.cooldown = cooldown
        self.last_run = last_run
        super().__init__(f"Rate limited. Try again in {retry_after} seconds.")


class SiteTriggerError(CronError):
    """A single site's wp-cron trigger could not be fired."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Error for {url}: {reason}")


class StateStoreError(CronError):
    """The shared state store could not be reached."""


class QueueUnavailableError(CronError):
    """The work queue backend could not be reached."""
