"""Redis work queue for deferred runs.

Delivery is at-most-once: a popped job is consumed whatever happens next.
There is no visibility timeout and no acknowledgement, so a worker dying
between pop and dispatch loses the job.
"""

import logging
import time
from typing import Optional

from all_sites_cron.coordination.errors import (
    LockedError,
    QueueUnavailableError,
    RateLimitedError,
    StateStoreError,
)
from all_sites_cron.coordination.orchestrator import RunOrchestrator
from all_sites_cron.models.dtos import DispatchResult, QueueJob
from all_sites_cron.utils.state_store import SharedStateStore

logger = logging.getLogger(__name__)

EMPTY_QUEUE_MESSAGE = "No queued jobs"


class QueueAdapter:
    """Pushes deferred run descriptors and drains them one at a time."""

    def __init__(self, store: SharedStateStore, orchestrator: RunOrchestrator, queue_key: str):
        self.store = store
        self.orchestrator = orchestrator
        self.queue_key = queue_key

    def enqueue(self, job: Optional[QueueJob] = None) -> bool:
        """Push a job. Returns False if the queue backend refused it."""
        job = job or QueueJob(enqueued_at=int(time.time()))
        try:
            depth = self.store.list_push(self.queue_key, job.to_dict())
        except StateStoreError as e:
            logger.warning(f"Could not enqueue cron job {job.job_id}: {e}")
            return False

        logger.info(f"Queued cron job {job.job_id} on '{self.queue_key}' (depth {depth})")
        return True

    def pop(self) -> Optional[QueueJob]:
        """Pop one job without blocking.

        Raises:
            QueueUnavailableError: the queue backend could not be reached
        """
        try:
            data = self.store.list_pop(self.queue_key)
        except StateStoreError as e:
            raise QueueUnavailableError(str(e)) from e
        return QueueJob.from_dict(data) if isinstance(data, dict) else None

    def drain(self) -> DispatchResult:
        """Process at most one queued job through the orchestrator.

        An empty queue is a successful no-op and never touches the lock.
        The cooldown was already enforced when the job was accepted, so the
        run is not rate limited again here.

        Raises:
            QueueUnavailableError: the queue backend could not be reached
        """
        job = self.pop()
        if job is None:
            return DispatchResult(success=True, count=0, message=EMPTY_QUEUE_MESSAGE)

        logger.info(f"Draining cron job {job.job_id} (queued {int(time.time()) - job.enqueued_at}s ago)")
        try:
            return self.orchestrator.execute(check_rate_limit=False)
        except (LockedError, RateLimitedError) as e:
            logger.warning(f"Dropped cron job {job.job_id}: {e}")
            return DispatchResult.failure(str(e))

    def pending(self) -> int:
        try:
            return self.store.list_length(self.queue_key)
        except StateStoreError as e:
            raise QueueUnavailableError(str(e)) from e

    def clear(self) -> bool:
        try:
            return self.store.delete(self.queue_key)
        except StateStoreError as e:
            raise QueueUnavailableError(str(e)) from e
