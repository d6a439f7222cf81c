"""Pytest configuration and shared fixtures."""

import fnmatch
import os
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

# Set test environment variables before importing app modules
os.environ["TESTING"] = "true"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["WP_DATABASE_URL"] = "sqlite:///:memory:"

from all_sites_cron.coordination.dispatcher import SiteDispatcher
from all_sites_cron.coordination.errors import StateStoreError
from all_sites_cron.coordination.lock_manager import LockManager
from all_sites_cron.coordination.orchestrator import RunOrchestrator
from all_sites_cron.coordination.queue_adapter import QueueAdapter
from all_sites_cron.coordination.rate_limiter import RateLimiter
from all_sites_cron.integrations.site_catalog import SiteLister
from all_sites_cron.models.dtos import SiteRecord
from all_sites_cron.utils.state_store import SharedStateStore

LOCK_NAME = "all_sites_cron_lock"
MARKER_KEY = "all_sites_cron_last_run_ts"
QUEUE_KEY = "all_sites_cron_jobs"


class FakeStateStore(SharedStateStore):
    """Dict-backed store. TTLs are recorded but never expire anything."""

    def __init__(self):
        self.values: Dict[str, Any] = {}
        self.ttls: Dict[str, Optional[int]] = {}
        self.lists: Dict[str, List[Any]] = {}
        self.unavailable = False
        self.calls: List[str] = []

    def _check(self, operation: str):
        self.calls.append(operation)
        if self.unavailable:
            raise StateStoreError(f"State store {operation} failed: connection refused")

    def get(self, key):
        self._check("get")
        return self.values.get(key)

    def set(self, key, value, ttl=None):
        self._check("set")
        self.values[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self._check("delete")
        existed = key in self.values or key in self.lists
        self.values.pop(key, None)
        self.ttls.pop(key, None)
        self.lists.pop(key, None)
        return existed

    def list_push(self, key, value):
        self._check("push")
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    def list_pop(self, key):
        self._check("pop")
        items = self.lists.get(key)
        if not items:
            return None
        return items.pop(0)

    def list_length(self, key):
        self._check("llen")
        return len(self.lists.get(key, []))

    def delete_matching(self, pattern):
        self._check("delete_matching")
        keys = [key for key in list(self.values) + list(self.lists) if fnmatch.fnmatch(key, pattern)]
        for key in keys:
            self.values.pop(key, None)
            self.lists.pop(key, None)
        return len(keys)

    def ping(self):
        return not self.unavailable


class PagedSiteLister(SiteLister):
    """Serves a fixed list of sites page by page, recording each request."""

    def __init__(self, count: int, multisite: bool = True):
        self.sites = [
            SiteRecord(url=f"https://site{i}.example.com", site_id=i + 1)
            for i in range(count)
        ]
        self.multisite = multisite
        self.requests: List[tuple] = []

    def is_multisite(self):
        return self.multisite

    def list_sites(self, offset, limit):
        self.requests.append((offset, limit))
        return self.sites[offset:offset + limit]


@pytest.fixture
def store():
    return FakeStateStore()


@pytest.fixture
def site_lister():
    return PagedSiteLister(3)


@pytest.fixture
def trigger():
    """Cron trigger whose fire() succeeds unless given a side effect."""
    return MagicMock()


@pytest.fixture
def dispatcher(site_lister, trigger):
    return SiteDispatcher(site_lister, trigger, batch_size=50, max_sites=1000)


@pytest.fixture
def orchestrator(store, dispatcher):
    return RunOrchestrator(
        lock_manager=LockManager(store),
        rate_limiter=RateLimiter(store, MARKER_KEY, cooldown=60),
        dispatcher=dispatcher,
        lock_name=LOCK_NAME,
        lock_ttl=300,
    )


@pytest.fixture
def queue_adapter(store, orchestrator):
    return QueueAdapter(store, orchestrator, QUEUE_KEY)
