"""Redis-backed shared state store for run coordination.

The lock, the last-run marker and the work queue must be visible to every
Gunicorn worker and Celery process, so they live in Redis rather than in
process memory.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Optional
import redis

from all_sites_cron.coordination.errors import StateStoreError

logger = logging.getLogger(__name__)


def mask_url(url: str) -> str:
    """Mask password in Redis URL for logging."""
    if "@" in url and "://" in url:
        protocol, rest = url.split("://", 1)
        if "@" in rest:
            auth, host = rest.rsplit("@", 1)
            return f"{protocol}://***:***@{host}"
    return url


class SharedStateStore(ABC):
    """Key/value and list operations the coordination core relies on."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the decoded value for key, or None when absent."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store value under key, expiring after ttl seconds when given."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete key. Returns True if it existed."""

    @abstractmethod
    def list_push(self, key: str, value: Any) -> int:
        """Append value to the tail of a list. Returns the new length."""

    @abstractmethod
    def list_pop(self, key: str) -> Optional[Any]:
        """Pop from the head of a list without blocking."""

    @abstractmethod
    def list_length(self, key: str) -> int:
        """Number of items in a list."""

    @abstractmethod
    def delete_matching(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns the count."""

    @abstractmethod
    def ping(self) -> bool:
        """True if the backend is reachable."""


class RedisStateStore(SharedStateStore):
    """SharedStateStore on top of redis-py.

    Every Redis failure is raised as StateStoreError so callers can tell an
    absent key from an unreachable store.
    """

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None):
        """Initialize the store.

        Args:
            redis_url: Redis connection URL (defaults to REDIS_URL env var)
            client: Pre-built client, mainly for tests
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self._client = client

    def _connect(self) -> redis.Redis:
        """Establish Redis connection lazily."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            logger.info(f"State store connected: {mask_url(self.redis_url)}")
        return self._client

    def _fail(self, operation: str, key: str, error: Exception) -> StateStoreError:
        logger.error(f"State store {operation} failed for '{key}' on {mask_url(self.redis_url)}: {error}")
        return StateStoreError(f"State store {operation} failed: {error}")

    @staticmethod
    def _decode(raw: Optional[str]) -> Optional[Any]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            # Values written by something else than this store
            return raw

    def get(self, key: str) -> Optional[Any]:
        try:
            return self._decode(self._connect().get(key))
        except redis.RedisError as e:
            raise self._fail("get", key, e) from e

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        try:
            serialized = json.dumps(value)
            if ttl and ttl > 0:
                self._connect().setex(key, int(ttl), serialized)
            else:
                self._connect().set(key, serialized)
        except redis.RedisError as e:
            raise self._fail("set", key, e) from e

    def delete(self, key: str) -> bool:
        try:
            return self._connect().delete(key) > 0
        except redis.RedisError as e:
            raise self._fail("delete", key, e) from e

    def list_push(self, key: str, value: Any) -> int:
        try:
            return int(self._connect().rpush(key, json.dumps(value)))
        except redis.RedisError as e:
            raise self._fail("push", key, e) from e

    def list_pop(self, key: str) -> Optional[Any]:
        try:
            return self._decode(self._connect().lpop(key))
        except redis.RedisError as e:
            raise self._fail("pop", key, e) from e

    def list_length(self, key: str) -> int:
        try:
            return int(self._connect().llen(key))
        except redis.RedisError as e:
            raise self._fail("llen", key, e) from e

    def delete_matching(self, pattern: str) -> int:
        try:
            client = self._connect()
            keys = list(client.scan_iter(match=pattern))
            if not keys:
                return 0
            deleted = client.delete(*keys)
            logger.info(f"State store deleted {deleted} keys matching '{pattern}'")
            return int(deleted)
        except redis.RedisError as e:
            raise self._fail("delete_matching", pattern, e) from e

    def ping(self) -> bool:
        try:
            return bool(self._connect().ping())
        except redis.RedisError as e:
            logger.warning(f"State store health check failed: {e}")
            return False

    def close(self):
        """Close Redis connection."""
        if self._client is not None:
            try:
                self._client.close()
                logger.info("State store connection closed")
            except redis.RedisError as e:
                logger.warning(f"Error closing state store connection: {e}")
            finally:
                self._client = None
