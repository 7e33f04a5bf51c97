"""Redis-based distributed locks for booking windows.

One key per facility window and date, namespaced by the application name so
several deployments can share a Redis instance. The store's conditional
insert stays the source of truth; the lock only keeps concurrent requests
for the same window from racing through validation together.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import redis.asyncio as redis

from fieldbook.logging import get_logger

logger = get_logger(__name__)


def window_lock_key(
    facility_id: str,
    date: str,
    start_time: str,
    end_time: str,
    prefix: str = "fieldbook",
) -> str:
    """Redis key guarding one facility window on one date."""
    return f"{prefix}:lock:window:{facility_id}:{date}:{start_time}-{end_time}"


class RedisLockHelper:
    """Short-lived window locks taken around reservation commits."""

    def __init__(self, redis_url: str, ttl_seconds: int = 5, key_prefix: str = "fieldbook"):
        """
        Initialize Redis lock helper.

        Args:
            redis_url: Redis connection URL
            ttl_seconds: Expiry bounding a holder that crashed mid-commit
            key_prefix: Namespace for lock keys, normally Settings.app_name
        """
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        self._client = redis.from_url(self.redis_url, encoding="utf-8")
        logger.info(
            "redis_locks_connected", key_prefix=self.key_prefix, ttl_seconds=self.ttl_seconds
        )

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> redis.Redis:
        if not self._client:
            raise RuntimeError("Redis client not connected")
        return self._client

    def key_for(self, facility_id: str, date: str, start_time: str, end_time: str) -> str:
        """Lock key for a window under this helper's prefix."""
        return window_lock_key(facility_id, date, start_time, end_time, prefix=self.key_prefix)

    @asynccontextmanager
    async def acquire_window_lock(
        self, facility_id: str, date: str, start_time: str, end_time: str
    ) -> AsyncGenerator[bool, None]:
        """Yield True if this caller holds the window; the key is removed on exit."""
        client = self._require_client()
        lock_key = self.key_for(facility_id, date, start_time, end_time)

        acquired = bool(await client.set(lock_key, "1", ex=self.ttl_seconds, nx=True))
        if not acquired:
            logger.info("window_lock_busy", lock_key=lock_key)
        try:
            yield acquired
        finally:
            if acquired:
                await client.delete(lock_key)

    async def is_locked(
        self, facility_id: str, date: str, start_time: str, end_time: str
    ) -> bool:
        """Check if a booking window is currently locked."""
        client = self._require_client()
        return bool(await client.exists(self.key_for(facility_id, date, start_time, end_time)))
