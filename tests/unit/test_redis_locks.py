"""Unit tests for Redis window locks, using a mocked client."""

from unittest.mock import AsyncMock, patch

import pytest

from fieldbook.bootstrap import create_scheduling_service
from fieldbook.config.settings import Settings
from fieldbook.storage.redis_locks import RedisLockHelper, window_lock_key


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.set.return_value = True
    client.exists.return_value = 0
    return client


@pytest.fixture
def lock_helper(redis_client):
    helper = RedisLockHelper("redis://localhost:6379/0", ttl_seconds=7)
    with patch("fieldbook.storage.redis_locks.redis.from_url", return_value=redis_client):
        yield helper


def test_window_lock_key():
    assert (
        window_lock_key("F1", "2025-03-10", "10:00", "11:00")
        == "fieldbook:lock:window:F1:2025-03-10:10:00-11:00"
    )


@pytest.mark.asyncio
async def test_acquire_sets_and_releases(lock_helper, redis_client):
    await lock_helper.connect()
    key = window_lock_key("F1", "2025-03-10", "10:00", "11:00")

    async with lock_helper.acquire_window_lock("F1", "2025-03-10", "10:00", "11:00") as acquired:
        assert acquired is True
        redis_client.set.assert_awaited_once_with(key, "1", ex=7, nx=True)

    redis_client.delete.assert_awaited_once_with(key)


@pytest.mark.asyncio
async def test_held_lock_not_acquired_or_released(lock_helper, redis_client):
    redis_client.set.return_value = None
    await lock_helper.connect()

    async with lock_helper.acquire_window_lock("F1", "2025-03-10", "10:00", "11:00") as acquired:
        assert acquired is False

    redis_client.delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_requires_connection():
    helper = RedisLockHelper("redis://localhost:6379/0")

    with pytest.raises(RuntimeError):
        async with helper.acquire_window_lock("F1", "2025-03-10", "10:00", "11:00"):
            pass


@pytest.mark.asyncio
async def test_disconnect_closes_client(lock_helper, redis_client):
    await lock_helper.connect()

    await lock_helper.disconnect()

    redis_client.aclose.assert_awaited_once()


def test_key_prefix_namespaces_locks():
    helper = RedisLockHelper("redis://localhost:6379/0", key_prefix="clubnorth")

    assert (
        helper.key_for("F1", "2025-03-10", "10:00", "11:00")
        == "clubnorth:lock:window:F1:2025-03-10:10:00-11:00"
    )


@pytest.mark.asyncio
async def test_is_locked_uses_prefixed_key(redis_client):
    redis_client.exists.return_value = 1
    helper = RedisLockHelper("redis://localhost:6379/0", key_prefix="clubnorth")
    with patch("fieldbook.storage.redis_locks.redis.from_url", return_value=redis_client):
        await helper.connect()

    assert await helper.is_locked("F1", "2025-03-10", "10:00", "11:00") is True
    redis_client.exists.assert_awaited_once_with(
        "clubnorth:lock:window:F1:2025-03-10:10:00-11:00"
    )


@pytest.mark.asyncio
async def test_bootstrap_prefixes_locks_with_app_name(redis_client):
    settings = Settings(
        _env_file=None, window_locks_enabled=True, app_name="clubnorth"
    )
    with patch("fieldbook.storage.redis_locks.redis.from_url", return_value=redis_client):
        runtime = await create_scheduling_service(settings)

    try:
        assert runtime.redis_locks.key_prefix == "clubnorth"
    finally:
        await runtime.close()
