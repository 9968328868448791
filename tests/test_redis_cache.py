"""
tests/test_redis_cache.py -- Unit tests for RedisCache against a mocked client.

No Redis server is needed: the redis.asyncio client is replaced with a
MagicMock whose coroutine methods are AsyncMocks. These tests pin down key
prefixing, the miss/timeout/unavailable error mapping, cancellation, and the
SCAN-based pattern delete.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from cache.store import CacheMiss, CacheTimeoutError, CacheUnavailableError, PatternDeletable, RedisCache


@pytest.fixture
def client() -> MagicMock:
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=1)
    mock.exists = AsyncMock(return_value=1)
    mock.ping = AsyncMock(return_value=True)
    mock.aclose = AsyncMock()
    return mock


@pytest.fixture
def cache(client: MagicMock) -> RedisCache:
    return RedisCache(prefix="gh:", timeout=0.05, client=client)


def test_is_pattern_deletable(cache: RedisCache):
    assert isinstance(cache, PatternDeletable)


def test_get_prefixes_key(cache: RedisCache, client: MagicMock):
    client.get.return_value = "value"
    assert asyncio.run(cache.get("user:1:info")) == "value"
    client.get.assert_awaited_once_with("gh:user:1:info")


def test_get_none_is_cache_miss(cache: RedisCache):
    with pytest.raises(CacheMiss) as excinfo:
        asyncio.run(cache.get("absent"))
    assert excinfo.value.key == "absent"


def test_set_passes_ttl_as_ex(cache: RedisCache, client: MagicMock):
    asyncio.run(cache.set("k", "v", 30))
    client.set.assert_awaited_once_with("gh:k", "v", ex=30)


def test_set_without_ttl(cache: RedisCache, client: MagicMock):
    asyncio.run(cache.set("k", "v", 0))
    client.set.assert_awaited_once_with("gh:k", "v", ex=None)


def test_exists_and_delete(cache: RedisCache, client: MagicMock):
    assert asyncio.run(cache.exists("k")) is True
    asyncio.run(cache.delete("k"))
    client.exists.assert_awaited_once_with("gh:k")
    client.delete.assert_awaited_once_with("gh:k")


def test_slow_call_times_out(cache: RedisCache, client: MagicMock):
    async def slow(*args, **kwargs):
        await asyncio.sleep(1)

    client.get = slow
    with pytest.raises(CacheTimeoutError):
        asyncio.run(cache.get("k"))


def test_cancelled_get_propagates_cancellation(client: MagicMock):
    """Cancelling a caller mid-call cancels the call; it is not turned into a cache error."""
    cache = RedisCache(prefix="gh:", timeout=5, client=client)
    started = None

    async def hang(*args, **kwargs):
        started.set()
        await asyncio.sleep(60)

    client.get = hang

    async def scenario():
        nonlocal started
        started = asyncio.Event()
        task = asyncio.create_task(cache.get("k"))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return task.cancelled()

    assert asyncio.run(scenario()) is True


def test_connection_error_is_unavailable(cache: RedisCache, client: MagicMock):
    client.set.side_effect = RedisConnectionError("refused")
    with pytest.raises(CacheUnavailableError):
        asyncio.run(cache.set("k", "v", 10))


def test_delete_pattern_scans_with_prefix(cache: RedisCache, client: MagicMock):
    seen = {}

    async def scan_iter(match, count):
        seen["match"] = match
        for key in ("gh:user:1:info", "gh:user:1:roles"):
            yield key

    client.scan_iter = scan_iter
    client.delete.return_value = 2

    assert asyncio.run(cache.delete_pattern("user:1:*")) == 2
    assert seen["match"] == "gh:user:1:*"
    client.delete.assert_awaited_once_with("gh:user:1:info", "gh:user:1:roles")


def test_delete_pattern_with_no_matches(cache: RedisCache, client: MagicMock):
    async def scan_iter(match, count):
        return
        yield

    client.scan_iter = scan_iter
    assert asyncio.run(cache.delete_pattern("nothing:*")) == 0
    client.delete.assert_not_awaited()


def test_flush_only_deletes_own_prefix(cache: RedisCache, client: MagicMock):
    seen = {}

    async def scan_iter(match, count):
        seen["match"] = match
        return
        yield

    client.scan_iter = scan_iter
    asyncio.run(cache.flush())
    assert seen["match"] == "gh:*"
    client.flushdb.assert_not_called()


def test_ping_and_close(cache: RedisCache, client: MagicMock):
    assert asyncio.run(cache.ping()) is True
    asyncio.run(cache.close())
    client.aclose.assert_awaited_once()
