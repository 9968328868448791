"""
cache/store.py -- Pluggable key-value cache backends.

Two backends implement the CacheClient protocol:

  RedisCache   -- redis-py asyncio client. The production backend. TTL expiry
                  is handled by Redis itself.
  SQLiteCache  -- single-table local cache with an expires_at column. Useful
                  for development and tests; purge_expired() trims old rows.

Both prefix every key with the configured application prefix, so several
applications can share one store, and both implement the PatternDeletable
capability (glob-style bulk delete). Capability checks happen once, where a
CacheHelper is constructed -- never per call.

Errors:
  CacheMiss              key not found (or payload unusable by the helper)
  CacheTimeoutError      the operation exceeded its deadline
  CacheUnavailableError  connection or protocol failure
  CacheCapabilityError   backend cannot do what was asked
All derive from CacheError, which is a DependencyError. asyncio.CancelledError
is never caught here; it propagates to the caller unchanged.

Usage:
    cache = RedisCache(host="localhost", prefix="gatehouse:")
    await cache.set("user:1:info", '{"name": "a"}', ttl=300)
    value = await cache.get("user:1:info")
    await cache.close()
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol, TypeVar, runtime_checkable

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from core.config import DEFAULT_CACHE_PATH
from core.errors import DependencyError, ErrorCode

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("gatehouse.cache")

T = TypeVar("T")

_DELETE_BATCH = 500


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class CacheError(DependencyError):
    def __init__(self, message: str = "Cache error.", *, details: str = "") -> None:
        super().__init__(ErrorCode.SERVICE_UNAVAILABLE, message, details=details)


class CacheMiss(CacheError):
    def __init__(self, key: str, details: str = "not found") -> None:
        self.key = key
        super().__init__("Cache miss.", details=f"{key}: {details}")


class CacheTimeoutError(CacheError):
    pass


class CacheUnavailableError(CacheError):
    pass


class CacheCapabilityError(CacheError):
    pass


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class CacheClient(Protocol):
    prefix: str

    async def get(self, key: str) -> str: ...

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def exists(self, key: str) -> bool: ...

    async def flush(self) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


@runtime_checkable
class PatternDeletable(Protocol):
    async def delete_pattern(self, pattern: str) -> int: ...


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class RedisCache:
    """Redis-backed cache. The client's connection pool is shared by all requests.

    Every call is bounded by `timeout` seconds via asyncio.wait_for, so a slow
    Redis cannot stall a request indefinitely.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        password: str = "",
        db: int = 0,
        prefix: str = "gatehouse:",
        timeout: float = 2.0,
        client: Optional[aioredis.Redis] = None,
    ) -> None:
        self.prefix = prefix
        self.timeout = timeout
        self._client = client or aioredis.Redis(
            host=host,
            port=port,
            password=password or None,
            db=db,
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )

    def _full_key(self, key: str) -> str:
        return self.prefix + key

    async def _call(self, op: str, key: str, coro: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except (asyncio.TimeoutError, RedisTimeoutError) as exc:
            raise CacheTimeoutError("Cache operation timed out.", details=f"{op} {key}") from exc
        except RedisError as exc:
            raise CacheUnavailableError("Cache unavailable.", details=f"{op} {key}: {exc}") from exc

    async def get(self, key: str) -> str:
        full = self._full_key(key)
        value = await self._call("GET", full, self._client.get(full))
        if value is None:
            raise CacheMiss(key)
        return value

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        full = self._full_key(key)
        # ttl of 0/None means no expiry; Redis rejects ex=0.
        await self._call("SET", full, self._client.set(full, value, ex=ttl or None))

    async def delete(self, key: str) -> None:
        full = self._full_key(key)
        await self._call("DEL", full, self._client.delete(full))

    async def exists(self, key: str) -> bool:
        full = self._full_key(key)
        return bool(await self._call("EXISTS", full, self._client.exists(full)))

    async def delete_pattern(self, pattern: str) -> int:
        full = self._full_key(pattern)
        return await self._call("SCAN+DEL", full, self._scan_delete(full))

    async def flush(self) -> None:
        """Delete every key under this application's prefix -- never FLUSHDB."""
        await self.delete_pattern("*")

    async def _scan_delete(self, match: str) -> int:
        deleted = 0
        batch: list[str] = []
        async for key in self._client.scan_iter(match=match, count=_DELETE_BATCH):
            batch.append(key)
            if len(batch) >= _DELETE_BATCH:
                deleted += await self._client.delete(*batch)
                batch = []
        if batch:
            deleted += await self._client.delete(*batch)
        return deleted

    async def ping(self) -> bool:
        return bool(await self._call("PING", "", self._client.ping()))

    async def close(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

_DDL = """
CREATE TABLE IF NOT EXISTS cache_entries (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    expires_at  REAL
);
"""


class SQLiteCache:
    """SQLite-backed cache for local runs and tests.

    The connection is shared (check_same_thread=False) and every method runs
    on the event loop thread; statements are short enough not to matter.
    expires_at is NULL for entries without a TTL. `clock` is injectable so
    tests can move time forward without sleeping.
    """

    def __init__(
        self,
        db_path: str | Path = DEFAULT_CACHE_PATH,
        prefix: str = "gatehouse:",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.prefix = prefix
        self._clock = clock
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        if str(db_path) != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_DDL)
        self._conn.commit()

    def _full_key(self, key: str) -> str:
        return self.prefix + key

    def _run(self, op: str, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
            return cursor
        except sqlite3.Error as exc:
            raise CacheUnavailableError("Cache unavailable.", details=f"{op}: {exc}") from exc

    async def get(self, key: str) -> str:
        full = self._full_key(key)
        row = self._run("GET", "SELECT value, expires_at FROM cache_entries WHERE key = ?", (full,)).fetchone()
        if row is None:
            raise CacheMiss(key)
        value, expires_at = row
        if expires_at is not None and self._clock() >= expires_at:
            self._run("DEL", "DELETE FROM cache_entries WHERE key = ?", (full,))
            raise CacheMiss(key, "expired")
        return value

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._run(
            "SET",
            "INSERT OR REPLACE INTO cache_entries (key, value, expires_at) VALUES (?, ?, ?)",
            (self._full_key(key), value, expires_at),
        )

    async def delete(self, key: str) -> None:
        self._run("DEL", "DELETE FROM cache_entries WHERE key = ?", (self._full_key(key),))

    async def exists(self, key: str) -> bool:
        try:
            await self.get(key)
        except CacheMiss:
            return False
        return True

    async def delete_pattern(self, pattern: str) -> int:
        # GLOB uses the same *, ?, [...] syntax as Redis MATCH.
        cursor = self._run("DEL-PATTERN", "DELETE FROM cache_entries WHERE key GLOB ?", (self._full_key(pattern),))
        return cursor.rowcount

    async def flush(self) -> None:
        await self.delete_pattern("*")

    def purge_expired(self) -> int:
        """Delete all expired entries. Returns number of rows removed."""
        cursor = self._run(
            "PURGE",
            "DELETE FROM cache_entries WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (self._clock(),),
        )
        return cursor.rowcount

    async def ping(self) -> bool:
        self._run("PING", "SELECT 1")
        return True

    async def close(self) -> None:
        self._conn.close()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_cache(settings: Settings) -> RedisCache | SQLiteCache:
    """Construct the backend named by settings.cache_backend."""
    if settings.cache_backend == "sqlite":
        logger.info("Using SQLite cache at %s", settings.cache_sqlite_path)
        return SQLiteCache(settings.cache_sqlite_path, prefix=settings.cache_prefix)
    logger.info("Using Redis cache at %s:%d db=%d", settings.cache_host, settings.cache_port, settings.cache_db)
    return RedisCache(
        host=settings.cache_host,
        port=settings.cache_port,
        password=settings.cache_password,
        db=settings.cache_db,
        prefix=settings.cache_prefix,
        timeout=settings.cache_timeout_seconds,
    )
