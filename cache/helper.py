"""
cache/helper.py -- JSON envelope and get-or-compute semantics over a CacheClient.

CacheHelper adds behavior on top of any backend:

  get_json / set_json  JSON (de)serialization. A missing key and an unreadable
                       payload both raise CacheMiss, so callers can treat any
                       failure as "not cached".
  get_or_set           read-through with best-effort populate. Hits and misses
                       are counted on the optional MetricsCollector. A failed write
                       is logged and swallowed; the computed value is returned.
                       No single-flight: concurrent misses on one key may all
                       compute, so compute functions must be idempotent.
  delete_pattern       glob bulk delete, only if the backend is PatternDeletable.
                       That capability is resolved once, here in __init__.

Key helpers namespace the logical key space (the backend adds the app prefix):
  user_cache_key(7, "info")          -> "user:7:info"
  option_cache_key("industry", "list") -> "options:industry:list"
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Optional, Union

from cache.store import CacheCapabilityError, CacheClient, CacheError, CacheMiss, PatternDeletable

if TYPE_CHECKING:
    from core.metrics import MetricsCollector

logger = logging.getLogger("gatehouse.cache")

ComputeFn = Callable[[], Union[Any, Awaitable[Any]]]


def user_cache_key(user_id: int | str, suffix: str) -> str:
    return f"user:{user_id}:{suffix}"


def option_cache_key(option_type: str, suffix: str) -> str:
    return f"options:{option_type}:{suffix}"


class CacheHelper:
    """Typed convenience layer over a cache backend.

    Usage:
        helper = CacheHelper(cache)
        data = await helper.get_or_set(option_cache_key("industry", "list"), 300, load_industries)
        await helper.delete_pattern("options:industry:*")
    """

    def __init__(self, cache: CacheClient, default_ttl: int = 300, metrics: MetricsCollector | None = None) -> None:
        self.cache = cache
        self.default_ttl = default_ttl
        self.metrics = metrics
        self._patterns: Optional[PatternDeletable] = cache if isinstance(cache, PatternDeletable) else None

    @property
    def supports_patterns(self) -> bool:
        return self._patterns is not None

    async def get_json(self, key: str) -> Any:
        raw = await self.cache.get(key)
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise CacheMiss(key, f"malformed payload: {exc}") from exc

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        payload = json.dumps(value)
        await self.cache.set(key, payload, self.default_ttl if ttl is None else ttl)

    async def get_or_set(self, key: str, ttl: Optional[int], compute: ComputeFn) -> Any:
        """Return the cached JSON value for key, computing and storing it on a miss.

        Exceptions raised by compute propagate; cache failures never do.
        """
        try:
            value = await self.get_json(key)
        except CacheMiss:
            logger.debug("Cache miss for %s", key)
        except CacheError as exc:
            logger.warning("Cache read failed for %s, computing instead: %s", key, exc)
        else:
            self._record(hit=True)
            return value
        self._record(hit=False)

        result = compute()
        if inspect.isawaitable(result):
            result = await result

        try:
            await self.set_json(key, result, ttl)
        except (CacheError, TypeError, ValueError) as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)
        return result

    def _record(self, hit: bool) -> None:
        if self.metrics is not None:
            self.metrics.record_cache(hit)

    async def delete_pattern(self, pattern: str) -> int:
        if self._patterns is None:
            raise CacheCapabilityError(
                "Pattern deletion is not supported by this cache backend.",
                details=type(self.cache).__name__,
            )
        deleted = await self._patterns.delete_pattern(pattern)
        logger.debug("Deleted %d keys matching %s", deleted, pattern)
        return deleted

    async def invalidate_user(self, user_id: int | str) -> int:
        return await self.delete_pattern(user_cache_key(user_id, "*"))

    async def invalidate_options(self, option_type: str) -> int:
        return await self.delete_pattern(option_cache_key(option_type, "*"))
