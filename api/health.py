"""
api/health.py -- Health checks for the database, token service, and cache.

Each check returns a model instead of raising, so one failing dependency is
reported next to the healthy ones rather than turning the whole check into
a 500. The overall status is "healthy" only if every check is.

The cache check does a real write/read/delete round trip on a short-lived
key, bounded by a 2 second deadline.
"""

from __future__ import annotations

import asyncio
import logging
import time

from sqlalchemy.exc import SQLAlchemyError

from api.models import DatabaseHealth, ServiceHealth, SystemHealth
from auth.store import UserStore
from auth.tokens import TokenService
from cache.store import CacheClient, CacheError

logger = logging.getLogger("gatehouse.api")

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"

_CACHE_CHECK_KEY = "health_check_test"
_CACHE_CHECK_VALUE = "ok"


def check_database(store: UserStore | None) -> DatabaseHealth:
    if store is None:
        return DatabaseHealth(status=UNHEALTHY, connection="disconnected", error="database not initialized")
    try:
        latency = store.ping()
    except SQLAlchemyError as exc:
        logger.warning("Database health check failed: %s", exc)
        return DatabaseHealth(status=UNHEALTHY, connection="failed", error=type(exc).__name__)
    return DatabaseHealth(status=HEALTHY, connection="connected", latency_ms=round(latency, 3))


def check_tokens(tokens: TokenService | None) -> ServiceHealth:
    if tokens is None:
        return ServiceHealth(status=UNHEALTHY, error="token service not initialized")
    return ServiceHealth(status=HEALTHY, detail={"issuer": tokens.issuer, "expire_hours": tokens.expires.total_seconds() / 3600})


async def check_cache(cache: CacheClient | None) -> ServiceHealth:
    if cache is None:
        return ServiceHealth(status=UNHEALTHY, error="cache client not initialized")
    try:
        async with asyncio.timeout(2):
            await cache.set(_CACHE_CHECK_KEY, _CACHE_CHECK_VALUE, 5)
            value = await cache.get(_CACHE_CHECK_KEY)
            await cache.delete(_CACHE_CHECK_KEY)
    except TimeoutError:
        return ServiceHealth(status=UNHEALTHY, error="cache check timed out")
    except CacheError as exc:
        logger.warning("Cache health check failed: %s", exc)
        return ServiceHealth(status=UNHEALTHY, error=exc.message)
    if value != _CACHE_CHECK_VALUE:
        return ServiceHealth(status=UNHEALTHY, error="cache returned inconsistent data")
    return ServiceHealth(status=HEALTHY, detail={"backend": type(cache).__name__, "prefix": cache.prefix})


async def check_system(store: UserStore | None, tokens: TokenService | None, cache: CacheClient | None) -> SystemHealth:
    database = check_database(store)
    services = {"jwt": check_tokens(tokens), "cache": await check_cache(cache)}
    healthy = database.status == HEALTHY and all(s.status == HEALTHY for s in services.values())
    return SystemHealth(
        status=HEALTHY if healthy else UNHEALTHY,
        timestamp=int(time.time()),
        database=database,
        services=services,
    )
