"""
api/routes/health.py -- Health and system information endpoints.

No authentication and no rate limit: load balancers and monitoring systems
must always be able to reach these.

Routes:
  GET /api/health/          -- database + jwt + cache; 503 when any is unhealthy
  GET /api/health/database  -- database ping and latency
  GET /api/health/stats     -- connection pool statistics
  GET /api/health/info      -- service name, version, environment, features
"""

from __future__ import annotations

import platform

from fastapi import APIRouter, Request

from api.health import HEALTHY, check_database, check_system
from api.models import DatabaseHealth, SuccessEnvelope, SystemHealth, SystemInfo
from api.responses import error_response, ok
from core.errors import ErrorCode

router = APIRouter()

FEATURES = [
    "typed error envelopes",
    "request id tracing",
    "password strength validation",
    "jwt bearer auth",
    "pooled database connections",
    "read-through cache",
    "health checks",
    "in-process metrics",
]


@router.get("/health/", response_model=SuccessEnvelope[SystemHealth])
async def health_check(request: Request):
    state = request.app.state
    status = await check_system(
        getattr(state, "user_store", None),
        getattr(state, "token_service", None),
        getattr(state, "cache", None),
    )
    if status.status == HEALTHY:
        return ok(request, status, "System healthy.")
    return error_response(
        request, 503, ErrorCode.SERVICE_UNAVAILABLE, "System unhealthy.", data=status.model_dump(mode="json")
    )


@router.get("/health/database", response_model=SuccessEnvelope[DatabaseHealth])
def database_health(request: Request):
    status = check_database(getattr(request.app.state, "user_store", None))
    if status.status == HEALTHY:
        return ok(request, status, "Database connection healthy.")
    return error_response(
        request, 503, ErrorCode.DATABASE_ERROR, "Database connection unhealthy.", data=status.model_dump(mode="json")
    )


@router.get("/health/stats", response_model=SuccessEnvelope[dict])
def database_stats(request: Request):
    store = request.app.state.user_store
    stats = {"status": "connected", "dialect": store.dialect, **store.pool_stats()}
    return ok(request, stats, "Database statistics.")


@router.get("/health/info", response_model=SuccessEnvelope[SystemInfo])
def system_info(request: Request) -> SuccessEnvelope:
    settings = request.app.state.settings
    info = SystemInfo(
        service=settings.service_name,
        version=settings.version,
        environment="debug" if settings.debug else "release",
        python_version=platform.python_version(),
        features=FEATURES,
    )
    return ok(request, info, "System information.")
