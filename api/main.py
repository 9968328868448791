"""
api/main.py -- FastAPI application entry point for Gatehouse.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost; Starlette wraps the last one added
around everything added before it):
  1. request context       -- request id, security headers, request log line,
                              request metrics
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  3. CORSMiddleware        -- adds CORS headers for allowed browser origins
  4. TrustedHostMiddleware -- rejects requests with unexpected Host headers

Lifespan builds every shared handle (engine, stores, token service, cache,
metrics) once and hangs it on app.state; nothing is looked up from a module
global at request time. Shutdown releases them in reverse order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException
from starlette.routing import Match

from api.limiter import limiter
from api.responses import REQUEST_ID_HEADER, error_response, new_request_id
from api.routes.auth import router as auth_router
from api.routes.health import router as health_router
from api.routes.metrics import router as metrics_router
from api.routes.options import router as options_router
from auth.store import UserStore, build_engine
from auth.tokens import TokenService
from cache.helper import CacheHelper
from cache.store import CacheError, SQLiteCache, build_cache
from core.config import get_settings
from core.errors import AppError, DependencyError, ErrorCode, InternalError, message_for
from core.metrics import MetricsCollector
from options.store import OptionStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

_settings = get_settings()

logging.basicConfig(
    level=getattr(logging, _settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gatehouse.api")


# ---------------------------------------------------------------------------
# Background purge task (SQLite cache backend only)
# ---------------------------------------------------------------------------


async def _purge_loop(cache: SQLiteCache, interval: int) -> None:
    """Purge expired cache rows periodically.

    Redis expires keys on its own; only the SQLite backend needs this.
    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(interval)
        removed = cache.purge_expired()
        if removed:
            logger.info("Purged %d expired cache entries", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build shared handles on startup and release them on shutdown.

    A cache that is unreachable at startup is logged and tolerated: every
    cache read goes through CacheHelper.get_or_set(), which falls back to
    the database, so the service stays up without it.
    """
    settings = get_settings()
    logger.info("Gatehouse API starting up")

    engine = build_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        echo=settings.db_echo,
    )
    app.state.settings = settings
    app.state.user_store = UserStore(engine=engine)
    app.state.option_store = OptionStore(engine)
    logger.info("Database initialized (dialect=%s)", engine.dialect.name)

    metrics = MetricsCollector()
    app.state.metrics = metrics
    app.state.token_service = TokenService.from_settings(settings, metrics)

    cache = build_cache(settings)
    try:
        await cache.ping()
        logger.info("Cache connected")
    except CacheError as exc:
        logger.warning("Cache unavailable at startup, continuing without it: %s", exc)
    app.state.cache = cache
    app.state.cache_helper = CacheHelper(cache, default_ttl=settings.cache_default_ttl, metrics=metrics)

    purge_task = None
    if isinstance(cache, SQLiteCache):
        purge_task = asyncio.create_task(_purge_loop(cache, settings.cache_purge_interval_seconds))

    yield

    if purge_task is not None:
        purge_task.cancel()
    await cache.close()
    engine.dispose()
    logger.info("Gatehouse API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gatehouse API",
    description="User registration, JWT session auth, cached reference data, and health checks.",
    version=_settings.version,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With", REQUEST_ID_HEADER],
    max_age=86400,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request context middleware
#
# Assigns the request id before any handler runs (echoing a client-supplied
# X-Request-ID), stamps security headers on every response, writes one
# log line per request with latency, and counts the request on app.state.metrics
# under its route template.
# ---------------------------------------------------------------------------

_SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Content-Security-Policy": "default-src 'self'",
    "Referrer-Policy": "no-referrer",
}


def _route_template(request: Request) -> str:
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", "unmatched")
    return "unmatched"


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
    request.state.request_id = request_id
    start = time.perf_counter()

    response = await call_next(request)

    ms = (time.perf_counter() - start) * 1000
    response.headers[REQUEST_ID_HEADER] = request_id
    for name, value in _SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    if not _settings.debug:
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    logger.info(
        "%s %s %d %.1fms %s rid=%s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
        request_id,
    )
    metrics: MetricsCollector | None = getattr(request.app.state, "metrics", None)
    if metrics is not None:
        metrics.record_request(request.method, _route_template(request), response.status_code, ms)
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(options_router, prefix="/api", tags=["Options"])
app.include_router(health_router, prefix="/api", tags=["Health"])
app.include_router(metrics_router, prefix="/api", tags=["Metrics"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# This is the only place that decides wire status and message. All handlers
# return the ErrorEnvelope so API clients can parse errors uniformly.
# Internal details (driver errors, stack traces) are logged, never returned.
# ---------------------------------------------------------------------------


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, (DependencyError, InternalError)):
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
        return error_response(request, exc.http_status, exc.code, message_for(exc.code))
    return error_response(request, exc.http_status, exc.code, exc.message, data=exc.data)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return error_response(request, 500, ErrorCode.DATABASE_ERROR, message_for(ErrorCode.DATABASE_ERROR))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    return error_response(
        request,
        429,
        ErrorCode.TOO_MANY_REQUESTS,
        message_for(ErrorCode.TOO_MANY_REQUESTS),
        data={"limit": str(exc.detail)},
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when the request body or parameters fail validation."""
    errors = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")} for err in exc.errors()
    ]
    return error_response(
        request, 422, ErrorCode.INVALID_PARAMS, message_for(ErrorCode.INVALID_PARAMS), data={"errors": errors}
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Framework-raised HTTP errors (404 for unknown paths, 405, ...)."""
    code = {401: ErrorCode.UNAUTHORIZED, 403: ErrorCode.FORBIDDEN, 404: ErrorCode.NOT_FOUND}.get(
        exc.status_code, ErrorCode.BAD_REQUEST
    )
    return error_response(request, exc.status_code, code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The traceback goes to the log only. The client receives a generic
    message and the request id to quote in a bug report.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(request, 500, ErrorCode.INTERNAL_ERROR, message_for(ErrorCode.INTERNAL_ERROR))
