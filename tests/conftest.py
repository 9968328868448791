"""
tests/conftest.py -- Shared test fixtures for Gatehouse integration tests.

This module provides:
  - _make_test_stores(): creates an isolated in-memory DB for users + options
  - _patch_lifespan(): wires test handles into app.state, bypassing real startup
  - api_client: TestClient plus a valid JWT for an existing user

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment variables must be set before any api/ or core/ import:
api/main.py reads get_settings() at import time, and Settings refuses to
load without a JWT_SECRET.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before importing api.main.
TEST_SECRET = "0123456789abcdef" * 4
os.environ.setdefault("JWT_SECRET", TEST_SECRET)
os.environ.setdefault("CACHE_BACKEND", "sqlite")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.store import UserStore, build_engine
from auth.tokens import TokenService, hash_password
from cache.helper import CacheHelper
from cache.store import SQLiteCache
from core.config import get_settings
from core.metrics import MetricsCollector
from options.store import OptionStore

TEST_TELEPHONE = "13800000000"
TEST_PASSWORD = "Testpass123!"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, OptionStore]:
    """Create isolated named shared-memory SQLite stores on one engine.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    engine = build_engine(f"sqlite:///file:test_gatehouse_{db_suffix}?mode=memory&cache=shared&uri=true")
    return UserStore(engine=engine), OptionStore(engine)


def _patch_lifespan(user_store: UserStore, option_store: OptionStore, cache: SQLiteCache):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test handles into app.state so TestClient routes see
    isolated stores and a private in-memory cache instead of Redis. Each
    module gets a fresh MetricsCollector.

    The purge_task is a long-sleeping coroutine standing in for the real
    purge loop (a real asyncio.Task is required so .cancel() works).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        app.state.settings = settings
        app.state.user_store = user_store
        app.state.option_store = option_store
        metrics = MetricsCollector()
        app.state.metrics = metrics
        app.state.token_service = TokenService.from_settings(settings, metrics)
        app.state.cache = cache
        app.state.cache_helper = CacheHelper(cache, default_ttl=settings.cache_default_ttl, metrics=metrics)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers and middleware. One user
    (TEST_TELEPHONE / TEST_PASSWORD) exists before the client starts, and
    token is a valid Bearer token for it.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, option_store = _make_test_stores(suffix)
    cache = SQLiteCache(":memory:", prefix="test:")

    uid = user_store.create_user(
        User(username="tester", telephone=TEST_TELEPHONE, hashed_password=hash_password(TEST_PASSWORD))
    )
    token = TokenService.from_settings(get_settings()).issue(uid)

    app.router.lifespan_context = _patch_lifespan(user_store, option_store, cache)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid

    asyncio.run(cache.close())
    user_store.close()


@pytest.fixture
def auth_headers(api_client) -> dict[str, str]:
    _, token, _ = api_client
    return {"Authorization": f"Bearer {token}"}
