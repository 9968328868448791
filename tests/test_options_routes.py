"""
tests/test_options_routes.py -- Integration tests for /api/options/{kind}.

Covers:
  - GET is public and read through options:<kind>:list
  - POST requires auth, returns 201, and invalidates the cached list so the
    next GET sees the new entry
  - Unknown kinds are rejected by path validation
  - Store calls run in the threadpool, not on the event loop
"""

from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from cache.helper import option_cache_key
from core.errors import ErrorCode


def test_list_starts_empty(api_client: tuple[TestClient, str, int]) -> None:
    client, _, _ = api_client
    resp = client.get("/api/options/profession")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"kind": "profession", "items": []}


def test_list_populates_cache(api_client: tuple[TestClient, str, int]) -> None:
    client, _, _ = api_client
    client.get("/api/options/profession")
    cache = client.app.state.cache
    assert asyncio.run(cache.exists(option_cache_key("profession", "list")))


def test_create_requires_auth(api_client: tuple[TestClient, str, int]) -> None:
    client, _, _ = api_client
    resp = client.post("/api/options/industry", json={"name": "Mining"})
    assert resp.status_code == 401


def test_create_invalidates_cached_list(api_client: tuple[TestClient, str, int], auth_headers: dict) -> None:
    client, _, _ = api_client

    before = client.get("/api/options/industry").json()["data"]["items"]

    resp = client.post(
        "/api/options/industry",
        json={"name": "Manufacturing", "payload": {"children": ["Textiles"]}},
        headers=auth_headers,
    )
    assert resp.status_code == 201, resp.text
    created = resp.json()["data"]
    assert created["name"] == "Manufacturing"
    assert isinstance(created["id"], int)

    after = client.get("/api/options/industry").json()["data"]["items"]
    assert len(after) == len(before) + 1
    assert after[-1] == {"id": created["id"], "name": "Manufacturing", "payload": {"children": ["Textiles"]}}


def test_kinds_are_isolated(api_client: tuple[TestClient, str, int], auth_headers: dict) -> None:
    client, _, _ = api_client
    client.post("/api/options/profession", json={"name": "Engineer"}, headers=auth_headers)
    industries = client.get("/api/options/industry").json()["data"]["items"]
    assert all(item["name"] != "Engineer" for item in industries)


def test_unknown_kind_is_invalid_params(api_client: tuple[TestClient, str, int]) -> None:
    client, _, _ = api_client
    resp = client.get("/api/options/planet")
    assert resp.status_code == 422
    assert resp.json()["code"] == ErrorCode.INVALID_PARAMS


def test_blank_name_rejected(api_client: tuple[TestClient, str, int], auth_headers: dict) -> None:
    client, _, _ = api_client
    resp = client.post("/api/options/industry", json={"name": "   "}, headers=auth_headers)
    assert resp.status_code == 422


def test_store_calls_run_off_the_event_loop(api_client: tuple[TestClient, str, int], auth_headers: dict, monkeypatch) -> None:
    """Blocking database calls must run in a worker thread, where no event loop is running."""
    client, _, _ = api_client
    store = client.app.state.option_store
    seen: dict[str, bool] = {}

    def on_loop() -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def wrap(name: str):
        original = getattr(store, name)

        def recorder(*args, **kwargs):
            seen[name] = on_loop()
            return original(*args, **kwargs)

        monkeypatch.setattr(store, name, recorder)

    wrap("add_option")
    wrap("list_options")

    assert client.post("/api/options/industry", json={"name": "Logistics"}, headers=auth_headers).status_code == 201
    assert client.get("/api/options/industry").status_code == 200
    assert seen == {"add_option": False, "list_options": False}
