"""
api/routes/options.py -- Cached option lists (industries, professions).

Routes:
  GET  /api/options/{kind}  -- public; read through cache key options:<kind>:list
  POST /api/options/{kind}  -- requires auth; adds an entry and invalidates options:<kind>:*

The read path never fails because of the cache: a miss or a cache outage
falls through to the database via CacheHelper.get_or_set(). The write path
treats invalidation as best-effort for the same reason -- the entry is
already committed, and the TTL bounds how long a stale list can survive.

The handlers are async so they can await the cache; the SQLAlchemy calls are
blocking and run in the threadpool via run_in_threadpool.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from api.models import OptionCreate, OptionListData, OptionRow, SuccessEnvelope
from api.responses import ok
from auth.dependencies import get_current_user
from auth.models import User
from cache.helper import CacheHelper, option_cache_key
from cache.store import CacheError
from options.models import Option, OptionKind
from options.store import OptionStore

logger = logging.getLogger("gatehouse.api")

router = APIRouter()


def _load(store: OptionStore, kind: str) -> list[dict]:
    return [OptionRow(id=o.id, name=o.name, payload=o.payload).model_dump() for o in store.list_options(kind)]


@router.get("/options/{kind}", response_model=SuccessEnvelope[OptionListData])
async def list_options(request: Request, kind: OptionKind) -> SuccessEnvelope:
    store: OptionStore = request.app.state.option_store
    helper: CacheHelper = request.app.state.cache_helper
    rows = await helper.get_or_set(
        option_cache_key(kind.value, "list"), helper.default_ttl, lambda: run_in_threadpool(_load, store, kind.value)
    )
    return ok(request, OptionListData(kind=kind.value, items=[OptionRow(**r) for r in rows]), "Options loaded.")


@router.post("/options/{kind}", response_model=SuccessEnvelope[OptionRow], status_code=201)
async def create_option(
    request: Request,
    kind: OptionKind,
    body: OptionCreate,
    current_user: User = Depends(get_current_user),
) -> SuccessEnvelope:
    store: OptionStore = request.app.state.option_store
    helper: CacheHelper = request.app.state.cache_helper

    option_id = await run_in_threadpool(store.add_option, Option(kind=kind.value, name=body.name, payload=body.payload))
    try:
        await helper.invalidate_options(kind.value)
    except CacheError as exc:
        logger.warning("Option cache invalidation failed for %s: %s", kind.value, exc)

    logger.info("user_id=%s added %s option id=%s", current_user.id, kind.value, option_id)
    return ok(request, OptionRow(id=option_id, name=body.name, payload=body.payload), "Option created.")
