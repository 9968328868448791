"""
api/routes/auth.py -- Registration, login, and identity endpoints.

Routes:
  POST /api/auth/register  -- create a user (telephone + password, optional name)
  POST /api/auth/login     -- password login; returns a Bearer token
  GET  /api/auth/info      -- current user info (requires auth)

Security:
  POST /login and /register are rate-limited per client address.
  authenticate_user() provides timing equalization -- use it, never inline.
  Login returns one generic error for unknown telephone and wrong password.
  Cache-Control: no-store on token responses.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter, login_limit, register_limit
from api.models import LoginRequest, RegisterData, RegisterRequest, SuccessEnvelope, TokenData, UserDto, UserInfoData
from api.responses import ok
from auth.dependencies import get_current_user
from auth.models import User
from auth.policy import validate_password
from auth.store import UserStore
from auth.tokens import TokenService, authenticate_user, hash_password
from cache.helper import CacheHelper, user_cache_key
from core.errors import ClientError, ErrorCode, ValidationError
from core.keys import random_name
from core.metrics import MetricsCollector

logger = logging.getLogger("gatehouse.auth")

# Auth policy:
# - POST /api/auth/register: public
# - POST /api/auth/login:    public
# - GET  /api/auth/info:     requires auth (get_current_user)
router = APIRouter()


def _metrics(request: Request) -> MetricsCollector | None:
    return getattr(request.app.state, "metrics", None)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(register_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=SuccessEnvelope[RegisterData], status_code=201)
def register(request: Request, body: RegisterRequest) -> SuccessEnvelope:
    """Create a user account.

    The password must pass validate_password(); hard failures block
    registration with a 422 that lists both errors and suggestions. Soft
    suggestions for an otherwise valid password are returned in the 201 body.
    """
    user_store: UserStore = request.app.state.user_store
    metrics = _metrics(request)

    verdict = validate_password(body.password)
    if not verdict.is_valid:
        if metrics is not None:
            metrics.record_registration("weak_password")
        raise ValidationError(
            ErrorCode.PASSWORD_TOO_WEAK,
            errors=verdict.errors or ["Password score is below the minimum."],
            suggestions=verdict.suggestions,
        )

    if user_store.telephone_exists(body.telephone):
        if metrics is not None:
            metrics.record_registration("exists")
        raise ClientError.conflict(ErrorCode.USER_EXISTS)

    user = User(
        username=body.name or random_name(10),
        telephone=body.telephone,
        hashed_password=hash_password(body.password),
    )
    try:
        user.id = user_store.create_user(user)
    except IntegrityError as exc:
        # Lost a race with a concurrent registration for the same telephone.
        if metrics is not None:
            metrics.record_registration("exists")
        raise ClientError.conflict(ErrorCode.USER_EXISTS) from exc

    if metrics is not None:
        metrics.record_registration("success")
    logger.info("Registered user_id=%s", user.id)
    data = RegisterData(
        user=UserDto.from_user(user),
        password_strength=verdict.strength.value,
        password_score=verdict.score,
        suggestions=verdict.suggestions,
    )
    return ok(request, data, "Registration successful.")


@limiter.limit(login_limit)  # brute-force mitigation
@router.post("/auth/login", response_model=SuccessEnvelope[TokenData])
def login(request: Request, response: Response, body: LoginRequest) -> SuccessEnvelope:
    """Authenticate with telephone and password; return a Bearer token."""
    response.headers["Cache-Control"] = "no-store"
    user_store: UserStore = request.app.state.user_store
    tokens: TokenService = request.app.state.token_service
    metrics = _metrics(request)

    user = authenticate_user(user_store, body.telephone, body.password)
    if user is None:
        if metrics is not None:
            metrics.record_login("failure")
        raise ClientError(ErrorCode.PASSWORD_ERROR, http_status=401)

    token = tokens.issue(user.id)
    if metrics is not None:
        metrics.record_login("success")
    logger.info("Issued token for user_id=%s", user.id)
    data = TokenData(token=token, expires_in=int(tokens.expires.total_seconds()))
    return ok(request, data, "Login successful.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/info", response_model=SuccessEnvelope[UserInfoData])
async def info(request: Request, current_user: User = Depends(get_current_user)) -> SuccessEnvelope:
    """Return the authenticated user's public profile.

    The DTO is read through the cache under user:<id>:info; a cache outage
    just means it is rebuilt from the already-resolved user.
    """
    helper: CacheHelper = request.app.state.cache_helper
    payload = await helper.get_or_set(
        user_cache_key(current_user.id, "info"),
        helper.default_ttl,
        lambda: UserDto.from_user(current_user).model_dump(),
    )
    return ok(request, UserInfoData(user=UserDto(**payload)), "Current user.")
