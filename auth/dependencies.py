"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_current_user() is the auth gate for protected routes:
  1. Read the Authorization header.
  2. Require the literal "Bearer " prefix.
  3. Verify the token with app.state.token_service.
  4. Reject malformed, badly signed, or expired tokens.
  5. Resolve claims.user_id through app.state.user_store.
  6. Reject if the user no longer exists.
  7. Attach the User to request.state.user and return it.

Every rejection is a 401 with the same client-facing message; the specific
reason is logged at DEBUG only. There are no retries -- failures at this layer
are never transient.

Layer rule: no imports from cache/ or options/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.models import User
from auth.store import UserStore
from auth.tokens import MalformedTokenError, TokenService
from core.errors import ClientError

logger = logging.getLogger("gatehouse.auth")

BEARER_PREFIX = "Bearer "


def _reject(reason: str) -> ClientError:
    logger.debug("Auth gate rejected request: %s", reason)
    return ClientError.unauthorized(details=reason)


def get_current_user(request: Request) -> User:
    """Require a valid Bearer token. Raises a 401 ClientError otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    header = request.headers.get("Authorization", "")
    if not header:
        raise _reject("missing_header")
    if not header.startswith(BEARER_PREFIX):
        raise _reject("bad_scheme")

    token = header[len(BEARER_PREFIX) :]
    tokens: TokenService = request.app.state.token_service
    try:
        result = tokens.verify(token)
    except MalformedTokenError as exc:
        raise _reject("malformed_token") from exc
    if not result.valid or result.claims is None:
        raise _reject(result.reason or "invalid_token")

    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(result.claims.user_id)
    if user is None:
        raise _reject("unknown_user")

    request.state.user = user
    return user
