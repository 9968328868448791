"""
api/responses.py -- Builders for the success/error envelopes.

Handlers return ok(request, data, message); exception handlers in api/main.py
call error_response(). request_id comes from request.state, set by the
request-id middleware; a fresh one is generated if a response is built before
that middleware ran (e.g. TrustedHost rejections).
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from api.models import ErrorEnvelope, SuccessEnvelope

REQUEST_ID_HEADER = "X-Request-ID"


def new_request_id() -> str:
    return uuid.uuid4().hex


def request_id_of(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = new_request_id()
        request.state.request_id = request_id
    return request_id


def ok(request: Request, data: Any, message: str = "Success.") -> SuccessEnvelope:
    return SuccessEnvelope(
        message=message,
        data=data,
        request_id=request_id_of(request),
        timestamp=int(time.time()),
    )


def error_response(
    request: Request,
    status_code: int,
    code: int,
    message: str,
    data: Optional[dict] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    request_id = request_id_of(request)
    body = ErrorEnvelope(
        code=code,
        message=message,
        data=data,
        request_id=request_id,
        timestamp=int(time.time()),
    )
    response = JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
