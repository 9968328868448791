"""
core/errors.py -- Typed application errors.

Lower layers raise these; api/main.py is the only place that turns them into
an HTTP status and a wire message. Nothing here knows about FastAPI.

Taxonomy:
  ClientError      bad input, unauthorized, not found, conflict. Never retried.
  ValidationError  field or password policy violation, with suggestions.
  DependencyError  database or cache unavailable. Logged in full server-side,
                   surfaced to clients as a generic message.
  InternalError    anything unexpected.

Layer rule: core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

from enum import IntEnum


class ErrorCode(IntEnum):
    SUCCESS = 0

    # Client errors 1000-1999
    INVALID_PARAMS = 1001
    UNAUTHORIZED = 1002
    FORBIDDEN = 1003
    NOT_FOUND = 1004
    USER_EXISTS = 1005
    USER_NOT_FOUND = 1006
    PASSWORD_ERROR = 1007
    TOKEN_INVALID = 1008
    TOKEN_EXPIRED = 1009
    PASSWORD_TOO_WEAK = 1010
    BAD_REQUEST = 1011
    TOO_MANY_REQUESTS = 1012
    VALIDATION_FAILED = 1013

    # Business errors 2000-2999
    BUSINESS_ERROR = 2001
    DATA_EXISTS = 2002
    DATA_NOT_FOUND = 2003

    # Server errors 5000-5999
    INTERNAL_ERROR = 5001
    DATABASE_ERROR = 5002
    NETWORK_ERROR = 5003
    SERVICE_UNAVAILABLE = 5004


_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.SUCCESS: "Success.",
    ErrorCode.INVALID_PARAMS: "Invalid parameters.",
    ErrorCode.UNAUTHORIZED: "Authentication required.",
    ErrorCode.FORBIDDEN: "Access forbidden.",
    ErrorCode.NOT_FOUND: "Resource not found.",
    ErrorCode.USER_EXISTS: "User already exists.",
    ErrorCode.USER_NOT_FOUND: "User not found.",
    ErrorCode.PASSWORD_ERROR: "Invalid telephone or password.",
    ErrorCode.TOKEN_INVALID: "Invalid token.",
    ErrorCode.TOKEN_EXPIRED: "Token has expired.",
    ErrorCode.PASSWORD_TOO_WEAK: "Password is too weak.",
    ErrorCode.BAD_REQUEST: "Bad request.",
    ErrorCode.TOO_MANY_REQUESTS: "Too many requests.",
    ErrorCode.VALIDATION_FAILED: "Validation failed.",
    ErrorCode.BUSINESS_ERROR: "Business rule violated.",
    ErrorCode.DATA_EXISTS: "Data already exists.",
    ErrorCode.DATA_NOT_FOUND: "Data not found.",
    ErrorCode.INTERNAL_ERROR: "An unexpected error occurred.",
    ErrorCode.DATABASE_ERROR: "Database error.",
    ErrorCode.NETWORK_ERROR: "Network error.",
    ErrorCode.SERVICE_UNAVAILABLE: "Service unavailable.",
}


def message_for(code: ErrorCode) -> str:
    """Return the default human message for an error code."""
    return _MESSAGES.get(code, "Unknown error.")


def status_for(code: ErrorCode) -> int:
    """Map an error code to its default HTTP status by range."""
    if code == ErrorCode.SUCCESS:
        return 200
    if 1000 <= code < 2000:
        return 400
    if 2000 <= code < 3000:
        return 422
    return 500


class AppError(Exception):
    """Base class for every error the API boundary knows how to render.

    details is server-side context (logged, never sent for 5xx). data is
    structured, client-safe detail that goes into the envelope's data field.
    """

    default_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        code: ErrorCode | None = None,
        message: str | None = None,
        *,
        details: str = "",
        http_status: int | None = None,
        data: dict | None = None,
    ) -> None:
        self.code = code if code is not None else self.default_code
        self.message = message or message_for(self.code)
        self.details = details
        self.http_status = http_status or status_for(self.code)
        self.data = data
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.details:
            return f"[{int(self.code)}] {self.message}: {self.details}"
        return f"[{int(self.code)}] {self.message}"


class ClientError(AppError):
    default_code = ErrorCode.BAD_REQUEST

    @classmethod
    def unauthorized(cls, details: str = "") -> "ClientError":
        return cls(ErrorCode.UNAUTHORIZED, details=details, http_status=401)

    @classmethod
    def conflict(cls, code: ErrorCode = ErrorCode.DATA_EXISTS, message: str | None = None) -> "ClientError":
        return cls(code, message, http_status=409)


class ValidationError(AppError):
    """Policy violation with hard failures and optional improvement hints."""

    default_code = ErrorCode.VALIDATION_FAILED

    def __init__(
        self,
        code: ErrorCode | None = None,
        message: str | None = None,
        *,
        errors: list[str] | None = None,
        suggestions: list[str] | None = None,
    ) -> None:
        self.errors = list(errors or [])
        self.suggestions = list(suggestions or [])
        super().__init__(
            code,
            message,
            details="; ".join(self.errors),
            http_status=422,
            data={"errors": self.errors, "suggestions": self.suggestions},
        )


class DependencyError(AppError):
    """A backing service (database, cache) failed or is unreachable."""

    default_code = ErrorCode.SERVICE_UNAVAILABLE

    def __init__(self, code: ErrorCode | None = None, message: str | None = None, *, details: str = "") -> None:
        super().__init__(code, message, details=details, http_status=503)


class InternalError(AppError):
    default_code = ErrorCode.INTERNAL_ERROR
