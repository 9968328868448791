"""
API request and response models for Gatehouse REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py and options/models.py, which
own the internal domain representation. Route handlers map between the two.

Every response body is one of two envelopes with a fixed schema:
  SuccessEnvelope[T]  ok=true,  code=0,   data: T
  ErrorEnvelope       ok=false, code>0,   data: optional structured detail
Both carry message, request_id and timestamp, so clients can branch on `ok`
without inspecting the HTTP status.
"""

from typing import Any, Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import User

T = TypeVar("T")

TELEPHONE_PATTERN = r"^\d{11}$"

# bcrypt reads at most 72 bytes of input.
PASSWORD_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class SuccessEnvelope(BaseModel, Generic[T]):
    model_config = ConfigDict(frozen=True)

    ok: Literal[True] = True
    code: int = 0
    message: str
    data: T
    request_id: str
    timestamp: int


class ErrorEnvelope(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    ok: Literal[False] = False
    code: int
    message: str
    data: Optional[dict[str, Any]] = None
    request_id: str
    timestamp: int


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def _check_password_bytes(value: str) -> str:
    # max_length counts characters; a non-ASCII password can pass it and
    # still exceed what bcrypt accepts.
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes in UTF-8.")
    return value


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register.

    name is optional; a random display name is generated when it is omitted.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=20)
    telephone: str = Field(pattern=TELEPHONE_PATTERN, description="11-digit phone number, the login identifier.")
    password: str = Field(min_length=6, max_length=PASSWORD_MAX_BYTES)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    telephone: str = Field(pattern=TELEPHONE_PATTERN)
    password: str = Field(min_length=6, max_length=PASSWORD_MAX_BYTES)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)


class TokenData(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_in: int


class UserDto(BaseModel):
    """Public view of a user. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    name: str
    telephone: str

    @classmethod
    def from_user(cls, user: User) -> "UserDto":
        return cls(name=user.username, telephone=user.telephone)


class UserInfoData(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserDto


class RegisterData(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserDto
    password_strength: str
    password_score: int
    suggestions: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


class OptionCreate(BaseModel):
    """Request body for POST /api/options/{kind}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=256)
    payload: Any = Field(default_factory=dict)


class OptionRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    payload: Any


class OptionListData(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    items: list[OptionRow]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class DatabaseHealth(BaseModel):
    status: str  # "healthy" | "unhealthy"
    connection: str  # "connected" | "failed" | "disconnected"
    latency_ms: Optional[float] = None
    error: Optional[str] = None


class ServiceHealth(BaseModel):
    status: str
    detail: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class SystemHealth(BaseModel):
    status: str
    timestamp: int
    database: DatabaseHealth
    services: dict[str, ServiceHealth]


class SystemInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    service: str
    version: str
    environment: str
    python_version: str
    features: list[str]


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class MetricsData(BaseModel):
    """Counters since process start. See core.metrics.MetricsSnapshot."""

    model_config = ConfigDict(frozen=True)

    requests_total: int
    errors_total: int
    avg_response_time_ms: float
    requests_by_status: dict[str, int]
    requests_by_route: dict[str, int]
    cache_hits: int
    cache_misses: int
    cache_hit_ratio: float
    tokens_issued: int
    tokens_validated: int
    token_validation_errors: dict[str, int]
    registrations: dict[str, int]
    logins: dict[str, int]
    uptime_seconds: float
