"""
auth/tokens.py -- JWT issuance/verification and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry user_id, iss, sub, iat and exp.
       TokenService is an explicit handle built once at startup from Settings
       and kept on app.state -- nothing in this module reads config at import
       time. verify() separates three outcomes: structurally malformed tokens
       raise MalformedTokenError; bad signatures and expired tokens come back
       as valid=False. No leeway is applied to exp, and a token is rejected
       from the exp second onward. Issue and validation outcomes are
       counted on an optional MetricsCollector.

  Passwords: bcrypt directly. Its cost factor makes brute-force expensive and
       its per-hash salt makes equal passwords hash differently. The
       _DUMMY_HASH constant enables timing equalization in authenticate_user()
       so response time does not reveal whether a telephone is registered.

Layer rule: no imports from api/, cache/, or options/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import TokenClaims, TokenVerification
from core.errors import ClientError, ErrorCode, InternalError

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore
    from core.config import Settings
    from core.metrics import MetricsCollector

logger = logging.getLogger("gatehouse.auth")

_ALGORITHM = "HS256"
BCRYPT_MAX_BYTES = 72
TOKEN_SUBJECT = "user token"


class MalformedTokenError(ClientError):
    """The token could not be parsed as a JWT at all."""

    default_code = ErrorCode.TOKEN_INVALID

    def __init__(self, details: str = "") -> None:
        super().__init__(ErrorCode.TOKEN_INVALID, details=details, http_status=401)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt accepts at most 72 bytes of input. The request models reject
    passwords longer than 72 UTF-8 bytes, so a password that reaches this
    function is never truncated. Longer input is refused here too, whatever
    the installed bcrypt version would do with it.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        raise InternalError(ErrorCode.INTERNAL_ERROR, "Password hashing failed.", details="password exceeds 72 bytes")
    try:
        return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode("utf-8")
    except ValueError as exc:
        raise InternalError(ErrorCode.INTERNAL_ERROR, "Password hashing failed.", details=str(exc)) from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Input over 72 bytes never matches; older bcrypt releases would compare
    only its first 72 bytes.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("gatehouse_timing_dummy")


def authenticate_user(store: UserStore, telephone: str, password: str) -> User | None:
    """Authenticate a telephone/password login with timing equalization.

    Always runs bcrypt exactly once whether or not the telephone exists:
    - Unknown telephone: bcrypt runs against _DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash

    Returns the User on success, None on any failure.
    """
    user = store.get_by_telephone(telephone)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


class TokenService:
    """Issues and verifies signed session tokens.

    Usage:
        tokens = TokenService.from_settings(get_settings())
        token = tokens.issue(user.id)
        result = tokens.verify(token)
        if result.valid:
            user_id = result.claims.user_id
    """

    def __init__(
        self,
        secret: str,
        issuer: str = "gatehouse",
        expires: timedelta = timedelta(hours=168),
        metrics: MetricsCollector | None = None,
    ) -> None:
        if not secret:
            raise ValueError("TokenService requires a non-empty secret")
        if expires <= timedelta(0):
            raise ValueError("Token expiry must be positive")
        self._secret = secret
        self.issuer = issuer
        self.expires = expires
        self.metrics = metrics

    @classmethod
    def from_settings(cls, settings: Settings, metrics: MetricsCollector | None = None) -> TokenService:
        return cls(
            secret=settings.jwt_secret,
            issuer=settings.jwt_issuer,
            expires=timedelta(hours=settings.jwt_expire_hours),
            metrics=metrics,
        )

    def issue(self, user_id: int, now: datetime | None = None) -> str:
        """Encode a signed JWT for user_id.

        now is injectable so callers (and tests) can mint tokens with a fixed
        issue time; it defaults to the current UTC time.
        """
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "user_id": user_id,
            "iss": self.issuer,
            "sub": TOKEN_SUBJECT,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.expires).timestamp()),
        }
        try:
            token = jwt.encode(payload, self._secret, algorithm=_ALGORITHM)
        except JWTError as exc:
            logger.error("Token signing failed for user_id=%s: %s", user_id, exc)
            raise InternalError(ErrorCode.INTERNAL_ERROR, "Token generation failed.", details=str(exc)) from exc
        if self.metrics is not None:
            self.metrics.record_token_issued()
        return token

    def verify(self, token: str, now: datetime | None = None) -> TokenVerification:
        """Parse and verify a token.

        Raises MalformedTokenError when the token is not a JWT. Returns
        valid=False (without raising) when it parses but the signature,
        expiry, or required claims check fails. now defaults to the current
        UTC time.
        """
        try:
            result = self._verify(token, now or datetime.now(timezone.utc))
        except MalformedTokenError:
            if self.metrics is not None:
                self.metrics.record_token_validation("malformed")
            raise
        if self.metrics is not None:
            self.metrics.record_token_validation(result.reason)
        return result

    def _verify(self, token: str, now: datetime) -> TokenVerification:
        try:
            jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise MalformedTokenError(str(exc)) from exc

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                options={"verify_aud": False, "leeway": 0},
            )
        except ExpiredSignatureError:
            return TokenVerification(valid=False, reason="expired")
        except JWTError:
            return TokenVerification(valid=False, reason="bad_signature")

        user_id = payload.get("user_id")
        iat = payload.get("iat")
        exp = payload.get("exp")
        if not isinstance(user_id, int) or isinstance(user_id, bool) or iat is None or exp is None:
            return TokenVerification(valid=False, reason="missing_claims")

        # jose only rejects exp < now; a token is valid strictly before exp.
        if int(now.timestamp()) >= exp:
            return TokenVerification(valid=False, reason="expired")

        claims = TokenClaims(
            user_id=user_id,
            issuer=payload.get("iss", ""),
            subject=payload.get("sub", ""),
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        )
        return TokenVerification(valid=True, claims=claims)
