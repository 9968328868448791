"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these own the domain shape.

Layer rule: no imports from api/, cache/, or options/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """A registered identity.

    telephone is the login identifier and is UNIQUE in the users table.
    username is a display name only; registration fills it with a random
    string when the client omits it.

    hashed_password is always a bcrypt hash -- plaintext is never stored.
    """

    username: str
    telephone: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Verified payload of a session token. Never persisted.

    Only TokenService.verify() builds these from a token, and only after the
    signature and expiry checks pass.
    """

    user_id: int
    issuer: str
    subject: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class TokenVerification:
    """Outcome of TokenService.verify().

    valid=False is a normal outcome (bad signature, expired, missing claims),
    not an error; reason names which check failed. claims is set only when
    valid is True.
    """

    valid: bool
    claims: TokenClaims | None = None
    reason: str | None = None
