"""
core/keys.py -- Random secret and identifier generation.

secrets is the CSPRNG-backed module; random is never used for anything that
ends up in a credential or a default display name.
"""

from __future__ import annotations

import base64
import secrets
import string

_NAME_ALPHABET = string.ascii_letters


def generate_secure_key(length: int = 32) -> str:
    """Return `length` random bytes as URL-safe base64 (padding kept)."""
    if length <= 0:
        raise ValueError("length must be positive")
    return base64.urlsafe_b64encode(secrets.token_bytes(length)).decode("ascii")


def generate_jwt_key() -> str:
    """32 random bytes -> 44 base64 chars, comfortably above the 32 char minimum."""
    return generate_secure_key(32)


def random_name(length: int = 10) -> str:
    """Display name for users who register without one."""
    return "".join(secrets.choice(_NAME_ALPHABET) for _ in range(length))
