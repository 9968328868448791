"""
auth/policy.py -- Password strength scoring.

Pure function, no I/O. Scoring, starting from 0:
  length >= 6 / >= 8 / >= 12          +20 / +10 / +10
  lowercase, uppercase, digit, special  +15 each
  contains a denylisted substring       -30
  run of 3+ identical characters        -10
clamped to [0, 100]. Tiers: <40 weak, 40-69 medium, >=70 strong.

errors are hard failures (registration is blocked); suggestions are hints
only. A password is valid when there are no errors and the score is >= 60.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

MIN_LENGTH = 6
MIN_VALID_SCORE = 60

_LOWER = re.compile(r"[a-z]")
_UPPER = re.compile(r"[A-Z]")
_DIGIT = re.compile(r"[0-9]")
_SPECIAL = re.compile(r"""[!@#$%^&*()_+\-=\[\]{};':"\\|,.<>/?]""")

# Matched as lowercase substrings.
WEAK_PASSWORDS: tuple[str, ...] = (
    "password",
    "123456",
    "123456789",
    "qwerty",
    "password123",
    "admin",
    "letmein",
    "welcome",
    "monkey",
)


class PasswordStrength(str, Enum):
    weak = "weak"
    medium = "medium"
    strong = "strong"


@dataclass
class PasswordValidation:
    is_valid: bool
    strength: PasswordStrength
    score: int
    errors: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


def has_repeating_chars(value: str, run: int = 3) -> bool:
    """True if `value` contains `run` or more identical consecutive characters."""
    if len(value) < run:
        return False
    count = 1
    for prev, cur in zip(value, value[1:]):
        count = count + 1 if cur == prev else 1
        if count >= run:
            return True
    return False


def _strength_for(score: int) -> PasswordStrength:
    if score < 40:
        return PasswordStrength.weak
    if score < 70:
        return PasswordStrength.medium
    return PasswordStrength.strong


def validate_password(password: str) -> PasswordValidation:
    errors: list[str] = []
    suggestions: list[str] = []
    score = 0

    if len(password) < MIN_LENGTH:
        errors.append(f"Password must be at least {MIN_LENGTH} characters.")
    else:
        score += 20
    if len(password) >= 8:
        score += 10
    if len(password) >= 12:
        score += 10

    if _LOWER.search(password):
        score += 15
    else:
        errors.append("Password must contain a lowercase letter.")
        suggestions.append("Add lowercase letters to strengthen the password.")

    if _UPPER.search(password):
        score += 15
    else:
        suggestions.append("Add uppercase letters to strengthen the password.")

    if _DIGIT.search(password):
        score += 15
    else:
        errors.append("Password must contain a digit.")
        suggestions.append("Add digits to strengthen the password.")

    if _SPECIAL.search(password):
        score += 15
    else:
        suggestions.append("Add special characters to significantly strengthen the password.")

    lowered = password.lower()
    if any(weak in lowered for weak in WEAK_PASSWORDS):
        score -= 30
        errors.append("Password contains a common weak pattern.")

    if has_repeating_chars(password, 3):
        score -= 10
        suggestions.append("Avoid runs of repeated characters.")

    score = max(0, min(100, score))
    return PasswordValidation(
        is_valid=not errors and score >= MIN_VALID_SCORE,
        strength=_strength_for(score),
        score=score,
        errors=errors,
        suggestions=suggestions,
    )
