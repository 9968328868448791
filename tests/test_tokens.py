"""
tests/test_tokens.py -- Unit tests for password hashing and TokenService.

Covers:
  - bcrypt hash/verify round trip, salted hashes, garbage hash handling,
    the 72-byte input limit
  - authenticate_user() success and both failure modes
  - issue() claims, verify() outcomes: valid, expired, bad signature,
    missing claims, and malformed (raises); the exp boundary
  - issue and validation counts on an attached MetricsCollector
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.models import User
from auth.store import UserStore
from auth.tokens import TOKEN_SUBJECT, MalformedTokenError, TokenService, authenticate_user, hash_password, verify_password
from core.errors import ErrorCode, InternalError
from core.metrics import MetricsCollector

SECRET = "s" * 32


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(SECRET, issuer="gatehouse-test", expires=timedelta(hours=1))


class TestPasswordHashing:
    def test_hash_then_verify(self) -> None:
        hashed = hash_password("Abc12345!")
        assert hashed != "Abc12345!"
        assert verify_password("Abc12345!", hashed)
        assert not verify_password("Abc12345?", hashed)

    def test_same_password_hashes_differently(self) -> None:
        """Each hash carries its own salt."""
        assert hash_password("Abc12345!") != hash_password("Abc12345!")

    def test_verify_against_garbage_hash_is_false(self) -> None:
        assert verify_password("whatever", "not-a-bcrypt-hash") is False

    def test_72_byte_password_hashes(self) -> None:
        password = "Ab1!" + "\u00e9" * 34
        assert len(password.encode("utf-8")) == 72
        assert verify_password(password, hash_password(password))

    def test_password_over_72_bytes_is_not_hashed(self) -> None:
        with pytest.raises(InternalError):
            hash_password("\u00e9" * 37)

    def test_bytes_past_72_are_not_ignored(self) -> None:
        hashed = hash_password("a" * 72)
        assert verify_password("a" * 72, hashed)
        assert verify_password("a" * 72 + "b", hashed) is False


class TestAuthenticateUser:
    @pytest.fixture
    def store(self) -> UserStore:
        store = UserStore(db_url="sqlite:///:memory:")
        store.create_user(User(username="amy", telephone="13900000001", hashed_password=hash_password("Abc12345!")))
        yield store
        store.close()

    def test_correct_password(self, store: UserStore) -> None:
        user = authenticate_user(store, "13900000001", "Abc12345!")
        assert user is not None
        assert user.username == "amy"

    def test_wrong_password(self, store: UserStore) -> None:
        assert authenticate_user(store, "13900000001", "Wrong12345!") is None

    def test_unknown_telephone(self, store: UserStore) -> None:
        assert authenticate_user(store, "13900000009", "Abc12345!") is None


class TestTokenService:
    def test_rejects_empty_secret(self) -> None:
        with pytest.raises(ValueError):
            TokenService("")

    def test_rejects_non_positive_expiry(self) -> None:
        with pytest.raises(ValueError):
            TokenService(SECRET, expires=timedelta(0))

    def test_issue_carries_expected_claims(self, tokens: TokenService) -> None:
        now = datetime(2030, 1, 1, tzinfo=timezone.utc)
        token = tokens.issue(42, now=now)
        claims = jwt.get_unverified_claims(token)
        assert claims["user_id"] == 42
        assert claims["iss"] == "gatehouse-test"
        assert claims["sub"] == TOKEN_SUBJECT
        assert claims["iat"] == int(now.timestamp())
        assert claims["exp"] == int((now + timedelta(hours=1)).timestamp())

    def test_verify_valid_token(self, tokens: TokenService) -> None:
        result = tokens.verify(tokens.issue(7))
        assert result.valid
        assert result.reason is None
        assert result.claims.user_id == 7
        assert result.claims.issuer == "gatehouse-test"
        assert result.claims.expires_at > result.claims.issued_at

    def test_expired_token_is_invalid_not_raised(self, tokens: TokenService) -> None:
        token = tokens.issue(7, now=datetime.now(timezone.utc) - timedelta(hours=2))
        result = tokens.verify(token)
        assert not result.valid
        assert result.reason == "expired"
        assert result.claims is None

    def test_token_signed_with_other_secret(self, tokens: TokenService) -> None:
        other = TokenService("o" * 32)
        result = tokens.verify(other.issue(7))
        assert not result.valid
        assert result.reason == "bad_signature"

    def test_missing_user_id_claim(self, tokens: TokenService) -> None:
        now = int(datetime.now(timezone.utc).timestamp())
        token = jwt.encode({"sub": TOKEN_SUBJECT, "iat": now, "exp": now + 60}, SECRET, algorithm="HS256")
        result = tokens.verify(token)
        assert not result.valid
        assert result.reason == "missing_claims"

    def test_token_expires_at_exp_second(self, tokens: TokenService) -> None:
        issued = datetime.now(timezone.utc).replace(microsecond=0)
        token = tokens.issue(7, now=issued)
        exp = issued + timedelta(hours=1)

        assert tokens.verify(token, now=exp - timedelta(seconds=1)).valid
        at_exp = tokens.verify(token, now=exp)
        assert not at_exp.valid
        assert at_exp.reason == "expired"

    @pytest.mark.parametrize("token", ["not-a-jwt", "a.b.c", ""])
    def test_malformed_token_raises(self, tokens: TokenService, token: str) -> None:
        with pytest.raises(MalformedTokenError) as excinfo:
            tokens.verify(token)
        assert excinfo.value.code == ErrorCode.TOKEN_INVALID
        assert excinfo.value.http_status == 401


class TestTokenMetrics:
    def test_issue_and_verify_are_counted(self) -> None:
        metrics = MetricsCollector()
        tokens = TokenService(SECRET, expires=timedelta(hours=1), metrics=metrics)

        token = tokens.issue(7)
        tokens.verify(token)
        tokens.verify(TokenService("o" * 32).issue(7))
        with pytest.raises(MalformedTokenError):
            tokens.verify("not-a-jwt")

        snap = metrics.snapshot()
        assert snap.tokens_issued == 1
        assert snap.tokens_validated == 1
        assert snap.token_validation_errors == {"bad_signature": 1, "malformed": 1}
