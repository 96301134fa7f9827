"""Unit tests for auth/tokens.py -- access tokens, opaque secrets, password hashing.

No database and no HTTP. Expired tokens are minted by passing an explicit
issue time; foreign-key tokens are signed with python-jose directly.
"""

from __future__ import annotations

import time
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from jose import jwt

from auth.errors import SigningKeyError, TokenExpired, TokenInvalid
from auth.models import IdentitySummary, Role
from auth.tokens import (
    ACCESS_TOKEN_TTL_SECONDS,
    create_access_token,
    decode_access_token,
    generate_opaque_token,
    hash_opaque_token,
    hash_password,
    issue_tokens,
    reissue_tokens,
    verify_password,
)
from core.config import get_settings


def _summary(role: Role = Role.ADMIN) -> IdentitySummary:
    return IdentitySummary(id="user-1", name="Root", email="root", type=role, status="active")


class TestAccessToken:
    def test_exp_is_iat_plus_900(self) -> None:
        """Every access token expires exactly 900 seconds after it was issued."""
        claims = decode_access_token(create_access_token(_summary()))
        assert claims["exp"] - claims["iat"] == 900
        assert ACCESS_TOKEN_TTL_SECONDS == 900

    def test_claims_carry_identity(self) -> None:
        claims = decode_access_token(create_access_token(_summary(Role.ORGANIZATION)))
        assert claims["sub"] == "user-1"
        assert claims["name"] == "Root"
        assert claims["email"] == "root"
        assert claims["role"] is Role.ORGANIZATION

    def test_expired_token_raises_token_expired(self) -> None:
        """A token one second past exp is rejected; there is no grace window."""
        token = create_access_token(_summary(), now=int(time.time()) - ACCESS_TOKEN_TTL_SECONDS - 1)
        with pytest.raises(TokenExpired):
            decode_access_token(token)

    def test_foreign_signature_is_invalid(self) -> None:
        now = int(time.time())
        forged = jwt.encode(
            {"sub": "user-1", "role": "admin", "iat": now, "exp": now + 900},
            "x" * 48,
            algorithm="HS256",
        )
        with pytest.raises(TokenInvalid):
            decode_access_token(forged)

    def test_garbage_is_invalid(self) -> None:
        with pytest.raises(TokenInvalid):
            decode_access_token("not-a-jwt")

    def test_missing_role_claim_is_invalid(self) -> None:
        now = int(time.time())
        token = jwt.encode(
            {"sub": "user-1", "iat": now, "exp": now + 900},
            get_settings().secret_key,
            algorithm="HS256",
        )
        with pytest.raises(TokenInvalid):
            decode_access_token(token)

    def test_unknown_role_is_invalid(self) -> None:
        now = int(time.time())
        token = jwt.encode(
            {"sub": "user-1", "role": "citizen", "iat": now, "exp": now + 900},
            get_settings().secret_key,
            algorithm="HS256",
        )
        with pytest.raises(TokenInvalid):
            decode_access_token(token)

    def test_missing_signing_key_is_fatal(self) -> None:
        """Without SECRET_KEY no token is minted at all."""
        with patch("auth.tokens.get_settings", return_value=SimpleNamespace(secret_key="")):
            with pytest.raises(SigningKeyError):
                create_access_token(_summary())


class TestOpaqueSecrets:
    def test_generated_secrets_are_long_and_unique(self) -> None:
        values = {generate_opaque_token() for _ in range(50)}
        assert len(values) == 50
        # 32 random bytes -> 43 url-safe base64 characters
        assert all(len(v) >= 43 for v in values)

    def test_hash_is_deterministic_and_not_the_raw_value(self) -> None:
        raw = generate_opaque_token()
        assert hash_opaque_token(raw) == hash_opaque_token(raw)
        assert hash_opaque_token(raw) != raw
        assert len(hash_opaque_token(raw)) == 64

    def test_issue_tokens_returns_independent_secrets(self) -> None:
        tokens = issue_tokens(_summary())
        assert tokens.refresh_token != tokens.session_token
        assert tokens.expires_in == 900
        assert decode_access_token(tokens.access_token)["iat"] == tokens.issued_at

    def test_reissue_mints_no_session_secret(self) -> None:
        tokens = reissue_tokens(_summary())
        assert tokens.session_token is None
        assert tokens.refresh_token
        assert decode_access_token(tokens.access_token)["sub"] == "user-1"


class TestPasswords:
    def test_round_trip(self) -> None:
        hashed = hash_password("correct horse")
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_malformed_hash_is_a_mismatch(self) -> None:
        assert verify_password("anything", "not-a-bcrypt-hash") is False
