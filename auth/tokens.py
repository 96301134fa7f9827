"""
auth/tokens.py -- Password hashing, access-token signing, opaque secrets.

Security design decisions:
  JWT: python-jose with HS256. Access tokens are signed with SECRET_KEY and
       carry sub, name, email, role, iat and exp. exp is always iat + 900:
       the access-token TTL is fixed and bounds how long a deactivated
       identity can keep a token alive. decode_access_token() raises
       TokenExpired / TokenInvalid; jose is called with zero leeway so there
       is no grace window past exp.

  Passwords: bcrypt, used directly. The _DUMMY_HASH constant enables timing
       equalization in verify_credentials() so response time does not reveal
       whether an account exists [C1].

  Refresh / session secrets: secrets.token_urlsafe(32) gives 256 bits of
       entropy. They are opaque bearer values, not structured tokens. Only
       HMAC-SHA256(SECRET_KEY, raw) is stored, so a leaked DB does not leak
       usable credentials, and lookup stays O(1) by hash.

  SECRET_KEY: sourced from core.config.get_settings(). A missing key is a
       SigningKeyError -- fatal for the request, never retried.

Layer rule: no imports from api/ or reports/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import timedelta

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import SigningKeyError, TokenExpired, TokenInvalid
from auth.models import IdentitySummary, Role
from auth.roles import policy_for
from core.config import get_settings

logger = logging.getLogger("civicwatch.auth")

_ALGORITHM = "HS256"

ACCESS_TOKEN_TTL_SECONDS = 900
REFRESH_TOKEN_TTL = timedelta(days=7)
SESSION_TTL = timedelta(days=7)

_REQUIRED_CLAIMS = ("sub", "role", "iat", "exp")

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps passwords at
    100 characters; multi-byte input past 72 bytes is truncated by bcrypt.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except Exception:
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("civicwatch_timing_dummy")


# ---------------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------------


def _signing_key() -> str:
    key = get_settings().secret_key
    if not key:
        raise SigningKeyError("Signing key is not configured.")
    return key


def create_access_token(identity: IdentitySummary, now: int | None = None) -> str:
    """Encode a signed JWT for a verified identity.

    Args:
        identity: Summary of an identity that already passed credential or
                  refresh checks.
        now:      Issue time as a unix timestamp. Defaults to the current time;
                  tests pass an explicit value to mint already-expired tokens.
    """
    issued_at = int(time.time()) if now is None else now
    payload = policy_for(identity.type).claims(identity)
    payload["iat"] = issued_at
    payload["exp"] = issued_at + ACCESS_TOKEN_TTL_SECONDS
    try:
        return jwt.encode(payload, _signing_key(), algorithm=_ALGORITHM)
    except JWTError as exc:
        logger.error("Access token signing failed for %s %s", identity.type.value, identity.id)
        raise SigningKeyError() from exc


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry and return the claims.

    Raises:
        TokenExpired: signature is valid but exp < now.
        TokenInvalid: malformed token, bad signature, missing claims or an
                      unknown role.
    """
    try:
        payload = jwt.decode(token, _signing_key(), algorithms=[_ALGORITHM], options={"leeway": 0})
    except ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except JWTError as exc:
        raise TokenInvalid() from exc

    if any(claim not in payload for claim in _REQUIRED_CLAIMS):
        raise TokenInvalid("Invalid token payload")
    try:
        payload["role"] = Role(payload["role"])
    except ValueError as exc:
        raise TokenInvalid("Invalid token payload") from exc
    return payload


# ---------------------------------------------------------------------------
# Opaque refresh / session secrets
# ---------------------------------------------------------------------------


def generate_opaque_token() -> str:
    """Return a fresh 256-bit URL-safe random secret."""
    return secrets.token_urlsafe(32)


def hash_opaque_token(raw: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw) as a hex string.

    Deterministic, so the store can look a presented value up by its hash.
    Without SECRET_KEY the stored hashes cannot be matched to any value.
    """
    return hmac.new(
        _signing_key().encode(),
        raw.encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Issuer
# ---------------------------------------------------------------------------


@dataclass
class IssuedTokens:
    """Everything minted for one login or refresh. Raw secrets live only here.

    session_token is set at login only. A refresh keeps the existing session
    row, so it mints no session secret.
    """

    access_token: str
    refresh_token: str
    issued_at: int
    session_token: str | None = None
    expires_in: int = ACCESS_TOKEN_TTL_SECONDS


def issue_tokens(identity: IdentitySummary) -> IssuedTokens:
    """Mint an access token plus independent refresh and session secrets."""
    now = int(time.time())
    return IssuedTokens(
        access_token=create_access_token(identity, now=now),
        refresh_token=generate_opaque_token(),
        session_token=generate_opaque_token(),
        issued_at=now,
    )


def reissue_tokens(identity: IdentitySummary) -> IssuedTokens:
    """Mint a fresh access token and refresh secret for an existing session."""
    now = int(time.time())
    return IssuedTokens(
        access_token=create_access_token(identity, now=now),
        refresh_token=generate_opaque_token(),
        issued_at=now,
    )
