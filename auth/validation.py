"""
auth/validation.py -- Access-token validation with a live identity re-check.

A token is accepted only if all of these hold, checked in order:
  1. signature verifies under SECRET_KEY        -> else TokenInvalid
  2. exp >= now (no grace window)               -> else TokenExpired
  3. the identity (sub, role) still exists      -> else IdentityNotFound
  4. the role's live-status predicate holds     -> else IdentityInactive

Step 3/4 read the store on every call, so a deactivated admin or organization
is locked out on its very next request and a revoked identity's token is
useful for at most the access-token TTL.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from auth.audit import JWT_VALIDATION, log_security_event
from auth.errors import IdentityInactive, IdentityNotFound
from auth.models import ClientContext, Identity, IdentitySummary, Principal
from auth.roles import policy_for
from auth.store import AuthStore
from auth.tokens import decode_access_token


@dataclass
class ValidatedToken:
    identity: Identity
    issued_at: int
    expires_at: int
    time_remaining: int

    @property
    def summary(self) -> IdentitySummary:
        return IdentitySummary.from_identity(self.identity)

    @property
    def principal(self) -> Principal:
        return Principal(
            user_id=self.identity.id,
            role=self.identity.role,
            name=self.identity.name,
            email=self.identity.email or self.identity.login,
        )


def authenticate_token(store: AuthStore, token: str) -> ValidatedToken:
    """Verify the token and the identity behind it. Emits no audit event."""
    claims = decode_access_token(token)
    role = claims["role"]
    identity = store.get_identity(role, str(claims["sub"]))
    if identity is None:
        raise IdentityNotFound()
    if not policy_for(role).is_live(identity):
        raise IdentityInactive()
    now = int(time.time())
    return ValidatedToken(
        identity=identity,
        issued_at=int(claims["iat"]),
        expires_at=int(claims["exp"]),
        time_remaining=max(int(claims["exp"]) - now, 0),
    )


def validate_access_token(store: AuthStore, token: str, client: ClientContext | None = None) -> ValidatedToken:
    """authenticate_token() plus a best-effort jwt_validation security event."""
    validated = authenticate_token(store, token)
    log_security_event(store, validated.principal, JWT_VALIDATION, client=client)
    return validated
