"""
auth/credentials.py -- Identifier/password verification for both roles.

verify_credentials() is read-only: it looks the identity up and checks the
password and status, and writes nothing. The login orchestrator in
auth/sessions.py stamps last_login afterwards.

Ordering matters [C1]:
  1. bcrypt always runs -- against _DUMMY_HASH when the identity is unknown --
     so response time does not reveal whether an account exists.
  2. The password is checked before status, so a caller without the right
     password learns nothing about whether an account is pending or disabled.
"""

from __future__ import annotations

from auth.errors import InvalidCredentials
from auth.models import IdentitySummary, Role
from auth.roles import policy_for
from auth.store import AuthStore
from auth.tokens import _DUMMY_HASH, verify_password


def verify_credentials(store: AuthStore, identifier: str, password: str, role: Role) -> IdentitySummary:
    """Return the identity summary for a valid login, else raise InvalidCredentials.

    reason on the raised error is one of not_found, wrong_password,
    pending_approval or disabled.
    """
    policy = policy_for(role)
    identity = store.find_for_login(policy.role, identifier)
    if identity is None or not identity.password_hash:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        raise InvalidCredentials(InvalidCredentials.NOT_FOUND)
    if not verify_password(password, identity.password_hash):
        raise InvalidCredentials(InvalidCredentials.WRONG_PASSWORD)
    reason = policy.login_failure(identity)
    if reason is not None:
        raise InvalidCredentials(reason)
    return IdentitySummary.from_identity(identity)
