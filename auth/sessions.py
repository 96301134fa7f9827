"""
auth/sessions.py -- Login, refresh, and session revocation flows.

These functions compose the leaf components:

  login:   verify_credentials -> issue_tokens -> create_session_pair
  refresh: refresh hash lookup -> live identity re-check -> reissue_tokens
           -> rotate_refresh_token (old one revoked atomically)
  revoke:  owner-checked revoke of one session and its refresh token

Concurrent logins for the same identity each get their own session pair;
nothing here limits the number of live sessions per identity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from auth.audit import LOGIN_SUCCESS, SESSION_REVOKED, TOKEN_REFRESH, log_security_event
from auth.credentials import verify_credentials
from auth.errors import IdentityInactive, IdentityNotFound, TokenInvalid
from auth.models import (
    ClientContext,
    IdentitySummary,
    Principal,
    RefreshTokenRecord,
    Role,
    SessionRecord,
)
from auth.roles import policy_for
from auth.store import AuthStore, new_id
from auth.tokens import (
    REFRESH_TOKEN_TTL,
    SESSION_TTL,
    IssuedTokens,
    hash_opaque_token,
    issue_tokens,
    reissue_tokens,
)

logger = logging.getLogger("civicwatch.sessions")


@dataclass
class LoginResult:
    user: IdentitySummary
    tokens: IssuedTokens
    session_id: str | None = None


def _principal(summary: IdentitySummary) -> Principal:
    return Principal(user_id=summary.id, role=summary.type, name=summary.name, email=summary.email)


def _refresh_record(summary: IdentitySummary, raw_token: str, client: ClientContext) -> RefreshTokenRecord:
    now = datetime.now(timezone.utc)
    return RefreshTokenRecord(
        id=new_id(),
        user_id=summary.id,
        role=summary.type,
        token_hash=hash_opaque_token(raw_token),
        issued_at=now.isoformat(),
        expires_at=(now + REFRESH_TOKEN_TTL).isoformat(),
        client_ip=client.ip,
        user_agent=client.user_agent,
    )


def login(
    store: AuthStore,
    identifier: str,
    password: str,
    role: Role,
    client: ClientContext | None = None,
) -> LoginResult:
    """Authenticate and open a new session.

    Raises InvalidCredentials on bad credentials or a blocked account,
    SigningKeyError if the token cannot be signed, and SessionPersistError if
    the refresh/session pair cannot be written. No token is returned unless
    both records were persisted.
    """
    client = client or ClientContext()
    summary = verify_credentials(store, identifier, password, role)
    tokens = issue_tokens(summary)

    refresh = _refresh_record(summary, tokens.refresh_token, client)
    now = datetime.now(timezone.utc)
    session = SessionRecord(
        id=new_id(),
        user_id=summary.id,
        role=summary.type,
        # Clients address sessions by id; the raw session secret is never sent.
        # Its keyed hash gives each login row a unique unguessable fingerprint.
        session_token_hash=hash_opaque_token(tokens.session_token),
        refresh_token_id=refresh.id,
        created_at=now.isoformat(),
        expires_at=(now + SESSION_TTL).isoformat(),
        last_activity_at=now.isoformat(),
        client_ip=client.ip,
        user_agent=client.user_agent,
    )
    store.create_session_pair(refresh, session)

    try:
        store.update_last_login(summary.type, summary.id)
    except SQLAlchemyError as exc:
        logger.warning("last_login update failed for %s %s: %s", summary.type.value, summary.id, exc)

    log_security_event(store, _principal(summary), LOGIN_SUCCESS, client=client)
    logger.info("Login succeeded for %s %s", summary.type.value, summary.id)
    return LoginResult(user=summary, tokens=tokens, session_id=session.id)


def refresh(store: AuthStore, raw_refresh_token: str, client: ClientContext | None = None) -> LoginResult:
    """Exchange a refresh token for a new access token and a new refresh token.

    The presented refresh token is revoked in the same transaction that
    stores its replacement; presenting it again fails with TokenInvalid.
    The identity's live status is re-checked just like token validation.
    A refresh token dies with its session: once the session is revoked or
    past its expires_at, refresh fails with TokenInvalid.
    """
    client = client or ClientContext()
    record = store.get_active_refresh_token(hash_opaque_token(raw_refresh_token))
    if record is None:
        raise TokenInvalid("Invalid or expired refresh token")

    identity = store.get_identity(record.role, record.user_id)
    if identity is None:
        raise IdentityNotFound()
    if not policy_for(record.role).is_live(identity):
        raise IdentityInactive()

    summary = IdentitySummary.from_identity(identity)
    tokens = reissue_tokens(summary)
    replacement = _refresh_record(summary, tokens.refresh_token, client)
    if not store.rotate_refresh_token(record.id, replacement):
        raise TokenInvalid("Invalid or expired refresh token")

    log_security_event(store, _principal(summary), TOKEN_REFRESH, client=client)
    return LoginResult(user=summary, tokens=tokens)


def list_sessions(store: AuthStore, principal: Principal) -> list[SessionRecord]:
    """The caller's own live sessions, newest first."""
    return store.list_active_sessions(principal.user_id, principal.role)


def revoke_session(
    store: AuthStore,
    principal: Principal,
    session_id: str,
    client: ClientContext | None = None,
) -> bool:
    """Revoke one of the caller's sessions. Returns False if it is not theirs or not live.

    Access tokens already issued for the session stay valid until their exp;
    the refresh token is dead immediately.
    """
    revoked = store.revoke_session(session_id, principal.user_id, principal.role)
    if revoked:
        log_security_event(store, principal, SESSION_REVOKED, {"session_id": session_id}, client)
    return revoked
