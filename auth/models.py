"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; stores, services and routes do the work.

Layer rule: no imports from api/, core/, or reports/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """The two principal kinds that can authenticate.

    Closed set: every role-specific rule lives in auth.roles.ROLE_POLICIES,
    keyed by this enum.
    """

    ADMIN = "admin"
    ORGANIZATION = "organization"


@dataclass
class Identity:
    """A stored principal record, either an administrator or an organization.

    login is the credential identifier: the username for admins, the contact
    email for organizations. email is what goes into token claims and
    summaries; for admins without an email it falls back to the username.

    status vocabulary depends on role:
      admin:        "active" | "inactive"
      organization: "pending" | "approved" | "disabled"
    is_active is only meaningful for organizations (admins are always True).
    """

    id: str
    name: str
    login: str
    role: Role
    status: str
    email: str | None = None
    password_hash: str | None = None
    is_active: bool = True
    created_at: str | None = None
    last_login: str | None = None


@dataclass
class IdentitySummary:
    """The public view of an Identity returned to clients. No secrets."""

    id: str
    name: str
    email: str
    type: Role
    status: str
    created_at: str | None = None

    @classmethod
    def from_identity(cls, identity: Identity) -> IdentitySummary:
        return cls(
            id=identity.id,
            name=identity.name,
            email=identity.email or identity.login,
            type=identity.role,
            status=identity.status,
            created_at=identity.created_at,
        )


@dataclass
class Principal:
    """The server-validated caller of a request.

    Built only by the token validator; never from request bodies. Passed
    explicitly through FastAPI dependencies so no authorization state is ever
    read from client-writable storage.
    """

    user_id: str
    role: Role
    name: str
    email: str


@dataclass
class ClientContext:
    """Request metadata recorded with sessions and security events."""

    ip: str | None = None
    user_agent: str | None = None


@dataclass
class RefreshTokenRecord:
    """A persisted refresh credential.

    token_hash is HMAC-SHA256(SECRET_KEY, raw_value). The raw value is handed
    to the client exactly once and never stored.
    """

    id: str
    user_id: str
    role: Role
    token_hash: str
    issued_at: str
    expires_at: str
    client_ip: str | None = None
    user_agent: str | None = None
    revoked_at: str | None = None


@dataclass
class SessionRecord:
    """Persisted metadata binding one login to its client context and expiry."""

    id: str
    user_id: str
    role: Role
    session_token_hash: str
    refresh_token_id: str
    created_at: str
    expires_at: str
    last_activity_at: str | None = None
    client_ip: str | None = None
    user_agent: str | None = None
    revoked_at: str | None = None


@dataclass
class SecurityEvent:
    """An audit record. user_id / role always come from a validated Principal."""

    event_type: str
    user_id: str
    role: Role
    details: dict = field(default_factory=dict)
    client_ip: str | None = None
    user_agent: str | None = None
    id: int | None = None
    created_at: str | None = None
