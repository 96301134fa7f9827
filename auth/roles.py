"""
auth/roles.py -- Per-role rules, resolved once at the service boundary.

Each Role maps to one RolePolicy: which column identifies the account at
login, which statuses may log in, which identities are "live" for token
validation, and what the access-token claims look like. Components ask the
policy instead of branching on role strings.

Layer rule: no imports from api/, core/, or reports/.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from auth.errors import InvalidCredentials
from auth.models import Identity, IdentitySummary, Role

ADMIN_ACTIVE = "active"
ADMIN_INACTIVE = "inactive"

ORG_PENDING = "pending"
ORG_APPROVED = "approved"
ORG_DISABLED = "disabled"

ADMIN_STATUSES = (ADMIN_ACTIVE, ADMIN_INACTIVE)
ORG_STATUSES = (ORG_PENDING, ORG_APPROVED, ORG_DISABLED)


@dataclass(frozen=True)
class RolePolicy:
    role: Role
    login_field: str  # "username" or "email"
    is_live: Callable[[Identity], bool]
    blocked_reason: Callable[[Identity], str]

    def login_failure(self, identity: Identity) -> str | None:
        """Return the InvalidCredentials reason blocking this identity, or None."""
        if self.is_live(identity):
            return None
        return self.blocked_reason(identity)

    def claims(self, summary: IdentitySummary) -> dict:
        """Identity claims for the access token (iat/exp are added by the issuer)."""
        return {
            "sub": summary.id,
            "name": summary.name,
            "email": summary.email,
            "role": self.role.value,
        }


def _admin_is_live(identity: Identity) -> bool:
    return identity.status == ADMIN_ACTIVE


def _org_is_live(identity: Identity) -> bool:
    return identity.status == ORG_APPROVED and identity.is_active


def _org_blocked_reason(identity: Identity) -> str:
    if identity.status == ORG_PENDING:
        return InvalidCredentials.PENDING_APPROVAL
    return InvalidCredentials.DISABLED


ROLE_POLICIES: dict[Role, RolePolicy] = {
    Role.ADMIN: RolePolicy(
        role=Role.ADMIN,
        login_field="username",
        is_live=_admin_is_live,
        blocked_reason=lambda _identity: InvalidCredentials.DISABLED,
    ),
    Role.ORGANIZATION: RolePolicy(
        role=Role.ORGANIZATION,
        login_field="email",
        is_live=_org_is_live,
        blocked_reason=_org_blocked_reason,
    ),
}


def policy_for(role: Role | str) -> RolePolicy:
    """Return the policy for a role. Raises ValueError for unknown role strings."""
    return ROLE_POLICIES[Role(role)]
