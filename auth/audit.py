"""
auth/audit.py -- Best-effort security event logging.

Attribution (user_id, role) always comes from a Principal produced by the
token validator. Whatever the client puts in details is stored as context
only; attribution-looking keys are stripped so a caller cannot forge an
event on someone else's behalf.

Failure policy: an audit write that fails is logged and swallowed. It never
fails the request that triggered it.
"""

from __future__ import annotations

import logging

from auth.models import ClientContext, Principal, SecurityEvent
from auth.store import AuthStore

logger = logging.getLogger("civicwatch.audit")

JWT_VALIDATION = "jwt_validation"
LOGIN_SUCCESS = "login_success"
TOKEN_REFRESH = "token_refresh"
SESSION_REVOKED = "session_revoked"

_ATTRIBUTION_KEYS = frozenset({"user_id", "userId", "user_type", "userType", "role"})
_MAX_EVENT_TYPE_LENGTH = 100


def log_security_event(
    store: AuthStore,
    principal: Principal | None,
    event_type: str,
    details: dict | None = None,
    client: ClientContext | None = None,
) -> bool:
    """Record an audit event for an authenticated principal.

    Returns True if the event was written. Anonymous callers are dropped
    silently (False); storage errors are logged and also return False.
    """
    if principal is None:
        return False
    client = client or ClientContext()
    clean = {k: v for k, v in (details or {}).items() if k not in _ATTRIBUTION_KEYS}
    try:
        store.insert_security_event(
            SecurityEvent(
                event_type=event_type[:_MAX_EVENT_TYPE_LENGTH],
                user_id=principal.user_id,
                role=principal.role,
                details=clean,
                client_ip=client.ip,
                user_agent=client.user_agent,
            )
        )
    except Exception:
        logger.exception(
            "Security event %r for %s %s was not recorded",
            event_type,
            principal.role.value,
            principal.user_id,
        )
        return False
    return True
