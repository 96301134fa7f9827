"""
auth/errors.py -- Exception taxonomy for the auth service.

Every service-layer failure is an AuthServiceError carrying the HTTP status
and a stable code. Route handlers catch AuthServiceError and render the
client-facing shape; the message is always safe to show (no secrets, no
stack traces). Internal detail goes to the server log only.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthServiceError(Exception):
    status_code: int = 400
    code: str = "error"
    message: str = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationInputError(AuthServiceError):
    """Malformed request body (400)."""

    status_code = 400
    code = "invalid_input"
    message = "Invalid input data"


# ---------------------------------------------------------------------------
# 401 -- bad credentials, bad tokens
# ---------------------------------------------------------------------------


class AuthenticationError(AuthServiceError):
    status_code = 401
    code = "unauthorized"
    message = "Authentication failed"


class InvalidCredentials(AuthenticationError):
    """Login rejected. reason is one of REASONS and is never shown verbatim.

    The route layer decides how much of the reason to reveal, depending on
    Settings.auth_detailed_errors.
    """

    code = "invalid_credentials"
    message = "Invalid credentials."

    NOT_FOUND = "not_found"
    WRONG_PASSWORD = "wrong_password"
    PENDING_APPROVAL = "pending_approval"
    DISABLED = "disabled"
    REASONS = (NOT_FOUND, WRONG_PASSWORD, PENDING_APPROVAL, DISABLED)

    def __init__(self, reason: str) -> None:
        if reason not in self.REASONS:
            raise ValueError(f"Unknown credential failure reason: {reason!r}")
        self.reason = reason
        super().__init__()


class TokenInvalid(AuthenticationError):
    code = "token_invalid"
    message = "Invalid token"


class TokenExpired(AuthenticationError):
    code = "token_expired"
    message = "Token expired"


# ---------------------------------------------------------------------------
# 401 / 403 -- identity not (or no longer) allowed in
# ---------------------------------------------------------------------------


class AuthorizationError(AuthServiceError):
    status_code = 403
    code = "forbidden"
    message = "Access denied"


class IdentityNotFound(AuthorizationError):
    status_code = 401
    code = "identity_not_found"
    message = "User not found or inactive"


class IdentityInactive(AuthorizationError):
    status_code = 401
    code = "identity_inactive"
    message = "User not found or inactive"


class Forbidden(AuthorizationError):
    """Authenticated, but the role is not allowed to call this operation."""


# ---------------------------------------------------------------------------
# Upstream / internal
# ---------------------------------------------------------------------------


class UpstreamServiceError(AuthServiceError):
    """A third-party dependency failed. Absorbed internally, never surfaced."""

    status_code = 502
    code = "upstream_error"
    message = "Upstream service unavailable"


class InternalError(AuthServiceError):
    status_code = 500
    code = "internal_error"
    message = "An unexpected error occurred."


class SigningKeyError(InternalError):
    """SECRET_KEY missing or signing failed. Fatal for the request, not retried."""


class SessionPersistError(InternalError):
    """Refresh/session pair could not be written. Nothing from the login survives."""

    message = "Failed to create session"
