"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The only accepted credential is an "Authorization: Bearer <access token>"
header. Every protected request goes through authenticate_token(), which
re-reads the identity from the store -- nothing about the caller is cached
between requests or read from client-writable state.

try_get_principal() is the soft variant (returns None on failure).
get_current_principal() wraps it and raises HTTP 401 if unauthenticated.
require_role() builds a dependency that also raises HTTP 403 on a role mismatch.

Layer rule: no imports from api/ or reports/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, HTTPException, Request

from auth.errors import AuthServiceError
from auth.models import ClientContext, Principal, Role
from auth.validation import authenticate_token
from core.config import get_settings


def bearer_token(request: Request) -> str | None:
    """Return the raw bearer token from the Authorization header, if any."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header[:7].lower() == "bearer ":
        token = auth_header[7:].strip()
        return token or None
    return None


def get_client_context(request: Request) -> ClientContext:
    """Client IP and user agent for session and audit records.

    The socket peer is used unless TRUST_PROXY_HEADERS is on. Then the first
    X-Forwarded-For hop wins, then X-Real-IP, then the socket peer.
    """
    ip = None
    if get_settings().trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for", "")
        ip = forwarded.split(",")[0].strip() or request.headers.get("x-real-ip")
    if not ip and request.client:
        ip = request.client.host
    return ClientContext(ip=ip or None, user_agent=request.headers.get("user-agent"))


def try_get_principal(request: Request) -> Principal | None:
    """Authenticate the request via its bearer token. Never raises."""
    token = bearer_token(request)
    if not token:
        return None
    try:
        return authenticate_token(request.app.state.auth_store, token).principal
    except AuthServiceError:
        return None


def get_current_principal(request: Request) -> Principal:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(principal: Principal = Depends(get_current_principal)): ...
    """
    token = bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Authorization header required")
    try:
        return authenticate_token(request.app.state.auth_store, token).principal
    except AuthServiceError as exc:
        raise HTTPException(status_code=401, detail=exc.message) from exc


def require_role(role: Role) -> Callable[..., Principal]:
    """Build a dependency that requires an authenticated principal of the given role.

    Use as a FastAPI dependency:
        @router.post("/admin-only")
        async def route(principal: Principal = Depends(require_role(Role.ADMIN))): ...
    """

    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role is not role:
            raise HTTPException(status_code=403, detail="Access denied")
        return principal

    return dependency
