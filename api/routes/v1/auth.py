"""
api/routes/v1/auth.py -- Login, token validation, refresh and session endpoints.

Routes:
  POST   /auth/login            -- credential login; returns access + refresh tokens
  POST   /auth/validate         -- verify a bearer access token against live identity state
  POST   /auth/refresh          -- rotate a refresh token into a new token pair
  GET    /auth/sessions         -- list the caller's live sessions (requires auth)
  DELETE /auth/sessions/{id}    -- revoke one of the caller's sessions (requires auth)

Security:
  [H2] POST /auth/login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] verify_credentials() provides timing equalization -- use it via
       auth.sessions.login(), never inline a lookup + verify.
  [M5] Cache-Control: no-store on every response that carries a token.
  Enumeration: credential failures collapse to one generic 401 unless
       AUTH_DETAILED_ERRORS=true, in which case pending / disabled accounts
       get a specific 403. Wrong password and unknown account always share
       one message.
  IDOR guard: DELETE /auth/sessions/{id} passes the caller's identity to the
       store, which checks ownership.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    SessionListResponse,
    SessionOut,
    SuccessResponse,
    TokenInfo,
    UserSummary,
    ValidateErrorResponse,
    ValidateResponse,
)
from auth import sessions
from auth.dependencies import bearer_token, get_client_context, get_current_principal
from auth.errors import AuthServiceError, InvalidCredentials
from auth.models import IdentitySummary, Principal
from auth.store import AuthStore
from auth.validation import validate_access_token
from core.config import get_settings

logger = logging.getLogger("civicwatch.api.auth")

# Auth policy:
# - POST   /auth/login:            public
# - POST   /auth/validate:         public -- the bearer token IS the input
# - POST   /auth/refresh:          public -- the refresh token IS the input
# - GET    /auth/sessions:         requires auth (get_current_principal)
# - DELETE /auth/sessions/{id}:    requires auth + ownership check in store
router = APIRouter()

_DETAILED_MESSAGES = {
    InvalidCredentials.PENDING_APPROVAL: "Your account has not been approved yet. Please contact the administrator.",
    InvalidCredentials.DISABLED: "Your account has been disabled. Please contact the administrator.",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _summary_out(summary: IdentitySummary) -> UserSummary:
    return UserSummary(
        id=summary.id,
        name=summary.name,
        email=summary.email,
        type=summary.type,
        status=summary.status,
        created_at=summary.created_at,
    )


def _error(exc: AuthServiceError) -> JSONResponse:
    """Render a service error as {success:false, error} with its status code."""
    status_code, message = exc.status_code, exc.message
    if isinstance(exc, InvalidCredentials) and get_settings().auth_detailed_errors:
        if exc.reason in _DETAILED_MESSAGES:
            status_code, message = 403, _DETAILED_MESSAGES[exc.reason]
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


def _login_response(result: sessions.LoginResult) -> JSONResponse:
    body = LoginResponse(
        user=_summary_out(result.user),
        token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        session_id=result.session_id,
        expires_in=result.tokens.expires_in,
    )
    return _no_store(JSONResponse(status_code=200, content=body.model_dump(mode="json", by_alias=True)))


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse, responses={401: {"model": ErrorResponse}})
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate an admin (by username) or organization (by email).

    A token is only returned after the refresh/session pair is persisted.
    """
    store: AuthStore = request.app.state.auth_store
    logger.info("Authentication attempt for %s", body.user_type.value)
    try:
        result = sessions.login(
            store,
            body.identifier,
            body.password,
            body.user_type,
            client=get_client_context(request),
        )
    except AuthServiceError as exc:
        if isinstance(exc, InvalidCredentials):
            logger.info("Login rejected for %s: %s", body.user_type.value, exc.reason)
        return _no_store(_error(exc))
    return _login_response(result)


@router.post("/auth/validate", response_model=ValidateResponse, responses={401: {"model": ValidateErrorResponse}})
def validate(request: Request) -> JSONResponse:
    """Validate the bearer access token and re-check the identity behind it."""
    token = bearer_token(request)
    if not token:
        return JSONResponse(
            status_code=401,
            content=ValidateErrorResponse(error="Authorization header required").model_dump(),
        )
    store: AuthStore = request.app.state.auth_store
    try:
        validated = validate_access_token(store, token, client=get_client_context(request))
    except AuthServiceError as exc:
        logger.info("Token validation failed: %s", exc.code)
        return JSONResponse(
            status_code=exc.status_code,
            content=ValidateErrorResponse(error=exc.message).model_dump(),
        )
    body = ValidateResponse(
        user=_summary_out(validated.summary),
        token_info=TokenInfo(
            issued_at=validated.issued_at,
            expires_at=validated.expires_at,
            time_remaining=validated.time_remaining,
        ),
    )
    return JSONResponse(status_code=200, content=body.model_dump(mode="json", by_alias=True))


@router.post("/auth/refresh", response_model=LoginResponse, responses={401: {"model": ErrorResponse}})
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Trade a refresh token for a new access token and a new refresh token.

    The presented refresh token is revoked; replaying it returns 401.
    """
    store: AuthStore = request.app.state.auth_store
    try:
        result = sessions.refresh(store, body.refresh_token, client=get_client_context(request))
    except AuthServiceError as exc:
        logger.info("Token refresh failed: %s", exc.code)
        return _no_store(_error(exc))
    return _login_response(result)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/sessions", response_model=SessionListResponse)
def list_sessions(
    request: Request,
    principal: Principal = Depends(get_current_principal),
) -> JSONResponse:
    """List the caller's unrevoked, unexpired sessions. Secrets are never returned."""
    store: AuthStore = request.app.state.auth_store
    records = sessions.list_sessions(store, principal)
    body = SessionListResponse(
        sessions=[
            SessionOut(
                id=s.id,
                created_at=s.created_at,
                expires_at=s.expires_at,
                last_activity_at=s.last_activity_at,
                client_ip=s.client_ip,
                user_agent=s.user_agent,
            )
            for s in records
        ]
    )
    return JSONResponse(content=body.model_dump(by_alias=True))


@router.delete("/auth/sessions/{session_id}", response_model=SuccessResponse)
def revoke_session(
    request: Request,
    session_id: str,
    principal: Principal = Depends(get_current_principal),
) -> JSONResponse:
    """Revoke one of the caller's sessions and its refresh token [IDOR guard].

    Access tokens already handed out keep working until they expire
    (at most 15 minutes); the refresh token stops working immediately.
    """
    store: AuthStore = request.app.state.auth_store
    revoked = sessions.revoke_session(store, principal, session_id, client=get_client_context(request))
    if not revoked:
        return JSONResponse(status_code=404, content=ErrorResponse(error="Session not found.").model_dump())
    return JSONResponse(content=SuccessResponse().model_dump())
