"""
api/routes/v1/security.py -- Password breach check and client security events.

Routes:
  POST /check-password-breach  -- k-anonymity lookup against the breach corpus
  POST /security-events        -- client-reported audit event (fire-and-forget)

The breach check is public: it runs during org self-service password changes
before the caller holds a token. Only the first five hex characters of the
SHA-1 digest leave the process; the password itself is never logged.

Security events are attributed exclusively from the bearer token. A request
with no valid token is accepted (202) and dropped, so the endpoint cannot be
used to test which tokens are valid.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    BreachCheckRequest,
    BreachCheckResponse,
    ErrorResponse,
    SecurityEventAccepted,
    SecurityEventRequest,
)
from auth.audit import log_security_event
from auth.breach import check_password_breach
from auth.dependencies import get_client_context, try_get_principal

logger = logging.getLogger("civicwatch.api.security")

router = APIRouter()


@limiter.limit("30/minute")
@router.post("/check-password-breach", response_model=BreachCheckResponse)
def check_breach(request: Request, body: BreachCheckRequest) -> JSONResponse:
    """Report whether the password appears in the breach corpus.

    Upstream outages fail open to {breached: false, count: 0}; only an
    unexpected local failure returns 500.
    """
    try:
        result = check_password_breach(body.password)
    except Exception:
        logger.exception("Password breach check failed")
        return JSONResponse(status_code=500, content=ErrorResponse(error="Password check failed").model_dump())
    return JSONResponse(content=BreachCheckResponse(breached=result.breached, count=result.count).model_dump())


@limiter.limit("60/minute")
@router.post("/security-events", response_model=SecurityEventAccepted, status_code=202)
def record_security_event(request: Request, body: SecurityEventRequest) -> JSONResponse:
    """Record an audit event on behalf of the authenticated caller."""
    principal = try_get_principal(request)
    log_security_event(
        request.app.state.auth_store,
        principal,
        body.event_type,
        body.details,
        get_client_context(request),
    )
    return JSONResponse(status_code=202, content=SecurityEventAccepted().model_dump())
