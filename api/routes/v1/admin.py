"""
api/routes/v1/admin.py -- Organization account administration and audit trail.

Routes:
  POST  /admin/organizations        -- create an organization (auto-approved)
  PATCH /admin/organizations/{id}   -- approve / disable / re-enable an organization
  GET   /admin/security-events      -- recent audit events, optionally for one user

Every route requires an admin principal. Status changes take effect on the
organization's very next request: token validation re-reads the record, so
a disabled organization's outstanding access token stops working at once.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    OrganizationCreate,
    OrganizationPatch,
    OrganizationResponse,
    SecurityEventListResponse,
    SecurityEventOut,
)
from auth.dependencies import require_role
from auth.models import Principal, Role
from auth.roles import ORG_APPROVED
from auth.store import AuthStore
from auth.tokens import hash_password

logger = logging.getLogger("civicwatch.api.admin")

# Every route on this router takes principal=Depends(require_role(Role.ADMIN)).
router = APIRouter()


# ---------------------------------------------------------------------------
# POST /admin/organizations -- create an organization account
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.post("/admin/organizations", response_model=OrganizationResponse, status_code=201)
def create_organization(
    request: Request,
    body: OrganizationCreate,
    principal: Principal = Depends(require_role(Role.ADMIN)),
) -> JSONResponse:
    """Create an organization that can log in immediately.

    Returns 409 if an organization with the same email already exists.
    """
    store: AuthStore = request.app.state.auth_store
    try:
        org_id = store.create_organization(
            name=body.name,
            email=body.email,
            password_hash=hash_password(body.password),
            org_type=body.type,
            phone=body.phone,
            address=body.address,
            city=body.city,
            status=ORG_APPROVED,
        )
    except IntegrityError:
        raise HTTPException(status_code=409, detail="An organization with this email already exists.")
    logger.info("Organization %s created by admin %s", org_id, principal.user_id)
    identity = store.get_identity(Role.ORGANIZATION, org_id)
    return JSONResponse(status_code=201, content=OrganizationResponse.from_identity(identity).model_dump(by_alias=True))


# ---------------------------------------------------------------------------
# PATCH /admin/organizations/{org_id} -- change status / is_active
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.patch("/admin/organizations/{org_id}", response_model=OrganizationResponse)
def update_organization(
    request: Request,
    org_id: str,
    body: OrganizationPatch,
    principal: Principal = Depends(require_role(Role.ADMIN)),
) -> JSONResponse:
    """Apply a status and/or is_active change to an organization."""
    if body.status is None and body.is_active is None:
        raise HTTPException(status_code=400, detail="Nothing to update.")
    store: AuthStore = request.app.state.auth_store
    if not store.update_identity_status(Role.ORGANIZATION, org_id, status=body.status, is_active=body.is_active):
        raise HTTPException(status_code=404, detail="Organization not found.")
    logger.info(
        "Organization %s updated by admin %s (status=%s, is_active=%s)",
        org_id,
        principal.user_id,
        body.status,
        body.is_active,
    )
    identity = store.get_identity(Role.ORGANIZATION, org_id)
    return JSONResponse(content=OrganizationResponse.from_identity(identity).model_dump(by_alias=True))


# ---------------------------------------------------------------------------
# GET /admin/security-events -- audit trail
# ---------------------------------------------------------------------------


@limiter.limit("30/minute")
@router.get("/admin/security-events", response_model=SecurityEventListResponse)
def list_security_events(
    request: Request,
    user_id: Optional[str] = Query(default=None, alias="userId", max_length=36),
    limit: int = Query(default=100, ge=1, le=500),
    principal: Principal = Depends(require_role(Role.ADMIN)),
) -> JSONResponse:
    store: AuthStore = request.app.state.auth_store
    events = store.list_security_events(user_id=user_id, limit=limit)
    body = SecurityEventListResponse(
        events=[
            SecurityEventOut(
                id=e.id,
                event_type=e.event_type,
                user_id=e.user_id,
                role=e.role,
                details=e.details,
                client_ip=e.client_ip,
                user_agent=e.user_agent,
                created_at=e.created_at,
            )
            for e in events
        ]
    )
    return JSONResponse(content=body.model_dump(by_alias=True, mode="json"))
