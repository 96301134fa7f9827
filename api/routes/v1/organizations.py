"""
api/routes/v1/organizations.py -- Organization self-registration.

Routes:
  POST /organizations/signup  -- register an organization (starts pending)

Public: no token is required. A self-registered organization is stored with
status "pending" and cannot log in until an admin approves it through
PATCH /admin/organizations/{id}. The duplicate-email 409 matches what the
admin create route returns.
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import OrganizationCreate, OrganizationResponse
from auth.models import Role
from auth.roles import ORG_PENDING
from auth.store import AuthStore
from auth.tokens import hash_password

logger = logging.getLogger("civicwatch.api.organizations")

router = APIRouter()


@limiter.limit("5/minute")
@router.post("/organizations/signup", response_model=OrganizationResponse, status_code=201)
def signup(request: Request, body: OrganizationCreate) -> JSONResponse:
    """Register an organization awaiting admin approval."""
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
            status=ORG_PENDING,
        )
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="An organization with this email already exists.") from exc
    logger.info("Organization %s registered; awaiting approval", org_id)
    identity = store.get_identity(Role.ORGANIZATION, org_id)
    return JSONResponse(status_code=201, content=OrganizationResponse.from_identity(identity).model_dump(by_alias=True))
