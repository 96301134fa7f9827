"""
API request and response models for CivicWatch REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py and
reports/models.py, which own the internal domain representation. Route
handlers map between the two.

Wire names follow the web client's camelCase (refreshToken, expiresIn,
tokenInfo, ...). Fields are snake_case in Python and carry an alias;
responses must be dumped with by_alias=True. The user summary keeps
created_at as-is because the client reads it under that name.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from auth.models import Identity, Role
from auth.roles import ORG_STATUSES

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_ORG_STATUS_PATTERN = "^(" + "|".join(ORG_STATUSES) + ")$"

# No str_strip_whitespace on request models: whitespace is part of a password.
_IN = ConfigDict(populate_by_name=True)
_OUT = ConfigDict(frozen=True, populate_by_name=True)


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Failure body for every endpoint: {success: false, error}."""

    model_config = _OUT

    success: bool = False
    error: str


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class UserSummary(BaseModel):
    model_config = _OUT

    id: str
    name: str
    email: str
    type: Role
    status: str
    created_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Login / refresh / validate
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /auth/login.

    Admins identify by username, organizations by email. Either field is
    accepted for either role (the web client historically sends the admin
    username in the email field); username wins when both are present.
    """

    model_config = _IN

    email: Optional[str] = Field(default=None, min_length=1, max_length=255)
    username: Optional[str] = Field(default=None, min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=100)
    user_type: Role = Field(alias="userType")

    @model_validator(mode="after")
    def require_identifier(self) -> "LoginRequest":
        if not self.username and not self.email:
            raise ValueError("email or username is required")
        if self.user_type is Role.ORGANIZATION and not self.username:
            if not re.match(EMAIL_PATTERN, self.email or ""):
                raise ValueError("Invalid email format")
        return self

    @property
    def identifier(self) -> str:
        return self.username or self.email or ""


class LoginResponse(BaseModel):
    """Response for POST /auth/login and POST /auth/refresh."""

    model_config = _OUT

    success: bool = True
    user: UserSummary
    token: str
    refresh_token: str = Field(serialization_alias="refreshToken")
    session_id: Optional[str] = Field(default=None, serialization_alias="sessionId")
    expires_in: int = Field(serialization_alias="expiresIn")


class RefreshRequest(BaseModel):
    model_config = _IN

    refresh_token: str = Field(alias="refreshToken", min_length=1, max_length=256)


class TokenInfo(BaseModel):
    model_config = _OUT

    issued_at: int = Field(serialization_alias="issuedAt")
    expires_at: int = Field(serialization_alias="expiresAt")
    time_remaining: int = Field(serialization_alias="timeRemaining")


class ValidateResponse(BaseModel):
    """Response for POST /auth/validate."""

    model_config = _OUT

    success: bool = True
    valid: bool = True
    user: UserSummary
    token_info: TokenInfo = Field(serialization_alias="tokenInfo")


class ValidateErrorResponse(ErrorResponse):
    valid: bool = False


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionOut(BaseModel):
    model_config = _OUT

    id: str
    created_at: str = Field(serialization_alias="createdAt")
    expires_at: str = Field(serialization_alias="expiresAt")
    last_activity_at: Optional[str] = Field(default=None, serialization_alias="lastActivityAt")
    client_ip: Optional[str] = Field(default=None, serialization_alias="clientIp")
    user_agent: Optional[str] = Field(default=None, serialization_alias="userAgent")


class SessionListResponse(BaseModel):
    model_config = _OUT

    success: bool = True
    sessions: list[SessionOut]


class SuccessResponse(BaseModel):
    model_config = _OUT

    success: bool = True


# ---------------------------------------------------------------------------
# Password breach check and security events
# ---------------------------------------------------------------------------


class BreachCheckRequest(BaseModel):
    """Request body for POST /check-password-breach. The password is never logged."""

    password: str = Field(min_length=1, max_length=1024)


class BreachCheckResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    breached: bool
    count: int


class SecurityEventRequest(BaseModel):
    """Client-reported audit event. Attribution comes from the bearer token only."""

    model_config = _IN

    event_type: str = Field(alias="eventType", min_length=1, max_length=100)
    details: Optional[dict] = None


class SecurityEventAccepted(BaseModel):
    """Same body whether or not the event was recorded."""

    model_config = _OUT

    success: bool = True


class SecurityEventOut(BaseModel):
    model_config = _OUT

    id: int
    event_type: str = Field(serialization_alias="eventType")
    user_id: str = Field(serialization_alias="userId")
    role: Role
    details: dict = Field(default_factory=dict)
    client_ip: Optional[str] = Field(default=None, serialization_alias="clientIp")
    user_agent: Optional[str] = Field(default=None, serialization_alias="userAgent")
    created_at: Optional[str] = Field(default=None, serialization_alias="createdAt")


class SecurityEventListResponse(BaseModel):
    """Response for GET /admin/security-events, newest first."""

    model_config = _OUT

    success: bool = True
    events: list[SecurityEventOut]


# ---------------------------------------------------------------------------
# Organization administration
# ---------------------------------------------------------------------------


class OrganizationCreate(BaseModel):
    """Request body for POST /admin/organizations and POST /organizations/signup.

    Admin-created organizations are auto-approved; self-registered ones start
    pending until an admin approves them.
    """

    model_config = _IN

    name: str = Field(min_length=1, max_length=255)
    type: str = Field(default="", max_length=100)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=500)
    city: Optional[str] = Field(default=None, max_length=100)


class OrganizationPatch(BaseModel):
    """Request body for PATCH /admin/organizations/{id}."""

    model_config = _IN

    status: Optional[str] = Field(default=None, pattern=_ORG_STATUS_PATTERN)
    is_active: Optional[bool] = Field(default=None, alias="isActive")


class OrganizationResponse(BaseModel):
    model_config = _OUT

    id: str
    name: str
    email: str
    status: str
    is_active: bool = Field(serialization_alias="isActive")
    created_at: Optional[str] = Field(default=None, serialization_alias="createdAt")

    @classmethod
    def from_identity(cls, identity: Identity) -> "OrganizationResponse":
        return cls(
            id=identity.id,
            name=identity.name,
            email=identity.email or identity.login,
            status=identity.status,
            is_active=identity.is_active,
            created_at=identity.created_at,
        )


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class ReportOut(BaseModel):
    model_config = _OUT

    id: int
    title: str
    status: str
    assigned_organization_id: Optional[str] = Field(default=None, serialization_alias="assignedOrganizationId")
    updated_at: Optional[str] = Field(default=None, serialization_alias="updatedAt")


class ClaimResponse(BaseModel):
    model_config = _OUT

    success: bool = True
    report: ReportOut


class ReportResponse(BaseModel):
    """Response for GET /reports/{id}."""

    model_config = _OUT

    success: bool = True
    report: ReportOut


class ReportListResponse(BaseModel):
    model_config = _OUT

    success: bool = True
    reports: list[ReportOut]
