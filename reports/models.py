"""
reports/models.py -- Domain dataclasses for citizen reports.

Only the fields the claim workflow needs live here. Report content (photos,
audio, geolocation, descriptions) is owned by the wider application.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass
class Report:
    """A citizen report that an organization can take charge of.

    assigned_organization_id is None until exactly one organization claims it.
    id is None before the record is written to the database.
    """

    title: str
    status: str = "pending"  # "pending" | "in_progress" | "resolved"
    assigned_organization_id: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: Optional[str] = None


class ClaimOutcome(str, Enum):
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"
    NOT_FOUND = "not_found"


@dataclass
class ClaimResult:
    outcome: ClaimOutcome
    report: Optional[Report] = None
