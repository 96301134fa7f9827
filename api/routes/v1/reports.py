"""
api/routes/v1/reports.py -- Report routes for organizations.

Routes:
  GET  /reports/unassigned         -- reports no organization holds yet
  GET  /reports/{report_id}        -- one report
  POST /reports/{report_id}/claim  -- assign an unclaimed report to the caller

Only an organization principal may use these, and require_role() has already
re-checked that the organization is approved and active. The claim itself
is a single compare-and-set in ReportStore; whichever request loses the race
gets 409 already_claimed and the report is untouched.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import ClaimResponse, ErrorResponse, ReportListResponse, ReportOut, ReportResponse
from auth.dependencies import require_role
from auth.models import Principal, Role
from reports.models import ClaimOutcome, Report
from reports.store import ReportStore

logger = logging.getLogger("civicwatch.api.reports")

router = APIRouter()


def _report_out(report: Report) -> ReportOut:
    return ReportOut(
        id=report.id,
        title=report.title,
        status=report.status,
        assigned_organization_id=report.assigned_organization_id,
        updated_at=report.updated_at,
    )


# Declared before /reports/{report_id} so "unassigned" is not parsed as an id.
@limiter.limit("60/minute")
@router.get("/reports/unassigned", response_model=ReportListResponse)
def list_unassigned_reports(
    request: Request,
    principal: Principal = Depends(require_role(Role.ORGANIZATION)),
) -> JSONResponse:
    """Reports still open for claiming, oldest first."""
    reports: ReportStore = request.app.state.report_store
    body = ReportListResponse(reports=[_report_out(r) for r in reports.list_unassigned()])
    return JSONResponse(content=body.model_dump(by_alias=True))


@limiter.limit("60/minute")
@router.get(
    "/reports/{report_id}",
    response_model=ReportResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_report(
    request: Request,
    report_id: int,
    principal: Principal = Depends(require_role(Role.ORGANIZATION)),
) -> JSONResponse:
    reports: ReportStore = request.app.state.report_store
    report = reports.get_report(report_id)
    if report is None:
        return JSONResponse(status_code=404, content=ErrorResponse(error="Report not found.").model_dump())
    return JSONResponse(content=ReportResponse(report=_report_out(report)).model_dump(by_alias=True))


@limiter.limit("60/minute")
@router.post(
    "/reports/{report_id}/claim",
    response_model=ClaimResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def claim_report(
    request: Request,
    report_id: int,
    principal: Principal = Depends(require_role(Role.ORGANIZATION)),
) -> JSONResponse:
    """Claim a report for the calling organization."""
    reports: ReportStore = request.app.state.report_store
    result = reports.claim_report(report_id, principal.user_id)
    if result.outcome is ClaimOutcome.NOT_FOUND:
        return JSONResponse(status_code=404, content=ErrorResponse(error="Report not found.").model_dump())
    if result.outcome is ClaimOutcome.ALREADY_CLAIMED:
        logger.info("Report %d already claimed; organization %s lost the race", report_id, principal.user_id)
        return JSONResponse(status_code=409, content=ErrorResponse(error="already_claimed").model_dump())

    logger.info("Report %d claimed by organization %s", report_id, principal.user_id)
    body = ClaimResponse(report=_report_out(result.report))
    return JSONResponse(content=body.model_dump(by_alias=True))
