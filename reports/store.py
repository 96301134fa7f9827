"""
reports/store.py -- SQLAlchemy-backed persistence for citizen reports.

The one operation with concurrency content is claim_report(): a single
conditional UPDATE (compare-and-set on assigned_organization_id IS NULL).
The database is the sole serialization point -- the auth layer only
guarantees the claiming organization was approved and active when the
request arrived. Of any number of concurrent claims on one report, exactly
one sees rowcount == 1; every other caller gets ALREADY_CLAIMED and the
report is left untouched.

Pattern: Repository + Data Mapper. Security: bound parameters only.

Usage:
    store = ReportStore("sqlite:///civicwatch.db")
    report_id = store.create_report(Report(title="Broken streetlight"))
    result = store.claim_report(report_id, organization_id)
    store.close()
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, event
from sqlalchemy.engine import Engine

from reports.models import ClaimOutcome, ClaimResult, Report

_CLAIMED_STATUS = "in_progress"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_reports = Table(
    "reports",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("assigned_organization_id", String(36), index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReportStore:
    """Repository for Report entities."""

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def create_report(self, report: Report) -> int:
        """Insert a report and return its ID."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _reports.insert().values(
                    title=report.title,
                    status=report.status,
                    assigned_organization_id=report.assigned_organization_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_report(self, report_id: int) -> Optional[Report]:
        with self.engine.connect() as conn:
            row = conn.execute(_reports.select().where(_reports.c.id == report_id)).fetchone()
        return _row_to_report(row) if row is not None else None

    def list_unassigned(self) -> list[Report]:
        """Reports no organization has claimed yet, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _reports.select()
                .where(_reports.c.assigned_organization_id.is_(None))
                .order_by(_reports.c.created_at, _reports.c.id)
            ).fetchall()
        return [_row_to_report(r) for r in rows]

    def claim_report(self, report_id: int, organization_id: str) -> ClaimResult:
        """Assign the report to organization_id if nobody holds it yet.

        The UPDATE is the first statement of its transaction, so the database
        evaluates the IS NULL condition under the write lock. The follow-up
        SELECT runs only to build the result.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _reports.update()
                .where((_reports.c.id == report_id) & _reports.c.assigned_organization_id.is_(None))
                .values(
                    assigned_organization_id=organization_id,
                    status=_CLAIMED_STATUS,
                    updated_at=_now_iso(),
                )
            )
            row = conn.execute(_reports.select().where(_reports.c.id == report_id)).fetchone()
        if row is None:
            return ClaimResult(outcome=ClaimOutcome.NOT_FOUND)
        if result.rowcount == 1:
            return ClaimResult(outcome=ClaimOutcome.CLAIMED, report=_row_to_report(row))
        return ClaimResult(outcome=ClaimOutcome.ALREADY_CLAIMED)

    def close(self) -> None:
        self.engine.dispose()


def _row_to_report(row) -> Report:
    return Report(
        id=row.id,
        title=row.title,
        status=row.status,
        assigned_organization_id=row.assigned_organization_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
