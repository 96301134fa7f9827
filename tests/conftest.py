"""
tests/conftest.py -- Shared test fixtures for CivicWatch integration tests.

This module provides:
  - _make_test_stores(): creates an isolated in-memory DB for auth + reports
  - seed_identities(): the admin / organization accounts every API test logs in as
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: ApiHarness with a TestClient, both stores and the seeded ids
  - login(): POST /auth/login helper returning the raw response
  - count_refresh_tokens() / expire_session(): direct DB reads and backdating

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and RATE_LIMIT_ENABLED must be set before any api/auth/core import:
get_settings() is cached on first call, and the limiter reads it at import.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import NamedTuple

# CRITICAL: Set before any api/auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text

from api.main import app
from auth.roles import ORG_APPROVED, ORG_DISABLED, ORG_PENDING
from auth.store import AuthStore
from auth.tokens import hash_password
from reports.store import ReportStore

ADMIN_USERNAME = "testadmin"
ADMIN_PASSWORD = "testpass123"
ORG_PASSWORD = "orgpass123"

APPROVED_ORG_EMAIL = "water@city.example"
SECOND_ORG_EMAIL = "parks@city.example"
PENDING_ORG_EMAIL = "pending@city.example"
DISABLED_ORG_EMAIL = "disabled@city.example"
INACTIVE_ORG_EMAIL = "inactive@city.example"


class ApiHarness(NamedTuple):
    client: TestClient
    auth_store: AuthStore
    report_store: ReportStore
    ids: dict[str, str]


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[AuthStore, ReportStore]:
    """Open both stores on one named shared-memory SQLite database.

    Both stores point at the same named database, as they do in production.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   never share state.
    """
    db_url = f"sqlite:///file:test_civicwatch_{db_suffix}?mode=memory&cache=shared&uri=true"
    return AuthStore(db_url), ReportStore(db_url)


def seed_identities(store: AuthStore) -> dict[str, str]:
    """Create one admin and one organization per interesting state. Returns their ids."""
    org_hash = hash_password(ORG_PASSWORD)
    return {
        "admin": store.create_admin(ADMIN_USERNAME, "Test Admin", hash_password(ADMIN_PASSWORD)),
        "org": store.create_organization("City Water", APPROVED_ORG_EMAIL, org_hash, status=ORG_APPROVED),
        "org2": store.create_organization("City Parks", SECOND_ORG_EMAIL, org_hash, status=ORG_APPROVED),
        "pending": store.create_organization("New Org", PENDING_ORG_EMAIL, org_hash, status=ORG_PENDING),
        "disabled": store.create_organization("Gone Org", DISABLED_ORG_EMAIL, org_hash, status=ORG_DISABLED),
        "inactive": store.create_organization(
            "Paused Org", INACTIVE_ORG_EMAIL, org_hash, status=ORG_APPROVED, is_active=False
        ),
    }


def count_refresh_tokens(store: AuthStore, user_id: str) -> int:
    """Number of refresh records ever issued to user_id, in any state."""
    with store.engine.connect() as conn:
        return conn.execute(
            text("SELECT COUNT(*) FROM refresh_tokens WHERE user_id = :user_id"), {"user_id": user_id}
        ).scalar()


def expire_session(store: AuthStore, session_id: str) -> None:
    """Backdate a session's expires_at so it is past its TTL."""
    past = (datetime.now(timezone.utc) - timedelta(seconds=1)).isoformat()
    with store.engine.begin() as conn:
        conn.execute(
            text("UPDATE user_sessions SET expires_at = :past WHERE id = :id"), {"past": past, "id": session_id}
        )


def _patch_lifespan(auth_store: AuthStore, report_store: ReportStore):
    """Build a stand-in lifespan that hands the given stores to app.state.

    Routes then hit the seeded in-memory databases, never DATABASE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_store = auth_store
        app.state.report_store = report_store
        yield

    return test_lifespan


def login(client: TestClient, identifier: str, password: str, user_type: str):
    """POST /auth/login with the field the web client uses for each role."""
    field = "username" if user_type == "admin" else "email"
    return client.post("/auth/login", json={field: identifier, "password": password, "userType": user_type})


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Module-scoped fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers and middleware but use an isolated
    in-memory database. Accounts are seeded before the client starts.
    """
    auth_store, report_store = _make_test_stores(uuid.uuid4().hex[:8])
    ids = seed_identities(auth_store)

    app.router.lifespan_context = _patch_lifespan(auth_store, report_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client, auth_store, report_store, ids)

    report_store.close()
    auth_store.close()


@pytest.fixture
def auth_store() -> Generator[AuthStore, None, None]:
    """Fresh single-connection in-memory AuthStore for unit tests."""
    store = AuthStore("sqlite:///:memory:")
    yield store
    store.close()
