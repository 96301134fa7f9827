"""Unit tests for auth/audit.py -- best-effort, server-attributed security events."""

from __future__ import annotations

from unittest.mock import MagicMock

from auth.audit import log_security_event
from auth.models import ClientContext, Principal, Role

_PRINCIPAL = Principal(user_id="org-1", role=Role.ORGANIZATION, name="Water", email="w@b.com")


def test_event_is_attributed_to_principal(auth_store) -> None:
    client = ClientContext(ip="198.51.100.2")
    assert log_security_event(auth_store, _PRINCIPAL, "page_view", {"path": "/reports"}, client)
    [event] = auth_store.list_security_events()
    assert event.user_id == "org-1"
    assert event.role is Role.ORGANIZATION
    assert event.client_ip == "198.51.100.2"


def test_client_supplied_attribution_is_ignored(auth_store) -> None:
    """userId / userType / role in details never override the principal."""
    log_security_event(
        auth_store,
        _PRINCIPAL,
        "page_view",
        {"userId": "admin-1", "user_id": "admin-1", "userType": "admin", "role": "admin", "path": "/x"},
    )
    [event] = auth_store.list_security_events()
    assert event.user_id == "org-1"
    assert event.role is Role.ORGANIZATION
    assert event.details == {"path": "/x"}


def test_anonymous_event_is_dropped(auth_store) -> None:
    assert log_security_event(auth_store, None, "page_view") is False
    assert auth_store.list_security_events() == []


def test_storage_failure_is_swallowed() -> None:
    store = MagicMock()
    store.insert_security_event.side_effect = RuntimeError("disk full")
    assert log_security_event(store, _PRINCIPAL, "login_success") is False


def test_event_type_is_truncated(auth_store) -> None:
    log_security_event(auth_store, _PRINCIPAL, "x" * 250)
    [event] = auth_store.list_security_events()
    assert len(event.event_type) == 100
