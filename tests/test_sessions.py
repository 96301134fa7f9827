"""Unit tests for auth/sessions.py and auth/validation.py -- the service flows.

These run the login / refresh / revoke / validate compositions against a real
in-memory AuthStore, without HTTP. The HTTP shapes are covered in
test_api_auth.py.
"""

from __future__ import annotations

import time
from unittest.mock import patch

import pytest

from auth import sessions
from auth.audit import JWT_VALIDATION, LOGIN_SUCCESS, TOKEN_REFRESH
from auth.errors import IdentityInactive, IdentityNotFound, SessionPersistError, TokenExpired, TokenInvalid
from auth.models import ClientContext, IdentitySummary, Principal, Role
from auth.roles import ADMIN_INACTIVE, ORG_APPROVED, ORG_DISABLED
from auth.tokens import create_access_token, decode_access_token, hash_password
from auth.validation import authenticate_token, validate_access_token
from tests.conftest import count_refresh_tokens, expire_session

_PASSWORD = "s3cret-pass"
_CLIENT = ClientContext(ip="203.0.113.9", user_agent="pytest-agent")


def _principal(admin_id: str) -> Principal:
    return Principal(user_id=admin_id, role=Role.ADMIN, name="Root", email="root")


@pytest.fixture
def org_id(auth_store) -> str:
    return auth_store.create_organization("Water", "a@b.com", hash_password(_PASSWORD), status=ORG_APPROVED)


@pytest.fixture
def admin_id(auth_store) -> str:
    return auth_store.create_admin("root", "Root", hash_password(_PASSWORD))


class TestLogin:
    def test_login_persists_pair_and_logs_event(self, auth_store, org_id) -> None:
        result = sessions.login(auth_store, "a@b.com", _PASSWORD, Role.ORGANIZATION, client=_CLIENT)

        claims = decode_access_token(result.tokens.access_token)
        assert claims["sub"] == org_id
        assert claims["exp"] - claims["iat"] == 900

        session = auth_store.get_session(result.session_id)
        assert session is not None
        assert session.client_ip == "203.0.113.9"
        assert session.user_agent == "pytest-agent"
        assert count_refresh_tokens(auth_store, org_id) == 1
        assert [e.event_type for e in auth_store.list_security_events(org_id)] == [LOGIN_SUCCESS]
        assert auth_store.get_identity(Role.ORGANIZATION, org_id).last_login is not None

    def test_failed_pair_insert_returns_no_tokens(self, auth_store, org_id) -> None:
        with patch.object(auth_store, "create_session_pair", side_effect=SessionPersistError()):
            with pytest.raises(SessionPersistError):
                sessions.login(auth_store, "a@b.com", _PASSWORD, Role.ORGANIZATION)
        assert auth_store.list_security_events(org_id) == []

    def test_each_login_gets_its_own_session(self, auth_store, admin_id) -> None:
        first = sessions.login(auth_store, "root", _PASSWORD, Role.ADMIN)
        second = sessions.login(auth_store, "root", _PASSWORD, Role.ADMIN)
        assert first.session_id != second.session_id
        assert first.tokens.refresh_token != second.tokens.refresh_token
        assert len(sessions.list_sessions(auth_store, _principal(admin_id))) == 2


class TestRefresh:
    def test_refresh_rotates_token(self, auth_store, org_id) -> None:
        login = sessions.login(auth_store, "a@b.com", _PASSWORD, Role.ORGANIZATION)
        refreshed = sessions.refresh(auth_store, login.tokens.refresh_token, client=_CLIENT)

        assert refreshed.tokens.refresh_token != login.tokens.refresh_token
        assert decode_access_token(refreshed.tokens.access_token)["sub"] == org_id
        assert TOKEN_REFRESH in [e.event_type for e in auth_store.list_security_events(org_id)]

        with pytest.raises(TokenInvalid):
            sessions.refresh(auth_store, login.tokens.refresh_token)

    def test_unknown_refresh_token(self, auth_store) -> None:
        with pytest.raises(TokenInvalid):
            sessions.refresh(auth_store, "never-issued")

    def test_disabled_org_cannot_refresh(self, auth_store, org_id) -> None:
        login = sessions.login(auth_store, "a@b.com", _PASSWORD, Role.ORGANIZATION)
        auth_store.update_identity_status(Role.ORGANIZATION, org_id, status=ORG_DISABLED)
        with pytest.raises(IdentityInactive):
            sessions.refresh(auth_store, login.tokens.refresh_token)

    def test_revoked_session_cannot_refresh(self, auth_store, admin_id) -> None:
        login = sessions.login(auth_store, "root", _PASSWORD, Role.ADMIN)
        assert sessions.revoke_session(auth_store, _principal(admin_id), login.session_id) is True
        with pytest.raises(TokenInvalid):
            sessions.refresh(auth_store, login.tokens.refresh_token)

    def test_expired_session_cannot_refresh(self, auth_store, admin_id) -> None:
        """Once a session drops out of list_sessions, its refresh token is dead too."""
        login = sessions.login(auth_store, "root", _PASSWORD, Role.ADMIN)
        expire_session(auth_store, login.session_id)

        assert sessions.list_sessions(auth_store, _principal(admin_id)) == []
        with pytest.raises(TokenInvalid):
            sessions.refresh(auth_store, login.tokens.refresh_token)


class TestValidation:
    def test_valid_token_returns_timing_info(self, auth_store, admin_id) -> None:
        login = sessions.login(auth_store, "root", _PASSWORD, Role.ADMIN)
        validated = validate_access_token(auth_store, login.tokens.access_token, client=_CLIENT)

        assert validated.summary.id == admin_id
        assert validated.expires_at - validated.issued_at == 900
        assert 0 < validated.time_remaining <= 900
        assert JWT_VALIDATION in [e.event_type for e in auth_store.list_security_events(admin_id)]

    def test_deactivated_admin_fails_on_next_call(self, auth_store, admin_id) -> None:
        """Status is re-read on every validation; nothing is cached."""
        token = sessions.login(auth_store, "root", _PASSWORD, Role.ADMIN).tokens.access_token
        authenticate_token(auth_store, token)

        auth_store.update_identity_status(Role.ADMIN, admin_id, status=ADMIN_INACTIVE)
        with pytest.raises(IdentityInactive):
            authenticate_token(auth_store, token)

    def test_deactivated_org_fails_on_next_call(self, auth_store, org_id) -> None:
        token = sessions.login(auth_store, "a@b.com", _PASSWORD, Role.ORGANIZATION).tokens.access_token
        auth_store.update_identity_status(Role.ORGANIZATION, org_id, is_active=False)
        with pytest.raises(IdentityInactive):
            authenticate_token(auth_store, token)

    def test_unknown_subject(self, auth_store) -> None:
        ghost = IdentitySummary(id="ghost", name="Ghost", email="g", type=Role.ADMIN, status="active")
        with pytest.raises(IdentityNotFound):
            authenticate_token(auth_store, create_access_token(ghost))

    def test_expired_token_for_active_identity(self, auth_store, admin_id) -> None:
        summary = IdentitySummary(id=admin_id, name="Root", email="root", type=Role.ADMIN, status="active")
        token = create_access_token(summary, now=int(time.time()) - 901)
        with pytest.raises(TokenExpired):
            authenticate_token(auth_store, token)

    def test_audit_failure_does_not_fail_validation(self, auth_store, admin_id) -> None:
        token = sessions.login(auth_store, "root", _PASSWORD, Role.ADMIN).tokens.access_token
        with patch.object(auth_store, "insert_security_event", side_effect=RuntimeError("db down")):
            validated = validate_access_token(auth_store, token)
        assert validated.identity.id == admin_id
