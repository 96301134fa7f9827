"""Unit tests for auth/dependencies.py -- client context extraction.

Requests are built straight from an ASGI scope; no app or TestClient.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from starlette.requests import Request

from auth.dependencies import bearer_token, get_client_context
from core.config import get_settings


def _request(headers: dict[str, str], peer: str = "10.0.0.5") -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": (peer, 51000),
    }
    return Request(scope)


@pytest.fixture
def trust_proxy():
    settings = get_settings().model_copy(update={"trust_proxy_headers": True})
    with patch("auth.dependencies.get_settings", return_value=settings):
        yield


def test_forwarded_headers_ignored_by_default() -> None:
    request = _request({"X-Forwarded-For": "198.51.100.77", "X-Real-IP": "198.51.100.78", "User-Agent": "ua"})
    client = get_client_context(request)
    assert client.ip == "10.0.0.5"
    assert client.user_agent == "ua"


def test_first_forwarded_hop_when_proxy_trusted(trust_proxy) -> None:
    request = _request({"X-Forwarded-For": "198.51.100.77, 10.0.0.1"})
    assert get_client_context(request).ip == "198.51.100.77"


def test_real_ip_fallback_when_proxy_trusted(trust_proxy) -> None:
    assert get_client_context(_request({"X-Real-IP": "198.51.100.78"})).ip == "198.51.100.78"


def test_peer_when_proxy_trusted_but_no_headers(trust_proxy) -> None:
    assert get_client_context(_request({})).ip == "10.0.0.5"


@pytest.mark.parametrize(
    ("header", "expected"),
    [("Bearer abc", "abc"), ("bearer abc", "abc"), ("Bearer   ", None), ("Basic abc", None), ("", None)],
)
def test_bearer_token(header: str, expected: str | None) -> None:
    assert bearer_token(_request({"Authorization": header} if header else {})) == expected
