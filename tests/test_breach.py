"""Unit tests for auth/breach.py -- k-anonymity breach lookup.

The shared requests.Session is patched, so no test touches the network.
The corpus body is built from the real SHA-1 of the test password so the
suffix match is exercised for real.
"""

from __future__ import annotations

import hashlib
from unittest.mock import MagicMock, patch

import requests

from auth.breach import check_password_breach, split_hash

_PASSWORD = "password123"
_DIGEST = hashlib.sha1(_PASSWORD.encode()).hexdigest().upper()


def _response(body: str, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.text = body
    resp.status_code = status
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    return resp


def test_split_hash_sends_five_char_prefix() -> None:
    prefix, suffix = split_hash(_PASSWORD)
    assert prefix == _DIGEST[:5]
    assert suffix == _DIGEST[5:]
    assert len(suffix) == 35


class TestCheckPasswordBreach:
    def test_match_returns_count(self) -> None:
        body = "\r\n".join(
            [
                "0018A45C4D1DEF81644B54AB7F969B88D65:1",
                f"{_DIGEST[5:]}:2254650",
                "00D4F6E8FA6EECAD2A3AA415EEC418D38EC:2",
            ]
        )
        with patch("auth.breach._session.get", return_value=_response(body)) as mock_get:
            result = check_password_breach(_PASSWORD)

        assert result.breached is True
        assert result.count == 2254650
        url = mock_get.call_args.args[0]
        assert url.endswith(_DIGEST[:5]), f"Only the prefix may leave the process, got {url}"
        assert _DIGEST[5:] not in url

    def test_lowercase_suffix_still_matches(self) -> None:
        body = f"{_DIGEST[5:].lower()}:7"
        with patch("auth.breach._session.get", return_value=_response(body)):
            result = check_password_breach(_PASSWORD)
        assert (result.breached, result.count) == (True, 7)

    def test_no_match(self) -> None:
        body = "0018A45C4D1DEF81644B54AB7F969B88D65:1\r\n00D4F6E8FA6EECAD2A3AA415EEC418D38EC:2"
        with patch("auth.breach._session.get", return_value=_response(body)):
            result = check_password_breach(_PASSWORD)
        assert (result.breached, result.count) == (False, 0)

    def test_padding_entry_is_not_a_breach(self) -> None:
        with patch("auth.breach._session.get", return_value=_response(f"{_DIGEST[5:]}:0")):
            result = check_password_breach(_PASSWORD)
        assert result.breached is False

    def test_timeout_fails_open(self) -> None:
        with patch("auth.breach._session.get", side_effect=requests.Timeout("timed out")):
            result = check_password_breach(_PASSWORD)
        assert (result.breached, result.count) == (False, 0)

    def test_http_error_fails_open(self) -> None:
        with patch("auth.breach._session.get", return_value=_response("", status=503)):
            result = check_password_breach(_PASSWORD)
        assert (result.breached, result.count) == (False, 0)

    def test_unparseable_count_fails_open(self) -> None:
        with patch("auth.breach._session.get", return_value=_response(f"{_DIGEST[5:]}:lots")):
            result = check_password_breach(_PASSWORD)
        assert (result.breached, result.count) == (False, 0)
