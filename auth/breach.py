"""
auth/breach.py -- Password screening against a k-anonymity breach corpus.

Only the first five hex characters of the password's SHA-1 leave the process.
The corpus answers with every known suffix sharing that prefix as
"SUFFIX:COUNT" lines, and the match is done locally.

Fail-open: any network, HTTP or parse failure returns "not breached". A
third-party outage must never block authentication or sign-up; the failure
is logged as a warning (without the password or its hash) and absorbed here.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass

import requests

from auth.errors import UpstreamServiceError
from core.config import get_settings

logger = logging.getLogger("civicwatch.breach")

_PREFIX_LENGTH = 5

# Module-level session shared across calls for connection pooling.
# max_redirects=3 -- the corpus is a known public API, 3 hops is generous.
_session = requests.Session()
_session.max_redirects = 3
_session.headers["User-Agent"] = "CivicWatch-Password-Check"
_session.headers["Add-Padding"] = "true"


@dataclass
class BreachResult:
    breached: bool
    count: int


def split_hash(password: str) -> tuple[str, str]:
    """Return the (prefix, suffix) of the uppercase SHA-1 hex digest."""
    digest = hashlib.sha1(password.encode("utf-8")).hexdigest().upper()  # noqa: S324 -- corpus is keyed by SHA-1
    return digest[:_PREFIX_LENGTH], digest[_PREFIX_LENGTH:]


def _fetch_range(prefix: str) -> str:
    settings = get_settings()
    try:
        resp = _session.get(f"{settings.breach_api_url}{prefix}", timeout=settings.breach_timeout_seconds)
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise UpstreamServiceError(str(exc)) from exc
    return resp.text


def _find_count(body: str, suffix: str) -> int:
    """Linear scan for an exact suffix match. Returns 0 when absent.

    Padding entries (count 0) never count as a breach.
    """
    for line in body.splitlines():
        candidate, sep, count = line.partition(":")
        if sep and candidate.strip().upper() == suffix:
            return int(count.strip())
    return 0


def check_password_breach(password: str) -> BreachResult:
    """Return whether the password appears in the breach corpus and how often."""
    prefix, suffix = split_hash(password)
    try:
        count = _find_count(_fetch_range(prefix), suffix)
    except (UpstreamServiceError, ValueError) as exc:
        logger.warning("Breach corpus check failed, failing open: %s", exc)
        return BreachResult(breached=False, count=0)
    return BreachResult(breached=count > 0, count=count)
