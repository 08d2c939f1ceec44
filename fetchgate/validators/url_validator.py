"""Target URL validation: rejects dangerous addresses and enforces the secure scheme."""

from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit, urlunsplit

from fetchgate.middleware.error_handler import UnsafeTargetError

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048

_BLOCKED_PATTERNS = [
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"file:", re.IGNORECASE),
]

_ALLOWED_SCHEMES = {"http", "https"}

# Plain http is accepted for local development targets
_LOCAL_HOSTS = {"localhost", "127.0.0.1"}


def unsafe_reason(url: str) -> str | None:
    """Return why ``url`` is unsafe to fetch, or None if it passes."""
    if not url or not isinstance(url, str):
        return "URL must be a non-empty string"

    for pattern in _BLOCKED_PATTERNS:
        if pattern.search(url):
            return f"Dangerous URL scheme: {pattern.pattern}"

    if len(url) > MAX_URL_LENGTH:
        return f"URL exceeds {MAX_URL_LENGTH} characters ({len(url)})"

    try:
        parsed = urlsplit(url)
        hostname = parsed.hostname
    except ValueError as exc:
        return f"Malformed URL: {exc}"

    if parsed.scheme.lower() not in _ALLOWED_SCHEMES:
        return f"Unsupported scheme: {parsed.scheme or '(none)'}"
    if not hostname:
        return "URL has no hostname"
    return None


def is_secure(url: str) -> bool:
    """True if the URL already uses https (or targets a local development host)."""
    parsed = urlsplit(url)
    return parsed.scheme.lower() == "https" or parsed.hostname in _LOCAL_HOSTS


def ensure_secure_url(url: str) -> str:
    """Validate ``url`` and return it on the secure scheme.

    An ``http`` URL is upgraded to ``https`` on the same host and
    re-validated.

    Raises
    ------
    UnsafeTargetError
        If the URL fails the safety checks or cannot be upgraded.
    """
    reason = unsafe_reason(url)
    if reason is not None:
        raise UnsafeTargetError(reason, url=url)

    if is_secure(url):
        return url

    parsed = urlsplit(url)
    if parsed.scheme.lower() == "http":
        netloc = parsed.netloc
        if parsed.port == 80:
            netloc = netloc.rsplit(":", 1)[0]
        upgraded = urlunsplit(("https", netloc, parsed.path, parsed.query, parsed.fragment))
        if unsafe_reason(upgraded) is None and is_secure(upgraded):
            logger.info("Upgraded target from http to https: %s", upgraded)
            return upgraded

    raise UnsafeTargetError("Target URL must use HTTPS", url=url)
