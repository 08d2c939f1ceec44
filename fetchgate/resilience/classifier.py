"""Failure classification.

Maps a raw exception to an ``ErrorClassification`` (kind, retryable,
severity). Gateway errors carry their own kind; transport errors are
classified by exception type; anything else falls back to inspecting the
message text.

| condition                     | kind          | retryable | severity |
|-------------------------------|---------------|-----------|----------|
| connection/transport failure  | network       | yes       | high     |
| deadline exceeded             | timeout       | yes       | medium   |
| cross-origin rejection        | cors          | no        | high     |
| certificate/trust failure     | ssl           | no        | high     |
| 404-class                     | notfound      | no        | low      |
| 401/403-class                 | auth          | no        | medium   |
| 5xx-class                     | server        | yes       | high     |
| unsafe target                 | unsafe_target | no        | high     |
| no endpoint selectable        | unavailable   | yes       | medium   |
| anything else                 | unknown       | no        | medium   |
"""

from __future__ import annotations

import asyncio
import re
import ssl

import httpx

from fetchgate.middleware.error_handler import (
    AllEndpointsFailedError,
    GatewayError,
    OfflineError,
    OperationFailedError,
)
from fetchgate.models.errors import ErrorClassification, ErrorKind, Severity

_CLASSIFICATIONS: dict[ErrorKind, ErrorClassification] = {
    ErrorKind.NETWORK: ErrorClassification(ErrorKind.NETWORK, True, Severity.HIGH),
    ErrorKind.TIMEOUT: ErrorClassification(ErrorKind.TIMEOUT, True, Severity.MEDIUM),
    ErrorKind.CORS: ErrorClassification(ErrorKind.CORS, False, Severity.HIGH),
    ErrorKind.SSL: ErrorClassification(ErrorKind.SSL, False, Severity.HIGH),
    ErrorKind.NOT_FOUND: ErrorClassification(ErrorKind.NOT_FOUND, False, Severity.LOW),
    ErrorKind.AUTH: ErrorClassification(ErrorKind.AUTH, False, Severity.MEDIUM),
    ErrorKind.SERVER: ErrorClassification(ErrorKind.SERVER, True, Severity.HIGH),
    ErrorKind.UNSAFE_TARGET: ErrorClassification(ErrorKind.UNSAFE_TARGET, False, Severity.HIGH),
    ErrorKind.UNAVAILABLE: ErrorClassification(ErrorKind.UNAVAILABLE, True, Severity.MEDIUM),
    ErrorKind.UNKNOWN: ErrorClassification(ErrorKind.UNKNOWN, False, Severity.MEDIUM),
}

_OFFLINE = ErrorClassification(ErrorKind.NETWORK, False, Severity.HIGH)

_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NETWORK: "Network connection failed, check your connection and try again",
    ErrorKind.TIMEOUT: "The request timed out, try again later",
    ErrorKind.CORS: "The cross-origin request was blocked",
    ErrorKind.SSL: "Certificate validation failed, the site may not be secure",
    ErrorKind.NOT_FOUND: "The requested resource does not exist",
    ErrorKind.AUTH: "Access was denied",
    ErrorKind.SERVER: "The server returned an error, try again later",
    ErrorKind.UNSAFE_TARGET: "The address is not allowed",
    ErrorKind.UNAVAILABLE: "No forwarding service is available right now, try again shortly",
    ErrorKind.UNKNOWN: "An unknown error occurred, try again later",
}

_TIMEOUT_TEXT = re.compile(r"time(d)?\s*out", re.IGNORECASE)
_SSL_TEXT = re.compile(r"\bSSL\b|certificate", re.IGNORECASE)


def classification_for(kind: ErrorKind) -> ErrorClassification:
    """Canonical classification for a kind."""
    return _CLASSIFICATIONS[kind]


def user_message(kind: ErrorKind) -> str:
    """Human-readable message for a failure kind."""
    return _USER_MESSAGES.get(kind, _USER_MESSAGES[ErrorKind.UNKNOWN])


def classify_error(exc: BaseException) -> ErrorClassification:
    """Map a raw failure to its classification."""
    if isinstance(exc, OperationFailedError):
        return exc.classification

    if isinstance(exc, OfflineError):
        return _OFFLINE

    if isinstance(exc, AllEndpointsFailedError):
        if exc.last_error is not None:
            return classify_error(exc.last_error)
        return _CLASSIFICATIONS[ErrorKind.UNKNOWN]

    if isinstance(exc, GatewayError):
        return _CLASSIFICATIONS[exc.kind]

    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError)):
        return _CLASSIFICATIONS[ErrorKind.TIMEOUT]

    if isinstance(exc, httpx.HTTPStatusError):
        return _classify_status(exc.response.status_code)

    if _caused_by_ssl(exc):
        return _CLASSIFICATIONS[ErrorKind.SSL]

    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return _CLASSIFICATIONS[ErrorKind.NETWORK]

    return _classify_message(str(exc))


def _classify_status(status_code: int) -> ErrorClassification:
    if status_code in (404, 410):
        return _CLASSIFICATIONS[ErrorKind.NOT_FOUND]
    if status_code in (401, 403):
        return _CLASSIFICATIONS[ErrorKind.AUTH]
    if status_code >= 500:
        return _CLASSIFICATIONS[ErrorKind.SERVER]
    return _CLASSIFICATIONS[ErrorKind.UNKNOWN]


def _caused_by_ssl(exc: BaseException) -> bool:
    """True if an SSL error appears anywhere in the exception chain."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ssl.SSLError):
            return True
        if isinstance(current, httpx.TransportError) and _SSL_TEXT.search(str(current)):
            return True
        current = current.__cause__ or current.__context__
    return False


def _classify_message(message: str) -> ErrorClassification:
    if "CORS" in message:
        return _CLASSIFICATIONS[ErrorKind.CORS]
    if _SSL_TEXT.search(message):
        return _CLASSIFICATIONS[ErrorKind.SSL]
    if _TIMEOUT_TEXT.search(message):
        return _CLASSIFICATIONS[ErrorKind.TIMEOUT]
    if "404" in message:
        return _CLASSIFICATIONS[ErrorKind.NOT_FOUND]
    if "401" in message or "403" in message:
        return _CLASSIFICATIONS[ErrorKind.AUTH]
    if "500" in message or "502" in message or "503" in message:
        return _CLASSIFICATIONS[ErrorKind.SERVER]
    return _CLASSIFICATIONS[ErrorKind.UNKNOWN]
