"""Request forwarding through the endpoint pool.

``Dispatcher.forward`` validates the target (upgrading plain http to https),
then tries up to one attempt per configured endpoint: each attempt selects
the best available endpoint, builds its forwarded address, and streams the
response with that endpoint's timeout. The first successful response is
returned; each failure is recorded against its endpoint and the next best
endpoint is tried.

Responses larger than the configured ceiling are rejected, and markup
responses containing credential-shaped text are flagged for downstream
sanitization.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from fetchgate.middleware.error_handler import (
    AllEndpointsFailedError,
    NoEndpointsAvailableError,
    ResponseTooLargeError,
)
from fetchgate.proxy.registry import EndpointRegistry
from fetchgate.proxy.types import Endpoint
from fetchgate.validators.content import contains_sensitive_data, sanitize_headers
from fetchgate.validators.url_validator import ensure_secure_url

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int | None], None]

DEFAULT_MAX_RESPONSE_BYTES = 50 * 1024 * 1024

_FORWARD_HEADERS = {
    "User-Agent": "fetchgate/1.0",
    "Accept": "application/json, text/html, */*",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


@dataclass
class ForwardedResponse:
    """A fully read upstream response and the endpoint that served it."""

    target_url: str
    endpoint: str
    status_code: int
    headers: dict[str, str]
    content: bytes
    duration_ms: float
    needs_sanitization: bool = False
    attempts: list[str] = field(default_factory=list)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class Dispatcher:
    """Forwards requests through the least recently used healthy endpoint.

    Parameters
    ----------
    registry:
        Endpoint registry used for selection and outcome bookkeeping.
    client:
        Shared async HTTP client. No credentials are attached to it.
    max_response_bytes:
        Ceiling on the response body size.
    """

    def __init__(
        self,
        *,
        registry: EndpointRegistry,
        client: httpx.AsyncClient,
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
    ) -> None:
        self._registry = registry
        self._client = client
        self._max_response_bytes = max_response_bytes

    async def forward(
        self,
        target_url: str,
        *,
        headers: dict[str, str] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ForwardedResponse:
        """Fetch ``target_url`` through the endpoint pool.

        ``on_progress(loaded, total)`` is called for every received chunk;
        ``total`` is None when the upstream does not declare a length.

        Raises
        ------
        UnsafeTargetError
            If the target fails validation or cannot use https.
        NoEndpointsAvailableError
            If no endpoint is selectable (all circuit-open or rate limited).
        AllEndpointsFailedError
            If every attempt failed; carries the last underlying error.
        """
        url = ensure_secure_url(target_url)
        request_headers = {**sanitize_headers(headers), **_FORWARD_HEADERS}

        last_error: Exception | None = None
        tried: list[str] = []

        for _ in range(max(1, len(self._registry))):
            endpoint = self._registry.select_endpoint()
            if endpoint is None:
                logger.warning(
                    "No endpoint available for %s after %d attempt(s)", url, len(tried)
                )
                raise NoEndpointsAvailableError(target_url=url, tried=",".join(tried))

            tried.append(endpoint.name)
            self._registry.record_attempt(endpoint)
            start = time.monotonic()

            try:
                response = await self._request(endpoint, url, request_headers, on_progress)
            except ResponseTooLargeError:
                logger.warning("Response for %s via %s exceeded the size limit", url, endpoint.name)
                raise
            except Exception as exc:
                self._registry.record_failure(endpoint)
                last_error = exc
                logger.warning(
                    "Endpoint %s failed for %s: %s",
                    endpoint.name,
                    url,
                    str(exc) or exc.__class__.__name__,
                )
                continue

            self._registry.record_success(endpoint)
            response.duration_ms = (time.monotonic() - start) * 1000
            response.attempts = tried
            logger.info(
                "Forwarded %s via %s (status=%d, bytes=%d, duration_ms=%.0f)",
                url,
                endpoint.name,
                response.status_code,
                len(response.content),
                response.duration_ms,
            )
            return response

        raise AllEndpointsFailedError(last_error=last_error, target_url=url, tried=",".join(tried))

    async def _request(
        self,
        endpoint: Endpoint,
        url: str,
        headers: dict[str, str],
        on_progress: ProgressCallback | None,
    ) -> ForwardedResponse:
        """Stream one forwarded request, enforcing the size ceiling."""
        forward_url = endpoint.forward_url(url)

        async with self._client.stream(
            "GET",
            forward_url,
            headers=headers,
            timeout=httpx.Timeout(endpoint.timeout_seconds),
        ) as response:
            response.raise_for_status()

            total = _declared_length(response)
            if total is not None and total > self._max_response_bytes:
                raise ResponseTooLargeError(
                    f"Declared response size {total} exceeds {self._max_response_bytes} bytes"
                )

            chunks: list[bytes] = []
            loaded = 0
            async for chunk in response.aiter_bytes():
                loaded += len(chunk)
                if loaded > self._max_response_bytes:
                    raise ResponseTooLargeError(
                        f"Response body exceeds {self._max_response_bytes} bytes"
                    )
                chunks.append(chunk)
                if on_progress is not None:
                    on_progress(loaded, total)

            forwarded = ForwardedResponse(
                target_url=url,
                endpoint=endpoint.name,
                status_code=response.status_code,
                headers={key.lower(): value for key, value in response.headers.items()},
                content=b"".join(chunks),
                duration_ms=0.0,
            )

        if "text/html" in forwarded.content_type and contains_sensitive_data(forwarded.text):
            forwarded.needs_sanitization = True
            logger.warning("Response from %s contains credential-shaped content", url)

        return forwarded


def _declared_length(response: httpx.Response) -> int | None:
    raw = response.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None
