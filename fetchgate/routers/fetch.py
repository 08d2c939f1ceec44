"""Synchronous content fetch endpoint.

- POST /api/v1/fetch — fetch a target through the endpoint pool and return
  its content. Retryable failures are retried with backoff before the
  request fails.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from fastapi import APIRouter

from fetchgate.models.requests import FetchRequest
from fetchgate.models.responses import ApiResponse
from fetchgate.validators.content import sanitize_content

if TYPE_CHECKING:
    from fetchgate.context import GatewayContext

logger = logging.getLogger(__name__)


def create_fetch_router(*, context: GatewayContext) -> APIRouter:
    """Factory that creates the fetch router with injected dependencies."""

    fetch_router = APIRouter(prefix="/api/v1", tags=["fetch"])

    @fetch_router.post("/fetch")
    async def fetch(body: FetchRequest) -> dict:
        operation_id = f"fetch-{uuid.uuid4()}"

        async def work():
            return await context.dispatcher.forward(body.target, headers=body.headers)

        response = await context.retry.run(operation_id, work)

        content = response.text
        removed_patterns: dict[str, int] = {}
        sanitized = False
        if body.sanitize and response.needs_sanitization:
            result = sanitize_content(content)
            content = result.content
            sanitized = result.was_modified
            removed_patterns = result.removed_patterns

        return ApiResponse(
            success=True,
            data={
                "target_url": response.target_url,
                "endpoint": response.endpoint,
                "status_code": response.status_code,
                "content_type": response.content_type,
                "content": content,
                "sanitized": sanitized,
                "removed_patterns": removed_patterns,
            },
            meta={
                "duration_ms": round(response.duration_ms, 1),
                "endpoints_tried": response.attempts,
            },
        ).model_dump()

    return fetch_router
