"""Structured JSON logging configuration.

Configures Python logging to emit JSON-formatted log entries with required
fields: timestamp, level, logger, message, request_id. The request id is read
from ``request_id_var``, which the request id middleware binds while a
request is served; tasks started during a request inherit it. Dispatch and
transfer fields are added contextually through ``extra`` (task_id, endpoint,
target_url, error_kind, attempt, duration_ms).

Credential-shaped values are redacted from messages and exception text.
"""

from __future__ import annotations

import json
import logging
import re
from contextvars import ContextVar
from datetime import datetime, timezone

# Id of the HTTP request being served in the current context
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Patterns that should be redacted from log output
_SENSITIVE_PATTERNS = re.compile(
    r"(api.key|secret|password|token|session.id|authorization)[\s]*[=:]\s*\S+"
    r"|bearer\s+\S+",
    re.IGNORECASE,
)

_EXTRA_FIELDS = ("task_id", "endpoint", "target_url", "error_kind", "attempt", "duration_ms")


class JsonFormatter(logging.Formatter):
    """Formats log records as JSON with structured fields.

    Each entry contains at minimum: timestamp, level, logger, message and
    request_id. Additional fields can be attached via the ``extra`` dict on
    log calls.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self._sanitize(record.getMessage()),
            "request_id": getattr(record, "request_id", None) or request_id_var.get(),
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                value = getattr(record, name)
                entry[name] = self._sanitize(value) if isinstance(value, str) else value

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self._sanitize(self.formatException(record.exc_info))

        return json.dumps(entry, default=str)

    @staticmethod
    def _sanitize(text: str) -> str:
        """Remove sensitive values from log text."""
        return _SENSITIVE_PATTERNS.sub("[REDACTED]", text)


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger with JSON formatting.

    Parameters
    ----------
    level:
        Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
