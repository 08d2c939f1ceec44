"""Error taxonomy value types shared by the classifier and the error hierarchy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Stable failure kinds surfaced to callers."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    CORS = "cors"
    SSL = "ssl"
    NOT_FOUND = "notfound"
    AUTH = "auth"
    SERVER = "server"
    UNSAFE_TARGET = "unsafe_target"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ErrorClassification:
    """Derived view of a failure: what it was, and whether retrying can help."""

    kind: ErrorKind
    retryable: bool
    severity: Severity

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "retryable": self.retryable,
            "severity": self.severity.value,
        }
