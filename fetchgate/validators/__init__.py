"""Validators for target URLs, response content and request headers."""

from fetchgate.validators.content import (
    SanitizedContent,
    contains_sensitive_data,
    sanitize_content,
    sanitize_headers,
)
from fetchgate.validators.url_validator import ensure_secure_url, is_secure, unsafe_reason

__all__ = [
    "SanitizedContent",
    "contains_sensitive_data",
    "ensure_secure_url",
    "is_secure",
    "sanitize_content",
    "sanitize_headers",
    "unsafe_reason",
]
