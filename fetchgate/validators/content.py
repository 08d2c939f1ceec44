"""Response content checks and request-header hygiene.

Detects credential-shaped substrings, script tags, ``javascript:`` links and
inline event handlers in markup, and reduces caller-supplied headers to a
small allowlist. These are defensive content checks, not a security boundary.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_SENSITIVE_PATTERNS = [
    re.compile(r"token[=:]\s*[a-zA-Z0-9_-]+", re.IGNORECASE),
    re.compile(r"api[_-]?key[=:]\s*[a-zA-Z0-9_-]+", re.IGNORECASE),
    re.compile(r"password[=:]\s*[^\s&]+", re.IGNORECASE),
    re.compile(r"secret[=:]\s*[^\s&]+", re.IGNORECASE),
    re.compile(r"authorization[=:]\s*[^\s&]+", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9_-]+", re.IGNORECASE),
    re.compile(r"session[_-]?id[=:]\s*[^\s&]+", re.IGNORECASE),
]

_SCRIPT_TAG = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)

_ALLOWED_HEADERS = {"accept", "accept-language", "content-type", "user-agent", "referer"}
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_MAX_HEADER_VALUE = 1000


@dataclass
class SanitizedContent:
    content: str
    was_modified: bool = False
    removed_patterns: dict[str, int] = field(default_factory=dict)


def _mask(match: re.Match[str]) -> str:
    text = match.group(0)
    parts = re.split(r"[=:]", text, maxsplit=1)
    if len(parts) == 2:
        return f"{parts[0]}=***"
    # "bearer <token>" style: keep the scheme word only
    return text.split()[0] + " ***"


def contains_sensitive_data(text: str) -> bool:
    """True if ``text`` contains a credential-shaped substring."""
    return any(pattern.search(text) for pattern in _SENSITIVE_PATTERNS)


def sanitize_content(text: str) -> SanitizedContent:
    """Mask credential patterns and neutralize script content in markup."""
    result = SanitizedContent(content=text)
    if not text:
        return result

    sanitized = text
    for pattern in _SENSITIVE_PATTERNS:
        sanitized, count = pattern.subn(_mask, sanitized)
        if count:
            result.removed_patterns[pattern.pattern] = count

    sanitized, count = _SCRIPT_TAG.subn("", sanitized)
    if count:
        result.removed_patterns["script tags"] = count

    sanitized, count = _JS_PROTOCOL.subn("javascript-blocked:", sanitized)
    if count:
        result.removed_patterns["javascript protocol"] = count

    sanitized, count = _EVENT_HANDLER.subn("on-event-blocked=", sanitized)
    if count:
        result.removed_patterns["event handlers"] = count

    result.content = sanitized
    result.was_modified = bool(result.removed_patterns)
    return result


def sanitize_headers(headers: dict[str, str] | None) -> dict[str, str]:
    """Keep only allowlisted headers, stripping control characters from values."""
    cleaned: dict[str, str] = {}
    for key, value in (headers or {}).items():
        if key.lower() not in _ALLOWED_HEADERS or not isinstance(value, str):
            continue
        cleaned[key] = _CONTROL_CHARS.sub("", value).strip()[:_MAX_HEADER_VALUE]
    return cleaned
