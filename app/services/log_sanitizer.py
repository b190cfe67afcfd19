"""Scrub credentials and bulky text out of structured log payloads.

GitHub tokens, LLM keys and Supabase keys travel through request headers and
exception messages, and READMEs or LLM replies can be hundreds of kilobytes.
Everything passed as `extra=` goes through `sanitize_log_extra` first.
"""

from __future__ import annotations

import re
from typing import Any, Optional

MASK = "***REDACTED***"

# Field names that always carry a credential
SECRET_FIELD_MARKERS = frozenset({"authorization", "token", "api_key", "apikey", "secret", "password", "cookie"})
# Field names that carry README, prompt or response bodies
BODY_FIELD_MARKERS = frozenset({"body", "raw", "readme", "content", "payload", "response", "markdown", "prompt"})

_CREDENTIAL_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[^\s,;]+"),
    re.compile(r"(?i)(token\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"(?i)(access_token=)[^&\s]+"),
    re.compile(r"(?i)(api[_-]?key\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"\b(gh[pousr]_)[A-Za-z0-9]{8,}"),
    re.compile(r"\b(github_pat_)[A-Za-z0-9_]{8,}"),
    re.compile(r"(?i)\b(sk-)[A-Za-z0-9_\-]{8,}"),
)


def _field_matches(field: str, markers: frozenset[str]) -> bool:
    name = field.lower()
    return any(marker in name for marker in markers)


def mask_credentials(text: str) -> str:
    for pattern in _CREDENTIAL_PATTERNS:
        text = pattern.sub(rf"\1{MASK}", text)
    return text


def summarize_body(text: str) -> str:
    """Replace a body with its length so logs stay small."""
    if not text.strip():
        return ""
    return f"<omitted body: {len(text)} chars>"


def sanitize_for_log(value: Any, *, key: Optional[str] = None) -> Any:
    """Return a sanitized copy of `value`; `key` names the field it came from."""

    if key is not None and _field_matches(key, SECRET_FIELD_MARKERS):
        return MASK
    if isinstance(value, str):
        if key is not None and _field_matches(key, BODY_FIELD_MARKERS):
            return summarize_body(value)
        return mask_credentials(value)
    if isinstance(value, dict):
        return {str(field): sanitize_for_log(item, key=str(field)) for field, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_log(item, key=key) for item in value]
    return value


def sanitize_log_extra(**fields: Any) -> dict[str, Any]:
    """Build an `extra=` mapping for `logger.*` calls."""
    return {name: sanitize_for_log(value, key=name) for name, value in fields.items()}
