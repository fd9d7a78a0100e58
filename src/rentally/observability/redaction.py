"""Redaction for log context. Customer data must pass through here before it is logged."""

import re
from datetime import date, datetime
from enum import Enum
from typing import Any

_REDACTED = "[REDACTED]"

# Applied in order; phone before tax id so long digit runs are caught whole
_PII_PATTERNS = (
    re.compile(r"\+?\d[\d\s\-()]{8,}\d"),  # phone
    re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"),  # email
    re.compile(r"\b\d{9}\b"),  # Portuguese NIF
)


def redact_string(value: str) -> str:
    """Replace phone numbers, emails and tax ids with a marker."""
    for pattern in _PII_PATTERNS:
        value = pattern.sub(_REDACTED, value)
    return value


def redact_value(value: Any) -> str:
    """String form of ``value`` that is safe to log.

    Containers are summarised by shape only.
    """
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return f"dict(keys={list(value)})"
    if isinstance(value, (list, tuple, set, frozenset)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """``extra_fields`` payload with every value redacted."""
    return {key: redact_value(value) for key, value in kwargs.items()}


def id_prefix(value: str | None, length: int = 8) -> str:
    """First ``length`` characters of an external id (Stripe events, sessions)."""
    return (value or "")[:length]
