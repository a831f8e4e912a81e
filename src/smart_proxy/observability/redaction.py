"""Helpers for masking credentials and authorization codes in logs."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Tuple

SENSITIVE_KEYS = {
    "client_secret",
    "client_assertion",
    "code",
    "access_token",
    "refresh_token",
    "id_token",
    "password",
    "authorization",
}


def redact_secret(_: Any) -> str:
    return "[REDACTED]"


def sanitize_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy with sensitive fields masked and empty fields dropped."""

    sanitized: Dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if key.lower() in SENSITIVE_KEYS:
            sanitized[key] = redact_secret(value)
        else:
            sanitized[key] = value
    return sanitized


def sanitize_form(fields: Iterable[Tuple[str, str]]) -> Dict[str, Any]:
    """Sanitize form fields given as (key, value) pairs.

    Repeated keys keep their last value, which is enough for log output.
    """
    return sanitize_payload({key: value for key, value in fields})
