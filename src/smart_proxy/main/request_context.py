"""Per-request logging context (correlation id, route) kept in a contextvar."""

from __future__ import annotations

import secrets
from contextvars import ContextVar
from typing import Any, Dict

CORRELATION_ID_HEADER = "X-Correlation-ID"

_request_context: ContextVar[Dict[str, Any]] = ContextVar("proxy_request_context", default={})


def get_request_context() -> Dict[str, Any]:
    """Return a copy of the current request context."""
    context = _request_context.get()
    return dict(context) if context else {}


def set_request_context(**values: Any) -> Dict[str, Any]:
    """Merge provided values into the stored context.

    Passing ``None`` clears the value for that key.
    """
    current = get_request_context()
    for key, value in values.items():
        if value is None:
            current.pop(key, None)
        else:
            current[key] = value
    _request_context.set(current)
    return current


def clear_request_context() -> None:
    _request_context.set({})


def new_correlation_id() -> str:
    return secrets.token_hex(8)
