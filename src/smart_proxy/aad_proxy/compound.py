"""Compound state and code blobs that carry SMART launch context through the IdP.

The IdP only echoes back a single opaque ``state`` and issues a single opaque
``code``. Both are widened here into base64url(JSON) blobs:

- ``CompoundState`` wraps the client's original state together with the
  (still encoded) launch context on the way to the IdP.
- ``CompoundCode`` merges the real IdP code into the launch context on the way
  back to the client, so the token exchange can recover both.

Decoding distinguishes an absent value (the caller decides on a default) from
a present but malformed one, which always raises.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Optional

from smart_proxy.main.exceptions import (
    CodeDecodeError,
    LaunchContextDecodeError,
    StateDecodeError,
)

# Ordered mapping of launch field -> JSON value (patient, encounter, need_patient_banner, ...)
LaunchContext = dict[str, Any]

EMPTY_LAUNCH_CONTEXT = "e30"  # base64url("{}")


def base64url_encode(value: str) -> str:
    """Unpadded base64url of the UTF-8 bytes of ``value``."""
    return base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii").rstrip("=")


def base64url_decode(value: str) -> str:
    """Inverse of :func:`base64url_encode`, padding optional.

    Raises:
        ValueError: The value is not base64url or does not decode to UTF-8.
    """
    padded = value + "=" * (-len(value) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
    except binascii.Error as e:
        raise ValueError(f"Not a base64url value: {e}") from e
    return raw.decode("utf-8")


def _dump_json(value: dict) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _load_json_object(encoded: str) -> dict:
    try:
        decoded = json.loads(base64url_decode(encoded))
    except RecursionError as e:
        raise ValueError("JSON nested too deeply") from e
    if not isinstance(decoded, dict):
        raise ValueError(f"Expected a JSON object, got {type(decoded).__name__}")
    return decoded


def encode_launch_context(launch_context: LaunchContext) -> str:
    return base64url_encode(_dump_json(launch_context))


def decode_launch_context(encoded: Optional[str]) -> LaunchContext:
    """Decode a base64url JSON launch context.

    An absent or empty value is an empty context. Anything else must decode to
    a JSON object or ``LaunchContextDecodeError`` is raised.
    """
    if not encoded:
        return {}

    try:
        return _load_json_object(encoded)
    except ValueError as e:
        raise LaunchContextDecodeError(f"Malformed launch context: {e}") from e


@dataclass(frozen=True)
class CompoundState:
    """The client's state (``s``) and its encoded launch context (``l``)."""

    s: Optional[str]
    l: str = EMPTY_LAUNCH_CONTEXT  # noqa: E741 - wire field name

    def encode(self) -> str:
        return base64url_encode(_dump_json({"s": self.s, "l": self.l}))

    @property
    def launch_context(self) -> LaunchContext:
        return decode_launch_context(self.l)

    @classmethod
    def decode(cls, encoded: str) -> "CompoundState":
        try:
            payload = _load_json_object(encoded)
        except ValueError as e:
            raise StateDecodeError(f"Malformed compound state: {e}") from e

        state = payload.get("s")
        launch = payload.get("l")
        if state is not None and not isinstance(state, str):
            raise StateDecodeError("Compound state field 's' must be a string")
        if launch is not None and not isinstance(launch, str):
            raise StateDecodeError("Compound state field 'l' must be a string")

        return cls(s=state, l=launch or EMPTY_LAUNCH_CONTEXT)


@dataclass(frozen=True)
class CompoundCode:
    """The real IdP authorization code plus the launch context it travels with."""

    code: str
    launch_context: LaunchContext = field(default_factory=dict)

    def to_dict(self) -> dict:
        # The IdP code wins over a launch field that happens to be named "code"
        return {**self.launch_context, "code": self.code}

    def encode(self) -> str:
        return base64url_encode(_dump_json(self.to_dict()))

    @classmethod
    def decode(cls, encoded: str) -> "CompoundCode":
        try:
            payload = _load_json_object(encoded)
        except ValueError as e:
            raise CodeDecodeError(f"Malformed compound code: {e}") from e

        code = payload.pop("code", None)
        if not isinstance(code, str) or not code:
            raise CodeDecodeError("Compound code does not contain an authorization code")

        return cls(code=code, launch_context=payload)
