"""Helpers for safe debug logging.

Feed payloads and directory responses can carry rider contact details and
broker credentials. This module provides a small utility to redact those
fields before they are logged.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "token",
        "accesstoken",
        "authorization",
        "cookie",
        # Rider PII
        "contact",
        "email",
        "phone",
        "phonenumber",
        "address",
    }
)


def _is_sensitive(key: str) -> bool:
    return key.replace("_", "").lower() in _SENSITIVE_VALUE_KEYS


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for log output.

    Pydantic models are dumped first, so ``redact_for_log(sample)`` is safe.
    """
    if _depth > 10:
        return "<max-depth>"

    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            if _is_sensitive(key):
                redacted[key] = "<redacted>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
