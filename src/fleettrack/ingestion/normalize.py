"""Normalization helpers.

Centralizes defensive parsing of feed values.
"""

from __future__ import annotations

import math
from typing import Any


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--":
        return None
    if isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def float_or_zero(value: Any) -> float:
    parsed = safe_float(value)
    return 0.0 if parsed is None else parsed


def is_valid_coordinate(latitude: float | None, longitude: float | None) -> bool:
    """Return True for a usable WGS84 coordinate pair."""
    if latitude is None or longitude is None:
        return False
    return abs(latitude) <= 90.0 and abs(longitude) <= 180.0


def normalize_timestamp_seconds(value: Any) -> float | None:
    """Normalize feed timestamps to epoch seconds.

    - Empty/missing -> None
    - <= 0 or non-finite -> None
    - Milliseconds (> 1e11) -> seconds
    """

    if value is None or value == "":
        return None
    try:
        ts = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(ts) or ts <= 0:
        return None
    if ts > 1e11:
        ts /= 1000.0
    return ts
