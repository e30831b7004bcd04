"""Deterministic sample acceptance policy.

This module contains *no* payload parsing. The ingestion/Pydantic boundary
is responsible for producing validated :class:`LocationSample` objects.
"""

from __future__ import annotations

from datetime import datetime


def should_accept_sample(*, cached_timestamp: datetime | None, incoming_timestamp: datetime) -> bool:
    """Decide whether an incoming sample replaces the cached one.

    Samples are applied in arrival order and never reordered: anything not
    strictly newer than what is stored (duplicate or out-of-order delivery)
    is dropped.
    """
    if cached_timestamp is None:
        return True
    return incoming_timestamp > cached_timestamp


def is_moving(speed: float, threshold: float) -> bool:
    return speed > threshold


def elapsed_seconds(since: datetime, now: datetime) -> float:
    """Seconds from *since* to *now*, never negative."""
    return max(0.0, (now - since).total_seconds())
