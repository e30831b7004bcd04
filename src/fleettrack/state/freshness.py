"""Freshness classification.

Freshness depends on wall-clock time passing, so the engine re-runs
:func:`classify` on a periodic tick as well as on sample arrival.
"""

from __future__ import annotations

from datetime import datetime

from fleettrack.models.snapshot import Freshness
from fleettrack.state.policy import elapsed_seconds


def classify_elapsed(elapsed: float, *, live_window: float, delayed_window: float) -> Freshness:
    if elapsed < live_window:
        return Freshness.LIVE
    if elapsed < delayed_window:
        return Freshness.DELAYED
    return Freshness.OFFLINE


def classify(
    last_update: datetime | None,
    now: datetime,
    *,
    live_window: float = 30.0,
    delayed_window: float = 120.0,
) -> Freshness:
    """Classify data recency.

    ``elapsed < live_window`` is live, ``live_window <= elapsed <
    delayed_window`` is delayed, anything older (or no update at all) is
    offline. *last_update* is the engine-clock receipt time, not the
    device timestamp, so device clock skew does not matter.
    """
    if last_update is None:
        return Freshness.OFFLINE
    return classify_elapsed(
        elapsed_seconds(last_update, now),
        live_window=live_window,
        delayed_window=delayed_window,
    )
