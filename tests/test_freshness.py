from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import EPOCH

from fleettrack.models.snapshot import Freshness
from fleettrack.state.freshness import classify


@pytest.mark.parametrize(
    ("elapsed", "expected"),
    [
        (0, Freshness.LIVE),
        (29.999, Freshness.LIVE),
        (30, Freshness.DELAYED),
        (119.999, Freshness.DELAYED),
        (120, Freshness.OFFLINE),
        (3600, Freshness.OFFLINE),
    ],
)
def test_classify_boundaries(elapsed: float, expected: Freshness) -> None:
    assert classify(EPOCH, EPOCH + timedelta(seconds=elapsed)) == expected


def test_classify_without_update_is_offline() -> None:
    assert classify(None, EPOCH) == Freshness.OFFLINE


def test_classify_respects_custom_windows() -> None:
    now = EPOCH + timedelta(seconds=45)
    assert classify(EPOCH, now, live_window=60, delayed_window=300) == Freshness.LIVE
    assert classify(EPOCH, now, live_window=10, delayed_window=40) == Freshness.OFFLINE


def test_future_receipt_time_counts_as_live() -> None:
    # Clock adjustments must not produce negative ages.
    assert classify(EPOCH + timedelta(seconds=5), EPOCH) == Freshness.LIVE
