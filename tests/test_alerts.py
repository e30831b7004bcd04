from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from conftest import EPOCH

from fleettrack.models.alert import AlertSeverity, AlertType, alert_id
from fleettrack.models.sample import LocationSample
from fleettrack.models.snapshot import Freshness
from fleettrack.state.alerts import AlertEngine, format_window
from fleettrack.state.store import TripState


def _at(seconds: float) -> datetime:
    return EPOCH + timedelta(seconds=seconds)


def _state(
    *,
    received: float = 0,
    freshness: Freshness = Freshness.LIVE,
    moving: bool = True,
    stationary_since: float | None = None,
    battery: float | None = None,
) -> TripState:
    return TripState(
        trip_id="r1",
        latest_sample=LocationSample(
            trip_id="r1",
            latitude=52.37,
            longitude=4.89,
            speed=5.0 if moving else 0.0,
            battery_level=battery,
            timestamp=_at(received),
        ),
        is_moving=moving,
        freshness=freshness,
        received_at=_at(received),
        stationary_since=_at(stationary_since) if stationary_since is not None else None,
    )


def test_low_battery_raised_and_cleared() -> None:
    engine = AlertEngine(display_name=lambda _trip_id: "Ada")

    engine.evaluate("r1", _state(battery=15), _at(0))
    alert = engine.get(AlertType.LOW_BATTERY, "r1")
    assert alert is not None
    assert alert.severity == AlertSeverity.WARNING
    assert alert.message == "Ada's vehicle battery is low (15%)"

    engine.evaluate("r1", _state(battery=20), _at(5))
    assert engine.get(AlertType.LOW_BATTERY, "r1") is None


def test_unknown_battery_does_not_alert() -> None:
    engine = AlertEngine()
    engine.evaluate("r1", _state(battery=None), _at(0))
    assert len(engine) == 0


def test_reraising_keeps_single_entry_and_updates_raised_at() -> None:
    engine = AlertEngine()

    engine.evaluate("r1", _state(battery=10), _at(0))
    engine.evaluate("r1", _state(battery=10), _at(5))

    assert len(engine) == 1
    alert = engine.get(AlertType.LOW_BATTERY, "r1")
    assert alert is not None
    assert alert.id == alert_id(AlertType.LOW_BATTERY, "r1")
    assert alert.raised_at == _at(5)
    assert alert.first_raised_at == _at(0)


def test_offline_alert_uses_offline_window() -> None:
    engine = AlertEngine(offline_alert_window=300, display_name=lambda _trip_id: "Ada")

    engine.evaluate("r1", _state(freshness=Freshness.OFFLINE), _at(200))
    assert engine.get(AlertType.OFFLINE, "r1") is None

    engine.evaluate("r1", _state(freshness=Freshness.OFFLINE), _at(300))
    alert = engine.get(AlertType.OFFLINE, "r1")
    assert alert is not None
    assert alert.severity == AlertSeverity.DANGER
    assert alert.message == "Ada has been offline for more than 5 minutes"


def test_offline_alert_clears_when_trip_reports_again() -> None:
    engine = AlertEngine()
    engine.evaluate("r1", _state(freshness=Freshness.OFFLINE), _at(500))
    engine.evaluate("r1", _state(received=500, freshness=Freshness.LIVE), _at(500))

    assert engine.get(AlertType.OFFLINE, "r1") is None


def test_stationary_requires_strictly_longer_than_window() -> None:
    engine = AlertEngine(stationary_window=600)
    state = _state(received=600, moving=False, stationary_since=0)

    engine.evaluate("r1", state, _at(600))
    assert engine.get(AlertType.STATIONARY, "r1") is None

    engine.evaluate("r1", state, _at(601))
    assert engine.get(AlertType.STATIONARY, "r1") is not None


def test_stationary_is_suppressed_while_offline() -> None:
    engine = AlertEngine(stationary_window=600)
    state = _state(moving=False, stationary_since=0, freshness=Freshness.OFFLINE)

    engine.evaluate("r1", state, _at(700))

    assert engine.get(AlertType.STATIONARY, "r1") is None
    assert engine.get(AlertType.OFFLINE, "r1") is not None


def test_rules_are_independent() -> None:
    engine = AlertEngine(stationary_window=60)
    state = _state(received=100, moving=False, stationary_since=0, battery=5)

    engine.evaluate("r1", state, _at(100))

    assert {alert.type for alert in engine.for_trip("r1")} == {AlertType.LOW_BATTERY, AlertType.STATIONARY}


def test_alerts_are_sorted_newest_first() -> None:
    engine = AlertEngine()
    engine.evaluate("r1", _state(battery=5), _at(0))
    engine.evaluate("r2", _state(battery=5), _at(10))

    assert [alert.trip_id for alert in engine.alerts()] == ["r2", "r1"]


def test_discard_drops_every_alert_for_trip() -> None:
    engine = AlertEngine(stationary_window=60)
    engine.evaluate("r1", _state(received=100, moving=False, stationary_since=0, battery=5), _at(100))
    engine.discard("r1")

    assert engine.for_trip("r1") == []


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [
        (45, "45 seconds"),
        (60, "1 minute"),
        (120, "2 minutes"),
        (90, "1.5 minutes"),
    ],
)
def test_format_window(seconds: float, expected: str) -> None:
    assert format_window(seconds) == expected
