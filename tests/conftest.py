from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from fleettrack.exceptions import FleetSubscriptionError
from fleettrack.source import CallbackSubscription, SampleCallback, TripsCallback

EPOCH = datetime(2026, 1, 1, tzinfo=UTC)


class FakeClock:
    """Manually advanced engine clock."""

    def __init__(self, start: datetime = EPOCH) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now

    def at(self, seconds: float) -> datetime:
        """Absolute offset from the epoch used by these tests."""
        self.now = EPOCH + timedelta(seconds=seconds)
        return self.now


class FakeSource:
    """In-memory TelemetrySource.

    ``failures[trip_id] = n`` makes the next *n* subscribe calls for that
    trip raise.
    """

    def __init__(self) -> None:
        self.callbacks: dict[str, SampleCallback] = {}
        self.subscribe_calls: list[str] = []
        self.cancelled: list[str] = []
        self.failures: dict[str, int] = {}
        self.feed_failures = 0
        self.on_trips: TripsCallback | None = None
        self.feed_cancelled = False

    async def subscribe_active_trips(self, on_trips: TripsCallback) -> CallbackSubscription:
        if self.feed_failures > 0:
            self.feed_failures -= 1
            raise FleetSubscriptionError("feed unavailable")
        self.on_trips = on_trips

        def cancel() -> None:
            self.feed_cancelled = True

        return CallbackSubscription(cancel, name="active-trips")

    async def subscribe_trip(self, trip_id: str, on_sample: SampleCallback) -> CallbackSubscription:
        self.subscribe_calls.append(trip_id)
        if self.failures.get(trip_id, 0) > 0:
            self.failures[trip_id] -= 1
            raise FleetSubscriptionError("broker unavailable", trip_id=trip_id)
        self.callbacks[trip_id] = on_sample

        def cancel() -> None:
            self.cancelled.append(trip_id)
            if self.callbacks.get(trip_id) is on_sample:
                del self.callbacks[trip_id]

        return CallbackSubscription(cancel, name=trip_id)

    def emit(self, trip_id: str, payload: Any) -> None:
        self.callbacks[trip_id](payload)


class RecordingSleep:
    """Sleep stand-in that records delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def sample(
    seconds: float,
    *,
    lat: float = 52.3700,
    lng: float = 4.8900,
    speed: float = 0.0,
    battery: float | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Feed-shaped sample payload at *seconds* after the test epoch."""
    payload: dict[str, Any] = {
        "latitude": lat,
        "longitude": lng,
        "speed": speed,
        "timestamp": (EPOCH + timedelta(seconds=seconds)).timestamp(),
    }
    if battery is not None:
        payload["batteryLevel"] = battery
    payload.update(extra)
    return payload


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


