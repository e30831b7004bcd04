"""Telemetry source interface consumed by the engine.

Sources push data through callbacks. Callbacks must be invoked on the
engine's event loop; sources that receive data on other threads hand it
over with ``loop.call_soon_threadsafe`` (see :mod:`fleettrack._mqtt`).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from fleettrack.models.sample import LocationSample
from fleettrack.models.trip import Trip

SamplePayload = LocationSample | Mapping[str, Any]
TripsPayload = Sequence[Trip | Mapping[str, Any] | str]

SampleCallback = Callable[[SamplePayload], None]
TripsCallback = Callable[[TripsPayload], None]


@runtime_checkable
class Subscription(Protocol):
    """Cancellation handle returned by a source subscribe call."""

    def cancel(self) -> None: ...


class TelemetrySource(Protocol):
    """Push-based telemetry source.

    Both subscribe calls raise on failure (typically
    :class:`fleettrack.exceptions.FleetSubscriptionError`); the engine
    retries them with exponential backoff.
    """

    async def subscribe_active_trips(self, on_trips: TripsCallback) -> Subscription:
        """Deliver the full current set of active trips on every change."""
        ...

    async def subscribe_trip(self, trip_id: str, on_sample: SampleCallback) -> Subscription:
        """Deliver location samples for *trip_id* until cancelled."""
        ...


class CallbackSubscription:
    """Subscription that runs *on_cancel* at most once."""

    def __init__(self, on_cancel: Callable[[], None] | None = None, *, name: str = "") -> None:
        self._on_cancel = on_cancel
        self._cancelled = False
        self.name = name

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        on_cancel = self._on_cancel
        self._on_cancel = None
        if on_cancel is not None:
            on_cancel()

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "open"
        return f"<CallbackSubscription {self.name or '?'} {state}>"
