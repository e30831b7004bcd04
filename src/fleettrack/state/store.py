"""Deterministic in-memory trip state store.

This is the only component allowed to mutate per-trip tracking state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict

from fleettrack.models.sample import LocationSample
from fleettrack.models.snapshot import Freshness
from fleettrack.state.freshness import classify
from fleettrack.state.policy import is_moving, should_accept_sample

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TripState(BaseModel):
    """Derived live state for one tracked trip.

    ``received_at`` is the engine clock at receipt of ``latest_sample``;
    every time-based decision is measured from it rather than from the
    device timestamp. ``last_device_timestamp`` is the newest timestamp a
    device actually reported, used to order later device-stamped samples.
    """

    model_config = ConfigDict(extra="forbid")

    trip_id: str
    latest_sample: LocationSample
    is_moving: bool
    freshness: Freshness
    received_at: datetime
    stationary_since: datetime | None = None
    last_device_timestamp: datetime | None = None
    samples_applied: int = 1


class LocationStateStore:
    """In-memory table of trip id → :class:`TripState`.

    Samples are only accepted for trips that have been registered with
    :meth:`track`; anything else (a trip whose subscription has not opened
    yet, or one that was already removed) is dropped.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        moving_threshold: float = 0.5,
        live_window: float = 30.0,
        delayed_window: float = 120.0,
    ) -> None:
        self._clock = clock
        self._moving_threshold = moving_threshold
        self._live_window = live_window
        self._delayed_window = delayed_window
        self._tracked: set[str] = set()
        self._states: dict[str, TripState] = {}

    def track(self, trip_id: str) -> None:
        self._tracked.add(trip_id)

    def untrack(self, trip_id: str) -> None:
        self._tracked.discard(trip_id)
        self._states.pop(trip_id, None)

    def is_tracked(self, trip_id: str) -> bool:
        return trip_id in self._tracked

    def apply(self, sample: LocationSample) -> bool:
        """Apply a sample; return ``False`` when it was dropped."""
        trip_id = sample.trip_id
        if trip_id not in self._tracked:
            _logger.debug("Dropping sample for untracked trip=%s", trip_id)
            return False

        current = self._states.get(trip_id)
        if not should_accept_sample(
            cached_timestamp=self._ordering_timestamp(current, sample),
            incoming_timestamp=sample.timestamp,
        ):
            _logger.debug("Dropping stale sample trip=%s ts=%s", trip_id, sample.timestamp.isoformat())
            return False

        now = self._clock()
        moving = is_moving(sample.speed, self._moving_threshold)

        stationary_since: datetime | None = None
        if not moving:
            if current is not None and not current.is_moving and current.stationary_since is not None:
                stationary_since = current.stationary_since
            else:
                stationary_since = now

        device_timestamp: datetime | None = sample.timestamp
        if sample.timestamp_estimated:
            device_timestamp = current.last_device_timestamp if current is not None else None

        self._states[trip_id] = TripState(
            trip_id=trip_id,
            latest_sample=sample,
            is_moving=moving,
            freshness=self._classify(now, now),
            received_at=now,
            stationary_since=stationary_since,
            last_device_timestamp=device_timestamp,
            samples_applied=(current.samples_applied + 1) if current is not None else 1,
        )
        return True

    @staticmethod
    def _ordering_timestamp(current: TripState | None, sample: LocationSample) -> datetime | None:
        # Receipt-stamped samples are ordered on the engine clock, device-stamped
        # ones against the last device-reported time only.
        if current is None:
            return None
        if sample.timestamp_estimated:
            return current.received_at
        return current.last_device_timestamp

    def _classify(self, received_at: datetime, now: datetime) -> Freshness:
        return classify(
            received_at,
            now,
            live_window=self._live_window,
            delayed_window=self._delayed_window,
        )

    def refresh(self, now: datetime | None = None) -> list[tuple[str, Freshness, Freshness]]:
        """Re-classify every trip against *now*.

        Returns ``(trip_id, previous, current)`` for trips whose freshness
        changed.
        """
        now = now or self._clock()
        changes: list[tuple[str, Freshness, Freshness]] = []
        for trip_id, state in self._states.items():
            freshness = self._classify(state.received_at, now)
            if freshness != state.freshness:
                changes.append((trip_id, state.freshness, freshness))
                state.freshness = freshness
        return changes

    def get(self, trip_id: str) -> TripState | None:
        """Return a copy of the trip's state, or ``None`` if untracked."""
        state = self._states.get(trip_id)
        return state.model_copy() if state is not None else None

    def all(self) -> Iterator[tuple[str, TripState]]:
        """Iterate ``(trip_id, state)`` copies in trip id order."""
        for trip_id in sorted(self._states):
            yield trip_id, self._states[trip_id].model_copy()

    def __len__(self) -> int:
        return len(self._states)
