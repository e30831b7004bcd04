"""Route reconstruction and cumulative distance."""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field

from fleettrack.models.sample import LocationSample

_logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in metres between two WGS84 points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Rounding can push a slightly past 1.0 for antipodal points.
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def sample_distance_m(a: LocationSample, b: LocationSample) -> float:
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


@dataclass
class RouteRecord:
    """Bounded, time-ordered sample history for one trip."""

    capacity: int
    samples: deque[LocationSample] = field(init=False)
    cumulative_distance_m: float = 0.0
    noise_segments: int = 0

    def __post_init__(self) -> None:
        self.samples = deque(maxlen=self.capacity)

    @property
    def last(self) -> LocationSample | None:
        return self.samples[-1] if self.samples else None


class RouteAccumulator:
    """Per-trip route histories with incremental distance.

    Parameters
    ----------
    capacity : int
        Samples retained per trip; the oldest is evicted beyond this.
    max_plausible_speed : float
        Implied speed (m/s) above which a segment is GPS noise.
    max_jump_meters : float
        Segment length above which a segment is GPS noise.
    """

    def __init__(
        self,
        *,
        capacity: int = 100,
        max_plausible_speed: float = 50.0,
        max_jump_meters: float = 100_000.0,
    ) -> None:
        self._capacity = capacity
        self._max_plausible_speed = max_plausible_speed
        self._max_jump_meters = max_jump_meters
        self._routes: dict[str, RouteRecord] = {}

    def _is_plausible(self, distance_m: float, prev: LocationSample, sample: LocationSample) -> bool:
        if distance_m == 0.0:
            return True
        if distance_m > self._max_jump_meters:
            return False
        dt = (sample.timestamp - prev.timestamp).total_seconds()
        if dt <= 0:
            return False
        return distance_m / dt <= self._max_plausible_speed

    def append(self, trip_id: str, sample: LocationSample) -> float:
        """Store *sample* and return the distance added to the trip total."""
        record = self._routes.get(trip_id)
        if record is None:
            record = RouteRecord(capacity=self._capacity)
            self._routes[trip_id] = record

        added = 0.0
        prev = record.last
        if prev is not None:
            segment = sample_distance_m(prev, sample)
            if self._is_plausible(segment, prev, sample):
                added = segment
                record.cumulative_distance_m += segment
            else:
                record.noise_segments += 1
                _logger.debug(
                    "Excluded implausible segment trip=%s distance_m=%.1f",
                    trip_id,
                    segment,
                )
        record.samples.append(sample)
        return added

    def get(self, trip_id: str) -> RouteRecord | None:
        return self._routes.get(trip_id)

    def distance(self, trip_id: str) -> float:
        record = self._routes.get(trip_id)
        return record.cumulative_distance_m if record is not None else 0.0

    def route(self, trip_id: str) -> list[LocationSample]:
        record = self._routes.get(trip_id)
        return list(record.samples) if record is not None else []

    def total_distance(self) -> float:
        return sum(record.cumulative_distance_m for record in self._routes.values())

    def discard(self, trip_id: str) -> None:
        self._routes.pop(trip_id, None)

    def __contains__(self, trip_id: object) -> bool:
        return trip_id in self._routes
