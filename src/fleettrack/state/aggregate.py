"""Fleet-wide aggregation over the state, route and alert collections."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import UTC, datetime

from fleettrack.models.snapshot import FleetSnapshot, Freshness, TripSummary
from fleettrack.models.trip import Trip
from fleettrack.models.user import UNKNOWN_RIDER
from fleettrack.state.alerts import AlertEngine
from fleettrack.state.route import RouteAccumulator
from fleettrack.state.store import LocationStateStore


def _utcnow() -> datetime:
    return datetime.now(UTC)


class FleetAggregator:
    """Builds :class:`FleetSnapshot` views.

    A pure read over in-memory collections; it never performs I/O.
    """

    def __init__(
        self,
        store: LocationStateStore,
        routes: RouteAccumulator,
        alerts: AlertEngine,
        *,
        trips: Mapping[str, Trip] | None = None,
        display_name: Callable[[str], str] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._routes = routes
        self._alerts = alerts
        self._trips: Mapping[str, Trip] = trips if trips is not None else {}
        self._display_name = display_name or (lambda _trip_id: UNKNOWN_RIDER)
        self._clock = clock

    def snapshot(self, now: datetime | None = None) -> FleetSnapshot:
        now = now or self._clock()
        counts = dict.fromkeys(Freshness, 0)
        moving = 0
        speed_total = 0.0
        summaries: list[TripSummary] = []

        for trip_id, state in self._store.all():
            counts[state.freshness] += 1
            if state.is_moving:
                moving += 1
            sample = state.latest_sample
            speed_total += sample.speed

            trip = self._trips.get(trip_id)
            summaries.append(
                TripSummary(
                    trip_id=trip_id,
                    vehicle_id=trip.vehicle_id if trip is not None else None,
                    rider_name=self._display_name(trip_id),
                    freshness=state.freshness,
                    is_moving=state.is_moving,
                    speed=sample.speed,
                    battery_level=sample.battery_level,
                    distance_m=self._routes.distance(trip_id),
                    ride_duration_s=trip.ride_duration_seconds(now) if trip is not None else None,
                    last_update=state.received_at,
                )
            )

        tracked = len(summaries)
        return FleetSnapshot(
            generated_at=now,
            tracked_count=tracked,
            live_count=counts[Freshness.LIVE],
            delayed_count=counts[Freshness.DELAYED],
            offline_count=counts[Freshness.OFFLINE],
            moving_count=moving,
            stationary_count=tracked - moving,
            mean_speed=speed_total / tracked if tracked else 0.0,
            total_distance_m=self._routes.total_distance(),
            alerts=self._alerts.alerts(),
            trips=summaries,
        )
