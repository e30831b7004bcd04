"""Real-time fleet tracking and alerting engine."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from fleettrack.config import TrackerConfig
from fleettrack.directory import CachingUserDirectory, UserDirectory
from fleettrack.ingestion.samples import parse_location_sample, parse_trips
from fleettrack.models.alert import Alert
from fleettrack.models.sample import LocationSample
from fleettrack.models.snapshot import FleetSnapshot
from fleettrack.models.trip import Trip
from fleettrack.source import SamplePayload, TelemetrySource, TripsPayload
from fleettrack.state.aggregate import FleetAggregator
from fleettrack.state.alerts import AlertEngine
from fleettrack.state.route import RouteAccumulator
from fleettrack.state.store import LocationStateStore, TripState
from fleettrack.subscriptions import SubscriptionManager

_logger = logging.getLogger(__name__)

SnapshotObserver = Callable[[FleetSnapshot], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class FleetEngine:
    """Tracks active trips, classifies freshness and raises alerts.

    Usage::

        async with FleetEngine(source, config=TrackerConfig.from_env()) as engine:
            engine.subscribe(print)
            await asyncio.Event().wait()

    Every mutation happens on the event loop the engine was started on:
    the loop is the single writer for the state store, route histories and
    the alert set. Telemetry sources must invoke their callbacks on that
    loop (thread-based sources use ``call_soon_threadsafe``).
    """

    def __init__(
        self,
        source: TelemetrySource,
        *,
        config: TrackerConfig | None = None,
        directory: UserDirectory | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config or TrackerConfig()
        self._clock = clock
        cfg = self._config

        self._trips: dict[str, Trip] = {}
        self._users = CachingUserDirectory(
            directory,
            placeholder_name=cfg.unknown_user_name,
            max_entries=cfg.user_cache_size,
            retry_after=cfg.user_lookup_retry_after,
        )
        self._store = LocationStateStore(
            clock=clock,
            moving_threshold=cfg.moving_threshold,
            live_window=cfg.live_window,
            delayed_window=cfg.delayed_window,
        )
        self._routes = RouteAccumulator(
            capacity=cfg.history_capacity,
            max_plausible_speed=cfg.max_plausible_speed,
            max_jump_meters=cfg.max_jump_meters,
        )
        self._alerts = AlertEngine(
            clock=clock,
            offline_alert_window=cfg.effective_offline_alert_window,
            stationary_window=cfg.stationary_window,
            low_battery_threshold=cfg.low_battery_threshold,
            display_name=self.display_name,
        )
        self._aggregator = FleetAggregator(
            self._store,
            self._routes,
            self._alerts,
            trips=self._trips,
            display_name=self.display_name,
            clock=clock,
        )
        self._subscriptions = SubscriptionManager(
            source,
            on_opened=self._on_trip_opened,
            on_closed=self._on_trip_closed,
            on_sample=self.ingest,
            backoff=cfg.backoff_delay,
            sleep=sleep,
        )
        self._observers: list[SnapshotObserver] = []
        self._tick_task: asyncio.Task[None] | None = None
        self._lookups: dict[str, asyncio.Task[Any]] = {}
        self._running = False

    @property
    def config(self) -> TrackerConfig:
        return self._config

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FleetEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    async def start(self, *, watch_active_trips: bool = True) -> None:
        """Start the periodic tick and (optionally) the active-trip feed.

        With ``watch_active_trips=False`` the caller drives :meth:`reconcile`
        or :meth:`update_trips` itself.
        """
        if self._running:
            return
        self._running = True
        self._tick_task = asyncio.create_task(self._tick_loop(), name="fleettrack-tick")
        if watch_active_trips:
            self._subscriptions.watch_active_trips(self.update_trips)
        _logger.debug("Engine started tick_interval=%.1fs", self._config.tick_interval)

    async def stop(self) -> None:
        """Stop ticking, cancel every subscription and drop all trip state."""
        if not self._running:
            return
        self._running = False
        tick_task = self._tick_task
        self._tick_task = None
        if tick_task is not None:
            tick_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await tick_task

        await self._subscriptions.close()

        lookups = list(self._lookups.values())
        self._lookups.clear()
        for task in lookups:
            task.cancel()
        if lookups:
            await asyncio.gather(*lookups, return_exceptions=True)
        _logger.debug("Engine stopped")

    async def _tick_loop(self) -> None:
        interval = self._config.tick_interval
        while True:
            await asyncio.sleep(interval)
            try:
                self.tick()
            except Exception:
                _logger.exception("Tick failed")

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def update_trips(self, trips: TripsPayload) -> None:
        """Handle an active-trip feed update.

        Trips whose status is not ``active`` are treated as absent.
        """
        active = [trip for trip in parse_trips(trips) if trip.is_active]
        for trip in active:
            self._trips[trip.id] = trip
        self.reconcile(trip.id for trip in active)
        for trip in active:
            if trip.user_id:
                self._lookup_user(trip.user_id)

    def reconcile(self, active_trip_ids: Iterable[str]) -> tuple[set[str], set[str]]:
        """Align subscriptions and state with the active trip set.

        Returns the ``(added, removed)`` trip id sets.
        """
        added, removed = self._subscriptions.reconcile(active_trip_ids)
        if removed:
            self._notify()
        return added, removed

    def ingest(self, trip_id: str, payload: SamplePayload) -> bool:
        """Apply one telemetry payload; return ``False`` when it was dropped."""
        now = self._clock()
        sample = parse_location_sample(trip_id, payload, received_at=now)
        if sample is None:
            return False
        if not self._store.apply(sample):
            return False

        self._routes.append(trip_id, sample)
        state = self._store.get(trip_id)
        if state is not None:
            self._alerts.evaluate(trip_id, state, now)
        self._notify()
        return True

    def tick(self) -> FleetSnapshot:
        """Re-classify freshness and re-run alert rules for every trip."""
        now = self._clock()
        for trip_id, previous, current in self._store.refresh(now):
            _logger.debug("Freshness trip=%s %s -> %s", trip_id, previous, current)
        for trip_id, state in self._store.all():
            self._alerts.evaluate(trip_id, state, now)
        snapshot = self._aggregator.snapshot(now)
        self._notify(snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Subscription callbacks
    # ------------------------------------------------------------------

    def _on_trip_opened(self, trip_id: str) -> None:
        self._store.track(trip_id)

    def _on_trip_closed(self, trip_id: str) -> None:
        self._store.untrack(trip_id)
        self._routes.discard(trip_id)
        self._alerts.discard(trip_id)
        trip = self._trips.pop(trip_id, None)
        if trip is not None and trip.user_id:
            if not any(other.user_id == trip.user_id for other in self._trips.values()):
                self._users.forget(trip.user_id)

    # ------------------------------------------------------------------
    # Display enrichment
    # ------------------------------------------------------------------

    def _lookup_user(self, user_id: str) -> None:
        if self._users.cached(user_id) is not None or user_id in self._lookups:
            return
        if self._users.backing_off(user_id):
            return
        task = asyncio.create_task(self._users.get(user_id), name=f"fleettrack-user-{user_id}")
        self._lookups[user_id] = task
        task.add_done_callback(lambda _t: self._lookups.pop(user_id, None))

    def display_name(self, trip_id: str) -> str:
        """Rider name for *trip_id*, or the configured placeholder."""
        trip = self._trips.get(trip_id)
        if trip is not None and trip.user_id:
            profile = self._users.cached(trip.user_id)
            if profile is not None:
                return profile.name
        return self._config.unknown_user_name

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    def subscribe(self, observer: SnapshotObserver) -> Callable[[], None]:
        """Register *observer* for snapshots after each tick or applied sample.

        Returns a callable that removes the observer.
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, snapshot: FleetSnapshot | None = None) -> None:
        if not self._observers:
            return
        if snapshot is None:
            snapshot = self._aggregator.snapshot()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                _logger.warning("Snapshot observer failed", exc_info=True)

    def snapshot(self) -> FleetSnapshot:
        return self._aggregator.snapshot()

    def get_trip_state(self, trip_id: str) -> TripState | None:
        return self._store.get(trip_id)

    def get_route(self, trip_id: str) -> list[LocationSample]:
        return self._routes.route(trip_id)

    def get_trip(self, trip_id: str) -> Trip | None:
        return self._trips.get(trip_id)

    def get_alerts(self, trip_id: str | None = None) -> list[Alert]:
        if trip_id is None:
            return self._alerts.alerts()
        return self._alerts.for_trip(trip_id)

    def is_subscribed(self, trip_id: str) -> bool:
        return self._subscriptions.is_open(trip_id)
