"""Per-trip subscription lifecycle.

Owns:
- the desired set of active trip ids
- opening telemetry subscriptions (with exponential backoff on failure)
- cancelling each subscription exactly once when its trip goes away
- dropping samples delivered through a subscription that is no longer current
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from fleettrack.source import (
    CallbackSubscription,
    SamplePayload,
    Subscription,
    TelemetrySource,
    TripsCallback,
)

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _OpenSubscription:
    generation: int
    handle: CallbackSubscription


class SubscriptionManager:
    """Keeps one telemetry subscription per active trip.

    All methods must be called on the event loop that runs the engine.

    Parameters
    ----------
    source : TelemetrySource
        Where subscriptions are opened.
    on_opened : callable
        Called with the trip id once its subscription is open; the trip
        becomes tracked from that point.
    on_closed : callable
        Called with the trip id after its subscription was cancelled (or
        its pending open abandoned); derived state must be dropped.
    on_sample : callable
        Called with ``(trip_id, payload)`` for samples from a current
        subscription.
    backoff : callable
        Maps the 1-based failed attempt number to a retry delay in seconds.
    sleep : callable
        Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        source: TelemetrySource,
        *,
        on_opened: Callable[[str], None],
        on_closed: Callable[[str], None],
        on_sample: Callable[[str, SamplePayload], None],
        backoff: Callable[[int], float],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self._on_opened = on_opened
        self._on_closed = on_closed
        self._on_sample = on_sample
        self._backoff = backoff
        self._sleep = sleep
        self._generations = itertools.count(1)
        self._desired: set[str] = set()
        self._open: dict[str, _OpenSubscription] = {}
        self._pending: dict[str, asyncio.Task[None]] = {}
        self._feed: CallbackSubscription | None = None
        self._feed_task: asyncio.Task[None] | None = None

    @property
    def desired(self) -> frozenset[str]:
        return frozenset(self._desired)

    def is_open(self, trip_id: str) -> bool:
        return trip_id in self._open

    def is_pending(self, trip_id: str) -> bool:
        return trip_id in self._pending

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile(self, active_trip_ids: Iterable[str]) -> tuple[set[str], set[str]]:
        """Align subscriptions with *active_trip_ids*.

        Returns the ``(added, removed)`` id sets. An unchanged set performs
        no subscribe or unsubscribe calls.
        """
        active = {str(trip_id) for trip_id in active_trip_ids}
        added = active - self._desired
        removed = self._desired - active
        if not added and not removed:
            return added, removed

        self._desired = active
        _logger.debug("Reconcile active=%d added=%d removed=%d", len(active), len(added), len(removed))
        for trip_id in sorted(removed):
            self._close(trip_id)
        for trip_id in sorted(added):
            self._pending[trip_id] = asyncio.create_task(
                self._open_with_retry(trip_id),
                name=f"fleettrack-subscribe-{trip_id}",
            )
        return added, removed

    async def _open_with_retry(self, trip_id: str) -> None:
        generation = next(self._generations)

        def deliver(payload: SamplePayload) -> None:
            self._deliver(trip_id, generation, payload)

        attempt = 0
        while True:
            attempt += 1
            try:
                handle = await self._source.subscribe_trip(trip_id, deliver)
            except Exception as exc:
                delay = self._backoff(attempt)
                _logger.warning(
                    "Subscribe failed trip=%s attempt=%d retry_in=%.1fs: %s",
                    trip_id,
                    attempt,
                    delay,
                    exc,
                )
                await self._sleep(delay)
                continue
            break

        self._pending.pop(trip_id, None)
        guarded = CallbackSubscription(handle.cancel, name=trip_id)
        if trip_id not in self._desired:
            # Trip left the active set while the subscribe call was in flight.
            guarded.cancel()
            return
        self._open[trip_id] = _OpenSubscription(generation=generation, handle=guarded)
        _logger.debug("Subscription open trip=%s attempts=%d", trip_id, attempt)
        self._on_opened(trip_id)

    def _deliver(self, trip_id: str, generation: int, payload: SamplePayload) -> None:
        current = self._open.get(trip_id)
        if current is None or current.generation != generation:
            _logger.debug("Dropping late sample for closed subscription trip=%s", trip_id)
            return
        self._on_sample(trip_id, payload)

    def _close(self, trip_id: str) -> None:
        task = self._pending.pop(trip_id, None)
        if task is not None:
            task.cancel()

        current = self._open.pop(trip_id, None)
        if current is not None:
            try:
                current.handle.cancel()
            except Exception:
                _logger.warning("Unsubscribe failed trip=%s", trip_id, exc_info=True)
            _logger.debug("Subscription closed trip=%s", trip_id)
        self._on_closed(trip_id)

    # ------------------------------------------------------------------
    # Active-trip feed
    # ------------------------------------------------------------------

    def watch_active_trips(self, on_trips: TripsCallback) -> asyncio.Task[None]:
        """Open the active-trip feed in the background, retrying on failure."""
        if self._feed_task is not None and not self._feed_task.done():
            return self._feed_task
        self._feed_task = asyncio.create_task(
            self._open_feed_with_retry(on_trips),
            name="fleettrack-active-trips",
        )
        return self._feed_task

    async def _open_feed_with_retry(self, on_trips: TripsCallback) -> None:
        attempt = 0
        handle: Subscription
        while True:
            attempt += 1
            try:
                handle = await self._source.subscribe_active_trips(on_trips)
            except Exception as exc:
                delay = self._backoff(attempt)
                _logger.warning(
                    "Active-trip feed subscribe failed attempt=%d retry_in=%.1fs: %s",
                    attempt,
                    delay,
                    exc,
                )
                await self._sleep(delay)
                continue
            break
        self._feed = CallbackSubscription(handle.cancel, name="active-trips")
        _logger.debug("Active-trip feed open attempts=%d", attempt)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Cancel the feed, every pending open and every open subscription."""
        tasks = [task for task in (self._feed_task, *self._pending.values()) if task is not None]
        self._feed_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        feed = self._feed
        self._feed = None
        if feed is not None:
            try:
                feed.cancel()
            except Exception:
                _logger.warning("Active-trip feed unsubscribe failed", exc_info=True)

        for trip_id in sorted(self._desired):
            self._close(trip_id)
        self._desired.clear()
        self._pending.clear()
