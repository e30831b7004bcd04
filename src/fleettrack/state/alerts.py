"""Alert rule evaluation and the active alert set."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from fleettrack.models.alert import Alert, AlertSeverity, AlertType, alert_id
from fleettrack.models.snapshot import Freshness
from fleettrack.models.user import UNKNOWN_RIDER
from fleettrack.state.policy import elapsed_seconds
from fleettrack.state.store import TripState

_logger = logging.getLogger(__name__)

_SEVERITY: dict[AlertType, AlertSeverity] = {
    AlertType.OFFLINE: AlertSeverity.DANGER,
    AlertType.LOW_BATTERY: AlertSeverity.WARNING,
    AlertType.STATIONARY: AlertSeverity.WARNING,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def format_window(seconds: float) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return "1 minute" if minutes == 1 else f"{minutes} minutes"
    if seconds >= 60:
        return f"{seconds / 60:.1f} minutes"
    return f"{seconds:g} seconds"


class AlertEngine:
    """Evaluates the fixed alert rules and keeps the deduplicated alert set.

    Rules are independent; a trip may hold several alerts at once.

    * Offline - the trip is offline and no sample has been received for
      at least ``offline_alert_window``.
    * LowBattery - a battery level is reported and is below
      ``low_battery_threshold``.
    * Stationary - the trip has not moved for longer than
      ``stationary_window`` and is not offline (Offline covers that case).
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        offline_alert_window: float = 120.0,
        stationary_window: float = 600.0,
        low_battery_threshold: float = 20.0,
        display_name: Callable[[str], str] | None = None,
    ) -> None:
        self._clock = clock
        self._offline_alert_window = offline_alert_window
        self._stationary_window = stationary_window
        self._low_battery_threshold = low_battery_threshold
        self._display_name = display_name or (lambda _trip_id: UNKNOWN_RIDER)
        self._alerts: dict[str, Alert] = {}

    def _raise(self, alert_type: AlertType, trip_id: str, message: str, now: datetime) -> None:
        key = alert_id(alert_type, trip_id)
        existing = self._alerts.get(key)
        if existing is None:
            _logger.info("Alert raised type=%s trip=%s: %s", alert_type, trip_id, message)
        self._alerts[key] = Alert(
            id=key,
            type=alert_type,
            severity=_SEVERITY[alert_type],
            trip_id=trip_id,
            message=message,
            raised_at=now,
            first_raised_at=existing.first_raised_at if existing is not None else now,
        )

    def _clear(self, alert_type: AlertType, trip_id: str) -> None:
        if self._alerts.pop(alert_id(alert_type, trip_id), None) is not None:
            _logger.info("Alert cleared type=%s trip=%s", alert_type, trip_id)

    def evaluate(self, trip_id: str, state: TripState, now: datetime | None = None) -> None:
        """Run every rule for one trip against its current state."""
        now = now or self._clock()
        name = self._display_name(trip_id)
        since_update = elapsed_seconds(state.received_at, now)

        if state.freshness == Freshness.OFFLINE and since_update >= self._offline_alert_window:
            self._raise(
                AlertType.OFFLINE,
                trip_id,
                f"{name} has been offline for more than {format_window(self._offline_alert_window)}",
                now,
            )
        else:
            self._clear(AlertType.OFFLINE, trip_id)

        battery = state.latest_sample.battery_level
        if battery is not None and battery < self._low_battery_threshold:
            self._raise(
                AlertType.LOW_BATTERY,
                trip_id,
                f"{name}'s vehicle battery is low ({battery:.0f}%)",
                now,
            )
        else:
            self._clear(AlertType.LOW_BATTERY, trip_id)

        stationary_for = (
            elapsed_seconds(state.stationary_since, now)
            if not state.is_moving and state.stationary_since is not None
            else 0.0
        )
        if state.freshness != Freshness.OFFLINE and stationary_for > self._stationary_window:
            self._raise(
                AlertType.STATIONARY,
                trip_id,
                f"{name} has been stationary for more than {format_window(self._stationary_window)}",
                now,
            )
        else:
            self._clear(AlertType.STATIONARY, trip_id)

    def discard(self, trip_id: str) -> None:
        """Drop every alert held for *trip_id*."""
        for alert_type in AlertType:
            self._alerts.pop(alert_id(alert_type, trip_id), None)

    def get(self, alert_type: AlertType, trip_id: str) -> Alert | None:
        return self._alerts.get(alert_id(alert_type, trip_id))

    def for_trip(self, trip_id: str) -> list[Alert]:
        return [alert for alert in self._alerts.values() if alert.trip_id == trip_id]

    def alerts(self) -> list[Alert]:
        """Active alerts, newest ``raised_at`` first."""
        return sorted(self._alerts.values(), key=lambda alert: (alert.raised_at, alert.id), reverse=True)

    def __len__(self) -> int:
        return len(self._alerts)
