"""Custom exception hierarchy for fleettrack."""

from __future__ import annotations


class FleetTrackError(Exception):
    """Base exception for all fleettrack errors."""


class FleetConfigError(FleetTrackError):
    """Invalid or inconsistent configuration."""


class FleetSourceError(FleetTrackError):
    """Telemetry source failure (not connected, broker refused, bad payload)."""

    def __init__(self, message: str, *, topic: str = "") -> None:
        self.topic = topic
        super().__init__(message)


class FleetSubscriptionError(FleetSourceError):
    """Opening a subscription failed.

    Raised by telemetry sources when a subscribe call is rejected.  The
    subscription manager catches it and retries with exponential backoff;
    it never propagates out of the engine.
    """

    def __init__(self, message: str, *, trip_id: str | None = None, topic: str = "") -> None:
        self.trip_id = trip_id
        super().__init__(message, topic=topic)


class FleetDirectoryError(FleetTrackError):
    """User directory lookup failed (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        user_id: str = "",
    ) -> None:
        self.status_code = status_code
        self.user_id = user_id
        super().__init__(message)
