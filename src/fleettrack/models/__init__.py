"""Data models for fleet telemetry and tracking output."""

from fleettrack.models._base import EpochTimestamp, FleetBaseModel, parse_epoch_timestamp
from fleettrack.models.alert import Alert, AlertSeverity, AlertType, alert_id
from fleettrack.models.sample import LocationSample
from fleettrack.models.snapshot import FleetSnapshot, Freshness, TripSummary
from fleettrack.models.trip import Trip, TripStatus
from fleettrack.models.user import UNKNOWN_RIDER, UserProfile

__all__ = [
    "Alert",
    "AlertSeverity",
    "AlertType",
    "EpochTimestamp",
    "FleetBaseModel",
    "FleetSnapshot",
    "Freshness",
    "LocationSample",
    "Trip",
    "TripStatus",
    "TripSummary",
    "UNKNOWN_RIDER",
    "UserProfile",
    "alert_id",
    "parse_epoch_timestamp",
]
