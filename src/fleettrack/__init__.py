"""fleettrack - Real-time fleet tracking and alerting engine."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fleettrack")
except PackageNotFoundError:
    __version__ = "0+local"
from fleettrack._mqtt import MqttTelemetrySource
from fleettrack.config import MqttSourceConfig, TrackerConfig
from fleettrack.directory import CachingUserDirectory, HttpUserDirectory, UserDirectory
from fleettrack.engine import FleetEngine
from fleettrack.exceptions import (
    FleetConfigError,
    FleetDirectoryError,
    FleetSourceError,
    FleetSubscriptionError,
    FleetTrackError,
)
from fleettrack.models import (
    Alert,
    AlertSeverity,
    AlertType,
    FleetSnapshot,
    Freshness,
    LocationSample,
    Trip,
    TripStatus,
    TripSummary,
    UserProfile,
)
from fleettrack.source import CallbackSubscription, Subscription, TelemetrySource
from fleettrack.state.store import TripState

__all__ = [
    "__version__",
    "Alert",
    "AlertSeverity",
    "AlertType",
    "CallbackSubscription",
    "CachingUserDirectory",
    "FleetConfigError",
    "FleetDirectoryError",
    "FleetEngine",
    "FleetSnapshot",
    "FleetSourceError",
    "FleetSubscriptionError",
    "FleetTrackError",
    "Freshness",
    "HttpUserDirectory",
    "LocationSample",
    "MqttSourceConfig",
    "MqttTelemetrySource",
    "Subscription",
    "TelemetrySource",
    "TrackerConfig",
    "Trip",
    "TripState",
    "TripStatus",
    "TripSummary",
    "UserDirectory",
    "UserProfile",
]
