"""Location telemetry sample model."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import AliasChoices, BeforeValidator, Field, field_validator

from fleettrack.ingestion.normalize import float_or_zero, safe_float, safe_str
from fleettrack.models._base import FleetBaseModel, parse_epoch_timestamp


class LocationSample(FleetBaseModel):
    """One telemetry reading for a trip.

    Samples are immutable once received. ``latitude`` and ``longitude``
    are mandatory; the remaining numeric fields default to ``0`` and
    ``battery_level`` to ``None`` (unknown) when absent or unparseable.

    Parameters
    ----------
    trip_id : str
        Trip the reading belongs to.
    latitude : float
        Latitude in degrees.
    longitude : float
        Longitude in degrees.
    bearing : float
        Heading in degrees.
    speed : float
        Ground speed in m/s.
    accuracy : float
        Horizontal accuracy radius in metres.
    altitude : float
        Altitude in metres.
    battery_level : float or None
        Vehicle battery percentage, when reported.
    timestamp : datetime
        Device time of the reading (UTC).
    timestamp_estimated : bool
        ``True`` when the feed carried no timestamp and ``timestamp`` is
        the engine receipt time instead. Such samples never take part in
        the device-time ordering check, so a device clock running behind
        the engine clock does not make later samples look stale.
    """

    trip_id: str = Field(..., validation_alias=AliasChoices("tripId", "trip_id", "rideId"))
    latitude: float = Field(..., validation_alias=AliasChoices("latitude", "lat", "currentLatitude"))
    longitude: float = Field(
        ...,
        validation_alias=AliasChoices("longitude", "lng", "lon", "currentLongitude"),
    )
    bearing: float = Field(default=0.0, validation_alias=AliasChoices("bearing", "currentBearing", "heading"))
    speed: float = Field(default=0.0, validation_alias=AliasChoices("speed", "currentSpeed"))
    accuracy: float = Field(default=0.0, validation_alias=AliasChoices("accuracy", "locationAccuracy"))
    altitude: float = 0.0
    battery_level: float | None = Field(
        default=None,
        validation_alias=AliasChoices("batteryLevel", "battery_level", "battery"),
    )
    timestamp: Annotated[datetime, BeforeValidator(parse_epoch_timestamp)] = Field(
        ...,
        validation_alias=AliasChoices("timestamp", "deviceTimestamp", "lastLocationUpdate"),
    )
    timestamp_estimated: bool = False

    @field_validator("trip_id", mode="before")
    @classmethod
    def _normalize_trip_id(cls, value: Any) -> str:
        trip_id = safe_str(value)
        if trip_id is None:
            raise ValueError("trip_id must be non-empty")
        return trip_id

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_coordinate(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("latitude")
    @classmethod
    def _check_latitude(cls, value: float) -> float:
        if abs(value) > 90.0:
            raise ValueError(f"latitude out of range: {value}")
        return value

    @field_validator("longitude")
    @classmethod
    def _check_longitude(cls, value: float) -> float:
        if abs(value) > 180.0:
            raise ValueError(f"longitude out of range: {value}")
        return value

    @field_validator("bearing", "speed", "accuracy", "altitude", mode="before")
    @classmethod
    def _coerce_optional_floats(cls, value: Any) -> float:
        return float_or_zero(value)

    @field_validator("battery_level", mode="before")
    @classmethod
    def _coerce_battery(cls, value: Any) -> float | None:
        return safe_float(value)
