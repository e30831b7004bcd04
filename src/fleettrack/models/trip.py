"""Trip (ride) model as published by the booking subsystem."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator

from fleettrack.ingestion.normalize import safe_str
from fleettrack.models._base import EpochTimestamp, FleetBaseModel


class TripStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"

    @classmethod
    def _missing_(cls, value: object) -> TripStatus:
        # Anything that is not running (cancelled, expired, ...) is finished.
        return cls.COMPLETED


class Trip(FleetBaseModel):
    """A single rental session.

    The tracking engine treats trips as read-only; only the external
    booking subsystem mutates them.

    Parameters
    ----------
    id : str
        Trip identifier.
    user_id : str or None
        Rider identifier, used for display enrichment.
    vehicle_id : str or None
        Rented vehicle identifier.
    start_time : datetime or None
        When the rental began.
    end_time : datetime or None
        When the rental ended, if it has.
    status : TripStatus
        ``active`` while the rental is running.
    """

    id: str = Field(..., validation_alias=AliasChoices("id", "tripId", "rideId"))
    user_id: str | None = Field(default=None, validation_alias=AliasChoices("userId", "user_id"))
    vehicle_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("vehicleId", "vehicle_id", "bikeId"),
    )
    start_time: EpochTimestamp = Field(
        default=None,
        validation_alias=AliasChoices("startTime", "start_time", "startDate"),
    )
    end_time: EpochTimestamp = Field(
        default=None,
        validation_alias=AliasChoices("endTime", "end_time", "endDate"),
    )
    status: TripStatus = TripStatus.ACTIVE

    @model_validator(mode="before")
    @classmethod
    def _legacy_is_active(cls, values: Any) -> Any:
        # Older ride documents carry an isActive flag instead of status.
        if isinstance(values, dict) and "status" not in values and "isActive" in values:
            values = dict(values)
            values["status"] = TripStatus.ACTIVE if values["isActive"] else TripStatus.COMPLETED
        return values

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str:
        trip_id = str(value).strip()
        if not trip_id:
            raise ValueError("trip id must be non-empty")
        return trip_id

    @field_validator("user_id", "vehicle_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def is_active(self) -> bool:
        return self.status == TripStatus.ACTIVE

    def ride_duration_seconds(self, now: datetime) -> float | None:
        """Seconds since the rental began (to ``end_time`` once ended)."""
        if self.start_time is None:
            return None
        end = self.end_time or now
        return max(0.0, (end - self.start_time).total_seconds())
