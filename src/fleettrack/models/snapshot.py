"""Fleet-wide snapshot models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from fleettrack.models.alert import Alert


class Freshness(StrEnum):
    LIVE = "live"
    DELAYED = "delayed"
    OFFLINE = "offline"


class TripSummary(BaseModel):
    """Per-trip row of a :class:`FleetSnapshot`."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    trip_id: str
    vehicle_id: str | None = None
    rider_name: str
    freshness: Freshness
    is_moving: bool
    speed: float
    battery_level: float | None = None
    distance_m: float = 0.0
    ride_duration_s: float | None = None
    last_update: datetime


class FleetSnapshot(BaseModel):
    """Point-in-time aggregate view across all tracked trips.

    Computed on demand and never persisted.

    Parameters
    ----------
    generated_at : datetime
        Engine clock when the snapshot was built.
    tracked_count : int
        Number of trips with tracked state.
    live_count, delayed_count, offline_count : int
        Trip counts by freshness.
    moving_count, stationary_count : int
        Trip counts by motion flag.
    mean_speed : float
        Mean latest speed (m/s) across tracked trips, ``0`` when empty.
    total_distance_m : float
        Sum of cumulative route distance across trips.
    alerts : list[Alert]
        Active alerts, newest ``raised_at`` first.
    trips : list[TripSummary]
        Per-trip rows ordered by trip id.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    generated_at: datetime
    tracked_count: int = 0
    live_count: int = 0
    delayed_count: int = 0
    offline_count: int = 0
    moving_count: int = 0
    stationary_count: int = 0
    mean_speed: float = 0.0
    total_distance_m: float = 0.0
    alerts: list[Alert] = Field(default_factory=list)
    trips: list[TripSummary] = Field(default_factory=list)

    def count(self, freshness: Freshness) -> int:
        return {
            Freshness.LIVE: self.live_count,
            Freshness.DELAYED: self.delayed_count,
            Freshness.OFFLINE: self.offline_count,
        }[freshness]
