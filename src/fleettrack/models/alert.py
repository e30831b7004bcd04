"""Operational alert model."""

from __future__ import annotations

import hashlib
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class AlertType(StrEnum):
    OFFLINE = "offline"
    LOW_BATTERY = "low_battery"
    STATIONARY = "stationary"


class AlertSeverity(StrEnum):
    WARNING = "warning"
    DANGER = "danger"


def alert_id(alert_type: AlertType, trip_id: str) -> str:
    """Stable identifier for the ``(type, trip_id)`` pair."""
    digest = hashlib.sha1(f"{alert_type.value}:{trip_id}".encode(), usedforsecurity=False)
    return digest.hexdigest()[:16]


class Alert(BaseModel):
    """An active alert for one trip.

    At most one alert exists per ``(type, trip_id)``; re-raising it only
    moves ``raised_at`` forward.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    type: AlertType
    severity: AlertSeverity
    trip_id: str
    message: str
    raised_at: datetime
    first_raised_at: datetime = Field(description="When the condition was first detected.")
