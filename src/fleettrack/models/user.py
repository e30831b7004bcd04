"""Rider profile returned by the user directory."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator

from fleettrack.ingestion.normalize import safe_str
from fleettrack.models._base import FleetBaseModel

UNKNOWN_RIDER = "Unknown rider"


class UserProfile(FleetBaseModel):
    """Display enrichment for a rider.

    ``placeholder`` is set on profiles synthesised after a failed lookup.
    """

    user_id: str = Field(..., validation_alias=AliasChoices("userId", "user_id", "id", "uid"))
    name: str = Field(
        default=UNKNOWN_RIDER,
        validation_alias=AliasChoices("name", "displayName", "fullName"),
    )
    contact: str | None = Field(
        default=None,
        validation_alias=AliasChoices("contact", "phoneNumber", "email"),
    )
    placeholder: bool = False

    @model_validator(mode="before")
    @classmethod
    def _join_name_parts(cls, values: Any) -> Any:
        if not isinstance(values, dict) or any(k in values for k in ("name", "displayName", "fullName")):
            return values
        parts = [safe_str(values.get(key)) for key in ("firstName", "lastName")]
        joined = " ".join(part for part in parts if part)
        if not joined:
            return values
        merged = dict(values)
        merged["name"] = joined
        return merged

    @field_validator("user_id", "contact", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> str:
        return safe_str(value) or UNKNOWN_RIDER
