"""Base model and timestamp coercion for fleet telemetry payloads.

Every inbound model inherits from :class:`FleetBaseModel` which
provides:

* ``alias_generator=to_camel`` so camelCase feed keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that strips placeholder values
  (``""``, ``"--"``, NaN) so the field default is used.
* A ``raw`` dict that captures the original payload.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from fleettrack.ingestion.normalize import normalize_timestamp_seconds, safe_float

# Placeholder strings feeds use for "not available".
_SENTINELS = frozenset({"", "--", "NaN", "nan", "null"})


def parse_epoch_timestamp(value: Any) -> datetime | None:
    """Convert an epoch timestamp (seconds **or** milliseconds) to a UTC datetime.

    Naive datetimes and ISO strings are assumed to be UTC. Non-positive
    and non-finite epoch values are treated as missing; values outside the
    platform range raise ``ValueError`` so pydantic reports them.
    """
    if value is None:
        return value
    if isinstance(value, str) and safe_float(value) is None:
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError(f"invalid timestamp: {value!r}") from exc
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
    ts = normalize_timestamp_seconds(value)
    if ts is None:
        return None
    try:
        return datetime.fromtimestamp(ts, tz=UTC)
    except (OverflowError, OSError, ValueError) as exc:
        # Pydantic only reports ValueError/AssertionError as validation errors.
        raise ValueError(f"timestamp out of range: {value!r}") from exc


EpochTimestamp = Annotated[datetime | None, BeforeValidator(parse_epoch_timestamp)]
"""Annotated type that coerces epoch numbers (seconds or ms) to UTC datetimes."""


class FleetBaseModel(BaseModel):
    """Base for inbound feed models.

    Handles:
    * camelCase → snake_case via ``alias_generator=to_camel``
    * placeholder values (``""``, ``"--"``, NaN) → dropped so
      the field default is used instead
    * Stashes the original feed dict in ``raw``
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)
    """Original feed payload."""

    @staticmethod
    def _clean_dict(values: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _clean_feed_values(cls, values: Any) -> Any:
        """Strip placeholder values and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        original = dict(values)
        cleaned = FleetBaseModel._clean_dict(original)

        # Keep an explicitly supplied raw= (kwargs construction).
        if "raw" not in values:
            cleaned["raw"] = original
        return cleaned
