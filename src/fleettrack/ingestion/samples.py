"""Feed payload → :class:`LocationSample` / :class:`Trip` conversion.

Malformed input is defaulted where the field is optional and discarded
(with a warning) where it is mandatory; nothing here raises.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from fleettrack._redact import redact_for_log
from fleettrack.ingestion.normalize import is_valid_coordinate, safe_float
from fleettrack.models.sample import LocationSample
from fleettrack.models.trip import Trip

_logger = logging.getLogger(__name__)

_LAT_KEYS = ("latitude", "lat", "currentLatitude")
_LNG_KEYS = ("longitude", "lng", "lon", "currentLongitude")
_TS_KEYS = ("timestamp", "deviceTimestamp", "lastLocationUpdate")


def _first(payload: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None and value != "":
            return value
    return None


def parse_location_sample(
    trip_id: str,
    payload: LocationSample | Mapping[str, Any],
    *,
    received_at: datetime,
) -> LocationSample | None:
    """Validate a feed payload for *trip_id*.

    Returns ``None`` (and logs) when the payload lacks a usable
    latitude/longitude or cannot be validated. A missing timestamp
    defaults to *received_at*.
    """
    if isinstance(payload, LocationSample):
        if payload.trip_id != trip_id:
            _logger.warning(
                "Discarding sample delivered for trip=%s but tagged trip=%s",
                trip_id,
                payload.trip_id,
            )
            return None
        return payload

    if not isinstance(payload, Mapping):
        _logger.warning("Discarding non-object sample for trip=%s: %r", trip_id, type(payload).__name__)
        return None

    latitude = safe_float(_first(payload, _LAT_KEYS))
    longitude = safe_float(_first(payload, _LNG_KEYS))
    if not is_valid_coordinate(latitude, longitude):
        _logger.warning(
            "Discarding sample without usable coordinates trip=%s payload=%s",
            trip_id,
            redact_for_log(payload),
        )
        return None

    values = dict(payload)
    values["tripId"] = trip_id
    if _first(payload, _TS_KEYS) is None:
        values["timestamp"] = received_at
        values["timestampEstimated"] = True

    try:
        return LocationSample.model_validate(values)
    except ValidationError as exc:
        _logger.warning(
            "Discarding invalid sample trip=%s errors=%d payload=%s",
            trip_id,
            exc.error_count(),
            redact_for_log(payload),
        )
        return None


def parse_trips(payload: Iterable[Any]) -> list[Trip]:
    """Validate an active-trip feed payload.

    Entries may be :class:`Trip` objects, trip dicts or bare trip ids.
    Invalid entries are skipped.
    """
    trips: list[Trip] = []
    for item in payload:
        if isinstance(item, Trip):
            trips.append(item)
            continue
        if isinstance(item, (str, int)):
            item = {"id": item}
        if not isinstance(item, Mapping):
            _logger.warning("Skipping non-object trip entry: %r", type(item).__name__)
            continue
        try:
            trips.append(Trip.model_validate(dict(item)))
        except ValidationError:
            _logger.warning("Skipping invalid trip entry: %s", redact_for_log(item), exc_info=True)
    return trips
