from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from conftest import EPOCH

from fleettrack.ingestion.samples import parse_location_sample, parse_trips
from fleettrack.models import LocationSample, Trip, TripStatus, UserProfile, parse_epoch_timestamp

RECEIVED = EPOCH + timedelta(seconds=500)


def test_sample_accepts_feed_aliases_and_strings() -> None:
    parsed = parse_location_sample(
        "r1",
        {
            "lat": "52.37",
            "lng": "4.89",
            "currentSpeed": "3.2",
            "batteryLevel": 64,
            "heading": 270,
            "timestamp": EPOCH.timestamp() * 1000,
        },
        received_at=RECEIVED,
    )

    assert parsed is not None
    assert parsed.trip_id == "r1"
    assert parsed.latitude == 52.37
    assert parsed.speed == 3.2
    assert parsed.bearing == 270.0
    assert parsed.battery_level == 64.0
    assert parsed.timestamp == EPOCH
    assert parsed.raw["currentSpeed"] == "3.2"


def test_sample_defaults_missing_optional_fields() -> None:
    parsed = parse_location_sample(
        "r1",
        {"latitude": 52.37, "longitude": 4.89, "speed": "--", "batteryLevel": None},
        received_at=RECEIVED,
    )

    assert parsed is not None
    assert parsed.speed == 0.0
    assert parsed.battery_level is None
    # No device timestamp: the receipt time stands in.
    assert parsed.timestamp == RECEIVED


def test_sample_without_coordinates_is_discarded() -> None:
    assert parse_location_sample("r1", {"latitude": 52.37}, received_at=RECEIVED) is None
    assert parse_location_sample("r1", {"latitude": "", "longitude": 4.89}, received_at=RECEIVED) is None


def test_sample_with_out_of_range_coordinates_is_discarded() -> None:
    assert parse_location_sample("r1", {"latitude": 91, "longitude": 4.89}, received_at=RECEIVED) is None


def test_sample_with_invalid_timestamp_is_discarded() -> None:
    payload = {"latitude": 52.37, "longitude": 4.89, "timestamp": "yesterday"}
    assert parse_location_sample("r1", payload, received_at=RECEIVED) is None


def test_sample_trip_id_comes_from_subscription() -> None:
    payload = {"latitude": 52.37, "longitude": 4.89, "tripId": "other"}
    parsed = parse_location_sample("r1", payload, received_at=RECEIVED)

    assert parsed is not None
    assert parsed.trip_id == "r1"


def test_prebuilt_sample_for_other_trip_is_discarded() -> None:
    sample = LocationSample(trip_id="r2", latitude=1.0, longitude=1.0, timestamp=EPOCH)

    assert parse_location_sample("r1", sample, received_at=RECEIVED) is None
    assert parse_location_sample("r2", sample, received_at=RECEIVED) is sample


def test_non_object_payload_is_discarded() -> None:
    assert parse_location_sample("r1", ["52.37", "4.89"], received_at=RECEIVED) is None  # type: ignore[arg-type]


def test_parse_epoch_timestamp_variants() -> None:
    assert parse_epoch_timestamp(None) is None
    assert parse_epoch_timestamp(0) is None
    assert parse_epoch_timestamp("2026-01-01T00:00:00Z") == EPOCH
    assert parse_epoch_timestamp(datetime(2026, 1, 1)) == EPOCH
    assert parse_epoch_timestamp(str(int(EPOCH.timestamp()))) == EPOCH
    assert parse_epoch_timestamp(EPOCH.astimezone(UTC)) == EPOCH


def test_parse_trips_accepts_ids_objects_and_skips_garbage() -> None:
    trips = parse_trips(
        [
            "r1",
            7,
            {"tripId": "r3", "userId": " u3 ", "bikeId": "b3", "status": "ACTIVE"},
            {"rideId": "r4", "isActive": False},
            {"userId": "missing-id"},
            3.5,
        ]
    )

    assert [trip.id for trip in trips] == ["r1", "7", "r3", "r4"]
    assert trips[2].user_id == "u3"
    assert trips[2].vehicle_id == "b3"
    assert trips[2].is_active
    assert trips[3].status == TripStatus.COMPLETED


def test_unknown_trip_status_is_not_active() -> None:
    trip = Trip.model_validate({"id": "r1", "status": "cancelled"})
    assert trip.status == TripStatus.COMPLETED


def test_ride_duration() -> None:
    trip = Trip.model_validate({"id": "r1", "startTime": EPOCH.timestamp()})
    assert trip.ride_duration_seconds(EPOCH + timedelta(minutes=5)) == 300.0
    assert Trip(id="r2").ride_duration_seconds(EPOCH) is None


def test_user_profile_builds_name_from_parts() -> None:
    profile = UserProfile.model_validate({"id": "u1", "firstName": "Ada", "lastName": "Lovelace"})

    assert profile.user_id == "u1"
    assert profile.name == "Ada Lovelace"
    assert profile.placeholder is False


def test_user_profile_without_name_uses_placeholder_name() -> None:
    profile = UserProfile.model_validate({"userId": "u1", "displayName": "  "})
    assert profile.name == "Unknown rider"


def test_sample_with_out_of_range_timestamp_is_discarded() -> None:
    for timestamp in (1e20, float("inf"), -float("inf"), "9999999999999999999999"):
        payload = {"latitude": 52.37, "longitude": 4.89, "timestamp": timestamp}
        assert parse_location_sample("r1", payload, received_at=RECEIVED) is None


def test_parse_epoch_timestamp_rejects_unrepresentable_values() -> None:
    assert parse_epoch_timestamp(float("inf")) is None
    with pytest.raises(ValueError):
        parse_epoch_timestamp(1e20)
    with pytest.raises(ValueError):
        parse_epoch_timestamp("not-a-date")


def test_trip_with_out_of_range_start_time_is_skipped() -> None:
    trips = parse_trips([{"id": "r1"}, {"id": "r2", "startTime": 1e20}, {"id": "r3", "endTime": "garbage"}])

    assert [trip.id for trip in trips] == ["r1"]


def test_sample_without_timestamp_is_marked_estimated() -> None:
    stamped = parse_location_sample("r1", {"latitude": 1, "longitude": 2, "timestamp": 10}, received_at=RECEIVED)
    estimated = parse_location_sample("r1", {"latitude": 1, "longitude": 2}, received_at=RECEIVED)

    assert stamped is not None
    assert stamped.timestamp_estimated is False
    assert estimated is not None
    assert estimated.timestamp_estimated is True
    assert estimated.timestamp == RECEIVED
