from __future__ import annotations

import math
from datetime import timedelta

import pytest
from conftest import EPOCH

from fleettrack.models.sample import LocationSample
from fleettrack.state.route import EARTH_RADIUS_M, RouteAccumulator, haversine_m


def _sample(seconds: float, lat: float, lng: float) -> LocationSample:
    return LocationSample(
        trip_id="r1",
        latitude=lat,
        longitude=lng,
        timestamp=EPOCH + timedelta(seconds=seconds),
    )


def test_haversine_is_zero_for_identical_points() -> None:
    assert haversine_m(52.37, 4.89, 52.37, 4.89) == 0.0


def test_haversine_is_symmetric() -> None:
    a = (52.3702, 4.8952)
    b = (48.8566, 2.3522)
    assert haversine_m(*a, *b) == pytest.approx(haversine_m(*b, *a))


def test_haversine_one_degree_of_latitude() -> None:
    expected = EARTH_RADIUS_M * math.pi / 180
    assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(expected)


def test_haversine_antipodal_points_do_not_fail() -> None:
    assert haversine_m(0.0, 0.0, 0.0, 180.0) == pytest.approx(EARTH_RADIUS_M * math.pi)


def test_cumulative_distance_is_monotonic() -> None:
    routes = RouteAccumulator()
    totals = []
    for i in range(10):
        # ~11 m north every 10 s, well below the noise ceiling.
        routes.append("r1", _sample(i * 10, 52.0 + i * 0.0001, 4.0))
        totals.append(routes.distance("r1"))

    assert totals[0] == 0.0
    assert all(b >= a for a, b in zip(totals, totals[1:], strict=False))
    assert totals[-1] == pytest.approx(9 * haversine_m(0.0, 0.0, 0.0001, 0.0), rel=1e-3)


def test_implausible_segment_is_stored_but_not_counted() -> None:
    routes = RouteAccumulator(max_plausible_speed=50.0)
    routes.append("r1", _sample(0, 52.0, 4.0))
    # ~1.1 km in one second.
    added = routes.append("r1", _sample(1, 52.01, 4.0))

    assert added == 0.0
    assert routes.distance("r1") == 0.0
    assert len(routes.route("r1")) == 2
    record = routes.get("r1")
    assert record is not None
    assert record.noise_segments == 1


def test_segment_after_noise_is_measured_from_stored_sample() -> None:
    routes = RouteAccumulator(max_plausible_speed=50.0)
    routes.append("r1", _sample(0, 52.0, 4.0))
    routes.append("r1", _sample(1, 52.01, 4.0))
    added = routes.append("r1", _sample(100, 52.0101, 4.0))

    assert added == pytest.approx(haversine_m(52.01, 4.0, 52.0101, 4.0))


def test_jump_above_limit_is_noise_even_when_slow() -> None:
    routes = RouteAccumulator(max_jump_meters=1_000.0, max_plausible_speed=1e9)
    routes.append("r1", _sample(0, 52.0, 4.0))
    assert routes.append("r1", _sample(3600, 52.1, 4.0)) == 0.0


def test_movement_without_elapsed_time_is_noise() -> None:
    routes = RouteAccumulator()
    routes.append("r1", _sample(0, 52.0, 4.0))
    assert routes.append("r1", _sample(0, 52.0001, 4.0)) == 0.0


def test_history_evicts_oldest_beyond_capacity() -> None:
    routes = RouteAccumulator(capacity=3)
    for i in range(5):
        routes.append("r1", _sample(i * 10, 52.0 + i * 0.0001, 4.0))

    retained = routes.route("r1")
    assert [s.timestamp for s in retained] == [EPOCH + timedelta(seconds=s) for s in (20, 30, 40)]
    # Eviction never reduces the accumulated distance.
    assert routes.distance("r1") == pytest.approx(4 * haversine_m(0.0, 0.0, 0.0001, 0.0), rel=1e-3)


def test_discard_drops_route_and_distance() -> None:
    routes = RouteAccumulator()
    routes.append("r1", _sample(0, 52.0, 4.0))
    routes.append("r2", _sample(0, 52.0, 4.0))
    routes.append("r2", _sample(10, 52.0001, 4.0))

    routes.discard("r2")

    assert "r2" not in routes
    assert routes.route("r2") == []
    assert routes.total_distance() == 0.0
