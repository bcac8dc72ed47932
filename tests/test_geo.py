import math

import pytest

from vibewatch.core.geo import distance_km, format_distance, format_km, haversine_km, round_km
from vibewatch.domain.models import GeoPoint


def test_distance_to_self_is_zero():
    assert distance_km(30.0, 31.0, 30.0, 31.0) == 0.0
    assert distance_km(-89.5, 179.9, -89.5, 179.9) == 0.0


def test_distance_is_symmetric():
    a = (30.0444, 31.2357)
    b = (29.9792, 31.1342)
    assert distance_km(*a, *b) == pytest.approx(distance_km(*b, *a))


def test_known_distance_one_degree_latitude():
    # One degree of latitude on a 6371 km sphere.
    assert distance_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.195, abs=0.01)


def test_small_offset_matches_expected_scale():
    assert distance_km(30.0, 31.0, 30.02, 31.0) == pytest.approx(2.224, abs=0.005)


def test_antipodes_do_not_fail():
    assert distance_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * 6371.0, rel=1e-9)


def test_nan_propagates():
    assert math.isnan(distance_km(float("nan"), 0.0, 1.0, 1.0))


def test_haversine_km_on_points():
    a = GeoPoint(lat=30.0, lon=31.0)
    b = GeoPoint(lat=30.0, lon=31.0)
    assert haversine_km(a, b) == 0.0


def test_round_km_is_half_up():
    assert round_km(2.25) == 2.3
    assert round_km(2.2239) == 2.2


def test_format_km_drops_trailing_zero():
    assert format_km(2.0) == "2"
    assert format_km(2.2239) == "2.2"
    assert format_km(0.04) == "0"


def test_format_distance_switches_units():
    assert format_distance(0.45) == "450m"
    assert format_distance(1.0) == "1.0km"
    assert format_distance(12.34) == "12.3km"
