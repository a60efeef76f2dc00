"""
Distance, ETA and arrival helpers.
"""

import pytest
from qmuter.app.models.tracking_enums import TravelMode
from qmuter.app.services import geo
from qmuter.app.services.geo import haversine_distance_km, estimate_eta, has_arrived

PICKUP = (-36.85, 174.76)


def test_haversine_zero_distance():
    assert haversine_distance_km(-36.85, 174.76, -36.85, 174.76) == 0


def test_haversine_one_degree_of_latitude():
    # 2 * pi * 6371 / 360
    assert haversine_distance_km(0, 0, 1, 0) == pytest.approx(111.195, abs=0.001)


def test_haversine_is_symmetric():
    a = haversine_distance_km(-36.85, 174.76, -36.90, 174.80)
    b = haversine_distance_km(-36.90, 174.80, -36.85, 174.76)
    assert a == pytest.approx(b)
    assert 6.0 < a < 7.0


@pytest.mark.parametrize("mode", list(TravelMode))
def test_eta_is_zero_at_destination(mode):
    assert estimate_eta(PICKUP, PICKUP, mode) == 0


def test_eta_uses_mode_speed():
    # 0.054 degrees of latitude is about 6.0 km
    origin = (-36.904, 174.76)
    assert estimate_eta(origin, PICKUP, TravelMode.DRIVING) == 12  # 30 km/h
    assert estimate_eta(origin, PICKUP, TravelMode.TRANSIT) == 18  # 20 km/h
    assert estimate_eta(origin, PICKUP, TravelMode.WALKING) == 72  # 5 km/h


def test_eta_rounds_half_up(mocker):
    mocker.patch.object(geo, "haversine_distance_km", return_value=1.25)
    # 1.25 km at 30 km/h is 2.5 minutes
    assert estimate_eta(PICKUP, PICKUP, TravelMode.DRIVING) == 3


def test_eta_monotonic_in_distance():
    etas = [
        estimate_eta((PICKUP[0] - step * 0.01, PICKUP[1]), PICKUP, TravelMode.DRIVING)
        for step in range(20)
    ]
    assert etas == sorted(etas)


def test_has_arrived_at_exact_radius(mocker):
    mocker.patch.object(geo, "haversine_distance_km", return_value=0.02)
    assert has_arrived(PICKUP, PICKUP) is True


def test_has_not_arrived_just_outside_radius(mocker):
    mocker.patch.object(geo, "haversine_distance_km", return_value=0.021)
    assert has_arrived(PICKUP, PICKUP) is False


def test_has_arrived_real_points():
    # ~11 m north of pickup
    assert has_arrived((-36.8499, 174.76), PICKUP) is True
    # ~70 m away
    assert has_arrived((-36.8505, 174.7605), PICKUP) is False
