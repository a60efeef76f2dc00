"""
Geographic helpers for live tracking.

Straight-line distance, coarse ETA and arrival detection. The ETA model
has no traffic or routing: distance over a per-mode average speed.
"""

from math import atan2, cos, floor, radians, sin, sqrt
from typing import Tuple

from qmuter.app.core.config import settings
from qmuter.app.models.tracking_enums import TravelMode

EARTH_RADIUS_KM = 6371.0

Point = Tuple[float, float]  # (lat, lng)


def haversine_distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometers."""
    dlat = radians(lat2 - lat1)
    dlng = radians(lng2 - lng1)
    a = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlng / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def average_speed_kmh(mode: TravelMode) -> float:
    speeds = {
        TravelMode.DRIVING: settings.driving_speed_kmh,
        TravelMode.WALKING: settings.walking_speed_kmh,
        TravelMode.TRANSIT: settings.transit_speed_kmh,
    }
    return speeds[TravelMode(mode)]


def estimate_eta(origin: Point, destination: Point, mode: TravelMode = TravelMode.DRIVING) -> int:
    """
    Whole minutes to cover the straight-line distance at the mode's speed.
    
    Never negative, non-decreasing in distance; 0 km gives 0 minutes.
    """
    distance_km = haversine_distance_km(origin[0], origin[1], destination[0], destination[1])
    # Half-up rounding, 2.5 minutes -> 3
    eta_minutes = floor(distance_km / average_speed_kmh(mode) * 60 + 0.5)
    return max(0, int(eta_minutes))


def has_arrived(location: Point, target: Point, radius_km: float = None) -> bool:
    """True when the location is within the arrival radius (inclusive) of the target."""
    if radius_km is None:
        radius_km = settings.arrival_radius_km
    distance_km = haversine_distance_km(location[0], location[1], target[0], target[1])
    return distance_km <= radius_km
