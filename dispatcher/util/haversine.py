"""Tiny haversine helpers for proximity scoring and travel estimates."""

from math import radians, sin, cos, asin, sqrt, ceil


EARTH_RADIUS_MILES = 3958.8
MINUTES_PER_MILE = 2  # flat ~30 mph


def miles(a_lat: float, a_lon: float, b_lat: float, b_lon: float) -> float:
    lat1, lon1, lat2, lon2 = map(radians, [a_lat, a_lon, b_lat, b_lon])  # deg->rad
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * asin(sqrt(min(1.0, h)))  # arc length in miles


def travel_minutes(distance_miles: float) -> int:
    if distance_miles <= 0:
        return 0  # guard
    return ceil(distance_miles * MINUTES_PER_MILE)


def distance_between(a, b) -> float:
    """Great-circle miles between two objects exposing ``lat``/``lon``."""
    return miles(a.lat, a.lon, b.lat, b.lon)
