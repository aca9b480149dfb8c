"""Great-circle distances on a spherical Earth.

All functions take degrees. Routes are sequences of (lng, lat) pairs, the
order GeoJSON uses; point arguments are given as lat, lng.
"""

from collections.abc import Sequence
from math import atan2, cos, degrees, radians, sin, sqrt

EARTH_RADIUS_M = 6_371_000  # Mean Earth radius in meters

# ~9e-6 degrees per meter (1 / 111,320 m per degree of latitude)
_LAT_DEGREES_PER_METER: float = 1.0 / 111_320


def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Shortest surface distance in meters between two lat/lng points (haversine)."""
    phi1, phi2 = radians(lat1), radians(lat2)
    half_dphi = radians(lat2 - lat1) / 2
    half_dlambda = radians(lon2 - lon1) / 2

    h = sin(half_dphi) ** 2 + cos(phi1) * cos(phi2) * sin(half_dlambda) ** 2
    # Rounding can push h slightly outside [0, 1] for antipodal points
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_M * 2 * atan2(sqrt(h), sqrt(1 - h))


def haversine_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return haversine_distance_m(lat1, lon1, lat2, lon2) / 1000.0


def is_within_proximity(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    threshold_m: float = 100.0,
) -> bool:
    """Whether two points lie within threshold_m meters of each other.

    Decides if the driver has reached the destination before a trip may be
    completed.
    """
    # Flat-Earth bounding box pre-check on latitude only. Longitude degrees
    # shrink toward the poles, so a longitude box would need cos(lat) and is
    # left to the exact formula below.
    lat_threshold = threshold_m * _LAT_DEGREES_PER_METER * 1.01
    if abs(lat2 - lat1) > lat_threshold:
        return False

    return haversine_distance_m(lat1, lon1, lat2, lon2) <= threshold_m


def initial_bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Forward azimuth from the first point to the second, degrees true in [0, 360)."""
    phi1, phi2 = radians(lat1), radians(lat2)
    dlon = radians(lon2 - lon1)

    y = sin(dlon) * cos(phi2)
    x = cos(phi1) * sin(phi2) - sin(phi1) * cos(phi2) * cos(dlon)

    return (degrees(atan2(y, x)) + 360.0) % 360.0


def route_length_m(route: Sequence[tuple[float, float]]) -> float:
    """Total length of a (lng, lat) polyline in meters.

    Returns 0.0 for routes with fewer than two points.
    """
    total = 0.0
    for i in range(1, len(route)):
        a_lng, a_lat = route[i - 1]
        b_lng, b_lat = route[i]
        total += haversine_distance_m(a_lat, a_lng, b_lat, b_lng)
    return total
