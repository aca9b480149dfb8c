from .distance import (
    EARTH_RADIUS_M,
    haversine_distance_km,
    haversine_distance_m,
    initial_bearing_deg,
    is_within_proximity,
    route_length_m,
)
from .geojson import parse_line_string
from .wkt import Coordinate, parse_point

__all__ = [
    "EARTH_RADIUS_M",
    "Coordinate",
    "haversine_distance_km",
    "haversine_distance_m",
    "initial_bearing_deg",
    "is_within_proximity",
    "parse_line_string",
    "parse_point",
    "route_length_m",
]
