"""Well-known-text point parsing.

Stored locations come back from the relational store as ``POINT(lng lat)``
text. Anything that does not match is treated as "no location known".
"""

import math
import re
from typing import NamedTuple

_NUMBER = r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?"
_POINT_PATTERN = re.compile(
    rf"^\s*(?:SRID=\d+;)?\s*POINT\s*\(\s*({_NUMBER})\s+({_NUMBER})\s*\)\s*$",
    re.IGNORECASE,
)


class Coordinate(NamedTuple):
    """A WGS84 position in degrees. Field order follows WKT: longitude first."""

    lng: float
    lat: float


def is_valid_lat_lng(lat: float, lng: float) -> bool:
    return (
        math.isfinite(lat)
        and math.isfinite(lng)
        and -90.0 <= lat <= 90.0
        and -180.0 <= lng <= 180.0
    )


def parse_point(encoded: object) -> Coordinate | None:
    """Parse ``POINT(lng lat)`` into a Coordinate.

    Returns None for absent, malformed or out-of-range input; never raises.
    """
    if not isinstance(encoded, str) or not encoded:
        return None

    match = _POINT_PATTERN.match(encoded)
    if not match:
        return None

    lng, lat = float(match.group(1)), float(match.group(2))
    if not is_valid_lat_lng(lat, lng):
        return None
    return Coordinate(lng=lng, lat=lat)
