"""GeoJSON LineString parsing for stored route geometry."""

import json
import logging
import math
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

LINE_STRING = "LineString"


def _coordinate_pair(value: Any) -> tuple[float, float] | None:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return None
    converted = []
    for element in value:
        # bool is an int subclass; a [true, false] pair is corrupt data
        if isinstance(element, bool) or not isinstance(element, (int, float)):
            return None
        try:
            number = float(element)
        except OverflowError:
            # JSON integers have no size limit
            return None
        if not math.isfinite(number):
            return None
        converted.append(number)
    return converted[0], converted[1]


def parse_line_string(encoded: object) -> list[tuple[float, float]] | None:
    """Parse a GeoJSON LineString into an ordered list of (lng, lat) pairs.

    Accepts an already-decoded mapping or its JSON text. Individual pairs that
    are not two finite numbers are dropped; the rest keep their original
    order. Returns None when the payload is absent, unparseable, not a
    LineString, or has no usable pair left, so callers never see an empty
    route.
    """
    if encoded is None:
        return None

    geometry: Any = encoded
    if isinstance(encoded, (str, bytes, bytearray)):
        try:
            geometry = json.loads(encoded)
        except (ValueError, UnicodeDecodeError):
            return None

    if not isinstance(geometry, Mapping):
        return None
    if geometry.get("type") != LINE_STRING:
        return None

    coordinates = geometry.get("coordinates")
    if not isinstance(coordinates, list):
        return None

    route = [pair for pair in map(_coordinate_pair, coordinates) if pair is not None]
    dropped = len(coordinates) - len(route)
    if dropped and route:
        logger.debug(f"Dropped {dropped} malformed coordinate pair(s) from route geometry")

    return route or None
