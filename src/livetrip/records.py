"""Normalization of stored trip rows into the shapes callers consume.

Rows arrive from the store with the route as raw GeoJSON text under
``route_geojson`` and point locations as WKT. Every shape shares one
extraction step that parses the route and strips the raw field, so a
consumer never sees both representations at once. Each output shape then
maps its own fields explicitly.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from livetrip.core.exceptions import GeometryParseFailure
from livetrip.geo.geojson import parse_line_string
from livetrip.geo.route_progress import RouteProgress, split_route_by_position
from livetrip.geo.wkt import Coordinate, parse_point
from livetrip.metrics import geometry_parse_failures
from livetrip.trip import TripStatus

logger = logging.getLogger(__name__)

RAW_GEOMETRY_FIELD = "route_geojson"

RoutePoint = tuple[float, float]


class RecordShape(str, Enum):
    SEARCH_RESULT = "search_result"
    DETAIL_VIEW = "detail_view"
    LIVE_DRIVER = "live_driver"


def split_route_geometry(
    raw: Mapping[str, Any], source: str | None = None
) -> tuple[list[RoutePoint] | None, dict[str, Any]]:
    """Parse the route out of a stored row.

    Returns ``(route_geometry, rest)`` where ``rest`` is a copy of the row
    without the raw GeoJSON field. A row that carried a geometry payload which
    fails to parse is reported as a data-quality event and yields None; it
    never stops the row from being returned.
    """
    payload = raw.get(RAW_GEOMETRY_FIELD)
    route_geometry = parse_line_string(payload)

    if route_geometry is None and payload is not None:
        failure = GeometryParseFailure(source or "unknown")
        geometry_parse_failures.labels(source=failure.source).inc()
        logger.warning(
            failure.message,
            extra={"trip_id": raw.get("id"), "source": failure.source},
        )

    rest = {key: value for key, value in raw.items() if key != RAW_GEOMETRY_FIELD}
    return route_geometry, rest


def _point(rest: Mapping[str, Any], field: str) -> Coordinate | None:
    value = rest.get(field)
    if isinstance(value, Coordinate):
        return value
    return parse_point(value)


class TripSearchResult(BaseModel):
    id: str
    driver_name: str | None = None
    driver_rating: float | None = None
    vehicle_type: str | None = None
    vehicle_number: str | None = None
    fare_per_seat: float | None = None
    available_seats: int | None = None
    travel_date: datetime | None = None
    from_address: str | None = None
    to_address: str | None = None
    pickup_route_point: Coordinate | None = None
    drop_route_point: Coordinate | None = None
    # Search cards draw an empty route rather than branching on None
    route_geometry: list[RoutePoint] = Field(default_factory=list)


class TripViewData(BaseModel):
    id: str
    status: TripStatus | None = None
    driver_id: str | None = None
    driver_name: str | None = None
    vehicle_type: str | None = None
    vehicle_number: str | None = None
    fare_per_seat: float | None = None
    total_seats: int | None = None
    available_seats: int | None = None
    travel_date: datetime | None = None
    from_address: str | None = None
    to_address: str | None = None
    from_location: Coordinate | None = None
    to_location: Coordinate | None = None
    route_geometry: list[RoutePoint] | None = None


class LiveRider(BaseModel):
    request_id: str
    rider_id: str
    rider_name: str | None = None
    status: str | None = None
    seats: int | None = None
    current_location: Coordinate | None = None


class LiveDriverTripData(BaseModel):
    id: str
    status: TripStatus | None = None
    from_address: str | None = None
    to_address: str | None = None
    from_location: Coordinate | None = None
    to_location: Coordinate | None = None
    driver_current_location: Coordinate | None = None
    driver_heading: float | None = None
    driver_speed_kmph: float | None = None
    driver_last_updated: datetime | None = None
    riders: list[LiveRider] = Field(default_factory=list)
    route_geometry: list[RoutePoint] | None = None
    route_progress: RouteProgress | None = None


def progress_along_route(
    route_geometry: list[RoutePoint] | None, driver_location: Coordinate | None
) -> RouteProgress | None:
    """Completed and remaining parts of the route, or None for a trip without one."""
    if route_geometry is None:
        return None
    return split_route_by_position(route_geometry, driver_location)


def to_trip_search_result(raw: Mapping[str, Any], source: str | None = None) -> TripSearchResult:
    route_geometry, rest = split_route_geometry(raw, source)
    return TripSearchResult(
        id=str(rest["id"]),
        driver_name=rest.get("driver_name"),
        driver_rating=rest.get("driver_rating"),
        vehicle_type=rest.get("vehicle_type"),
        vehicle_number=rest.get("vehicle_number"),
        fare_per_seat=rest.get("fare_per_seat"),
        available_seats=rest.get("available_seats"),
        travel_date=rest.get("travel_date"),
        from_address=rest.get("from_address"),
        to_address=rest.get("to_address"),
        pickup_route_point=_point(rest, "pickup_route_point"),
        drop_route_point=_point(rest, "drop_route_point"),
        route_geometry=route_geometry or [],
    )


def to_trip_view_data(raw: Mapping[str, Any], source: str | None = None) -> TripViewData:
    route_geometry, rest = split_route_geometry(raw, source)
    return TripViewData(
        id=str(rest["id"]),
        status=rest.get("status"),
        driver_id=rest.get("driver_id"),
        driver_name=rest.get("driver_name"),
        vehicle_type=rest.get("vehicle_type"),
        vehicle_number=rest.get("vehicle_number"),
        fare_per_seat=rest.get("fare_per_seat"),
        total_seats=rest.get("total_seats"),
        available_seats=rest.get("available_seats"),
        travel_date=rest.get("travel_date"),
        from_address=rest.get("from_address"),
        to_address=rest.get("to_address"),
        from_location=_point(rest, "from_location"),
        to_location=_point(rest, "to_location"),
        route_geometry=route_geometry,
    )


def _live_rider(row: Mapping[str, Any]) -> LiveRider:
    return LiveRider(
        request_id=str(row["request_id"]),
        rider_id=str(row["rider_id"]),
        rider_name=row.get("rider_name"),
        status=row.get("status"),
        seats=row.get("seats"),
        current_location=_point(row, "current_location"),
    )


def to_live_driver_trip_data(
    raw: Mapping[str, Any], source: str | None = None
) -> LiveDriverTripData:
    route_geometry, rest = split_route_geometry(raw, source)
    driver_location = _point(rest, "driver_current_location")
    return LiveDriverTripData(
        id=str(rest["id"]),
        status=rest.get("status"),
        from_address=rest.get("from_address"),
        to_address=rest.get("to_address"),
        from_location=_point(rest, "from_location"),
        to_location=_point(rest, "to_location"),
        driver_current_location=driver_location,
        driver_heading=rest.get("driver_heading"),
        driver_speed_kmph=rest.get("driver_speed_kmph"),
        driver_last_updated=rest.get("driver_last_updated"),
        riders=[_live_rider(row) for row in rest.get("riders") or []],
        route_geometry=route_geometry,
        route_progress=progress_along_route(route_geometry, driver_location),
    )


_CONSTRUCTORS: dict[RecordShape, Callable[[Mapping[str, Any], str | None], BaseModel]] = {
    RecordShape.SEARCH_RESULT: to_trip_search_result,
    RecordShape.DETAIL_VIEW: to_trip_view_data,
    RecordShape.LIVE_DRIVER: to_live_driver_trip_data,
}


def normalize_trip_record(
    raw: Mapping[str, Any], source_label: str, shape: RecordShape
) -> TripSearchResult | TripViewData | LiveDriverTripData:
    """Normalize a stored row into the requested output shape."""
    return _CONSTRUCTORS[shape](raw, source_label)  # type: ignore[return-value]
