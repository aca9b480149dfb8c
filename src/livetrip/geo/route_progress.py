"""Split a route at the driver's current position for the live view."""

from collections.abc import Sequence

from pydantic import BaseModel

from .distance import route_length_m
from .wkt import Coordinate

RoutePoint = tuple[float, float]


class RouteProgress(BaseModel):
    completed_route: list[RoutePoint]
    remaining_route: list[RoutePoint]
    progress_percent: float
    completed_distance_km: float
    remaining_distance_km: float
    total_distance_km: float


def nearest_route_index(route: Sequence[RoutePoint], position: Coordinate) -> int:
    """Index of the route vertex closest to position, or -1 for an empty route.

    Uses squared degree deltas; good enough to pick a vertex on a city-scale route.
    """
    best_index = -1
    best_distance = float("inf")
    for i, (lng, lat) in enumerate(route):
        d_lng = lng - position.lng
        d_lat = lat - position.lat
        d2 = d_lng * d_lng + d_lat * d_lat
        if d2 < best_distance:
            best_distance = d2
            best_index = i
    return best_index


def split_route_by_position(
    route: Sequence[RoutePoint] | None,
    position: Coordinate | None,
) -> RouteProgress:
    route = list(route or [])
    total_km = route_length_m(route) / 1000.0

    nearest = nearest_route_index(route, position) if position is not None else -1
    if position is None or len(route) < 2 or nearest < 0:
        return RouteProgress(
            completed_route=[],
            remaining_route=route,
            progress_percent=0.0,
            completed_distance_km=0.0,
            remaining_distance_km=total_km,
            total_distance_km=total_km,
        )

    driver_point: RoutePoint = (position.lng, position.lat)
    completed = [*route[: nearest + 1], driver_point]
    remaining = [driver_point, *route[nearest + 1 :]]

    completed_km = route_length_m(completed) / 1000.0
    remaining_km = max(0.0, total_km - completed_km)
    progress = 0.0
    if total_km > 0:
        progress = max(0.0, min(100.0, completed_km / total_km * 100.0))

    return RouteProgress(
        completed_route=completed,
        remaining_route=remaining,
        progress_percent=progress,
        completed_distance_km=completed_km,
        remaining_distance_km=remaining_km,
        total_distance_km=total_km,
    )
