from .prometheus_exporter import (
    REGISTRY,
    active_broadcasts,
    active_watchers,
    authorization_decisions,
    delivery_failures,
    geometry_parse_failures,
    positions_published,
    positions_rejected,
    render_latest,
)

__all__ = [
    "REGISTRY",
    "active_broadcasts",
    "active_watchers",
    "authorization_decisions",
    "delivery_failures",
    "geometry_parse_failures",
    "positions_published",
    "positions_rejected",
    "render_latest",
]
