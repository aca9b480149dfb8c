"""Prometheus metrics for live trip sessions."""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

# Use a separate registry to avoid default Python metrics
REGISTRY = CollectorRegistry()

# --- Gauges (point-in-time values) ---

active_broadcasts = Gauge(
    "livetrip_active_broadcasts",
    "Driver position broadcasts currently running",
    registry=REGISTRY,
)

active_watchers = Gauge(
    "livetrip_active_watchers",
    "Viewer sessions currently receiving position updates",
    registry=REGISTRY,
)

# --- Counters ---

positions_published = Counter(
    "livetrip_positions_published_total",
    "Position samples delivered to the distribution point",
    registry=REGISTRY,
)

positions_rejected = Counter(
    "livetrip_positions_rejected_total",
    "Position samples discarded before publish",
    ["reason"],
    registry=REGISTRY,
)

delivery_failures = Counter(
    "livetrip_delivery_failures_total",
    "Position publishes that failed and were superseded by the next tick",
    registry=REGISTRY,
)

geometry_parse_failures = Counter(
    "livetrip_geometry_parse_failures_total",
    "Stored records whose route geometry could not be parsed",
    ["source"],
    registry=REGISTRY,
)

authorization_decisions = Counter(
    "livetrip_authorization_decisions_total",
    "Live view authorization decisions",
    ["view", "outcome"],
    registry=REGISTRY,
)


def render_latest() -> bytes:
    """Render all live trip metrics in Prometheus exposition format."""
    return generate_latest(REGISTRY)
