"""Pub/sub channel naming and message schemas for live trip updates."""

from typing import Literal

from pydantic import BaseModel

CHANNEL_TRIP_POSITIONS = "trip-positions"
CHANNEL_TRIP_STATUS = "trip-status"

ALL_CHANNELS = [
    CHANNEL_TRIP_POSITIONS,
    CHANNEL_TRIP_STATUS,
]


def position_channel(trip_id: str) -> str:
    return f"{CHANNEL_TRIP_POSITIONS}:{trip_id}"


def status_channel(trip_id: str) -> str:
    return f"{CHANNEL_TRIP_STATUS}:{trip_id}"


def latest_position_key(trip_id: str) -> str:
    return f"live:trips:{trip_id}:position"


def rider_positions_key(trip_id: str) -> str:
    """Hash of rider_id -> latest rider position; only the trip's driver reads it."""
    return f"live:trips:{trip_id}:riders"


class PositionUpdateMessage(BaseModel):
    """Driver or rider position for a live trip."""

    trip_id: str
    latitude: float
    longitude: float
    heading: float | None = None
    speed_kmph: float | None = None
    accuracy_m: float | None = None
    timestamp: str
    source_role: Literal["driver", "rider"] = "driver"
    rider_id: str | None = None


class TripStatusMessage(BaseModel):
    """Trip lifecycle change pushed to everyone in the trip's room."""

    trip_id: str
    status: str
    event_type: str
    timestamp: str
