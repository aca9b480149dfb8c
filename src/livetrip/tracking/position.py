"""Position samples and the per-device ordering filter."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from livetrip.geo.wkt import Coordinate, is_valid_lat_lng

logger = logging.getLogger(__name__)


class Position(BaseModel):
    """One WGS84 fix reported by a device."""

    latitude: float = Field(ge=-90.0, le=90.0, allow_inf_nan=False)
    longitude: float = Field(ge=-180.0, le=180.0, allow_inf_nan=False)
    timestamp: datetime
    heading: float | None = Field(default=None, ge=0.0, lt=360.0)
    speed_kmph: float | None = Field(default=None, ge=0.0)
    accuracy_m: float | None = Field(default=None, ge=0.0)

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(lng=self.longitude, lat=self.latitude)

    def to_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class RejectReason(str, Enum):
    OUT_OF_RANGE = "out_of_range"
    STALE = "stale"


def parse_position(data: dict[str, Any]) -> Position | None:
    """Build a Position from untrusted device data, or None when it is out of range."""
    try:
        return Position.model_validate(data)
    except ValidationError as e:
        logger.debug(f"Discarding invalid position sample: {e.error_count()} error(s)")
        return None


def coerce_sample(sample: Position | dict[str, Any]) -> Position | None:
    """Validate a raw device sample against the coordinate ranges.

    Positions built with ``model_construct`` skip validation, so their
    ranges are checked again here.
    """
    if isinstance(sample, Position):
        if not is_valid_lat_lng(sample.latitude, sample.longitude):
            return None
        return sample
    return parse_position(sample)


class MonotonicPositionFilter:
    """Keeps only samples strictly newer than the last accepted one.

    Out-of-order samples are dropped, never reordered. One filter per source
    device.
    """

    def __init__(self) -> None:
        self.last_accepted: Position | None = None
        self.rejected: Counter[RejectReason] = Counter()

    def accept(self, position: Position) -> bool:
        if self.last_accepted is not None and position.timestamp <= self.last_accepted.timestamp:
            self.rejected[RejectReason.STALE] += 1
            return False
        self.last_accepted = position
        return True

    def reset(self) -> None:
        self.last_accepted = None
