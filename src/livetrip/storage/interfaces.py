"""Interfaces of the collaborators this package consumes.

Identity resolution, trip/request persistence and the latest-value
distribution point live outside this package. Implementations are supplied
by the hosting application; ``livetrip.redis_client`` ships the Redis
distribution point.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from livetrip.tracking.position import Position
    from livetrip.trip import RideRequest, Trip, TripStatus


class Identity(BaseModel):
    """A verified requester, passed explicitly into every decision."""

    user_id: str
    is_driver: bool = False
    name: str | None = None
    email: str | None = None

    model_config = ConfigDict(frozen=True)


class IdentityLookup(Protocol):
    async def resolve(self, credential: str) -> Identity | None:
        """Map an inbound credential to an identity, or None when it is not valid."""
        ...


class TripStore(Protocol):
    async def get_trip(self, trip_id: str) -> Trip | None: ...

    async def get_trips_live_for_driver(self, driver_id: str) -> Sequence[Trip]: ...

    async def get_accepted_request(self, rider_id: str, trip_id: str) -> RideRequest | None: ...

    async def get_accepted_requests(self, trip_id: str) -> Sequence[RideRequest]: ...

    async def set_trip_status(self, trip_id: str, status: TripStatus) -> None: ...

    async def get_request(self, request_id: str) -> RideRequest | None: ...

    async def save_request(self, request: RideRequest) -> None: ...

    async def save_trip(self, trip: Trip) -> None: ...


class DistributionPoint(Protocol):
    """Latest-value store keyed by trip id; last writer wins."""

    async def publish(self, trip_id: str, position: Position) -> None: ...

    async def fetch(self, trip_id: str) -> Position | None: ...


@runtime_checkable
class SubscribableDistributionPoint(DistributionPoint, Protocol):
    """A distribution point that can also push new values."""

    def subscribe(self, trip_id: str) -> AsyncIterator[Position]: ...


@runtime_checkable
class RiderDistributionPoint(DistributionPoint, Protocol):
    """A distribution point that also keeps each rider's latest position.

    Rider positions are read by the trip's driver only; they never reach the
    trip's shared position feed.
    """

    async def publish_rider(self, trip_id: str, rider_id: str, position: Position) -> None: ...

    async def fetch_riders(self, trip_id: str) -> dict[str, Position]: ...
