"""In-memory collaborators for tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from livetrip.core.exceptions import LocationPermissionDenied, TransientDeliveryFailure
from livetrip.storage.interfaces import Identity
from livetrip.tracking.position import Position
from livetrip.trip import RideRequest, RideRequestStatus, Trip, TripStatus

BASE_TIME = datetime(2024, 6, 1, 12, 0, 0, tzinfo=UTC)


def make_position(
    seconds: float = 0.0,
    latitude: float = 12.9716,
    longitude: float = 77.5946,
    **kwargs: Any,
) -> Position:
    return Position(
        latitude=latitude,
        longitude=longitude,
        timestamp=BASE_TIME + timedelta(seconds=seconds),
        **kwargs,
    )


class InMemoryTripStore:
    """Trip and ride request storage backed by dicts. Returns copies, like a real store."""

    def __init__(
        self,
        trips: Iterable[Trip] = (),
        requests: Iterable[RideRequest] = (),
    ) -> None:
        self.trips: dict[str, Trip] = {t.trip_id: t for t in trips}
        self.requests: dict[str, RideRequest] = {r.request_id: r for r in requests}
        self.status_writes: list[tuple[str, TripStatus]] = []
        self.fail_reads = False

    def _check(self) -> None:
        if self.fail_reads:
            raise ConnectionError("store unavailable")

    async def get_trip(self, trip_id: str) -> Trip | None:
        self._check()
        trip = self.trips.get(trip_id)
        return trip.model_copy(deep=True) if trip else None

    async def get_trips_live_for_driver(self, driver_id: str) -> Sequence[Trip]:
        self._check()
        return [
            t.model_copy(deep=True)
            for t in self.trips.values()
            if t.driver_id == driver_id and t.status == TripStatus.LIVE
        ]

    async def get_accepted_request(self, rider_id: str, trip_id: str) -> RideRequest | None:
        self._check()
        for request in self.requests.values():
            if (
                request.rider_id == rider_id
                and request.trip_id == trip_id
                and request.status == RideRequestStatus.ACCEPTED
            ):
                return request.model_copy(deep=True)
        return None

    async def get_accepted_requests(self, trip_id: str) -> Sequence[RideRequest]:
        self._check()
        return [
            r.model_copy(deep=True)
            for r in self.requests.values()
            if r.trip_id == trip_id and r.status == RideRequestStatus.ACCEPTED
        ]

    async def set_trip_status(self, trip_id: str, status: TripStatus) -> None:
        self.status_writes.append((trip_id, status))
        self.trips[trip_id] = self.trips[trip_id].model_copy(update={"status": status})

    async def get_request(self, request_id: str) -> RideRequest | None:
        request = self.requests.get(request_id)
        return request.model_copy(deep=True) if request else None

    async def save_request(self, request: RideRequest) -> None:
        self.requests[request.request_id] = request.model_copy(deep=True)

    async def save_trip(self, trip: Trip) -> None:
        self.trips[trip.trip_id] = trip.model_copy(deep=True)


class StaticIdentityLookup:
    """Maps fixed tokens to identities."""

    def __init__(self, identities: dict[str, Identity]) -> None:
        self._identities = identities

    async def resolve(self, credential: str) -> Identity | None:
        return self._identities.get(credential)


class InMemoryDistributionPoint:
    """Latest-value store without push delivery."""

    def __init__(self) -> None:
        self.latest: dict[str, Position] = {}
        self.rider_latest: dict[str, dict[str, Position]] = {}
        self.published: list[tuple[str, Position]] = []
        self.cleared: list[str] = []
        self.statuses: list[tuple[str, str, str]] = []
        self.failures_remaining = 0
        self.always_fail = False

    async def publish(self, trip_id: str, position: Position) -> None:
        if self.always_fail or self.failures_remaining > 0:
            self.failures_remaining = max(0, self.failures_remaining - 1)
            raise TransientDeliveryFailure(trip_id, "distribution point unavailable")
        self.latest[trip_id] = position
        self.published.append((trip_id, position))

    async def publish_rider(self, trip_id: str, rider_id: str, position: Position) -> None:
        if self.always_fail:
            raise TransientDeliveryFailure(trip_id, "distribution point unavailable")
        self.rider_latest.setdefault(trip_id, {})[rider_id] = position

    async def fetch_riders(self, trip_id: str) -> dict[str, Position]:
        return dict(self.rider_latest.get(trip_id, {}))

    async def fetch(self, trip_id: str) -> Position | None:
        return self.latest.get(trip_id)

    async def clear(self, trip_id: str) -> None:
        self.latest.pop(trip_id, None)
        self.rider_latest.pop(trip_id, None)
        self.cleared.append(trip_id)

    async def publish_status(self, trip_id: str, status: str, event_type: str) -> None:
        self.statuses.append((trip_id, status, event_type))


class PushDistributionPoint(InMemoryDistributionPoint):
    """Latest-value store that also pushes each publish to subscribers."""

    def __init__(self) -> None:
        super().__init__()
        self._subscribers: dict[str, list[asyncio.Queue[Position]]] = {}

    async def publish(self, trip_id: str, position: Position) -> None:
        await super().publish(trip_id, position)
        for queue in self._subscribers.get(trip_id, []):
            queue.put_nowait(position)

    def subscriber_count(self, trip_id: str) -> int:
        return len(self._subscribers.get(trip_id, []))

    async def subscribe(self, trip_id: str) -> AsyncIterator[Position]:
        queue: asyncio.Queue[Position] = asyncio.Queue()
        self._subscribers.setdefault(trip_id, []).append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers[trip_id].remove(queue)


class ScriptedPositionSource:
    """Position source fed from a script of samples and errors.

    Each script item is a Position, a raw dict, or an exception instance to
    raise. Once the script runs out the source waits forever, like a device
    that stopped reporting.
    """

    def __init__(self, script: Iterable[Any] = ()) -> None:
        self._script = list(script)
        self.closed = False
        self.close_calls = 0

    def push(self, item: Any) -> None:
        self._script.append(item)

    async def next_sample(self) -> Any:
        while not self._script:
            await asyncio.sleep(3600)
        item = self._script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True
        self.close_calls += 1


def denied() -> LocationPermissionDenied:
    return LocationPermissionDenied("Location permission denied by device")


async def wait_until(predicate: Any, timeout: float = 2.0, interval: float = 0.005) -> None:
    """Poll predicate() until it is truthy or fail the test after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


DRIVER_TOKEN = "driver-token"
RIDER_TOKEN = "rider-token"
STRANGER_TOKEN = "stranger-token"


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
