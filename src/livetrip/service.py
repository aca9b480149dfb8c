"""Entry points the page/API layer calls for live trip views and driver actions."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Literal, Protocol

from livetrip.authorization import (
    DriverLiveDecision,
    TripLiveDecision,
    authorize_driver_live,
    authorize_trip_live,
)
from livetrip.core.exceptions import AuthorizationDenied, InvalidTransition, NotFoundError
from livetrip.core.retry import with_retry
from livetrip.geo.distance import is_within_proximity
from livetrip.live_logging import log_trip_context
from livetrip.records import (
    LiveDriverTripData,
    LiveRider,
    RecordShape,
    TripSearchResult,
    TripViewData,
    normalize_trip_record,
    progress_along_route,
)
from livetrip.settings import TrackingSettings
from livetrip.storage.interfaces import (
    DistributionPoint,
    Identity,
    RiderDistributionPoint,
    TripStore,
)
from livetrip.tracking.broadcaster import BroadcastStatus, PositionBroadcaster
from livetrip.tracking.position import Position
from livetrip.tracking.sessions import SessionRegistry
from livetrip.tracking.source import PositionSource
from livetrip.tracking.watcher import PositionWatcher
from livetrip.trip import RideRequest, RideRequestStatus, Trip, TripStatus, transition_trip

logger = logging.getLogger(__name__)


class StatusPublisher(Protocol):
    async def publish_status(self, trip_id: str, status: str, event_type: str) -> None: ...


class LiveTripService:
    """Live trip views plus the driver/rider actions that change who may see them."""

    def __init__(
        self,
        store: TripStore,
        distribution: DistributionPoint,
        settings: TrackingSettings,
        status_publisher: StatusPublisher | None = None,
    ) -> None:
        self._store = store
        self._distribution = distribution
        self._settings = settings
        self._status_publisher = status_publisher
        self.sessions = SessionRegistry(store, distribution, settings)

    # --- Authorization -------------------------------------------------

    async def can_open_driver_live_view(self, identity: Identity) -> DriverLiveDecision:
        return await authorize_driver_live(identity, self._store)

    async def can_open_trip_live_view(self, identity: Identity, trip_id: str) -> TripLiveDecision:
        return await authorize_trip_live(identity, trip_id, self._store)

    # --- Propagation ---------------------------------------------------

    async def start_broadcast(
        self,
        identity: Identity,
        trip_id: str,
        source: PositionSource,
        on_status_change: Callable[[BroadcastStatus], None] | None = None,
    ) -> PositionBroadcaster:
        return await self.sessions.start_broadcast(identity, trip_id, source, on_status_change)

    async def stop_broadcast(self, handle: PositionBroadcaster) -> None:
        await self.sessions.stop_broadcast(handle)

    async def start_watching(self, identity: Identity, trip_id: str) -> PositionWatcher:
        return await self.sessions.start_watching(identity, trip_id)

    async def stop_watching(self, handle: PositionWatcher) -> None:
        await self.sessions.stop_watching(handle)

    async def latest_position(self, identity: Identity, trip_id: str) -> Position | None:
        """One-shot read of the latest position for an authorized viewer."""
        decision = await self.can_open_trip_live_view(identity, trip_id)
        decision.raise_for_denied()
        return await self._distribution.fetch(trip_id)

    async def driver_live_trip(self, identity: Identity) -> LiveDriverTripData:
        """Snapshot for the driver live view.

        Carries the driver's latest fix, progress along the route and the
        riders with accepted requests, each with their shared position when
        one was reported.
        """
        decision = await self.can_open_driver_live_view(identity)
        decision.raise_for_denied()
        trip_id = str(decision.trip_id)

        trip = await self._store.get_trip(trip_id)
        if trip is None:
            raise NotFoundError(f"Trip {trip_id} not found", {"trip_id": trip_id})

        latest = await self._distribution.fetch(trip_id)
        rider_positions: dict[str, Position] = {}
        if isinstance(self._distribution, RiderDistributionPoint):
            rider_positions = await self._distribution.fetch_riders(trip_id)

        riders = []
        for request in await self._store.get_accepted_requests(trip_id):
            shared = rider_positions.get(request.rider_id)
            riders.append(
                LiveRider(
                    request_id=request.request_id,
                    rider_id=request.rider_id,
                    status=request.status.value,
                    seats=request.seats,
                    current_location=shared.coordinate if shared else None,
                )
            )

        driver_location = latest.coordinate if latest else None
        return LiveDriverTripData(
            id=trip.trip_id,
            status=trip.status,
            from_location=trip.from_location,
            to_location=trip.to_location,
            driver_current_location=driver_location,
            driver_heading=latest.heading if latest else None,
            driver_speed_kmph=latest.speed_kmph if latest else None,
            driver_last_updated=latest.timestamp if latest else None,
            riders=riders,
            route_geometry=trip.route_geometry,
            route_progress=progress_along_route(trip.route_geometry, driver_location),
        )

    # --- Normalization -------------------------------------------------

    def normalize_trip_record(
        self, raw: Mapping[str, Any], source_label: str, shape: RecordShape
    ) -> TripSearchResult | TripViewData | LiveDriverTripData:
        return normalize_trip_record(raw, source_label, shape)

    # --- Driver lifecycle actions --------------------------------------

    async def _owned_trip(self, identity: Identity, trip_id: str) -> Trip:
        trip = await self._store.get_trip(trip_id)
        if trip is None:
            raise NotFoundError(f"Trip {trip_id} not found", {"trip_id": trip_id})
        if trip.driver_id != identity.user_id:
            raise AuthorizationDenied("not_the_driver", trip_id=trip_id)
        return trip

    async def change_trip_status(
        self, identity: Identity, trip_id: str, target: TripStatus
    ) -> Trip:
        """Apply a driver-initiated lifecycle transition.

        Raises InvalidTransition (nothing persisted) when the move is not
        legal, including going live without a computed route, and
        AuthorizationDenied when the identity does not own the trip.
        """
        trip = await self._owned_trip(identity, trip_id)

        with log_trip_context(trip_id, user_id=identity.user_id):
            updated = transition_trip(trip, target)

            if target == TripStatus.LIVE:
                if trip.route_geometry is None:
                    raise InvalidTransition(
                        trip.status.value,
                        target.value,
                        f"Trip {trip_id} has no route; compute it before going live",
                    )
                others = [
                    t
                    for t in await self._store.get_trips_live_for_driver(identity.user_id)
                    if t.trip_id != trip_id
                ]
                if others:
                    raise InvalidTransition(
                        trip.status.value,
                        target.value,
                        f"Driver already has a live trip ({others[0].trip_id})",
                    )

            if target == TripStatus.COMPLETED:
                await self._check_arrival(updated)

            await with_retry(
                lambda: self._store.set_trip_status(trip_id, target),
                description=f"status write for trip {trip_id}",
            )
            if updated.available_seats != trip.available_seats:
                await self._store.save_trip(updated)
            logger.info(f"Trip {trip_id} moved {trip.status.value} -> {target.value}")

            if self._status_publisher is not None:
                await self._status_publisher.publish_status(
                    trip_id, target.value, target.to_event_type()
                )
            if trip.status == TripStatus.LIVE:
                await self.sessions.close_trip(trip_id)
                clear = getattr(self._distribution, "clear", None)
                if clear is not None:
                    await clear(trip_id)

        return updated

    async def _check_arrival(self, trip: Trip) -> None:
        if trip.to_location is None:
            return
        latest = await self._distribution.fetch(trip.trip_id)
        if latest is None:
            return
        if not is_within_proximity(
            latest.latitude,
            latest.longitude,
            trip.to_location.lat,
            trip.to_location.lng,
            threshold_m=self._settings.arrival_proximity_threshold_m,
        ):
            raise InvalidTransition(
                TripStatus.LIVE.value,
                TripStatus.COMPLETED.value,
                f"Driver must be within {self._settings.arrival_proximity_threshold_m:.0f}m "
                "of the destination to complete the trip",
            )

    # --- Ride request actions ------------------------------------------

    async def respond_to_request(
        self, identity: Identity, request_id: str, accept: bool
    ) -> RideRequest:
        request = await self._store.get_request(request_id)
        if request is None:
            raise NotFoundError(f"Ride request {request_id} not found", {"request_id": request_id})
        trip = await self._owned_trip(identity, request.trip_id)

        if accept:
            request.accept(trip)
            await self._store.save_trip(trip)
        else:
            request.reject()
        await self._store.save_request(request)
        logger.info(f"Request {request_id} on trip {trip.trip_id} is now {request.status.value}")
        return request

    async def cancel_request(
        self, identity: Identity, request_id: str, reason: str | None = None
    ) -> RideRequest:
        request = await self._store.get_request(request_id)
        if request is None:
            raise NotFoundError(f"Ride request {request_id} not found", {"request_id": request_id})
        trip = await self._store.get_trip(request.trip_id)
        if trip is None:
            raise NotFoundError(f"Trip {request.trip_id} not found", {"trip_id": request.trip_id})

        by: Literal["rider", "driver"]
        if identity.user_id == request.rider_id:
            by = "rider"
        elif identity.user_id == trip.driver_id:
            by = "driver"
        else:
            raise AuthorizationDenied("not_a_participant", trip_id=trip.trip_id)

        was_accepted = request.status == RideRequestStatus.ACCEPTED
        request.cancel(trip, by=by, reason=reason)
        if was_accepted:
            await self._store.save_trip(trip)
        await self._store.save_request(request)
        return request

    async def shutdown(self) -> None:
        await self.sessions.close_all()
