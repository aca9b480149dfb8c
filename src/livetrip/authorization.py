"""Live view authorization.

Decides who may open a trip's live feed and in which role. The decision
functions are pure: they take an explicit identity plus trip/request
snapshots and return a decision value. The ``authorize_*`` coroutines only
add the storage reads in front of them.

Denial is an expected outcome (the caller redirects to the static trip
view), so it is returned, not raised.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import Enum
from typing import Literal

from pydantic import BaseModel

from livetrip.core.exceptions import AuthorizationDenied
from livetrip.metrics import authorization_decisions
from livetrip.storage.interfaces import Identity, TripStore
from livetrip.trip import RideRequest, RideRequestStatus, Trip, TripStatus

logger = logging.getLogger(__name__)

Role = Literal["driver", "rider"]


class DenialReason(str, Enum):
    NOT_A_DRIVER = "not_a_driver"
    NO_LIVE_TRIP = "no_live_trip"
    MULTIPLE_LIVE_TRIPS = "multiple_live_trips"
    TRIP_NOT_FOUND = "trip_not_found"
    TRIP_NOT_LIVE = "trip_not_live"
    NOT_A_PARTICIPANT = "not_a_participant"


class DriverLiveDecision(BaseModel):
    allowed: bool
    trip_id: str | None = None
    reason: DenialReason | None = None

    def raise_for_denied(self) -> None:
        if not self.allowed:
            raise AuthorizationDenied(self.reason.value if self.reason else "denied")


class TripLiveDecision(BaseModel):
    allowed: bool
    trip_id: str
    role: Role | None = None
    reason: DenialReason | None = None

    def raise_for_denied(self) -> None:
        if not self.allowed:
            raise AuthorizationDenied(
                self.reason.value if self.reason else "denied", trip_id=self.trip_id
            )


def decide_driver_live(identity: Identity, live_trips: Sequence[Trip]) -> DriverLiveDecision:
    """Decide whether a driver may open their own live view.

    ``live_trips`` are the trips the store reports as live for this driver.
    More than one is a data-consistency fault: the driver is refused rather
    than shown an arbitrary trip.
    """
    if not identity.is_driver:
        return _driver_denied(DenialReason.NOT_A_DRIVER)

    owned = [
        t for t in live_trips if t.driver_id == identity.user_id and t.status == TripStatus.LIVE
    ]
    if not owned:
        return _driver_denied(DenialReason.NO_LIVE_TRIP)
    if len(owned) > 1:
        logger.warning(
            f"Driver {identity.user_id} has {len(owned)} live trips "
            f"({', '.join(t.trip_id for t in owned)}); refusing live view"
        )
        return _driver_denied(DenialReason.MULTIPLE_LIVE_TRIPS)

    authorization_decisions.labels(view="driver", outcome="allowed").inc()
    return DriverLiveDecision(allowed=True, trip_id=owned[0].trip_id)


def decide_trip_live(
    identity: Identity,
    trip_id: str,
    trip: Trip | None,
    accepted_request: RideRequest | None,
) -> TripLiveDecision:
    """Decide whether an identity may watch a trip's live feed.

    Allowed only while the trip is live, for its driver or for a rider
    holding an accepted request on it.
    """
    if trip is None or trip.trip_id != trip_id:
        return _trip_denied(trip_id, DenialReason.TRIP_NOT_FOUND)
    if trip.status != TripStatus.LIVE:
        return _trip_denied(trip_id, DenialReason.TRIP_NOT_LIVE)

    role: Role | None = None
    if trip.driver_id == identity.user_id:
        role = "driver"
    elif (
        accepted_request is not None
        and accepted_request.status == RideRequestStatus.ACCEPTED
        and accepted_request.trip_id == trip_id
        and accepted_request.rider_id == identity.user_id
    ):
        role = "rider"

    if role is None:
        return _trip_denied(trip_id, DenialReason.NOT_A_PARTICIPANT)

    authorization_decisions.labels(view="trip", outcome="allowed").inc()
    return TripLiveDecision(allowed=True, trip_id=trip_id, role=role)


async def authorize_driver_live(identity: Identity, store: TripStore) -> DriverLiveDecision:
    if not identity.is_driver:
        return decide_driver_live(identity, [])
    live_trips = await store.get_trips_live_for_driver(identity.user_id)
    return decide_driver_live(identity, live_trips)


async def authorize_trip_live(
    identity: Identity, trip_id: str, store: TripStore
) -> TripLiveDecision:
    trip = await store.get_trip(trip_id)
    accepted_request = None
    if trip is not None and trip.status == TripStatus.LIVE and trip.driver_id != identity.user_id:
        accepted_request = await store.get_accepted_request(identity.user_id, trip_id)
    return decide_trip_live(identity, trip_id, trip, accepted_request)


def _driver_denied(reason: DenialReason) -> DriverLiveDecision:
    authorization_decisions.labels(view="driver", outcome=reason.value).inc()
    return DriverLiveDecision(allowed=False, reason=reason)


def _trip_denied(trip_id: str, reason: DenialReason) -> TripLiveDecision:
    authorization_decisions.labels(view="trip", outcome=reason.value).inc()
    logger.debug(f"Live view for trip {trip_id} denied: {reason.value}")
    return TripLiveDecision(allowed=False, trip_id=trip_id, reason=reason)
