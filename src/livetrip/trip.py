"""Trip and ride request state machines and models."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from livetrip.core.exceptions import InvalidTransition
from livetrip.geo.wkt import Coordinate


class TripStatus(str, Enum):
    """Trip lifecycle states."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def to_event_type(self) -> str:
        """Convert status to a pub/sub event type (e.g., 'trip.live')."""
        return f"trip.{self.value}"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_TRIP_STATUSES


TERMINAL_TRIP_STATUSES = frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED})

TRIP_TRANSITIONS: dict[TripStatus, set[TripStatus]] = {
    TripStatus.DRAFT: {TripStatus.SCHEDULED},
    TripStatus.SCHEDULED: {TripStatus.LIVE, TripStatus.CANCELLED},
    TripStatus.LIVE: {TripStatus.COMPLETED, TripStatus.CANCELLED},
    TripStatus.COMPLETED: set(),
    TripStatus.CANCELLED: set(),
}


class RideRequestStatus(str, Enum):
    """Ride request approval states."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


RIDE_REQUEST_TRANSITIONS: dict[RideRequestStatus, set[RideRequestStatus]] = {
    RideRequestStatus.PENDING: {
        RideRequestStatus.ACCEPTED,
        RideRequestStatus.REJECTED,
        RideRequestStatus.CANCELLED,
    },
    RideRequestStatus.ACCEPTED: {RideRequestStatus.CANCELLED},
    RideRequestStatus.REJECTED: set(),
    RideRequestStatus.CANCELLED: set(),
}

# A rider or driver may only back out of a request before departure
_CANCELLABLE_TRIP_STATUSES = frozenset({TripStatus.DRAFT, TripStatus.SCHEDULED})


def can_transition(current: TripStatus, target: TripStatus) -> bool:
    """Whether current -> target is a legal trip lifecycle move."""
    return target in TRIP_TRANSITIONS[current]


class Trip(BaseModel):
    """One driver-offered journey with its lifecycle state."""

    trip_id: str
    driver_id: str
    status: TripStatus = Field(default=TripStatus.DRAFT)
    total_seats: int = Field(ge=1)
    available_seats: int = Field(ge=0)
    # (lng, lat) pairs; None until the route is computed
    route_geometry: list[tuple[float, float]] | None = None
    from_location: Coordinate | None = None
    to_location: Coordinate | None = None
    travel_date: datetime | None = None
    fare_per_seat: float | None = Field(default=None, ge=0.0)

    @field_validator("route_geometry")
    @classmethod
    def empty_route_is_absent(
        cls, v: list[tuple[float, float]] | None
    ) -> list[tuple[float, float]] | None:
        return v or None

    @model_validator(mode="after")
    def validate_seats(self) -> "Trip":
        if self.available_seats > self.total_seats:
            raise ValueError(
                f"available_seats ({self.available_seats}) exceeds total_seats ({self.total_seats})"
            )
        return self

    @property
    def is_live(self) -> bool:
        return self.status == TripStatus.LIVE

    def transition_to(self, new_status: TripStatus) -> None:
        """Transition to a new status with validation.

        Raises InvalidTransition and leaves the trip untouched when the move
        is not legal.
        """
        if self.status.is_terminal:
            raise InvalidTransition(
                self.status.value,
                new_status.value,
                f"Cannot transition from terminal status {self.status.value}",
            )

        if not can_transition(self.status, new_status):
            raise InvalidTransition(self.status.value, new_status.value)

        self.status = new_status

        if new_status == TripStatus.COMPLETED:
            self.available_seats = self.total_seats

    def reserve_seats(self, seats: int) -> None:
        if seats > self.available_seats:
            raise InvalidTransition(
                RideRequestStatus.PENDING.value,
                RideRequestStatus.ACCEPTED.value,
                f"Trip {self.trip_id} has {self.available_seats} seat(s) left, {seats} requested",
            )
        self.available_seats -= seats

    def release_seats(self, seats: int) -> None:
        self.available_seats = min(self.total_seats, self.available_seats + seats)


def transition_trip(trip: Trip, new_status: TripStatus) -> Trip:
    """Return a copy of the trip snapshot moved to new_status.

    The supplied snapshot is never modified, so a failed transition cannot
    leave a half-updated trip behind.
    """
    updated = trip.model_copy(deep=True)
    updated.transition_to(new_status)
    return updated


class RideRequest(BaseModel):
    """A rider's claim on seats of a trip."""

    request_id: str
    trip_id: str
    rider_id: str
    seats: int = Field(default=1, ge=1)
    fare: float = Field(default=0.0, ge=0.0)
    status: RideRequestStatus = Field(default=RideRequestStatus.PENDING)
    cancelled_by: Literal["rider", "driver"] | None = None
    cancellation_reason: str | None = None

    def _move(self, new_status: RideRequestStatus) -> None:
        if new_status not in RIDE_REQUEST_TRANSITIONS[self.status]:
            raise InvalidTransition(self.status.value, new_status.value)
        self.status = new_status

    def _check_trip(self, trip: Trip) -> None:
        if trip.trip_id != self.trip_id:
            raise ValueError(f"Request {self.request_id} does not belong to trip {trip.trip_id}")

    def accept(self, trip: Trip) -> None:
        """Driver accepts the request, taking seats from the trip."""
        self._check_trip(trip)
        if self.status != RideRequestStatus.PENDING:
            raise InvalidTransition(self.status.value, RideRequestStatus.ACCEPTED.value)
        if trip.status.is_terminal:
            raise InvalidTransition(
                self.status.value,
                RideRequestStatus.ACCEPTED.value,
                f"Trip {trip.trip_id} is {trip.status.value}",
            )
        trip.reserve_seats(self.seats)
        self.status = RideRequestStatus.ACCEPTED

    def reject(self) -> None:
        self._move(RideRequestStatus.REJECTED)

    def cancel(
        self,
        trip: Trip,
        by: Literal["rider", "driver"],
        reason: str | None = None,
    ) -> None:
        """Cancel a pending or accepted request before the trip departs."""
        self._check_trip(trip)
        if trip.status not in _CANCELLABLE_TRIP_STATUSES:
            raise InvalidTransition(
                self.status.value,
                RideRequestStatus.CANCELLED.value,
                f"Requests cannot be cancelled once trip {trip.trip_id} is {trip.status.value}",
            )
        was_accepted = self.status == RideRequestStatus.ACCEPTED
        self._move(RideRequestStatus.CANCELLED)
        if was_accepted:
            trip.release_seats(self.seats)
        self.cancelled_by = by
        self.cancellation_reason = reason
