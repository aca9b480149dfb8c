"""Tests for trip and ride request state machines."""

import pytest

from livetrip.core.exceptions import InvalidTransition
from livetrip.trip import (
    TRIP_TRANSITIONS,
    RideRequest,
    RideRequestStatus,
    Trip,
    TripStatus,
    can_transition,
    transition_trip,
)

LEGAL_EDGES = {
    (TripStatus.DRAFT, TripStatus.SCHEDULED),
    (TripStatus.SCHEDULED, TripStatus.LIVE),
    (TripStatus.SCHEDULED, TripStatus.CANCELLED),
    (TripStatus.LIVE, TripStatus.COMPLETED),
    (TripStatus.LIVE, TripStatus.CANCELLED),
}


def make_trip(status: TripStatus = TripStatus.DRAFT, available: int = 4) -> Trip:
    return Trip(
        trip_id="t1",
        driver_id="d1",
        status=status,
        total_seats=4,
        available_seats=available,
    )


@pytest.mark.unit
class TestTripStatusEnum:
    """Test TripStatus enum."""

    def test_trip_status_values(self):
        assert TripStatus.DRAFT.value == "draft"
        assert TripStatus.SCHEDULED.value == "scheduled"
        assert TripStatus.LIVE.value == "live"
        assert TripStatus.COMPLETED.value == "completed"
        assert TripStatus.CANCELLED.value == "cancelled"

    def test_trip_status_to_event_type(self):
        assert TripStatus.LIVE.to_event_type() == "trip.live"
        assert TripStatus.COMPLETED.to_event_type() == "trip.completed"

    def test_terminal_statuses(self):
        assert TripStatus.COMPLETED.is_terminal
        assert TripStatus.CANCELLED.is_terminal
        assert not TripStatus.LIVE.is_terminal


@pytest.mark.unit
class TestTransitionMatrix:
    """Every (current, target) pair is either a legal edge or rejected."""

    @pytest.mark.parametrize("current", list(TripStatus))
    @pytest.mark.parametrize("target", list(TripStatus))
    def test_matrix(self, current, target):
        trip = make_trip(status=current)
        if (current, target) in LEGAL_EDGES:
            trip.transition_to(target)
            assert trip.status == target
        else:
            with pytest.raises(InvalidTransition):
                trip.transition_to(target)
            assert trip.status == current

    def test_transition_table_matches_legal_edges(self):
        edges = {(src, dst) for src, targets in TRIP_TRANSITIONS.items() for dst in targets}
        assert edges == LEGAL_EDGES

    def test_can_transition(self):
        assert can_transition(TripStatus.SCHEDULED, TripStatus.LIVE)
        assert not can_transition(TripStatus.DRAFT, TripStatus.LIVE)

    def test_terminal_state_error_mentions_terminal(self):
        trip = make_trip(status=TripStatus.CANCELLED)
        with pytest.raises(InvalidTransition) as exc_info:
            trip.transition_to(TripStatus.LIVE)
        assert "terminal" in str(exc_info.value)
        assert exc_info.value.current == "cancelled"
        assert exc_info.value.target == "live"


@pytest.mark.unit
class TestTransitionSideEffects:
    """Test effects that accompany a transition."""

    def test_completing_restores_available_seats(self):
        trip = make_trip(status=TripStatus.LIVE, available=1)
        trip.transition_to(TripStatus.COMPLETED)
        assert trip.available_seats == trip.total_seats

    def test_cancelling_keeps_seat_count(self):
        trip = make_trip(status=TripStatus.LIVE, available=1)
        trip.transition_to(TripStatus.CANCELLED)
        assert trip.available_seats == 1

    def test_transition_trip_leaves_snapshot_untouched(self):
        trip = make_trip(status=TripStatus.LIVE, available=2)
        updated = transition_trip(trip, TripStatus.COMPLETED)
        assert updated.status == TripStatus.COMPLETED
        assert trip.status == TripStatus.LIVE
        assert trip.available_seats == 2

    def test_failed_transition_trip_raises_without_copy_escaping(self):
        trip = make_trip(status=TripStatus.DRAFT)
        with pytest.raises(InvalidTransition):
            transition_trip(trip, TripStatus.COMPLETED)
        assert trip.status == TripStatus.DRAFT


@pytest.mark.unit
class TestTripModel:
    """Test trip model validation."""

    def test_available_seats_cannot_exceed_total(self):
        with pytest.raises(ValueError):
            Trip(trip_id="t1", driver_id="d1", total_seats=2, available_seats=3)

    def test_empty_route_geometry_is_absent(self):
        trip = Trip(
            trip_id="t1", driver_id="d1", total_seats=2, available_seats=2, route_geometry=[]
        )
        assert trip.route_geometry is None

    def test_default_status_is_draft(self):
        assert make_trip().status == TripStatus.DRAFT


@pytest.mark.unit
class TestRideRequest:
    """Test ride request accept/reject/cancel."""

    def make_request(self, **kwargs) -> RideRequest:
        defaults = {"request_id": "r1", "trip_id": "t1", "rider_id": "u1", "seats": 2}
        defaults.update(kwargs)
        return RideRequest(**defaults)

    def test_accept_reserves_seats(self):
        trip = make_trip(status=TripStatus.SCHEDULED)
        request = self.make_request()
        request.accept(trip)
        assert request.status == RideRequestStatus.ACCEPTED
        assert trip.available_seats == 2

    def test_accept_without_enough_seats_fails(self):
        trip = make_trip(status=TripStatus.SCHEDULED, available=1)
        request = self.make_request()
        with pytest.raises(InvalidTransition):
            request.accept(trip)
        assert request.status == RideRequestStatus.PENDING
        assert trip.available_seats == 1

    def test_accept_on_finished_trip_fails(self):
        trip = make_trip(status=TripStatus.COMPLETED)
        with pytest.raises(InvalidTransition):
            self.make_request().accept(trip)

    def test_accept_twice_fails(self):
        trip = make_trip(status=TripStatus.SCHEDULED)
        request = self.make_request()
        request.accept(trip)
        with pytest.raises(InvalidTransition):
            request.accept(trip)

    def test_accept_for_other_trip_fails(self):
        trip = make_trip(status=TripStatus.SCHEDULED)
        with pytest.raises(ValueError):
            self.make_request(trip_id="other").accept(trip)

    def test_reject_pending(self):
        request = self.make_request()
        request.reject()
        assert request.status == RideRequestStatus.REJECTED

    def test_reject_is_final(self):
        request = self.make_request()
        request.reject()
        with pytest.raises(InvalidTransition):
            request.reject()

    def test_cancel_accepted_releases_seats(self):
        trip = make_trip(status=TripStatus.SCHEDULED)
        request = self.make_request()
        request.accept(trip)
        request.cancel(trip, by="rider", reason="plans changed")
        assert request.status == RideRequestStatus.CANCELLED
        assert request.cancelled_by == "rider"
        assert request.cancellation_reason == "plans changed"
        assert trip.available_seats == 4

    def test_cancel_pending_keeps_seats(self):
        trip = make_trip(status=TripStatus.SCHEDULED, available=3)
        request = self.make_request()
        request.cancel(trip, by="driver")
        assert trip.available_seats == 3

    def test_cannot_cancel_once_trip_is_live(self):
        trip = make_trip(status=TripStatus.LIVE)
        request = self.make_request(status=RideRequestStatus.ACCEPTED)
        with pytest.raises(InvalidTransition):
            request.cancel(trip, by="rider")
        assert request.status == RideRequestStatus.ACCEPTED
