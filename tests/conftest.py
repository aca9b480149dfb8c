import pytest

from livetrip.api.rate_limit import limiter, ws_limiter
from livetrip.service import LiveTripService
from livetrip.settings import TrackingSettings
from livetrip.storage.interfaces import Identity
from livetrip.trip import RideRequest, RideRequestStatus, Trip, TripStatus
from tests.fakes import InMemoryDistributionPoint, InMemoryTripStore, PushDistributionPoint

TRIP_ID = "trip-1"
DRIVER_ID = "driver-1"
RIDER_ID = "rider-1"


@pytest.fixture
def fast_settings() -> TrackingSettings:
    """Tracking cadence shrunk to milliseconds so loops tick quickly in tests."""
    return TrackingSettings(
        sample_interval_seconds=0.01,
        poll_interval_seconds=0.01,
        revalidate_interval_seconds=0.05,
        max_consecutive_delivery_failures=3,
        viewer_queue_size=16,
    )


@pytest.fixture
def driver() -> Identity:
    return Identity(user_id=DRIVER_ID, is_driver=True, name="Dev Driver")


@pytest.fixture
def rider() -> Identity:
    return Identity(user_id=RIDER_ID, name="Riya Rider")


@pytest.fixture
def stranger() -> Identity:
    return Identity(user_id="stranger-1", name="Sam Stranger")


@pytest.fixture
def live_trip() -> Trip:
    return Trip(
        trip_id=TRIP_ID,
        driver_id=DRIVER_ID,
        status=TripStatus.LIVE,
        total_seats=4,
        available_seats=3,
        route_geometry=[(77.5946, 12.9716), (77.6000, 12.9750), (77.6101, 12.9800)],
        to_location=(77.6101, 12.9800),
    )


@pytest.fixture
def accepted_request() -> RideRequest:
    return RideRequest(
        request_id="req-1",
        trip_id=TRIP_ID,
        rider_id=RIDER_ID,
        seats=1,
        status=RideRequestStatus.ACCEPTED,
    )


@pytest.fixture
def store(live_trip: Trip, accepted_request: RideRequest) -> InMemoryTripStore:
    return InMemoryTripStore(trips=[live_trip], requests=[accepted_request])


@pytest.fixture
def distribution() -> InMemoryDistributionPoint:
    return InMemoryDistributionPoint()


@pytest.fixture
def push_distribution() -> PushDistributionPoint:
    return PushDistributionPoint()


@pytest.fixture
def service(
    store: InMemoryTripStore,
    distribution: InMemoryDistributionPoint,
    fast_settings: TrackingSettings,
) -> LiveTripService:
    return LiveTripService(
        store=store,
        distribution=distribution,
        settings=fast_settings,
        status_publisher=distribution,
    )


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Rate limiter state is module-global; clear it between tests."""
    ws_limiter.reset()
    limiter.reset()
    yield
    ws_limiter.reset()
