from pydantic import BaseModel

from livetrip.authorization import DenialReason, Role
from livetrip.tracking.position import Position
from livetrip.trip import RideRequestStatus, TripStatus


class DriverLiveResponse(BaseModel):
    allowed: bool
    trip_id: str | None = None
    reason: DenialReason | None = None


class TripLiveResponse(BaseModel):
    allowed: bool
    trip_id: str
    role: Role | None = None
    reason: DenialReason | None = None


class LatestPositionResponse(BaseModel):
    trip_id: str
    position: Position | None


class TripStatusRequest(BaseModel):
    status: TripStatus


class TripStatusResponse(BaseModel):
    trip_id: str
    status: TripStatus
    available_seats: int


class ErrorResponse(BaseModel):
    error: str
    details: dict[str, object] = {}


class RespondRequestBody(BaseModel):
    accept: bool


class CancelRequestBody(BaseModel):
    reason: str | None = None


class RequestResponse(BaseModel):
    request_id: str
    trip_id: str
    rider_id: str
    seats: int
    status: RideRequestStatus
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
