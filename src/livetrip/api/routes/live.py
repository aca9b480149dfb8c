from fastapi import APIRouter, Query, Request
from fastapi.responses import RedirectResponse

from livetrip.api.auth import IdentityDep
from livetrip.api.dependencies import ServiceDep, SettingsDep
from livetrip.api.models import (
    DriverLiveResponse,
    LatestPositionResponse,
    TripLiveResponse,
    TripStatusRequest,
    TripStatusResponse,
)
from livetrip.api.rate_limit import ACTION_LIMIT, limiter
from livetrip.records import LiveDriverTripData

router = APIRouter()


@router.get("/driver/live", response_model=DriverLiveResponse)
async def driver_live_view(
    identity: IdentityDep,
    service: ServiceDep,
    settings: SettingsDep,
    redirect: bool = Query(default=False),
) -> DriverLiveResponse | RedirectResponse:
    """Resolve the caller's single live trip, or send them back to the dashboard."""
    decision = await service.can_open_driver_live_view(identity)
    if not decision.allowed and redirect:
        return RedirectResponse(
            url=f"{settings.api.frontend_origin}{settings.api.driver_dashboard_path}",
            status_code=303,
        )
    return DriverLiveResponse(**decision.model_dump())


@router.get("/trips/{trip_id}/live", response_model=TripLiveResponse)
async def trip_live_view(
    trip_id: str,
    identity: IdentityDep,
    service: ServiceDep,
    settings: SettingsDep,
    redirect: bool = Query(default=False),
) -> TripLiveResponse | RedirectResponse:
    """Check access to a trip's live view; denied callers go to the static trip page."""
    decision = await service.can_open_trip_live_view(identity, trip_id)
    if not decision.allowed and redirect:
        path = settings.api.trip_detail_path.format(trip_id=trip_id)
        return RedirectResponse(url=f"{settings.api.frontend_origin}{path}", status_code=303)
    return TripLiveResponse(**decision.model_dump())


@router.get("/trips/{trip_id}/position", response_model=LatestPositionResponse)
async def latest_position(
    trip_id: str, identity: IdentityDep, service: ServiceDep
) -> LatestPositionResponse:
    position = await service.latest_position(identity, trip_id)
    return LatestPositionResponse(trip_id=trip_id, position=position)


@router.post("/trips/{trip_id}/status", response_model=TripStatusResponse)
@limiter.limit(ACTION_LIMIT)
async def change_trip_status(
    request: Request,
    trip_id: str,
    body: TripStatusRequest,
    identity: IdentityDep,
    service: ServiceDep,
) -> TripStatusResponse:
    trip = await service.change_trip_status(identity, trip_id, body.status)
    return TripStatusResponse(
        trip_id=trip.trip_id, status=trip.status, available_seats=trip.available_seats
    )


@router.get("/driver/live/trip", response_model=LiveDriverTripData)
async def driver_live_trip(identity: IdentityDep, service: ServiceDep) -> LiveDriverTripData:
    """The driver's live trip with route progress and the riders' shared positions."""
    return await service.driver_live_trip(identity)
