from fastapi import APIRouter, Request

from livetrip.api.auth import IdentityDep
from livetrip.api.dependencies import ServiceDep
from livetrip.api.models import CancelRequestBody, RequestResponse, RespondRequestBody
from livetrip.api.rate_limit import ACTION_LIMIT, limiter

router = APIRouter()


@router.post("/{request_id}/respond", response_model=RequestResponse)
@limiter.limit(ACTION_LIMIT)
async def respond_to_request(
    request: Request,
    request_id: str,
    body: RespondRequestBody,
    identity: IdentityDep,
    service: ServiceDep,
) -> RequestResponse:
    """Driver accepts or rejects a pending ride request."""
    ride_request = await service.respond_to_request(identity, request_id, body.accept)
    return RequestResponse(**ride_request.model_dump())


@router.post("/{request_id}/cancel", response_model=RequestResponse)
@limiter.limit(ACTION_LIMIT)
async def cancel_request(
    request: Request,
    request_id: str,
    body: CancelRequestBody,
    identity: IdentityDep,
    service: ServiceDep,
) -> RequestResponse:
    ride_request = await service.cancel_request(identity, request_id, body.reason)
    return RequestResponse(**ride_request.model_dump())
