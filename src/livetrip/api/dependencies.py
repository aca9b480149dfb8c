"""FastAPI dependency injection providers."""

from typing import Annotated

from fastapi import Depends, Request

from livetrip.service import LiveTripService
from livetrip.settings import Settings


def get_service(request: Request) -> LiveTripService:
    """Retrieve LiveTripService from app state."""
    return request.app.state.service  # type: ignore[no-any-return]


def get_app_settings(request: Request) -> Settings:
    """Retrieve Settings from app state."""
    return request.app.state.settings  # type: ignore[no-any-return]


ServiceDep = Annotated[LiveTripService, Depends(get_service)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]
