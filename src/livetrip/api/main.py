"""Run the live trip API with the Redis distribution point.

The hosting application provides identity lookup and trip storage; this
entry point wires them from dotted import paths given in the environment.
"""

import importlib
import os
from typing import Any

import redis.asyncio as aioredis
import uvicorn
from fastapi import FastAPI

from livetrip.core.exceptions import ConfigurationError
from livetrip.live_logging import setup_logging
from livetrip.redis_client import RedisDistributionPoint
from livetrip.service import LiveTripService
from livetrip.settings import Settings, get_settings

from .app import create_app


def _load(env_var: str) -> Any:
    path = os.environ.get(env_var)
    if not path or ":" not in path:
        raise ConfigurationError(
            f"{env_var} must be set to 'module:factory'", {"env_var": env_var}
        )
    module_name, attr = path.split(":", 1)
    factory = getattr(importlib.import_module(module_name), attr)
    return factory()


def build_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log)
    client = aioredis.Redis(
        host=settings.redis.host,
        port=settings.redis.port,
        db=settings.redis.db,
        password=settings.redis.password or None,
        ssl=settings.redis.ssl,
        decode_responses=True,
    )
    distribution = RedisDistributionPoint(
        client, ttl_seconds=settings.tracking.position_ttl_seconds
    )
    service = LiveTripService(
        store=_load("LIVETRIP_TRIP_STORE"),
        distribution=distribution,
        settings=settings.tracking,
        status_publisher=distribution,
    )
    return create_app(
        service, _load("LIVETRIP_IDENTITY_LOOKUP"), redis_client=client, settings=settings
    )


def main() -> None:
    uvicorn.run(build_app(), host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))


if __name__ == "__main__":
    main()
