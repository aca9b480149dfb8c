"""FastAPI application factory for live trip views."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from slowapi.errors import RateLimitExceeded

from livetrip.core.exceptions import (
    AuthorizationDenied,
    InvalidTransition,
    LiveTripError,
    NotFoundError,
    TransientError,
)
from livetrip.metrics import render_latest
from livetrip.settings import Settings, get_settings

from .rate_limit import limiter, rate_limit_exceeded_handler
from .routes import live, requests
from .websocket import manager as connection_manager
from .websocket import router as websocket_router

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from livetrip.service import LiveTripService
    from livetrip.storage.interfaces import IdentityLookup

logger = logging.getLogger(__name__)


def _error_response(status_code: int, exc: LiveTripError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.message, "details": exc.details},
    )


def create_app(
    service: LiveTripService,
    identity_lookup: IdentityLookup,
    redis_client: Redis[str] | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create FastAPI application with injected dependencies.

    Args:
        service: LiveTripService owning the gate and the live sessions
        identity_lookup: Resolves bearer tokens to identities
        redis_client: Async Redis client, only used for health checks (optional)
        settings: Application settings, loaded from the environment when omitted
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        """Manage application startup and shutdown."""
        logger.info("Live trip API started")
        yield
        await service.shutdown()
        logger.info("Live trip API stopped; all live sessions closed")

    app = FastAPI(
        title="Live Trip API",
        version="0.1.0",
        description="Live trip views, position streams and driver trip actions",
        lifespan=lifespan,
    )

    app.state.limiter = limiter
    app.add_exception_handler(
        RateLimitExceeded,
        rate_limit_exceeded_handler,  # type: ignore[arg-type]
    )

    # Set core dependencies immediately (not in lifespan) so they're available for testing
    app.state.service = service
    app.state.identity_lookup = identity_lookup
    app.state.redis_client = redis_client
    app.state.settings = settings
    app.state.connection_manager = connection_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.api.frontend_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidTransition)
    async def invalid_transition_handler(request: Request, exc: InvalidTransition) -> JSONResponse:
        return _error_response(409, exc)

    @app.exception_handler(AuthorizationDenied)
    async def authorization_denied_handler(
        request: Request, exc: AuthorizationDenied
    ) -> JSONResponse:
        return _error_response(403, exc)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error_response(404, exc)

    @app.exception_handler(TransientError)
    async def transient_error_handler(request: Request, exc: TransientError) -> JSONResponse:
        logger.warning(f"Transient failure on {request.url.path}: {exc.message}")
        return _error_response(503, exc)

    app.include_router(live.router, tags=["live"])
    app.include_router(requests.router, prefix="/requests", tags=["requests"])
    app.include_router(websocket_router)

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        """Health check endpoint for monitoring (unauthenticated for infrastructure)."""
        result: dict[str, Any] = {
            "status": "healthy",
            "live_connections": connection_manager.connection_count(),
        }
        redis_client = app.state.redis_client
        if redis_client is not None:
            try:
                start = time.perf_counter()
                await redis_client.ping()
                result["redis_latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
            except Exception as e:
                logger.warning(f"Redis health check failed: {e}")
                result["status"] = "degraded"
        return result

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus exposition of live session metrics."""
        return Response(content=render_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
