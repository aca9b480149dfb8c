"""Redis-backed latest-value channel for trip positions.

The latest position per trip is kept under a TTL'd key for reconnecting
viewers and pushed on a per-trip pub/sub channel for subscribed viewers.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from pydantic import ValidationError
from redis.exceptions import ConnectionError, TimeoutError

from livetrip.core.exceptions import TransientDeliveryFailure
from livetrip.live_logging import current_fields
from livetrip.pubsub.channels import (
    PositionUpdateMessage,
    TripStatusMessage,
    latest_position_key,
    position_channel,
    rider_positions_key,
    status_channel,
)
from livetrip.tracking.position import Position

if TYPE_CHECKING:
    import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

_tracer = trace.get_tracer(__name__)

POSITION_TTL = 1800  # 30 minutes


def _to_message(
    trip_id: str, position: Position, rider_id: str | None = None
) -> PositionUpdateMessage:
    return PositionUpdateMessage(
        trip_id=trip_id,
        latitude=position.latitude,
        longitude=position.longitude,
        heading=position.heading,
        speed_kmph=position.speed_kmph,
        accuracy_m=position.accuracy_m,
        timestamp=position.timestamp.isoformat(),
        source_role="rider" if rider_id else "driver",
        rider_id=rider_id,
    )


def _from_payload(payload: str | bytes) -> Position | None:
    try:
        message = PositionUpdateMessage.model_validate_json(payload)
        return Position(
            latitude=message.latitude,
            longitude=message.longitude,
            heading=message.heading,
            speed_kmph=message.speed_kmph,
            accuracy_m=message.accuracy_m,
            timestamp=datetime.fromisoformat(message.timestamp),
        )
    except (ValidationError, ValueError) as e:
        logger.warning(f"Invalid position payload in Redis: {e}")
        return None


class RedisDistributionPoint:
    """Latest-value store and push channel for live positions."""

    def __init__(self, client: aioredis.Redis, ttl_seconds: int = POSITION_TTL):
        self._client = client
        self._ttl = ttl_seconds

    async def publish(self, trip_id: str, position: Position) -> None:
        """Store and push a position. Last writer wins.

        Raises TransientDeliveryFailure when Redis is unreachable.
        """
        payload = _to_message(trip_id, position).model_dump_json()

        with _tracer.start_as_current_span("redis.publish_position") as span:
            span.set_attribute("db.system", "redis")
            span.set_attribute("livetrip.trip_id", trip_id)
            session_id = current_fields().get("session_id")
            if session_id:
                span.set_attribute("livetrip.session_id", session_id)

            try:
                async with self._client.pipeline(transaction=False) as pipe:
                    pipe.setex(latest_position_key(trip_id), self._ttl, payload)
                    pipe.publish(position_channel(trip_id), payload)
                    await pipe.execute()
            except (ConnectionError, TimeoutError) as e:
                span.record_exception(e)
                raise TransientDeliveryFailure(trip_id, f"Redis publish failed: {e}") from e

    async def fetch(self, trip_id: str) -> Position | None:
        """Latest known position, or None when nothing was reported or Redis is unreachable."""
        try:
            payload = await self._client.get(latest_position_key(trip_id))
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Failed to fetch position for trip {trip_id}: {e}")
            return None
        if payload is None:
            return None
        return _from_payload(payload)

    async def subscribe(self, trip_id: str) -> AsyncIterator[Position]:
        """Yield positions pushed for a trip until cancelled."""
        channel = position_channel(trip_id)
        pubsub = self._client.pubsub()
        await pubsub.subscribe(channel)
        logger.debug(f"Subscribed to {channel}")
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                position = _from_payload(message["data"])
                if position is not None:
                    yield position
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    async def publish_rider(self, trip_id: str, rider_id: str, position: Position) -> None:
        """Store a rider's latest position for the trip's driver.

        Rider positions are never pushed on the trip's position channel, which
        every participant subscribes to.
        """
        payload = _to_message(trip_id, position, rider_id=rider_id).model_dump_json()
        key = rider_positions_key(trip_id)

        with _tracer.start_as_current_span("redis.publish_rider_position") as span:
            span.set_attribute("db.system", "redis")
            span.set_attribute("livetrip.trip_id", trip_id)
            try:
                async with self._client.pipeline(transaction=False) as pipe:
                    pipe.hset(key, rider_id, payload)
                    pipe.expire(key, self._ttl)
                    await pipe.execute()
            except (ConnectionError, TimeoutError) as e:
                span.record_exception(e)
                raise TransientDeliveryFailure(trip_id, f"Redis publish failed: {e}") from e

    async def fetch_riders(self, trip_id: str) -> dict[str, Position]:
        """Latest position per rider; empty when none reported or Redis is unreachable."""
        try:
            entries = await self._client.hgetall(rider_positions_key(trip_id))
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Failed to fetch rider positions for trip {trip_id}: {e}")
            return {}

        positions: dict[str, Position] = {}
        for rider_id, payload in entries.items():
            position = _from_payload(payload)
            if position is not None:
                key = rider_id.decode() if isinstance(rider_id, bytes) else rider_id
                positions[key] = position
        return positions

    async def clear(self, trip_id: str) -> None:
        """Drop the retained positions once a trip is no longer live."""
        try:
            await self._client.delete(latest_position_key(trip_id), rider_positions_key(trip_id))
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Failed to clear position for trip {trip_id}: {e}")

    async def publish_status(self, trip_id: str, status: str, event_type: str) -> None:
        message: dict[str, Any] = TripStatusMessage(
            trip_id=trip_id,
            status=status,
            event_type=event_type,
            timestamp=datetime.now(UTC).isoformat(),
        ).model_dump()
        try:
            await self._client.publish(status_channel(trip_id), json.dumps(message))
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Failed to publish status for trip {trip_id}: {e}")
