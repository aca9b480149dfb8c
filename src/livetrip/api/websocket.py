"""WebSocket endpoints: viewer position streams and participant device uplink."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from livetrip.core.exceptions import AuthorizationDenied
from livetrip.storage.interfaces import Identity
from livetrip.tracking.broadcaster import BroadcastStatus, PositionBroadcaster
from livetrip.tracking.source import CallbackPositionSource, DeviceError
from livetrip.tracking.watcher import PositionWatcher

from .auth import extract_token_and_protocol
from .rate_limit import credential_key, ws_limiter

logger = logging.getLogger(__name__)

router = APIRouter()

POLICY_VIOLATION = 1008


class ConnectionManager:
    """Tracks open WebSocket connections per trip."""

    def __init__(self) -> None:
        self.rooms: dict[str, set[WebSocket]] = {}

    async def connect(
        self, trip_id: str, websocket: WebSocket, subprotocol: str | None = None
    ) -> None:
        await websocket.accept(subprotocol=subprotocol)
        self.rooms.setdefault(trip_id, set()).add(websocket)

    def disconnect(self, trip_id: str, websocket: WebSocket) -> None:
        room = self.rooms.get(trip_id)
        if room is None:
            return
        room.discard(websocket)
        if not room:
            del self.rooms[trip_id]

    def connection_count(self, trip_id: str | None = None) -> int:
        if trip_id is not None:
            return len(self.rooms.get(trip_id, ()))
        return sum(len(room) for room in self.rooms.values())

    async def send_message(self, websocket: WebSocket, message: dict[str, Any]) -> None:
        if websocket.application_state == WebSocketState.CONNECTED:
            await websocket.send_json(message)


manager = ConnectionManager()


async def _settle(trip_id: str, *tasks: asyncio.Task[Any]) -> None:
    for task in tasks:
        task.cancel()
    results = await asyncio.gather(*tasks, return_exceptions=True)
    for result in results:
        if isinstance(result, Exception) and not isinstance(result, WebSocketDisconnect):
            logger.warning(f"Live connection task for trip {trip_id} failed: {result}")


async def _stream_updates(websocket: WebSocket, watcher: PositionWatcher) -> None:
    async for update in watcher:
        await manager.send_message(websocket, update.to_message())


async def _drain_client(websocket: WebSocket) -> None:
    # Viewers only listen; reading detects the client going away
    while True:
        await websocket.receive_text()


async def _authenticate(websocket: WebSocket) -> tuple[Identity | None, str | None]:
    token, subprotocol = extract_token_and_protocol(websocket)
    if not token:
        return None, None
    if not ws_limiter.allow(credential_key(token)):
        logger.warning("WebSocket connection rate limit exceeded")
        return None, None
    identity = await websocket.app.state.identity_lookup.resolve(token)
    return identity, subprotocol


@router.websocket("/ws/trips/{trip_id}")
async def watch_trip(websocket: WebSocket, trip_id: str) -> None:
    """Stream the trip's latest position to an authorized driver or rider.

    A driver's stream also carries ``rider_position`` updates for riders
    sharing their location.
    """
    identity, subprotocol = await _authenticate(websocket)
    if identity is None:
        await websocket.close(code=POLICY_VIOLATION)
        return

    service = websocket.app.state.service
    try:
        watcher = await service.start_watching(identity, trip_id)
    except AuthorizationDenied as e:
        logger.info(f"Live view of trip {trip_id} refused for {identity.user_id}: {e.reason}")
        await websocket.close(code=POLICY_VIOLATION)
        return

    await manager.connect(trip_id, websocket, subprotocol=subprotocol)
    stream = asyncio.create_task(_stream_updates(websocket, watcher))
    listener = asyncio.create_task(_drain_client(websocket))
    try:
        await asyncio.wait({stream, listener}, return_when=asyncio.FIRST_COMPLETED)
        if stream.done() and stream.exception() is None:
            await websocket.close()
    except WebSocketDisconnect:
        pass
    finally:
        await _settle(trip_id, stream, listener)
        await service.stop_watching(watcher)
        manager.disconnect(trip_id, websocket)


def _feed(source: CallbackPositionSource, message: Any) -> None:
    if not isinstance(message, dict):
        return
    data = message.get("data")
    if message.get("type") == "position" and isinstance(data, dict):
        source.on_position(data)
    elif message.get("type") == "error" and isinstance(data, dict):
        try:
            code = DeviceError(data.get("code"))
        except ValueError:
            logger.debug(f"Ignoring unknown device error code {data.get('code')!r}")
            return
        source.on_error(code, str(data.get("message") or ""))


async def _receive_fixes(websocket: WebSocket, source: CallbackPositionSource) -> None:
    while True:
        try:
            message = await websocket.receive_json()
        except ValueError:
            logger.debug("Ignoring malformed device message")
            continue
        _feed(source, message)


async def _forward_statuses(
    websocket: WebSocket, statuses: asyncio.Queue[BroadcastStatus]
) -> None:
    while True:
        status = await statuses.get()
        await manager.send_message(
            websocket, {"type": "broadcast_status", "data": {"status": status.value}}
        )


@router.websocket("/ws/trips/{trip_id}/broadcast")
async def broadcast_trip(websocket: WebSocket, trip_id: str) -> None:
    """Accept position fixes from a participant's device and publish them.

    The driver's fixes feed every viewer of the trip. An accepted rider's
    fixes reach only the driver's watch.

    The device sends ``{"type": "position", "data": {...}}`` for each fix and
    ``{"type": "error", "data": {"code": 1|2|3}}`` for failed fixes. Status
    changes of the broadcast are sent back as ``broadcast_status`` messages.
    """
    identity, subprotocol = await _authenticate(websocket)
    if identity is None:
        await websocket.close(code=POLICY_VIOLATION)
        return

    service = websocket.app.state.service
    source = CallbackPositionSource()
    statuses: asyncio.Queue[BroadcastStatus] = asyncio.Queue()
    try:
        handle: PositionBroadcaster = await service.start_broadcast(
            identity, trip_id, source, on_status_change=statuses.put_nowait
        )
    except AuthorizationDenied as e:
        logger.info(f"Broadcast for trip {trip_id} refused for {identity.user_id}: {e.reason}")
        await websocket.close(code=POLICY_VIOLATION)
        return

    await manager.connect(trip_id, websocket, subprotocol=subprotocol)
    receiver = asyncio.create_task(_receive_fixes(websocket, source))
    forwarder = asyncio.create_task(_forward_statuses(websocket, statuses))
    ended = asyncio.create_task(handle.wait())
    try:
        await asyncio.wait({receiver, ended}, return_when=asyncio.FIRST_COMPLETED)
        if ended.done():
            while not statuses.empty():
                status = statuses.get_nowait()
                await manager.send_message(
                    websocket, {"type": "broadcast_status", "data": {"status": status.value}}
                )
            reason = handle.stop_reason.value if handle.stop_reason else None
            await manager.send_message(
                websocket, {"type": "session_ended", "data": {"reason": reason}}
            )
            await websocket.close()
    except WebSocketDisconnect:
        pass
    finally:
        await _settle(trip_id, receiver, forwarder, ended)
        await service.stop_broadcast(handle)
        manager.disconnect(trip_id, websocket)
