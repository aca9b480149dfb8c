"""Viewer-side consumption of the latest-value channel."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel

from livetrip.live_logging import log_trip_context
from livetrip.metrics import active_watchers
from livetrip.settings import TrackingSettings
from livetrip.storage.interfaces import (
    DistributionPoint,
    RiderDistributionPoint,
    SubscribableDistributionPoint,
)

from .broadcaster import AuthorizationCheck, StopReason
from .position import Position

logger = logging.getLogger(__name__)


class UpdateKind(str, Enum):
    POSITION = "position"
    RIDER_POSITION = "rider_position"
    AWAITING_POSITION = "awaiting_position"
    SESSION_ENDED = "session_ended"


class LiveUpdate(BaseModel):
    trip_id: str
    kind: UpdateKind
    position: Position | None = None
    rider_id: str | None = None
    reason: StopReason | None = None

    def to_message(self) -> dict[str, Any]:
        return {"type": self.kind.value, "data": self.model_dump(mode="json", exclude={"kind"})}


_END = object()


class PositionWatcher:
    """Feeds one viewer with the trip's latest position.

    Uses push delivery when the distribution point offers ``subscribe``,
    otherwise polls ``fetch``. A driver's watch also receives the positions
    of riders on the trip when the distribution point keeps them. Iterate the
    watcher to receive updates; the iteration ends when the session ends.
    """

    def __init__(
        self,
        trip_id: str,
        distribution: DistributionPoint,
        still_authorized: AuthorizationCheck,
        settings: TrackingSettings,
        session_id: str | None = None,
        role: Literal["driver", "rider"] = "rider",
        mode: Literal["auto", "poll"] = "auto",
    ) -> None:
        self.trip_id = trip_id
        self.session_id = session_id or str(uuid.uuid4())
        self.role = role
        self._distribution = distribution
        self._still_authorized = still_authorized
        self._settings = settings
        self._mode = mode
        self._updates: asyncio.Queue[Any] = asyncio.Queue(maxsize=settings.viewer_queue_size)
        self._task: asyncio.Task[None] | None = None
        self._last_seen: Position | None = None
        self._riders_seen: dict[str, Position] = {}
        self._announced_absent = False
        self.stop_reason: StopReason | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError(f"Watch {self.session_id} already started")
        self._task = asyncio.create_task(self._run(), name=f"watch:{self.trip_id}")

    async def stop(self) -> None:
        if self._task is None:
            self._end(StopReason.CLOSED)
            return
        if not self._task.done():
            self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task

    def __aiter__(self) -> AsyncIterator[LiveUpdate]:
        return self

    async def __anext__(self) -> LiveUpdate:
        item = await self._updates.get()
        if item is _END:
            # Leave the marker for any other reader
            self._offer(_END)
            raise StopAsyncIteration
        return item  # type: ignore[no-any-return]

    async def _run(self) -> None:
        active_watchers.inc()
        try:
            with log_trip_context(self.trip_id, role=self.role, session_id=self.session_id):
                riders = self._start_rider_feed()
                try:
                    if self._mode == "auto" and isinstance(
                        self._distribution, SubscribableDistributionPoint
                    ):
                        await self._follow_subscription(self._distribution)
                    else:
                        await self._poll()
                finally:
                    if riders is not None:
                        riders.cancel()
                        with contextlib.suppress(asyncio.CancelledError):
                            await riders
        except asyncio.CancelledError:
            self._end(StopReason.CLOSED)
            raise
        except Exception:
            logger.exception(f"Watch on trip {self.trip_id} failed")
            self._end(StopReason.ERROR)
        finally:
            active_watchers.dec()
            self._end(StopReason.CLOSED)

    async def _poll(self) -> None:
        next_check = time.monotonic() + self._settings.revalidate_interval_seconds
        while True:
            now = time.monotonic()
            if now >= next_check:
                if not await self._still_authorized():
                    self._revoked()
                    return
                next_check = now + self._settings.revalidate_interval_seconds

            self._emit(await self._distribution.fetch(self.trip_id))
            await asyncio.sleep(self._settings.poll_interval_seconds)

    async def _follow_subscription(self, distribution: SubscribableDistributionPoint) -> None:
        self._emit(await distribution.fetch(self.trip_id))
        pump = asyncio.create_task(self._pump(distribution), name=f"watch-pump:{self.trip_id}")
        try:
            while True:
                done, _ = await asyncio.wait(
                    {pump}, timeout=self._settings.revalidate_interval_seconds
                )
                if done:
                    error = pump.exception()
                    logger.warning(
                        f"Push delivery for trip {self.trip_id} ended "
                        f"({error or 'stream closed'}); falling back to polling"
                    )
                    break
                if not await self._still_authorized():
                    self._revoked()
                    return
        finally:
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump
        await self._poll()

    async def _pump(self, distribution: SubscribableDistributionPoint) -> None:
        async for position in distribution.subscribe(self.trip_id):
            self._emit(position)

    def _start_rider_feed(self) -> asyncio.Task[None] | None:
        if self.role != "driver" or not isinstance(self._distribution, RiderDistributionPoint):
            return None
        return asyncio.create_task(
            self._poll_riders(self._distribution), name=f"watch-riders:{self.trip_id}"
        )

    async def _poll_riders(self, distribution: RiderDistributionPoint) -> None:
        while True:
            for rider_id, position in (await distribution.fetch_riders(self.trip_id)).items():
                self._emit_rider(rider_id, position)
            await asyncio.sleep(self._settings.poll_interval_seconds)

    def _emit_rider(self, rider_id: str, position: Position) -> None:
        last = self._riders_seen.get(rider_id)
        if last is not None and position.timestamp <= last.timestamp:
            return
        self._riders_seen[rider_id] = position
        self._offer(
            LiveUpdate(
                trip_id=self.trip_id,
                kind=UpdateKind.RIDER_POSITION,
                position=position,
                rider_id=rider_id,
            )
        )

    def _emit(self, position: Position | None) -> None:
        if position is None:
            if self._last_seen is None and not self._announced_absent:
                self._announced_absent = True
                self._offer(LiveUpdate(trip_id=self.trip_id, kind=UpdateKind.AWAITING_POSITION))
            return
        if self._last_seen is not None and position.timestamp <= self._last_seen.timestamp:
            return
        self._last_seen = position
        self._offer(LiveUpdate(trip_id=self.trip_id, kind=UpdateKind.POSITION, position=position))

    def _revoked(self) -> None:
        logger.info("Live view authorization revoked; ending watch")
        self._end(StopReason.AUTHORIZATION_REVOKED)

    def _end(self, reason: StopReason) -> None:
        if self.stop_reason is not None:
            return
        self.stop_reason = reason
        self._offer(LiveUpdate(trip_id=self.trip_id, kind=UpdateKind.SESSION_ENDED, reason=reason))
        self._offer(_END)

    def _offer(self, item: Any) -> None:
        # Latest-value semantics: a slow viewer loses the oldest update, not the newest
        if self._updates.full():
            self._updates.get_nowait()
        self._updates.put_nowait(item)
