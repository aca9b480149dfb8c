"""Registry of live sessions: who is broadcasting or watching which trip."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

from livetrip.authorization import authorize_trip_live
from livetrip.core.exceptions import AuthorizationDenied
from livetrip.settings import TrackingSettings
from livetrip.storage.interfaces import (
    DistributionPoint,
    Identity,
    RiderDistributionPoint,
    TripStore,
)

from .broadcaster import AuthorizationCheck, BroadcastStatus, PositionBroadcaster
from .source import PositionSource
from .watcher import PositionWatcher

logger = logging.getLogger(__name__)


class LiveSession(BaseModel):
    session_id: str
    trip_id: str
    user_id: str
    role: Literal["driver", "rider"]
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SessionRegistry:
    """Starts, tracks and tears down broadcasts and watches.

    At most one broadcast runs per trip and participant; starting a new one
    replaces that participant's previous device. The driver feeds the trip's
    shared position; each accepted rider feeds a position only the driver
    sees. Every session is authorized when it starts and re-authorized
    periodically by its own task.
    """

    def __init__(
        self,
        store: TripStore,
        distribution: DistributionPoint,
        settings: TrackingSettings,
    ) -> None:
        self._store = store
        self._distribution = distribution
        self._settings = settings
        # (trip_id, rider_id); rider_id is None for the driver's broadcast
        self._broadcasts: dict[tuple[str, str | None], PositionBroadcaster] = {}
        self._watchers: dict[str, dict[str, PositionWatcher]] = {}
        self._sessions: dict[str, LiveSession] = {}

    def sessions(self, trip_id: str | None = None) -> list[LiveSession]:
        self._prune()
        return [s for s in self._sessions.values() if trip_id is None or s.trip_id == trip_id]

    def broadcast_for(
        self, trip_id: str, rider_id: str | None = None
    ) -> PositionBroadcaster | None:
        self._prune()
        return self._broadcasts.get((trip_id, rider_id))

    def watchers_for(self, trip_id: str) -> list[PositionWatcher]:
        self._prune()
        return list(self._watchers.get(trip_id, {}).values())

    def _prune(self) -> None:
        """Forget sessions whose task already ended on its own (revoked, denied, failed)."""
        for key, broadcaster in list(self._broadcasts.items()):
            if not broadcaster.running:
                del self._broadcasts[key]
                self._sessions.pop(broadcaster.session_id, None)
        for trip_id, room in list(self._watchers.items()):
            for session_id, watcher in list(room.items()):
                if not watcher.running:
                    del room[session_id]
                    self._sessions.pop(session_id, None)
            if not room:
                del self._watchers[trip_id]

    def _gate(self, identity: Identity, trip_id: str, role: str) -> AuthorizationCheck:
        async def still_authorized() -> bool:
            try:
                decision = await authorize_trip_live(identity, trip_id, self._store)
            except Exception as e:
                # Fail closed: a session must not outlive an unverifiable grant
                logger.warning(f"Re-authorization for trip {trip_id} failed: {e}")
                return False
            return decision.allowed and decision.role == role

        return still_authorized

    async def start_broadcast(
        self,
        identity: Identity,
        trip_id: str,
        source: PositionSource,
        on_status_change: Callable[[BroadcastStatus], None] | None = None,
    ) -> PositionBroadcaster:
        """Start feeding the trip from a device.

        The trip's driver broadcasts to the shared feed. A rider with an
        accepted request broadcasts a position only the driver receives.
        """
        decision = await authorize_trip_live(identity, trip_id, self._store)
        if not decision.allowed or decision.role is None:
            await source.aclose()
            reason = decision.reason.value if decision.reason else "not_a_participant"
            raise AuthorizationDenied(reason, trip_id=trip_id)
        if decision.role == "rider" and not isinstance(self._distribution, RiderDistributionPoint):
            await source.aclose()
            raise AuthorizationDenied("rider_positions_unsupported", trip_id=trip_id)

        rider_id = identity.user_id if decision.role == "rider" else None
        previous = self._broadcasts.get((trip_id, rider_id))
        if previous is not None:
            logger.info(f"Replacing running broadcast {previous.session_id} for trip {trip_id}")
            await self.stop_broadcast(previous)

        broadcaster = PositionBroadcaster(
            trip_id=trip_id,
            source=source,
            distribution=self._distribution,
            still_authorized=self._gate(identity, trip_id, decision.role),
            settings=self._settings,
            session_id=str(uuid.uuid4()),
            on_status_change=on_status_change,
            rider_id=rider_id,
        )
        self._broadcasts[(trip_id, rider_id)] = broadcaster
        self._sessions[broadcaster.session_id] = LiveSession(
            session_id=broadcaster.session_id,
            trip_id=trip_id,
            user_id=identity.user_id,
            role=decision.role,
        )
        broadcaster.start()
        return broadcaster

    async def stop_broadcast(self, handle: PositionBroadcaster) -> None:
        try:
            await handle.stop()
        finally:
            key = (handle.trip_id, handle.rider_id)
            if self._broadcasts.get(key) is handle:
                del self._broadcasts[key]
            self._sessions.pop(handle.session_id, None)

    async def start_watching(self, identity: Identity, trip_id: str) -> PositionWatcher:
        decision = await authorize_trip_live(identity, trip_id, self._store)
        if not decision.allowed or decision.role is None:
            reason = decision.reason.value if decision.reason else "denied"
            raise AuthorizationDenied(reason, trip_id=trip_id)

        watcher = PositionWatcher(
            trip_id=trip_id,
            distribution=self._distribution,
            still_authorized=self._gate(identity, trip_id, decision.role),
            settings=self._settings,
            session_id=str(uuid.uuid4()),
            role=decision.role,
        )
        self._watchers.setdefault(trip_id, {})[watcher.session_id] = watcher
        self._sessions[watcher.session_id] = LiveSession(
            session_id=watcher.session_id,
            trip_id=trip_id,
            user_id=identity.user_id,
            role=decision.role,
        )
        watcher.start()
        return watcher

    async def stop_watching(self, handle: PositionWatcher) -> None:
        try:
            await handle.stop()
        finally:
            room = self._watchers.get(handle.trip_id)
            if room is not None:
                room.pop(handle.session_id, None)
                if not room:
                    del self._watchers[handle.trip_id]
            self._sessions.pop(handle.session_id, None)

    async def close_trip(self, trip_id: str) -> None:
        """End every session on a trip, e.g. when it leaves the live state."""
        stops = [self.stop_watching(w) for w in self.watchers_for(trip_id)]
        stops.extend(
            self.stop_broadcast(broadcaster)
            for (broadcast_trip_id, _), broadcaster in list(self._broadcasts.items())
            if broadcast_trip_id == trip_id
        )
        if stops:
            await asyncio.gather(*stops)
            logger.info(f"Closed {len(stops)} live session(s) for trip {trip_id}")

    async def close_all(self) -> None:
        trip_ids = {trip_id for trip_id, _ in self._broadcasts} | set(self._watchers)
        await asyncio.gather(*(self.close_trip(trip_id) for trip_id in trip_ids))
