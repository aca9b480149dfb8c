"""Device-side position broadcasting.

One asyncio task per broadcasting device. Each tick it takes at most one
fix from the device, validates it and publishes it to the distribution
point. Driver fixes go to the trip's shared feed; rider fixes are kept per
rider for the driver only. A failed publish is not retried: the next
tick's fix supersedes it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from enum import Enum

from livetrip.core.exceptions import LocationPermissionDenied, TransientError
from livetrip.geo.distance import initial_bearing_deg
from livetrip.live_logging import log_trip_context
from livetrip.metrics import (
    active_broadcasts,
    delivery_failures,
    positions_published,
    positions_rejected,
)
from livetrip.settings import TrackingSettings
from livetrip.storage.interfaces import DistributionPoint, RiderDistributionPoint

from .position import MonotonicPositionFilter, Position, RejectReason, coerce_sample
from .source import PositionSource, Sample

logger = logging.getLogger(__name__)

AuthorizationCheck = Callable[[], Awaitable[bool]]


class BroadcastStatus(str, Enum):
    STARTING = "starting"
    ACTIVE = "active"
    CONNECTION_LOST = "connection_lost"
    PERMISSION_DENIED = "permission_denied"
    STOPPED = "stopped"


class StopReason(str, Enum):
    CLOSED = "closed"
    AUTHORIZATION_REVOKED = "authorization_revoked"
    PERMISSION_DENIED = "permission_denied"
    ERROR = "error"


class PositionBroadcaster:
    """Samples a device at a fixed cadence and publishes to the latest-value channel."""

    def __init__(
        self,
        trip_id: str,
        source: PositionSource,
        distribution: DistributionPoint,
        still_authorized: AuthorizationCheck,
        settings: TrackingSettings,
        session_id: str | None = None,
        on_status_change: Callable[[BroadcastStatus], None] | None = None,
        rider_id: str | None = None,
    ) -> None:
        if rider_id is not None and not isinstance(distribution, RiderDistributionPoint):
            raise TypeError("Distribution point does not store rider positions")
        self.trip_id = trip_id
        self.rider_id = rider_id
        self.session_id = session_id or str(uuid.uuid4())
        self._source = source
        self._distribution = distribution
        self._still_authorized = still_authorized
        self._settings = settings
        self._on_status_change = on_status_change
        self._filter = MonotonicPositionFilter()
        self._task: asyncio.Task[None] | None = None

        self.status = BroadcastStatus.STARTING
        self.stop_reason: StopReason | None = None
        self.consecutive_failures = 0
        self.published_count = 0
        self.last_published: Position | None = None

    @property
    def role(self) -> str:
        return "driver" if self.rider_id is None else "rider"

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError(f"Broadcast {self.session_id} already started")
        self._task = asyncio.create_task(self._run(), name=f"broadcast:{self.trip_id}")

    async def stop(self) -> None:
        """Stop broadcasting and wait until the device watch is released."""
        if self._task is None:
            await self._source.aclose()
            self._finish(StopReason.CLOSED)
            return
        if not self._task.done():
            self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task

    async def wait(self) -> StopReason | None:
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        return self.stop_reason

    async def handle_sample(self, sample: Sample) -> bool:
        """Validate one sample and publish it. Returns True when it was delivered."""
        position = coerce_sample(sample)
        if position is None:
            positions_rejected.labels(reason=RejectReason.OUT_OF_RANGE.value).inc()
            logger.debug("Discarded out-of-range position sample")
            return False

        if not self._filter.accept(position):
            positions_rejected.labels(reason=RejectReason.STALE.value).inc()
            logger.debug(f"Discarded stale position sample from {position.timestamp.isoformat()}")
            return False

        position = self._with_heading(position)
        try:
            await self._deliver(position)
        except TransientError as e:
            self.consecutive_failures += 1
            delivery_failures.inc()
            if self.consecutive_failures >= self._settings.max_consecutive_delivery_failures:
                if self.status != BroadcastStatus.CONNECTION_LOST:
                    logger.warning(
                        f"Position delivery failed {self.consecutive_failures} times in a row: {e}"
                    )
                self._set_status(BroadcastStatus.CONNECTION_LOST)
            else:
                logger.info(f"Position delivery failed, superseded by next sample: {e}")
            return False

        self.consecutive_failures = 0
        self.published_count += 1
        self.last_published = position
        positions_published.inc()
        self._set_status(BroadcastStatus.ACTIVE)
        return True

    def _with_heading(self, position: Position) -> Position:
        """Fill a missing heading from the direction of travel since the last fix."""
        previous = self.last_published
        if position.heading is not None or previous is None:
            return position
        if (previous.latitude, previous.longitude) == (position.latitude, position.longitude):
            return position
        heading = initial_bearing_deg(
            previous.latitude, previous.longitude, position.latitude, position.longitude
        )
        return position.model_copy(update={"heading": heading})

    async def _deliver(self, position: Position) -> None:
        if self.rider_id is None:
            await self._distribution.publish(self.trip_id, position)
            return
        distribution: RiderDistributionPoint = self._distribution  # type: ignore[assignment]
        await distribution.publish_rider(self.trip_id, self.rider_id, position)

    async def _run(self) -> None:
        active_broadcasts.inc()
        try:
            with log_trip_context(self.trip_id, role=self.role, session_id=self.session_id):
                logger.info("Position broadcast started")
                await self._sample_loop()
        except LocationPermissionDenied:
            logger.warning("Position broadcast ended: device denied location access")
            self._set_status(BroadcastStatus.PERMISSION_DENIED)
            self.stop_reason = StopReason.PERMISSION_DENIED
        except asyncio.CancelledError:
            self._finish(StopReason.CLOSED)
            raise
        except Exception:
            logger.exception(f"Position broadcast for trip {self.trip_id} failed")
            self._finish(StopReason.ERROR)
        finally:
            await self._source.aclose()
            active_broadcasts.dec()
            logger.info(
                f"Position broadcast for trip {self.trip_id} stopped "
                f"({self.stop_reason.value if self.stop_reason else 'unknown'})"
            )

    async def _sample_loop(self) -> None:
        interval = self._settings.sample_interval_seconds
        # The caller authorized this session right before starting it
        next_check = time.monotonic() + self._settings.revalidate_interval_seconds

        while True:
            tick_started = time.monotonic()

            if tick_started >= next_check:
                if not await self._still_authorized():
                    logger.info("Live view authorization revoked; ending broadcast")
                    self._finish(StopReason.AUTHORIZATION_REVOKED)
                    return
                next_check = tick_started + self._settings.revalidate_interval_seconds

            sample = await self._next_sample(timeout=interval)
            if sample is not None:
                await self.handle_sample(sample)

            remaining = interval - (time.monotonic() - tick_started)
            if remaining > 0:
                await asyncio.sleep(remaining)

    async def _next_sample(self, timeout: float) -> Sample | None:
        try:
            return await asyncio.wait_for(self._source.next_sample(), timeout=timeout)
        except TimeoutError:
            return None

    def _finish(self, reason: StopReason) -> None:
        if self.stop_reason is None:
            self.stop_reason = reason
        if self.status != BroadcastStatus.PERMISSION_DENIED:
            self._set_status(BroadcastStatus.STOPPED)

    def _set_status(self, status: BroadcastStatus) -> None:
        if status == self.status:
            return
        self.status = status
        if self._on_status_change is not None:
            try:
                self._on_status_change(status)
            except Exception as e:
                logger.warning(f"Broadcast status callback failed: {e}")
