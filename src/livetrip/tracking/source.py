"""Device position sources.

Device location APIs report fixes through callbacks. ``CallbackPositionSource``
turns those callbacks into a pull-based source the broadcaster can await
and cancel: it keeps only the newest fix, since an older undelivered fix is
superseded by a newer one anyway.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import IntEnum
from typing import Any, Protocol

from livetrip.core.exceptions import LocationPermissionDenied

from .position import Position

logger = logging.getLogger(__name__)

Sample = Position | dict[str, Any]


class DeviceError(IntEnum):
    """Error codes reported by device geolocation APIs."""

    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3


class PositionSource(Protocol):
    async def next_sample(self) -> Sample:
        """Wait for the next fix.

        Raises LocationPermissionDenied once the device refuses location
        access. Must be safe to cancel while waiting.
        """
        ...

    async def aclose(self) -> None:
        """Release the underlying device watch."""
        ...


_DENIED = object()


class CallbackPositionSource:
    """Adapts callback-style device updates into an awaitable latest-fix source."""

    def __init__(
        self,
        clear_watch: Callable[[], None] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._clear_watch = clear_watch
        self._loop = loop
        self._latest: asyncio.Queue[Any] = asyncio.Queue(maxsize=1)
        self._denied = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def permission_denied(self) -> bool:
        return self._denied

    def on_position(self, sample: Sample) -> None:
        """Device callback for a new fix. Safe to call from any thread when a loop was given."""
        self._dispatch(self._put_latest, sample)

    def on_error(self, code: DeviceError | int, message: str = "") -> None:
        """Device callback for a failed fix."""
        self._dispatch(self._handle_error, DeviceError(code), message)

    def _dispatch(self, fn: Callable[..., None], *args: Any) -> None:
        if self._loop is not None and self._loop.is_running():
            self._loop.call_soon_threadsafe(fn, *args)
        else:
            fn(*args)

    def _put_latest(self, item: Any) -> None:
        if self._closed or self._denied:
            return
        if self._latest.full():
            self._latest.get_nowait()
        self._latest.put_nowait(item)

    def _handle_error(self, code: DeviceError, message: str) -> None:
        if code == DeviceError.PERMISSION_DENIED:
            logger.warning(f"Device denied location access: {message or code.name}")
            self._put_latest(_DENIED)
            self._denied = True
            return
        # Unavailable or timed out fixes are not terminal; the next fix may succeed
        logger.info(f"Device position unavailable: {message or code.name}")

    async def next_sample(self) -> Sample:
        if self._denied and self._latest.empty():
            raise LocationPermissionDenied("Location permission denied by device")
        item = await self._latest.get()
        if item is _DENIED:
            raise LocationPermissionDenied("Location permission denied by device")
        return item  # type: ignore[no-any-return]

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._clear_watch is not None:
            try:
                self._clear_watch()
            except Exception as e:
                logger.error(f"Failed to clear device location watch: {e}")
