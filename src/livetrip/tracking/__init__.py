from .broadcaster import BroadcastStatus, PositionBroadcaster, StopReason
from .position import MonotonicPositionFilter, Position, coerce_sample, parse_position
from .sessions import LiveSession, SessionRegistry
from .source import CallbackPositionSource, DeviceError, PositionSource
from .watcher import LiveUpdate, PositionWatcher, UpdateKind

__all__ = [
    "BroadcastStatus",
    "CallbackPositionSource",
    "DeviceError",
    "LiveSession",
    "LiveUpdate",
    "MonotonicPositionFilter",
    "Position",
    "PositionBroadcaster",
    "PositionSource",
    "PositionWatcher",
    "SessionRegistry",
    "StopReason",
    "UpdateKind",
    "coerce_sample",
    "parse_position",
]
