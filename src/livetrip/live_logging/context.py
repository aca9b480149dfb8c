"""Trip and session fields attached to log records emitted inside a live session."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

LIVE_FIELDS = ("trip_id", "session_id", "user_id", "role")

_bound: ContextVar[dict[str, str] | None] = ContextVar("live_log_fields", default=None)


def current_fields() -> dict[str, str]:
    """Fields bound in the running task, e.g. the session id of a broadcast."""
    return dict(_bound.get() or {})


@contextmanager
def log_trip_context(trip_id: str, **fields: Any) -> Iterator[None]:
    """Bind a trip, plus optional user/role/session, for the enclosed block.

    Each broadcaster and watcher runs in its own asyncio task, so fields bound
    inside one session never show up in another's log lines.
    """
    merged = {**(_bound.get() or {}), "trip_id": trip_id}
    merged.update({name: str(value) for name, value in fields.items() if value is not None})
    token = _bound.set(merged)
    try:
        yield
    finally:
        _bound.reset(token)


class LiveContextFilter(logging.Filter):
    """Copies bound live fields onto records; fields not bound read ``-``."""

    def filter(self, record: logging.LogRecord) -> bool:
        bound = _bound.get() or {}
        for name in LIVE_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, bound.get(name, "-"))
        return True
