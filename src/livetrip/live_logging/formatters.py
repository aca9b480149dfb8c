"""Record formatting for local development and for log shipping."""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from .context import LIVE_FIELDS


class JSONFormatter(logging.Formatter):
    """One JSON object per line, carrying whichever live fields are bound."""

    def __init__(self, environment: str = "development"):
        super().__init__()
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "env": self.environment,
        }
        for name in LIVE_FIELDS:
            value = getattr(record, name, "-")
            if value != "-":
                entry[name] = value
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(
            fmt=(
                "%(asctime)s %(levelname)-7s %(name)s "
                "[trip=%(trip_id)s sess=%(session_id)s] %(message)s"
            ),
            datefmt="%H:%M:%S",
        )
