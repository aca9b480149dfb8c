"""Root logger configuration for the live trip API process."""

import logging
import sys

from livetrip.settings import LogSettings

from .context import LiveContextFilter
from .filters import RedactionFilter
from .formatters import DevFormatter, JSONFormatter

NOISY_LOGGERS = ("redis", "uvicorn.access", "httpx")


def setup_logging(settings: LogSettings | None = None) -> logging.Handler:
    """Install a single stdout handler on the root logger and return it."""
    settings = settings or LogSettings()

    handler = logging.StreamHandler(sys.stdout)
    if settings.format == "json":
        handler.setFormatter(JSONFormatter(settings.environment))
    else:
        handler.setFormatter(DevFormatter())
    handler.addFilter(RedactionFilter())
    handler.addFilter(LiveContextFilter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(settings.level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler
