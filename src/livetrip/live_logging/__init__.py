from .context import current_fields, log_trip_context
from .setup import setup_logging

__all__ = ["current_fields", "log_trip_context", "setup_logging"]
