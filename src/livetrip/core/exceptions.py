"""Standardized exception hierarchy for live trip sessions."""

from typing import Any


class LiveTripError(Exception):
    """Base exception for all live trip errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientError(LiveTripError):
    """Errors that may succeed on retry."""

    pass


class TransientDeliveryFailure(TransientError):
    """A single position sample could not be delivered to the distribution point."""

    def __init__(self, trip_id: str, message: str = "", details: dict[str, Any] | None = None):
        super().__init__(message or f"Failed to deliver position for trip {trip_id}", details)
        self.trip_id = trip_id


class PermanentError(LiveTripError):
    """Errors that will not succeed on retry."""

    pass


class AuthorizationDenied(PermanentError):
    """Identity resolved but is not eligible for the requested live view."""

    def __init__(self, reason: str, trip_id: str | None = None):
        message = f"Live view denied: {reason}"
        if trip_id:
            message = f"{message} (trip {trip_id})"
        super().__init__(message, {"reason": reason, "trip_id": trip_id})
        self.reason = reason
        self.trip_id = trip_id


class InvalidTransition(PermanentError):
    """Lifecycle transition is not legal from the current state."""

    def __init__(self, current: str, target: str, message: str | None = None):
        super().__init__(
            message or f"Invalid transition from {current} to {target}",
            {"current": current, "target": target},
        )
        self.current = current
        self.target = target


class GeometryParseFailure(PermanentError):
    """Stored geometry payload is malformed or of an unexpected type."""

    def __init__(self, source: str, message: str = ""):
        super().__init__(message or f"Unparseable route geometry in {source}", {"source": source})
        self.source = source


class LocationPermissionDenied(PermanentError):
    """The device refused or revoked access to its position."""

    pass


class NotFoundError(PermanentError):
    """Requested entity does not exist."""

    pass


class ConfigurationError(PermanentError):
    """Missing or invalid configuration."""

    pass
