"""
Exception types raised by the ingestion engine.

Transient feed failures are not exceptions: the feed client reports them
as FeedResult values so a tick can degrade instead of aborting.
"""


class FlightTrackerError(Exception):
    """Base class for all FlightTracker errors."""


class ConfigError(FlightTrackerError):
    """Configuration values are missing, out of range or inconsistent."""


class BoundaryError(FlightTrackerError):
    """Territory boundary file is missing or holds no polygon geometry."""


class AuthenticationError(FlightTrackerError):
    """OpenSky credential exchange failed."""


class TickCancelled(FlightTrackerError):
    """Raised inside a tick when the caller's cancellation event is set."""
