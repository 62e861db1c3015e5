"""
Telemetry Errors

Typed failures of the telemetry core.

Only DataUnavailable ever reaches callers of the snapshot cache. Per-feed
failures are absorbed into the snapshot as FeedFailure records.
"""

from __future__ import annotations
from typing import Optional

from .contracts import FetchStatus


class TelemetryError(Exception):
    """Base class for telemetry core errors."""
    pass


class FeedUnavailable(TelemetryError):
    """Retrieval of one feed failed (timeout, non-2xx, transport, decode)."""

    def __init__(
        self,
        feed_id: str,
        cause: str,
        status: FetchStatus = FetchStatus.NETWORK_ERROR,
        http_status: Optional[int] = None
    ):
        super().__init__(f"{feed_id}: {cause}")
        self.feed_id = feed_id
        self.cause = cause
        self.status = status
        self.http_status = http_status


class RefreshFailed(TelemetryError):
    """A whole refresh cycle could not produce a usable snapshot."""

    def __init__(self, cause: object):
        super().__init__(f"Refresh failed: {cause}")
        self.cause = cause


class DataUnavailable(TelemetryError):
    """No snapshot has ever been produced and none could be recovered."""
    pass


class ConfigError(TelemetryError):
    """Invalid feed or service configuration."""
    pass
