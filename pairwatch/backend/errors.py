"""
backend/errors.py

Exception hierarchy shared across the backend.
"""

from __future__ import annotations


class PairWatchError(Exception):
    """Base class for all PairWatch errors."""


class CaptureError(PairWatchError):
    """The capture device could not be opened."""


class MonitorNotStarted(PairWatchError):
    """Statistics were requested before the monitor was ever started."""

    def __init__(self) -> None:
        super().__init__("Monitoring not started")


class StorageError(PairWatchError):
    """The durable store or the fast-path cache could not be opened."""


class SessionAPIError(PairWatchError):
    """The external session API returned an error or an unreadable payload."""
