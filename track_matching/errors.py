"""Central error types used across the application."""

from __future__ import annotations


class TrackMatchingError(RuntimeError):
    """Base error for track matching failures."""


class TrackFormatError(TrackMatchingError):
    """Raised when a track file or payload is structurally invalid."""


class MatchDispatcherUnavailableError(TrackMatchingError):
    """Raised when neither the worker nor the synchronous path can run a request."""


__all__ = [
    "TrackMatchingError",
    "TrackFormatError",
    "MatchDispatcherUnavailableError",
]
