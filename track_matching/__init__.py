"""GPS track segment matching package."""

from .main import main
from .matching import SegmentMatcher, find_matching_segments
from .matching.models import MatchedSegment, MatchingAlgorithm, Track, TrackPoint
from .errors import MatchDispatcherUnavailableError, TrackFormatError, TrackMatchingError
from .services import MatchService

__all__ = [
    "main",
    "MatchService",
    "MatchedSegment",
    "MatchingAlgorithm",
    "SegmentMatcher",
    "Track",
    "TrackPoint",
    "find_matching_segments",
    "MatchDispatcherUnavailableError",
    "TrackFormatError",
    "TrackMatchingError",
]
