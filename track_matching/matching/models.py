"""Dataclasses describing tracks, matcher settings and matched segments."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import math
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from ..config import (
    MATCHING_ADAPTIVE_MAX_RATE,
    MATCHING_ADAPTIVE_MIN_RATE,
    MATCHING_ADAPTIVE_TARGET_POINTS,
    MATCHING_MAX_INDEX_GAP,
    MATCHING_MERGE_GAP_KM,
    MATCHING_MIN_CELL_SIZE_KM,
    MATCHING_MIN_SEGMENT_DISTANCE_KM,
    MATCHING_MIN_SEGMENT_POINTS,
    MATCHING_OVERLAP_THRESHOLD,
    MATCHING_POINT_BEARING_TOLERANCE_DEG,
    MATCHING_POINT_SAMPLE_RATE,
    MATCHING_SEGMENT_BEARING_TOLERANCE_DEG,
    MATCHING_SIMPLIFY_TOLERANCE_DEG,
    MATCHING_SMOOTHING_WINDOW,
)
from ..errors import TrackFormatError


@dataclass(frozen=True, slots=True)
class LatLng:
    """A bare coordinate used for display paths."""

    lat: float
    lng: float


@dataclass(frozen=True, slots=True)
class TrackPoint:
    """A single normalised GPS sample produced by the track parser."""

    lat: float
    lng: float
    elevation_m: float = 0.0
    cumulative_distance_km: float = 0.0
    heart_rate: Optional[int] = None
    cadence: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TrackPoint":
        """Build a point from a JSON-style mapping (camelCase or snake_case)."""

        if not isinstance(payload, Mapping):
            raise TrackFormatError("Track point must be an object")
        lat = _first_present(payload, ("lat", "latitude"))
        lng = _first_present(payload, ("lng", "lon", "longitude"))
        if lat is None or lng is None:
            raise TrackFormatError("Track point is missing lat/lng")
        elevation = _first_present(
            payload, ("elevation_m", "elevationMeters", "elevation", "ele")
        )
        distance = _first_present(
            payload, ("cumulative_distance_km", "cumulativeDistanceKm", "distance")
        )
        heart_rate = _first_present(payload, ("heart_rate", "heartRate", "hr"))
        cadence = _first_present(payload, ("cadence", "cad"))
        try:
            return cls(
                lat=float(lat),
                lng=float(lng),
                elevation_m=float(elevation) if elevation is not None else 0.0,
                cumulative_distance_km=float(distance) if distance is not None else 0.0,
                heart_rate=int(heart_rate) if heart_rate is not None else None,
                cadence=int(cadence) if cadence is not None else None,
            )
        except (TypeError, ValueError) as exc:
            raise TrackFormatError(f"Invalid track point values: {exc}") from exc


@dataclass(slots=True)
class Track:
    """One recorded activity as an ordered sequence of points.

    ``raw`` carries optional heavyweight source data (for example the parsed
    GPX geometry). It is never shipped to the matching worker.
    """

    id: str
    name: str
    points: Tuple[TrackPoint, ...]
    visible: bool = True
    color: Any = None
    raw: Any = None

    def __post_init__(self) -> None:
        if not isinstance(self.points, tuple):
            self.points = tuple(self.points)

    def __len__(self) -> int:
        return len(self.points)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Track":
        """Normalise a JSON-style track payload.

        Points are read from ``points`` or ``elevation``. When no point carries
        a cumulative distance it is computed from the coordinates.
        """

        if not isinstance(payload, Mapping):
            raise TrackFormatError("Track payload must be an object")
        track_id = payload.get("id")
        if track_id is None or str(track_id) == "":
            raise TrackFormatError("Track payload is missing an id")
        raw_points = payload.get("points")
        if raw_points is None:
            raw_points = payload.get("elevation", [])
        if not isinstance(raw_points, list):
            raise TrackFormatError(f"Track {track_id!r} points must be a list")
        points = [TrackPoint.from_payload(item) for item in raw_points]
        if points and not any(_has_distance(item) for item in raw_points):
            # Local import: elevation depends on this module.
            from .elevation import with_cumulative_distances

            points = with_cumulative_distances(points)
        return cls(
            id=str(track_id),
            name=str(payload.get("name") or track_id),
            points=tuple(points),
            visible=bool(payload.get("visible", True)),
            color=payload.get("color"),
        )

    def snapshot(self) -> "Track":
        """Return a worker-safe copy with the heavyweight ``raw`` data dropped."""

        return Track(
            id=self.id,
            name=self.name,
            points=tuple(self.points),
            visible=self.visible,
            color=None,
            raw=None,
        )


@dataclass(frozen=True, slots=True)
class MatchingPoint:
    """Pairing of a sampled point on track A with its neighbour on track B."""

    point_a: TrackPoint
    point_b: TrackPoint
    index_a: int
    index_b: int


@dataclass(frozen=True, slots=True)
class MatchedSegment:
    """A stretch of two tracks judged to follow the same path and direction."""

    id: str
    track_a_id: str
    track_b_id: str
    track_a_name: str
    track_b_name: str
    points: Tuple[LatLng, ...]
    distance_km: float
    direction_bearing_deg: float
    direction_label: str
    start_index_a: int
    end_index_a: int
    start_index_b: int
    end_index_b: int

    def to_payload(self) -> Dict[str, Any]:
        """Return the wire representation consumed by rendering layers."""

        return {
            "id": self.id,
            "trackAId": self.track_a_id,
            "trackBId": self.track_b_id,
            "trackAName": self.track_a_name,
            "trackBName": self.track_b_name,
            "points": [{"lat": pt.lat, "lng": pt.lng} for pt in self.points],
            "distanceKm": self.distance_km,
            "directionBearingDeg": self.direction_bearing_deg,
            "directionLabel": self.direction_label,
            "startIndexA": self.start_index_a,
            "endIndexA": self.end_index_a,
            "startIndexB": self.start_index_b,
            "endIndexB": self.end_index_b,
        }


@dataclass(frozen=True, slots=True)
class SegmentStats:
    """Elevation summary for an index range of a track."""

    distance_km: float = 0.0
    elevation_gain_m: float = 0.0
    elevation_loss_m: float = 0.0
    net_elevation_m: float = 0.0
    avg_slope_pct: float = 0.0
    max_slope_pct: float = 0.0


class MatchingAlgorithm(str, Enum):
    """Matching strategy selected by the caller."""

    STANDARD = "standard"
    ADAPTIVE = "adaptive"
    BIDIRECTIONAL = "bidirectional"

    @classmethod
    def parse(cls, value: "MatchingAlgorithm | str") -> "MatchingAlgorithm":
        """Return the enum member for ``value`` (case-insensitive)."""

        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown matching algorithm: {value!r}")


@dataclass(frozen=True, slots=True)
class AlgorithmProfile:
    """Pipeline switches derived from a :class:`MatchingAlgorithm`."""

    sample_rate_strategy: str
    direction_filter: bool
    progression_check: bool
    merge_direction_check: bool


_PROFILES: Dict[MatchingAlgorithm, AlgorithmProfile] = {
    MatchingAlgorithm.STANDARD: AlgorithmProfile(
        sample_rate_strategy="fixed",
        direction_filter=True,
        progression_check=True,
        merge_direction_check=True,
    ),
    MatchingAlgorithm.ADAPTIVE: AlgorithmProfile(
        sample_rate_strategy="adaptive",
        direction_filter=True,
        progression_check=True,
        merge_direction_check=True,
    ),
    # Up/down traversals of the same path: no bearing checks, opposite
    # progression allowed.
    MatchingAlgorithm.BIDIRECTIONAL: AlgorithmProfile(
        sample_rate_strategy="adaptive",
        direction_filter=False,
        progression_check=False,
        merge_direction_check=False,
    ),
}


def profile_for(algorithm: "MatchingAlgorithm | str") -> AlgorithmProfile:
    """Return the pipeline profile for ``algorithm``."""

    return _PROFILES[MatchingAlgorithm.parse(algorithm)]


@dataclass(frozen=True, slots=True)
class MatcherSettings:
    """Tunable thresholds used by the segment matcher."""

    min_segment_points: int = MATCHING_MIN_SEGMENT_POINTS
    min_segment_distance_km: float = MATCHING_MIN_SEGMENT_DISTANCE_KM
    point_sample_rate: int = MATCHING_POINT_SAMPLE_RATE
    max_index_gap: int = MATCHING_MAX_INDEX_GAP
    merge_gap_km: float = MATCHING_MERGE_GAP_KM
    overlap_threshold: float = MATCHING_OVERLAP_THRESHOLD
    adaptive_target_points: int = MATCHING_ADAPTIVE_TARGET_POINTS
    adaptive_min_rate: int = MATCHING_ADAPTIVE_MIN_RATE
    adaptive_max_rate: int = MATCHING_ADAPTIVE_MAX_RATE
    point_bearing_tolerance_deg: float = MATCHING_POINT_BEARING_TOLERANCE_DEG
    segment_bearing_tolerance_deg: float = MATCHING_SEGMENT_BEARING_TOLERANCE_DEG
    smoothing_window: int = MATCHING_SMOOTHING_WINDOW
    simplify_tolerance_deg: float = MATCHING_SIMPLIFY_TOLERANCE_DEG
    min_cell_size_km: float = MATCHING_MIN_CELL_SIZE_KM

    def __post_init__(self) -> None:
        if self.point_sample_rate < 1:
            raise ValueError("point_sample_rate must be >= 1")
        if self.adaptive_min_rate < 1 or self.adaptive_max_rate < self.adaptive_min_rate:
            raise ValueError("adaptive rates must satisfy 1 <= min <= max")
        if self.adaptive_target_points < 1:
            raise ValueError("adaptive_target_points must be >= 1")
        if self.min_segment_points < 1:
            raise ValueError("min_segment_points must be >= 1")

    def with_overrides(self, **changes: Any) -> "MatcherSettings":
        """Return a copy with selected thresholds replaced."""

        return replace(self, **changes)

    def cell_size_km(self, delta_km: float) -> float:
        """Return the grid cell size guaranteeing exhaustive neighbour search."""

        return max(delta_km * 2.0, self.min_cell_size_km)


def _first_present(payload: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _has_distance(item: Any) -> bool:
    if not isinstance(item, Mapping):
        return False
    value = _first_present(
        item, ("cumulative_distance_km", "cumulativeDistanceKm", "distance")
    )
    if value is None:
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


__all__ = [
    "AlgorithmProfile",
    "LatLng",
    "MatchedSegment",
    "MatcherSettings",
    "MatchingAlgorithm",
    "MatchingPoint",
    "SegmentStats",
    "Track",
    "TrackPoint",
    "profile_for",
]
