"""Public entry points for the GPS track segment matcher."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import logging
import math
from typing import Iterable, List, Optional, Sequence, Tuple

from ..config import MATCHING_MAX_WORKERS
from .geodesy import (
    bearing_deg,
    bearing_to_compass_label,
    bearings_similar,
    haversine_km,
    path_length_km,
)
from .grouping import group_into_runs, merge_nearby_runs, merge_overlapping_runs
from .models import (
    AlgorithmProfile,
    LatLng,
    MatchedSegment,
    MatcherSettings,
    MatchingAlgorithm,
    MatchingPoint,
    SegmentStats,
    Track,
    TrackPoint,
    profile_for,
)
from .preprocessing import prepare_display_path, simplify_polyline, smooth_polyline
from .spatial_index import NearestPoint, SpatialGrid, SpatialGridCache

_LOG = logging.getLogger(__name__)

_TrackPair = Tuple[Track, Track]


def select_sample_rate(
    point_count: int, profile: AlgorithmProfile, settings: MatcherSettings
) -> int:
    """Return the stride used when walking track A."""

    if profile.sample_rate_strategy == "fixed":
        return settings.point_sample_rate
    if point_count <= settings.adaptive_target_points:
        return settings.adaptive_min_rate
    rate = math.ceil(point_count / settings.adaptive_target_points)
    return max(settings.adaptive_min_rate, min(rate, settings.adaptive_max_rate))


class SegmentMatcher:
    """Finds shared, same-direction sections between pairs of tracks.

    Each instance owns its spatial grid cache, so separate matchers never
    share state. Call :meth:`invalidate` when a track is removed or replaced.
    """

    def __init__(
        self,
        settings: Optional[MatcherSettings] = None,
        grid_cache: Optional[SpatialGridCache] = None,
        max_workers: int = MATCHING_MAX_WORKERS,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be positive")
        self.settings = settings or MatcherSettings()
        self.grid_cache = grid_cache if grid_cache is not None else SpatialGridCache()
        self.max_workers = max_workers

    def invalidate(self, track_id: str) -> bool:
        """Forget the cached grid of ``track_id``."""
        return self.grid_cache.invalidate(track_id)

    def clear_cache(self) -> None:
        self.grid_cache.clear()

    def match(
        self,
        tracks: Sequence[Track],
        delta_m: float,
        algorithm: "MatchingAlgorithm | str" = MatchingAlgorithm.STANDARD,
    ) -> List[MatchedSegment]:
        """Match every unordered pair of visible tracks.

        Returns all segments ordered by distance, longest first. Fewer than two
        visible tracks, or a non-positive tolerance, yield an empty list.
        """

        algorithm = MatchingAlgorithm.parse(algorithm)
        visible = visible_tracks(tracks)
        if len(visible) < 2:
            return []
        if not _valid_delta(delta_m):
            _LOG.debug("Skipping matching: invalid delta %r", delta_m)
            return []

        pairs: List[_TrackPair] = [
            (visible[i], visible[j])
            for i in range(len(visible))
            for j in range(i + 1, len(visible))
        ]
        per_pair = self._match_pairs(pairs, delta_m, algorithm)
        segments = [segment for pair_segments in per_pair for segment in pair_segments]
        segments.sort(key=lambda segment: segment.distance_km, reverse=True)
        _LOG.debug(
            "Matched %d track pairs (algorithm=%s, delta=%.1fm): %d segments",
            len(pairs),
            algorithm.value,
            delta_m,
            len(segments),
        )
        return segments

    def _match_pairs(
        self,
        pairs: Sequence[_TrackPair],
        delta_m: float,
        algorithm: MatchingAlgorithm,
    ) -> List[List[MatchedSegment]]:
        if self.max_workers == 1 or len(pairs) <= 1:
            return [self.match_pair(a, b, delta_m, algorithm) for a, b in pairs]
        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(pairs)),
            thread_name_prefix="track-pair",
        ) as executor:
            futures = [
                executor.submit(self.match_pair, a, b, delta_m, algorithm)
                for a, b in pairs
            ]
            # Collect in submission order so the final ordering is stable.
            return [future.result() for future in futures]

    def match_pair(
        self,
        track_a: Track,
        track_b: Track,
        delta_m: float,
        algorithm: "MatchingAlgorithm | str" = MatchingAlgorithm.STANDARD,
    ) -> List[MatchedSegment]:
        """Return the segments where ``track_a`` follows ``track_b``."""

        settings = self.settings
        profile = profile_for(algorithm)
        points_a = track_a.points
        points_b = track_b.points
        if not _valid_delta(delta_m):
            return []
        if (
            len(points_a) < max(settings.min_segment_points, 2)
            or len(points_b) < max(settings.min_segment_points, 2)
        ):
            _LOG.debug(
                "Skipping pair %s/%s: too few points (%d/%d)",
                track_a.id,
                track_b.id,
                len(points_a),
                len(points_b),
            )
            return []

        delta_km = delta_m / 1000.0
        grid = self.grid_cache.get(track_b.id, points_b, settings.cell_size_km(delta_km))
        sample_rate = select_sample_rate(len(points_a), profile, settings)
        matches = self._collect_matches(points_a, points_b, grid, delta_km, sample_rate, profile)

        runs = group_into_runs(matches, settings, profile)
        runs = merge_nearby_runs(runs, settings)
        runs = merge_overlapping_runs(runs, settings, profile)

        segments: List[MatchedSegment] = []
        for run in runs:
            segment = self._materialize(run, track_a, track_b)
            if segment is not None:
                segments.append(segment)
        _LOG.debug(
            "Pair %s/%s: rate=%d accepted=%d runs=%d segments=%d",
            track_a.id,
            track_b.id,
            sample_rate,
            len(matches),
            len(runs),
            len(segments),
        )
        return segments

    def _collect_matches(
        self,
        points_a: Sequence[TrackPoint],
        points_b: Sequence[TrackPoint],
        grid: SpatialGrid,
        delta_km: float,
        sample_rate: int,
        profile: AlgorithmProfile,
    ) -> List[MatchingPoint]:
        """Sample track A and keep neighbours on B that move the same way."""

        tolerance = self.settings.point_bearing_tolerance_deg
        matches: List[MatchingPoint] = []
        for index_a in range(0, len(points_a), sample_rate):
            point_a = points_a[index_a]
            nearest = grid.find_nearest_within_distance(point_a.lat, point_a.lng, delta_km)
            if nearest is None:
                continue
            index_b = nearest.index
            point_b = points_b[index_b]
            if profile.direction_filter and index_a > 0 and index_b > 0:
                prev_a = points_a[max(0, index_a - sample_rate)]
                prev_b = points_b[max(0, index_b - sample_rate)]
                heading_a = bearing_deg(prev_a.lat, prev_a.lng, point_a.lat, point_a.lng)
                heading_b = bearing_deg(prev_b.lat, prev_b.lng, point_b.lat, point_b.lng)
                if not bearings_similar(heading_a, heading_b, tolerance):
                    continue
            matches.append(
                MatchingPoint(
                    point_a=point_a, point_b=point_b, index_a=index_a, index_b=index_b
                )
            )
        return matches

    def _materialize(
        self, run: Sequence[MatchingPoint], track_a: Track, track_b: Track
    ) -> Optional[MatchedSegment]:
        """Turn a merged run into a display-ready segment, or None if too short."""

        settings = self.settings
        ordered = sorted(run, key=lambda match: match.index_a)
        start_a = ordered[0].index_a
        end_a = ordered[-1].index_a
        indices_b = [match.index_b for match in run]
        start_b = min(indices_b)
        end_b = max(indices_b)

        raw: List[LatLng] = [
            LatLng(point.lat, point.lng) for point in track_a.points[start_a : end_a + 1]
        ]
        if len(raw) < 2:
            raw.extend(LatLng(match.point_a.lat, match.point_a.lng) for match in ordered)

        distance_km = path_length_km([pt.lat for pt in raw], [pt.lng for pt in raw])
        if distance_km < settings.min_segment_distance_km:
            return None

        path = prepare_display_path(
            raw,
            window_size=settings.smoothing_window,
            tolerance_deg=settings.simplify_tolerance_deg,
        )
        if len(path) < 2:
            return None
        first, last = path[0], path[-1]
        direction = bearing_deg(first.lat, first.lng, last.lat, last.lng)
        return MatchedSegment(
            id=f"{track_a.id}-{track_b.id}-{start_a}",
            track_a_id=track_a.id,
            track_b_id=track_b.id,
            track_a_name=track_a.name,
            track_b_name=track_b.name,
            points=tuple(path),
            distance_km=distance_km,
            direction_bearing_deg=direction,
            direction_label=bearing_to_compass_label(direction),
            start_index_a=start_a,
            end_index_a=end_a,
            start_index_b=start_b,
            end_index_b=end_b,
        )


def find_matching_segments(
    tracks: Sequence[Track],
    delta_m: float,
    algorithm: "MatchingAlgorithm | str" = MatchingAlgorithm.STANDARD,
    matcher: Optional[SegmentMatcher] = None,
) -> List[MatchedSegment]:
    """Convenience wrapper around :meth:`SegmentMatcher.match`.

    A fresh matcher (and therefore a fresh grid cache) is used unless one is
    supplied.
    """

    matcher = matcher or SegmentMatcher()
    return matcher.match(tracks, delta_m, algorithm)


def visible_tracks(tracks: Iterable[Track]) -> List[Track]:
    return [track for track in tracks if track.visible]


def _valid_delta(delta_m: float) -> bool:
    try:
        value = float(delta_m)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and value > 0


__all__ = [
    "AlgorithmProfile",
    "LatLng",
    "MatchedSegment",
    "MatcherSettings",
    "MatchingAlgorithm",
    "MatchingPoint",
    "NearestPoint",
    "SegmentMatcher",
    "SegmentStats",
    "SpatialGrid",
    "SpatialGridCache",
    "Track",
    "TrackPoint",
    "bearing_deg",
    "bearing_to_compass_label",
    "bearings_similar",
    "find_matching_segments",
    "haversine_km",
    "profile_for",
    "select_sample_rate",
    "simplify_polyline",
    "smooth_polyline",
    "visible_tracks",
]
