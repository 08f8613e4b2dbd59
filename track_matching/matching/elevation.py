"""Distance and elevation helpers for tracks and matched index ranges."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .geodesy import haversine_km_array
from .models import MatchedSegment, SegmentStats, Track, TrackPoint


def cumulative_distances_km(coords: Sequence[Tuple[float, float]]) -> List[float]:
    """Return running haversine distances for ``(lat, lng)`` pairs, starting at 0."""

    if not coords:
        return []
    array = np.asarray(coords, dtype=float)
    if array.ndim != 2 or array.shape[1] < 2:
        raise ValueError("Expected a sequence of (lat, lng) pairs")
    steps = haversine_km_array(array[:-1, 0], array[:-1, 1], array[1:, 0], array[1:, 1])
    return np.concatenate(([0.0], np.cumsum(steps))).tolist()


def with_cumulative_distances(points: Sequence[TrackPoint]) -> List[TrackPoint]:
    """Return copies of ``points`` with ``cumulative_distance_km`` recomputed."""

    distances = cumulative_distances_km([(p.lat, p.lng) for p in points])
    return [
        replace(point, cumulative_distance_km=distance)
        for point, distance in zip(points, distances)
    ]


def build_track_points(
    rows: Iterable[Sequence[Optional[float]]],
) -> List[TrackPoint]:
    """Build track points from ``(lat, lng[, elevation[, heart_rate[, cadence]]])`` rows."""

    points: List[TrackPoint] = []
    for row in rows:
        if len(row) < 2:
            raise ValueError("Each row needs at least lat and lng")
        elevation = row[2] if len(row) > 2 and row[2] is not None else 0.0
        heart_rate = row[3] if len(row) > 3 else None
        cadence = row[4] if len(row) > 4 else None
        points.append(
            TrackPoint(
                lat=float(row[0]),
                lng=float(row[1]),
                elevation_m=float(elevation),
                heart_rate=int(heart_rate) if heart_rate is not None else None,
                cadence=int(cadence) if cadence is not None else None,
            )
        )
    return with_cumulative_distances(points)


def elevation_gain_m(points: Sequence[TrackPoint]) -> float:
    """Sum of positive elevation steps."""

    if len(points) < 2:
        return 0.0
    elevations = np.fromiter((p.elevation_m for p in points), dtype=float, count=len(points))
    steps = np.diff(elevations)
    return float(np.sum(steps[steps > 0]))


def segment_stats(
    points: Sequence[TrackPoint], start_index: int, end_index: int
) -> SegmentStats:
    """Summarise the inclusive index range ``[start_index, end_index]``.

    The indices may be given in either order. Ranges with fewer than two
    points yield an all-zero summary. Slopes are percentages; the maximum
    slope only considers steps that cover horizontal distance.
    """

    start = max(min(start_index, end_index), 0)
    end = max(start_index, end_index)
    window = points[start : end + 1]
    if len(window) < 2:
        return SegmentStats()

    distances = np.fromiter(
        (p.cumulative_distance_km for p in window), dtype=float, count=len(window)
    )
    elevations = np.fromiter((p.elevation_m for p in window), dtype=float, count=len(window))
    distance_km = float(distances[-1] - distances[0])
    net = float(elevations[-1] - elevations[0])

    elev_steps = np.diff(elevations)
    dist_steps_m = np.diff(distances) * 1000.0
    gain = float(np.sum(elev_steps[elev_steps > 0]))
    loss = float(np.sum(np.abs(elev_steps[elev_steps <= 0])))
    moving = dist_steps_m > 0
    max_slope = 0.0
    if moving.any():
        max_slope = float(np.max(np.abs(elev_steps[moving] / dist_steps_m[moving]) * 100.0))
    avg_slope = (net / (distance_km * 1000.0)) * 100.0 if distance_km > 0 else 0.0
    return SegmentStats(
        distance_km=distance_km,
        elevation_gain_m=gain,
        elevation_loss_m=loss,
        net_elevation_m=net,
        avg_slope_pct=avg_slope,
        max_slope_pct=max_slope,
    )


def segment_elevation_profiles(
    segment: MatchedSegment, track_a: Track, track_b: Track
) -> Tuple[List[TrackPoint], List[TrackPoint]]:
    """Slice both tracks' points for the ranges a matched segment covers."""

    if track_a.id != segment.track_a_id or track_b.id != segment.track_b_id:
        raise ValueError(
            f"Segment {segment.id} does not belong to tracks "
            f"{track_a.id!r}/{track_b.id!r}"
        )
    return (
        list(track_a.points[segment.start_index_a : segment.end_index_a + 1]),
        list(track_b.points[segment.start_index_b : segment.end_index_b + 1]),
    )


__all__ = [
    "build_track_points",
    "cumulative_distances_km",
    "elevation_gain_m",
    "segment_elevation_profiles",
    "segment_stats",
    "with_cumulative_distances",
]
