"""Tests for cumulative distance and elevation statistics helpers."""

from __future__ import annotations

import pytest

from conftest import make_parallel_tracks
from track_matching.matching import find_matching_segments
from track_matching.matching.elevation import (
    build_track_points,
    cumulative_distances_km,
    elevation_gain_m,
    segment_elevation_profiles,
    segment_stats,
)
from track_matching.matching.geodesy import haversine_km
from track_matching.matching.models import SegmentStats, TrackPoint


def _profile_points() -> list[TrackPoint]:
    elevations = [100.0, 110.0, 105.0, 120.0]
    distances = [0.0, 0.1, 0.2, 0.3]
    return [
        TrackPoint(lat=45.0, lng=7.0, elevation_m=ele, cumulative_distance_km=dist)
        for ele, dist in zip(elevations, distances)
    ]


def test_cumulative_distances_start_at_zero_and_grow() -> None:
    coords = [(45.0, 7.0), (45.001, 7.0), (45.001, 7.001), (45.001, 7.001)]
    distances = cumulative_distances_km(coords)
    assert distances[0] == 0.0
    assert distances == sorted(distances)
    assert distances[1] == pytest.approx(haversine_km(45.0, 7.0, 45.001, 7.0))
    assert distances[3] == pytest.approx(distances[2])
    assert cumulative_distances_km([]) == []


def test_build_track_points_fills_optional_columns() -> None:
    points = build_track_points([(45.0, 7.0), (45.001, 7.0, 250.0, 140, 85)])
    assert points[0].elevation_m == 0.0
    assert points[0].heart_rate is None
    assert points[1].elevation_m == 250.0
    assert points[1].heart_rate == 140
    assert points[1].cadence == 85
    assert points[1].cumulative_distance_km > 0.0


def test_build_track_points_rejects_short_rows() -> None:
    with pytest.raises(ValueError):
        build_track_points([(45.0,)])


def test_elevation_gain_sums_climbs_only() -> None:
    assert elevation_gain_m(_profile_points()) == pytest.approx(25.0)
    assert elevation_gain_m(_profile_points()[:1]) == 0.0


def test_segment_stats_summarises_range() -> None:
    stats = segment_stats(_profile_points(), 0, 3)
    assert stats.distance_km == pytest.approx(0.3)
    assert stats.elevation_gain_m == pytest.approx(25.0)
    assert stats.elevation_loss_m == pytest.approx(5.0)
    assert stats.net_elevation_m == pytest.approx(20.0)
    assert stats.avg_slope_pct == pytest.approx(20.0 / 300.0 * 100.0)
    assert stats.max_slope_pct == pytest.approx(15.0)


def test_segment_stats_accepts_reversed_indices() -> None:
    assert segment_stats(_profile_points(), 3, 1) == segment_stats(_profile_points(), 1, 3)


def test_segment_stats_for_degenerate_ranges() -> None:
    assert segment_stats(_profile_points(), 2, 2) == SegmentStats()
    assert segment_stats([], 0, 5) == SegmentStats()


def test_segment_stats_ignores_stationary_steps_for_max_slope() -> None:
    points = [
        TrackPoint(45.0, 7.0, elevation_m=100.0, cumulative_distance_km=0.0),
        TrackPoint(45.0, 7.0, elevation_m=105.0, cumulative_distance_km=0.0),
        TrackPoint(45.0, 7.0, elevation_m=106.0, cumulative_distance_km=0.1),
    ]
    stats = segment_stats(points, 0, 2)
    assert stats.max_slope_pct == pytest.approx(1.0)


def test_segment_elevation_profiles_slice_both_tracks() -> None:
    track_a, track_b = make_parallel_tracks()
    segment = find_matching_segments([track_a, track_b], 50.0)[0]
    profile_a, profile_b = segment_elevation_profiles(segment, track_a, track_b)
    assert len(profile_a) == segment.end_index_a - segment.start_index_a + 1
    assert len(profile_b) == segment.end_index_b - segment.start_index_b + 1
    assert profile_a[0] == track_a.points[segment.start_index_a]

    with pytest.raises(ValueError):
        segment_elevation_profiles(segment, track_b, track_a)
