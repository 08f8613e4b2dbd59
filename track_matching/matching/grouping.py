"""Grouping of accepted point matches into runs and the two merge passes."""

from __future__ import annotations

from typing import Dict, List, Sequence

from .geodesy import bearing_deg, bearings_similar, haversine_km
from .models import AlgorithmProfile, MatcherSettings, MatchingPoint

Run = List[MatchingPoint]


def group_into_runs(
    matches: Sequence[MatchingPoint],
    settings: MatcherSettings,
    profile: AlgorithmProfile,
) -> List[Run]:
    """Split the ordered match list into runs of consecutive matches.

    A match continues the current run when both index jumps stay within
    ``max_index_gap`` and, when the profile checks progression, track B
    advances in the same direction as track A. Runs shorter than
    ``min_segment_points`` are dropped.
    """

    if len(matches) < settings.min_segment_points:
        return []

    runs: List[Run] = []
    current: Run = []
    for match in matches:
        if not current:
            current.append(match)
            continue
        last = current[-1]
        gap_a = abs(match.index_a - last.index_a)
        gap_b = abs(match.index_b - last.index_b)
        progressing_a = match.index_a > last.index_a
        progressing_b = match.index_b > last.index_b
        progression_ok = (not profile.progression_check) or (
            progressing_a == progressing_b
        )
        if gap_a <= settings.max_index_gap and gap_b <= settings.max_index_gap and progression_ok:
            current.append(match)
            continue
        if len(current) >= settings.min_segment_points:
            runs.append(current)
        current = [match]

    if len(current) >= settings.min_segment_points:
        runs.append(current)
    return runs


def merge_nearby_runs(runs: Sequence[Run], settings: MatcherSettings) -> List[Run]:
    """Concatenate consecutive runs separated by a short gap on track A."""

    if len(runs) <= 1:
        return [list(run) for run in runs]

    merged: List[Run] = []
    current: Run = list(runs[0])
    for run in runs[1:]:
        prev_end = current[-1].point_a
        next_start = run[0].point_a
        gap_km = haversine_km(prev_end.lat, prev_end.lng, next_start.lat, next_start.lng)
        if gap_km <= settings.merge_gap_km:
            current.extend(run)
            continue
        if len(current) >= settings.min_segment_points:
            merged.append(current)
        current = list(run)

    if len(current) >= settings.min_segment_points:
        merged.append(current)
    return merged


def run_bearing(run: Sequence[MatchingPoint]) -> float:
    """Overall direction of a run: bearing from its first to last A point."""

    if len(run) < 2:
        return 0.0
    first = run[0].point_a
    last = run[-1].point_a
    return bearing_deg(first.lat, first.lng, last.lat, last.lng)


def runs_share_direction(
    first: Sequence[MatchingPoint],
    second: Sequence[MatchingPoint],
    settings: MatcherSettings,
) -> bool:
    return bearings_similar(
        run_bearing(first), run_bearing(second), settings.segment_bearing_tolerance_deg
    )


def _index_range(run: Sequence[MatchingPoint]) -> tuple[int, int]:
    indices = [match.index_a for match in run]
    return min(indices), max(indices)


def runs_overlap(
    first: Sequence[MatchingPoint],
    second: Sequence[MatchingPoint],
    settings: MatcherSettings,
    profile: AlgorithmProfile,
) -> bool:
    """True when the A index ranges overlap by enough of the shorter run."""

    if profile.merge_direction_check and not runs_share_direction(first, second, settings):
        return False
    first_start, first_end = _index_range(first)
    second_start, second_end = _index_range(second)
    overlap_start = max(first_start, second_start)
    overlap_end = min(first_end, second_end)
    if overlap_end < overlap_start:
        return False
    min_length = min(first_end - first_start, second_end - second_start)
    if min_length <= 0:
        return False
    return (overlap_end - overlap_start) / min_length >= settings.overlap_threshold


def runs_spatially_close(
    first: Sequence[MatchingPoint],
    second: Sequence[MatchingPoint],
    settings: MatcherSettings,
    profile: AlgorithmProfile,
) -> bool:
    """True when any pair of run endpoints lies within twice the merge gap."""

    if profile.merge_direction_check and not runs_share_direction(first, second, settings):
        return False
    first_ends = (first[0].point_a, first[-1].point_a)
    second_ends = (second[0].point_a, second[-1].point_a)
    closest = min(
        haversine_km(a.lat, a.lng, b.lat, b.lng)
        for a in first_ends
        for b in second_ends
    )
    return closest <= settings.merge_gap_km * 2


def union_runs(first: Sequence[MatchingPoint], second: Sequence[MatchingPoint]) -> Run:
    """Union of two runs deduplicated by A index (first run wins), sorted by it."""

    by_index: Dict[int, MatchingPoint] = {}
    for match in first:
        by_index[match.index_a] = match
    for match in second:
        by_index.setdefault(match.index_a, match)
    return sorted(by_index.values(), key=lambda match: match.index_a)


def merge_overlapping_runs(
    runs: Sequence[Run],
    settings: MatcherSettings,
    profile: AlgorithmProfile,
) -> List[Run]:
    """Fold runs that overlap or nearly touch into one, walking in A order."""

    if len(runs) <= 1:
        return [list(run) for run in runs]

    ordered = sorted(runs, key=lambda run: _index_range(run)[0])
    result: List[Run] = []
    current: Run = list(ordered[0])
    for run in ordered[1:]:
        if runs_overlap(current, run, settings, profile) or runs_spatially_close(
            current, run, settings, profile
        ):
            current = union_runs(current, run)
            continue
        if len(current) >= settings.min_segment_points:
            result.append(current)
        current = list(run)

    if len(current) >= settings.min_segment_points:
        result.append(current)
    return result


__all__ = [
    "Run",
    "group_into_runs",
    "merge_nearby_runs",
    "merge_overlapping_runs",
    "run_bearing",
    "runs_overlap",
    "runs_share_direction",
    "runs_spatially_close",
    "union_runs",
]
