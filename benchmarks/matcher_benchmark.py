"""Benchmark the GPS segment matcher pipeline with large point counts."""

from __future__ import annotations

import argparse
import math
import statistics
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Late imports rely on the adjusted sys.path above.
from track_matching.config import MATCHING_DEFAULT_DELTA_M  # noqa: E402
from track_matching.matching import SegmentMatcher  # noqa: E402
from track_matching.matching.elevation import build_track_points  # noqa: E402
from track_matching.matching.models import (  # noqa: E402
    MatcherSettings,
    MatchingAlgorithm,
    Track,
)
from track_matching.matching.spatial_index import SpatialGrid  # noqa: E402
from track_matching.utils import json_dumps_sorted  # noqa: E402

_METRES_PER_DEGREE = 111_194.93


@dataclass(slots=True)
class StageDurations:
    """Timing measurements (in seconds) for the matcher pipeline."""

    grid_build: float
    match_cold: float
    match_warm: float

    @property
    def total(self) -> float:
        """Return the aggregate duration for this benchmark iteration."""

        return self.grid_build + self.match_cold + self.match_warm


@dataclass(slots=True)
class BenchmarkSummary:
    """Aggregated statistics for multiple benchmark iterations."""

    point_count: int
    iterations: int
    algorithm: str
    segment_count: int
    mean_grid_build_ms: float
    mean_match_cold_ms: float
    mean_match_warm_ms: float
    mean_total_ms: float
    worst_total_ms: float


def _build_track(track_id: str, point_count: int, offset_m: float) -> Track:
    """Generate a gently winding track with roughly 5 m spacing."""

    base_lat = 46.0
    base_lng = 7.0
    lng_scale = _METRES_PER_DEGREE * math.cos(math.radians(base_lat))
    rows = []
    for idx in range(point_count):
        north_m = idx * 5.0
        east_m = offset_m + 200.0 * math.sin(idx / 400.0)
        rows.append(
            (
                base_lat + north_m / _METRES_PER_DEGREE,
                base_lng + east_m / lng_scale,
                400.0 + 30.0 * math.sin(idx / 250.0),
            )
        )
    return Track(id=track_id, name=track_id.upper(), points=tuple(build_track_points(rows)))


def _run_iteration(
    tracks: List[Track], algorithm: MatchingAlgorithm, delta_m: float
) -> tuple[StageDurations, str]:
    """Execute one benchmark iteration and capture per-stage timings."""

    settings = MatcherSettings()
    start = time.perf_counter()
    SpatialGrid(tracks[1].points, settings.cell_size_km(delta_m / 1000.0))
    grid_build = time.perf_counter() - start

    matcher = SegmentMatcher(settings)
    start = time.perf_counter()
    segments = matcher.match(tracks, delta_m, algorithm)
    match_cold = time.perf_counter() - start

    start = time.perf_counter()
    warm_segments = matcher.match(tracks, delta_m, algorithm)
    match_warm = time.perf_counter() - start

    fingerprint = json_dumps_sorted([segment.to_payload() for segment in segments])
    if fingerprint != json_dumps_sorted([segment.to_payload() for segment in warm_segments]):
        raise RuntimeError("Cached grid produced different segments")

    return (
        StageDurations(grid_build=grid_build, match_cold=match_cold, match_warm=match_warm),
        fingerprint,
    )


def run_benchmark(
    point_count: int,
    iterations: int,
    algorithm: "MatchingAlgorithm | str" = MatchingAlgorithm.STANDARD,
    delta_m: float = MATCHING_DEFAULT_DELTA_M,
) -> BenchmarkSummary:
    """Benchmark the matcher pipeline and return aggregated timings."""

    if point_count < 1000:
        raise ValueError("point_count must be at least 1,000")
    if iterations <= 0:
        raise ValueError("iterations must be positive")
    algorithm = MatchingAlgorithm.parse(algorithm)

    tracks = [_build_track("a", point_count, 0.0), _build_track("b", point_count, 12.0)]

    durations: List[StageDurations] = []
    fingerprints = set()
    for _ in range(iterations):
        duration, fingerprint = _run_iteration(tracks, algorithm, delta_m)
        durations.append(duration)
        fingerprints.add(fingerprint)
    if len(fingerprints) != 1:
        raise RuntimeError("Matcher output is not deterministic across iterations")

    segment_count = len(SegmentMatcher().match(tracks, delta_m, algorithm))
    return BenchmarkSummary(
        point_count=point_count,
        iterations=iterations,
        algorithm=algorithm.value,
        segment_count=segment_count,
        mean_grid_build_ms=statistics.fmean(item.grid_build for item in durations) * 1000.0,
        mean_match_cold_ms=statistics.fmean(item.match_cold for item in durations) * 1000.0,
        mean_match_warm_ms=statistics.fmean(item.match_warm for item in durations) * 1000.0,
        mean_total_ms=statistics.fmean(item.total for item in durations) * 1000.0,
        worst_total_ms=max(item.total for item in durations) * 1000.0,
    )


def _format_summary(summary: BenchmarkSummary) -> Dict[str, object]:
    """Return a JSON-friendly representation of the benchmark summary."""

    return {
        "point_count": summary.point_count,
        "iterations": summary.iterations,
        "algorithm": summary.algorithm,
        "segment_count": summary.segment_count,
        "mean_grid_build_ms": summary.mean_grid_build_ms,
        "mean_match_cold_ms": summary.mean_match_cold_ms,
        "mean_match_warm_ms": summary.mean_match_warm_ms,
        "mean_total_ms": summary.mean_total_ms,
        "worst_total_ms": summary.worst_total_ms,
    }


def _parse_args() -> argparse.Namespace:
    """Parse command-line arguments for the benchmark utility."""

    parser = argparse.ArgumentParser(
        description="Benchmark the segment matcher with large synthetic tracks",
    )
    parser.add_argument(
        "--points",
        type=int,
        default=5000,
        help="Number of points per synthetic track",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=3,
        help="Number of repetitions for averaging",
    )
    parser.add_argument(
        "--algorithm",
        choices=[member.value for member in MatchingAlgorithm],
        default=MatchingAlgorithm.STANDARD.value,
    )
    parser.add_argument("--delta-m", type=float, default=MATCHING_DEFAULT_DELTA_M)
    return parser.parse_args()


def main() -> None:
    """Entry point when running the module as a script."""

    args = _parse_args()
    summary = run_benchmark(args.points, args.iterations, args.algorithm, args.delta_m)
    formatted = _format_summary(summary)
    for key, value in formatted.items():
        if isinstance(value, float):
            print(f"{key}: {value:.3f}")
        else:
            print(f"{key}: {value}")


if __name__ == "__main__":
    main()
