"""Global pytest fixtures & helpers.

Adds project root to path and provides synthetic track builders shared by the
matching, service and I/O tests. Tracks are laid out in metres east/north of
a base coordinate so expected distances are easy to reason about.
"""
from __future__ import annotations

import math
import os
import sys
from typing import Callable, List, Optional, Sequence, Tuple

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from track_matching.matching.elevation import build_track_points
from track_matching.matching.models import Track

BASE_LAT = 45.0
BASE_LNG = 7.0
METRES_PER_DEGREE = 111_194.93

Offset = Tuple[float, float]


# --- Factory helpers -------------------------------------------------
def offset_to_latlng(east_m: float, north_m: float) -> Tuple[float, float]:
    lng_scale = METRES_PER_DEGREE * math.cos(math.radians(BASE_LAT))
    return BASE_LAT + north_m / METRES_PER_DEGREE, BASE_LNG + east_m / lng_scale


def line_offsets(start: Offset, end: Offset, step_m: float = 5.0) -> List[Offset]:
    """Evenly spaced offsets from ``start`` to ``end`` inclusive."""

    length = math.hypot(end[0] - start[0], end[1] - start[1])
    steps = max(1, int(round(length / step_m)))
    return [
        (
            start[0] + (end[0] - start[0]) * k / steps,
            start[1] + (end[1] - start[1]) * k / steps,
        )
        for k in range(steps + 1)
    ]


def make_track(
    track_id: str,
    offsets: Sequence[Offset],
    *,
    name: Optional[str] = None,
    visible: bool = True,
    elevations: Optional[Sequence[float]] = None,
) -> Track:
    rows = []
    for index, (east_m, north_m) in enumerate(offsets):
        lat, lng = offset_to_latlng(east_m, north_m)
        elevation = elevations[index] if elevations is not None else 100.0 + north_m / 100.0
        rows.append((lat, lng, elevation))
    return Track(
        id=track_id,
        name=name or track_id.upper(),
        points=tuple(build_track_points(rows)),
        visible=visible,
    )


def make_parallel_tracks(lateral_m: float = 20.0, reverse_b: bool = False) -> Tuple[Track, Track]:
    """Two 2 km northbound lines (401 points, 5 m spacing) ``lateral_m`` apart."""

    a_offsets = line_offsets((0.0, 0.0), (0.0, 2000.0))
    b_offsets = line_offsets((lateral_m, 0.0), (lateral_m, 2000.0))
    if reverse_b:
        b_offsets = list(reversed(b_offsets))
    return make_track("a", a_offsets), make_track("b", b_offsets)


def make_crossing_tracks() -> Tuple[Track, Track]:
    """Tracks approaching from opposite sides, sharing 2 km north, then parting.

    Track A covers indices 301..700 of the shared section at x=0, track B the
    same indices at x=20 m.
    """

    a_offsets = (
        line_offsets((-1500.0, 0.0), (0.0, 0.0))
        + line_offsets((0.0, 0.0), (0.0, 2000.0))[1:]
        + line_offsets((0.0, 2000.0), (1500.0, 2000.0))[1:]
    )
    b_offsets = (
        line_offsets((1520.0, 0.0), (20.0, 0.0))
        + line_offsets((20.0, 0.0), (20.0, 2000.0))[1:]
        + line_offsets((20.0, 2000.0), (-1480.0, 2000.0))[1:]
    )
    return make_track("a", a_offsets), make_track("b", b_offsets)


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def parallel_tracks() -> Tuple[Track, Track]:
    return make_parallel_tracks()


@pytest.fixture
def reversed_tracks() -> Tuple[Track, Track]:
    return make_parallel_tracks(reverse_b=True)


@pytest.fixture
def crossing_tracks() -> Tuple[Track, Track]:
    return make_crossing_tracks()


@pytest.fixture
def track_factory() -> Callable[..., Track]:
    return make_track


@pytest.fixture
def offsets_factory() -> Callable[..., List[Offset]]:
    return line_offsets
