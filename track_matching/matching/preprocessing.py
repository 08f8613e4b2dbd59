"""Polyline smoothing and simplification used to prepare display paths."""

from __future__ import annotations

import math
from typing import List, Protocol, Sequence, TypeVar

import numpy as np
from numpy.typing import NDArray

from ..config import MATCHING_SIMPLIFY_TOLERANCE_DEG, MATCHING_SMOOTHING_WINDOW
from .geodesy import haversine_km, haversine_km_array
from .models import LatLng

MetricArray = NDArray[np.float64]


class _HasLatLng(Protocol):
    @property
    def lat(self) -> float: ...

    @property
    def lng(self) -> float: ...


P = TypeVar("P", bound=_HasLatLng)


def perpendicular_distance(point: _HasLatLng, start: _HasLatLng, end: _HasLatLng) -> float:
    """Distance from ``point`` to the chord ``start``-``end`` in degrees.

    The projection is clamped to the chord, so points beyond either end are
    measured to the nearest endpoint. A zero-length chord falls back to the
    haversine distance between ``point`` and ``start``.
    """

    dx = end.lng - start.lng
    dy = end.lat - start.lat
    length = math.sqrt(dx * dx + dy * dy)
    if length == 0:
        return haversine_km(point.lat, point.lng, start.lat, start.lng)
    t = ((point.lng - start.lng) * dx + (point.lat - start.lat) * dy) / (length * length)
    t = max(0.0, min(1.0, t))
    proj_lng = start.lng + t * dx
    proj_lat = start.lat + t * dy
    return math.sqrt((point.lng - proj_lng) ** 2 + (point.lat - proj_lat) ** 2)


def _perpendicular_distances(
    lats: MetricArray,
    lngs: MetricArray,
    start_lat: float,
    start_lng: float,
    end_lat: float,
    end_lng: float,
) -> MetricArray:
    """Vectorised :func:`perpendicular_distance` for many points and one chord."""

    dx = end_lng - start_lng
    dy = end_lat - start_lat
    length = math.sqrt(dx * dx + dy * dy)
    if length == 0:
        return haversine_km_array(lats, lngs, start_lat, start_lng)
    t = ((lngs - start_lng) * dx + (lats - start_lat) * dy) / (length * length)
    t = np.clip(t, 0.0, 1.0)
    proj_lng = start_lng + t * dx
    proj_lat = start_lat + t * dy
    return np.sqrt((lngs - proj_lng) ** 2 + (lats - proj_lat) ** 2)


def simplify_polyline(
    points: Sequence[P], tolerance_deg: float = MATCHING_SIMPLIFY_TOLERANCE_DEG
) -> List[P]:
    """Douglas-Peucker simplification preserving the first and last points.

    Each range is split at the first point of maximum perpendicular distance
    when that distance exceeds ``tolerance_deg``; otherwise only the range
    endpoints survive. An explicit work stack replaces recursion so long
    tracks cannot exhaust the interpreter stack.
    """

    pts = list(points)
    count = len(pts)
    if count <= 2:
        return pts
    tolerance = max(float(tolerance_deg), 0.0)
    lats = np.fromiter((p.lat for p in pts), dtype=float, count=count)
    lngs = np.fromiter((p.lng for p in pts), dtype=float, count=count)

    keep = np.zeros(count, dtype=bool)
    keep[0] = keep[-1] = True
    stack = [(0, count - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue
        distances = _perpendicular_distances(
            lats[first + 1 : last],
            lngs[first + 1 : last],
            float(lats[first]),
            float(lngs[first]),
            float(lats[last]),
            float(lngs[last]),
        )
        offset = int(np.argmax(distances))
        if float(distances[offset]) > tolerance:
            pivot = first + 1 + offset
            keep[pivot] = True
            stack.append((pivot, last))
            stack.append((first, pivot))
    return [pts[i] for i in np.flatnonzero(keep)]


def smooth_polyline(
    points: Sequence[_HasLatLng], window_size: int = MATCHING_SMOOTHING_WINDOW
) -> List[LatLng]:
    """Centred moving average with the true endpoints restored.

    The window shrinks at the array bounds. Inputs no longer than the window
    are returned unchanged.
    """

    pts = list(points)
    count = len(pts)
    window = max(1, int(window_size))
    if count <= window:
        return [LatLng(p.lat, p.lng) for p in pts]

    half = window // 2
    kernel = np.ones(2 * half + 1, dtype=float)
    lats = np.fromiter((p.lat for p in pts), dtype=float, count=count)
    lngs = np.fromiter((p.lng for p in pts), dtype=float, count=count)
    counts = np.convolve(np.ones(count, dtype=float), kernel, mode="same")
    smoothed_lats = np.convolve(lats, kernel, mode="same") / counts
    smoothed_lngs = np.convolve(lngs, kernel, mode="same") / counts

    smoothed = [
        LatLng(float(lat), float(lng)) for lat, lng in zip(smoothed_lats, smoothed_lngs)
    ]
    smoothed[0] = LatLng(pts[0].lat, pts[0].lng)
    smoothed[-1] = LatLng(pts[-1].lat, pts[-1].lng)
    return smoothed


def prepare_display_path(
    points: Sequence[_HasLatLng],
    *,
    window_size: int = MATCHING_SMOOTHING_WINDOW,
    tolerance_deg: float = MATCHING_SIMPLIFY_TOLERANCE_DEG,
) -> List[LatLng]:
    """Smooth away GPS jitter, then drop redundant colinear points."""

    return simplify_polyline(smooth_polyline(points, window_size), tolerance_deg)


__all__ = [
    "perpendicular_distance",
    "prepare_display_path",
    "simplify_polyline",
    "smooth_polyline",
]
