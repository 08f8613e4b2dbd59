"""Uniform lat/lng grid index for nearest-neighbour lookups on a track."""

from __future__ import annotations

from dataclasses import dataclass
import math
from threading import RLock
from typing import Dict, Hashable, List, Optional, Sequence, Tuple

from cachetools import LRUCache

from ..config import GRID_CACHE_MAX_ENTRIES
from .geodesy import haversine_km
from .models import TrackPoint

# Approximate kilometres per degree of latitude (and of longitude at the equator).
KM_PER_DEGREE = 111.0

# Floor for cos(latitude) so polar queries keep a bounded search window.
_MIN_LONGITUDE_SCALE = 0.01

_CellKey = Tuple[int, int]


@dataclass(frozen=True, slots=True)
class NearestPoint:
    """Index into the indexed track and its distance from the query."""

    index: int
    distance_km: float


class SpatialGrid:
    """Buckets track points into square lat/lng cells.

    Queries only visit cells within the search radius of the query cell, so
    lookups cost a handful of haversine evaluations instead of a full scan.
    """

    def __init__(self, points: Sequence[TrackPoint], cell_size_km: float = 0.5) -> None:
        if cell_size_km <= 0:
            raise ValueError("cell_size_km must be greater than zero")
        self.cell_size_km = float(cell_size_km)
        self.cell_size_deg = self.cell_size_km / KM_PER_DEGREE
        self.point_count = len(points)
        self._cells: Dict[_CellKey, List[Tuple[TrackPoint, int]]] = {}
        for index, point in enumerate(points):
            key = self._cell_key(point.lat, point.lng)
            self._cells.setdefault(key, []).append((point, index))

    def __len__(self) -> int:
        return self.point_count

    @property
    def cell_count(self) -> int:
        return len(self._cells)

    def _cell_key(self, lat: float, lng: float) -> _CellKey:
        return (
            math.floor(lng / self.cell_size_deg),
            math.floor(lat / self.cell_size_deg),
        )

    def find_nearest_within_distance(
        self, lat: float, lng: float, max_distance_km: float
    ) -> Optional[NearestPoint]:
        """Return the closest indexed point no further than ``max_distance_km``.

        Returns ``None`` when no point lies within range. Among equidistant
        candidates the first one visited wins.
        """

        if max_distance_km < 0 or not self._cells:
            return None
        lat_radius = math.ceil(max_distance_km / KM_PER_DEGREE / self.cell_size_deg)
        # A kilometre spans more degrees of longitude away from the equator;
        # size the window for the poleward edge of the search area. The result
        # is a superset of the square window of lat_radius cells.
        poleward_lat = min(abs(lat) + max_distance_km / KM_PER_DEGREE, 90.0)
        scale = max(math.cos(math.radians(poleward_lat)), _MIN_LONGITUDE_SCALE)
        lng_radius = math.ceil(
            max_distance_km / (KM_PER_DEGREE * scale) / self.cell_size_deg
        )
        center_x, center_y = self._cell_key(lat, lng)

        nearest_index = -1
        nearest_distance = math.inf
        for dx in range(-lng_radius, lng_radius + 1):
            for dy in range(-lat_radius, lat_radius + 1):
                bucket = self._cells.get((center_x + dx, center_y + dy))
                if not bucket:
                    continue
                for point, index in bucket:
                    distance = haversine_km(lat, lng, point.lat, point.lng)
                    if distance < nearest_distance and distance <= max_distance_km:
                        nearest_distance = distance
                        nearest_index = index
        if nearest_index == -1:
            return None
        return NearestPoint(index=nearest_index, distance_km=nearest_distance)


@dataclass(slots=True)
class _GridEntry:
    grid: SpatialGrid
    point_count: int


class SpatialGridCache:
    """Per-track grid cache keyed by track id.

    A cached grid is reused while the track's point count is unchanged;
    tracks are treated as immutable-or-replaced, so a length change is the
    staleness signal. The cache is bounded (LRU) and safe to share between
    threads matching different track pairs.
    """

    def __init__(self, max_entries: int = GRID_CACHE_MAX_ENTRIES) -> None:
        self._cache: LRUCache[Hashable, _GridEntry] = LRUCache(maxsize=max(1, max_entries))
        self._lock = RLock()
        self.builds = 0

    def get(
        self,
        track_id: Hashable,
        points: Sequence[TrackPoint],
        cell_size_km: float = 0.5,
    ) -> SpatialGrid:
        """Return the grid for ``track_id``, rebuilding it when stale."""

        with self._lock:
            entry = self._cache.get(track_id)
            if entry is not None and entry.point_count == len(points):
                return entry.grid
            grid = SpatialGrid(points, cell_size_km)
            self._cache[track_id] = _GridEntry(grid=grid, point_count=len(points))
            self.builds += 1
            return grid

    def invalidate(self, track_id: Hashable) -> bool:
        """Drop the grid for ``track_id``; returns True when one was cached."""

        with self._lock:
            return self._cache.pop(track_id, None) is not None

    def clear(self) -> None:
        """Empty the cache."""
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def __contains__(self, track_id: object) -> bool:
        with self._lock:
            return track_id in self._cache


__all__ = ["KM_PER_DEGREE", "NearestPoint", "SpatialGrid", "SpatialGridCache"]
