"""Great-circle distance and bearing helpers for lat/lng coordinates."""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

EARTH_RADIUS_KM = 6371.0

COMPASS_LABELS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the great-circle distance between two points in kilometres."""

    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) * math.sin(d_lat / 2)
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2)
        * math.sin(d_lon / 2)
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def haversine_km_array(
    lat1: ArrayLike, lon1: ArrayLike, lat2: ArrayLike, lon2: ArrayLike
) -> NDArray[np.float64]:
    """Vectorised :func:`haversine_km` over broadcastable coordinate arrays."""

    lat1_r = np.radians(np.asarray(lat1, dtype=float))
    lat2_r = np.radians(np.asarray(lat2, dtype=float))
    d_lat = lat2_r - lat1_r
    d_lon = np.radians(np.asarray(lon2, dtype=float) - np.asarray(lon1, dtype=float))
    a = np.sin(d_lat / 2) ** 2 + np.cos(lat1_r) * np.cos(lat2_r) * np.sin(d_lon / 2) ** 2
    # Rounding can push ``a`` marginally outside [0, 1] for antipodal points.
    a = np.clip(a, 0.0, 1.0)
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def path_length_km(lats: Sequence[float], lngs: Sequence[float]) -> float:
    """Return the summed haversine length of a polyline."""

    lat_arr = np.asarray(lats, dtype=float)
    lng_arr = np.asarray(lngs, dtype=float)
    if lat_arr.size < 2:
        return 0.0
    steps = haversine_km_array(lat_arr[:-1], lng_arr[:-1], lat_arr[1:], lng_arr[1:])
    return float(np.sum(steps))


def bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the initial bearing from point 1 to point 2 in ``[0, 360)``.

    0 is north and 90 is east. Coincident points yield 0.
    """

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_lon = math.radians(lon2 - lon1)
    y = math.sin(d_lon) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(
        d_lon
    )
    bearing = (math.degrees(math.atan2(y, x)) + 360.0) % 360.0
    # (-tiny + 360) % 360 rounds to 360.0 in floating point.
    return 0.0 if bearing >= 360.0 else bearing


def bearings_similar(b1: float, b2: float, tolerance_deg: float = 45.0) -> bool:
    """Return True when two bearings differ by at most ``tolerance_deg``.

    The difference wraps around 360 so 10 and 350 are 20 degrees apart.
    Opposite directions are never considered similar for tolerances below 180.
    """

    diff = abs(b1 - b2) % 360.0
    if diff > 180.0:
        diff = 360.0 - diff
    return diff <= tolerance_deg


def bearing_to_compass_label(bearing: float) -> str:
    """Map a bearing to one of the eight compass labels."""

    # Half-way bearings (22.5, 67.5, ...) round up to the next label.
    index = int(math.floor(bearing / 45.0 + 0.5)) % 8
    return COMPASS_LABELS[index]


__all__ = [
    "COMPASS_LABELS",
    "EARTH_RADIUS_KM",
    "bearing_deg",
    "bearing_to_compass_label",
    "bearings_similar",
    "haversine_km",
    "haversine_km_array",
    "path_length_km",
]
