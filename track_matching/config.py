"""Central configuration for the GPS track segment matcher.

All values are constants imported by the rest of the package. Adjust as needed
for your environment. Every tunable can be overridden through an environment
variable of the same name (optionally via a local `.env`).
"""

from __future__ import annotations

import importlib
import os


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env variables when python-dotenv is available.
_load_dotenv = None
try:
    _dotenv_mod = importlib.import_module("dotenv")
    _load_dotenv = getattr(_dotenv_mod, "load_dotenv", None)
except Exception:
    _load_dotenv = None

if callable(_load_dotenv):
    # Load .env from the current directory or any parent folder.
    _load_dotenv()


# ---------------------------------------------------------------------------
# Input/Output
# ---------------------------------------------------------------------------
# JSON file holding the normalised tracks (see track_io.read_tracks).
INPUT_FILE = os.getenv("TRACK_MATCHING_INPUT_FILE", "tracks.json")
# Report name; ".json" is appended.
OUTPUT_FILE = os.getenv("TRACK_MATCHING_OUTPUT_FILE", "matched_segments")

# Append _YYYYMMDD_HHMMSS to the output name when True.
OUTPUT_FILE_TIMESTAMP_ENABLED = _env_bool("OUTPUT_FILE_TIMESTAMP_ENABLED", False)


# ---------------------------------------------------------------------------
# Segment matching
# ---------------------------------------------------------------------------
# Default lateral tolerance (metres) between two tracks at the same place.
MATCHING_DEFAULT_DELTA_M = _env_float("MATCHING_DEFAULT_DELTA_M", 30.0)

# One of: standard, adaptive, bidirectional.
MATCHING_DEFAULT_ALGORITHM = os.getenv("MATCHING_DEFAULT_ALGORITHM", "standard")

# Runs with fewer accepted matches than this are discarded.
MATCHING_MIN_SEGMENT_POINTS = _env_int("MATCHING_MIN_SEGMENT_POINTS", 8)

# Shortest matched segment (km) reported to callers.
MATCHING_MIN_SEGMENT_DISTANCE_KM = _env_float("MATCHING_MIN_SEGMENT_DISTANCE_KM", 0.08)

# Stride over track A used by the standard algorithm.
MATCHING_POINT_SAMPLE_RATE = _env_int("MATCHING_POINT_SAMPLE_RATE", 3)

# Largest index jump (on either track) that still continues a run.
MATCHING_MAX_INDEX_GAP = _env_int("MATCHING_MAX_INDEX_GAP", 30)

# Consecutive runs closer than this (km) are concatenated.
MATCHING_MERGE_GAP_KM = _env_float("MATCHING_MERGE_GAP_KM", 0.25)

# Fraction of the shorter index range two runs must share to be merged.
MATCHING_OVERLAP_THRESHOLD = _env_float("MATCHING_OVERLAP_THRESHOLD", 0.2)

# Adaptive sampling: aim for roughly this many sampled points per track.
MATCHING_ADAPTIVE_TARGET_POINTS = _env_int("MATCHING_ADAPTIVE_TARGET_POINTS", 500)
MATCHING_ADAPTIVE_MIN_RATE = _env_int("MATCHING_ADAPTIVE_MIN_RATE", 1)
MATCHING_ADAPTIVE_MAX_RATE = _env_int("MATCHING_ADAPTIVE_MAX_RATE", 5)

# Bearing tolerances (degrees) for point filtering and segment merging.
MATCHING_POINT_BEARING_TOLERANCE_DEG = _env_float(
    "MATCHING_POINT_BEARING_TOLERANCE_DEG", 45.0
)
MATCHING_SEGMENT_BEARING_TOLERANCE_DEG = _env_float(
    "MATCHING_SEGMENT_BEARING_TOLERANCE_DEG", 60.0
)

# Display path preparation: moving-average window and Douglas-Peucker
# tolerance in degrees (~1.5 m).
MATCHING_SMOOTHING_WINDOW = _env_int("MATCHING_SMOOTHING_WINDOW", 5)
MATCHING_SIMPLIFY_TOLERANCE_DEG = _env_float(
    "MATCHING_SIMPLIFY_TOLERANCE_DEG", 0.000015
)

# Lower bound on the spatial grid cell size (km). The effective size is
# max(2 * delta, MATCHING_MIN_CELL_SIZE_KM).
MATCHING_MIN_CELL_SIZE_KM = _env_float("MATCHING_MIN_CELL_SIZE_KM", 0.5)


# ---------------------------------------------------------------------------
# Performance tuning
# ---------------------------------------------------------------------------
# Threads used to match track pairs in parallel (1 = sequential).
MATCHING_MAX_WORKERS = _env_int("MATCHING_MAX_WORKERS", 1)

# Maximum number of per-track spatial grids kept in memory.
GRID_CACHE_MAX_ENTRIES = _env_int("GRID_CACHE_MAX_ENTRIES", 64)

# Quiet period (seconds) after the last input change before recomputing.
MATCHING_DEBOUNCE_SECONDS = _env_float("MATCHING_DEBOUNCE_SECONDS", 0.150)

# Run matching on a background worker thread. When False (or when the worker
# refuses work) the computation runs synchronously on the caller's thread.
MATCHING_USE_WORKER = _env_bool("MATCHING_USE_WORKER", True)
