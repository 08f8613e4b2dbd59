"""General utility helpers shared across modules."""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from enum import Enum
import json
import math
from typing import Any


def format_duration_ms(seconds: float) -> str:
    """Format a duration in seconds as milliseconds with one decimal."""

    return f"{seconds * 1000.0:.1f} ms"


def _normalise_value(value: Any) -> Any:
    """Convert objects to JSON-friendly representations."""

    if isinstance(value, Enum):
        return _normalise_value(value.value)
    if is_dataclass(value) and not isinstance(value, type):
        return {
            item.name: _normalise_value(getattr(value, item.name))
            for item in fields(value)
        }
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="ignore")
    if isinstance(value, set):
        return sorted(_normalise_value(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [_normalise_value(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _normalise_value(val) for key, val in value.items()}
    return value


def json_dumps_sorted(value: Any) -> str:
    """Return canonical JSON for hashing / comparisons."""

    normalised = _normalise_value(value)
    return json.dumps(normalised, sort_keys=True, separators=(",", ":"))
