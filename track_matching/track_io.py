"""JSON reading of normalised tracks and writing of matched segment reports."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Union

from .errors import TrackFormatError
from .matching.models import MatchedSegment, MatchingAlgorithm, Track
from .utils import _normalise_value

PathLike = Union[str, Path]

_LOG = logging.getLogger(__name__)


def parse_tracks(payload: Any, source: str = "<payload>") -> List[Track]:
    """Normalise a decoded JSON document into tracks.

    Accepts either a list of track objects or ``{"tracks": [...]}``. Track ids
    must be unique.
    """

    items = payload.get("tracks") if isinstance(payload, Mapping) else payload
    if not isinstance(items, list):
        raise TrackFormatError(
            f"{source}: expected a list of tracks or an object with a 'tracks' list"
        )
    tracks: List[Track] = []
    seen: set[str] = set()
    for position, item in enumerate(items, start=1):
        try:
            track = Track.from_payload(item)
        except TrackFormatError as exc:
            raise TrackFormatError(f"{source}: track #{position}: {exc}") from exc
        if track.id in seen:
            raise TrackFormatError(f"{source}: duplicate track id {track.id!r}")
        seen.add(track.id)
        tracks.append(track)
    return tracks


def read_tracks(path: PathLike) -> List[Track]:
    """Load tracks from a JSON file.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        TrackFormatError: If the file is not valid JSON or a track is malformed.
    """

    file_path = Path(path)
    text = file_path.read_text(encoding="utf-8")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TrackFormatError(f"{file_path}: invalid JSON ({exc})") from exc
    tracks = parse_tracks(payload, source=str(file_path))
    _LOG.debug("Read %d tracks from %s", len(tracks), file_path)
    return tracks


def segments_report(
    segments: Sequence[MatchedSegment],
    *,
    delta_m: float,
    algorithm: "MatchingAlgorithm | str",
) -> Dict[str, Any]:
    """Return the JSON report document for ``segments``."""

    return {
        "algorithm": MatchingAlgorithm.parse(algorithm),
        "delta_m": float(delta_m),
        "count": len(segments),
        "segments": [segment.to_payload() for segment in segments],
    }


def write_segments(
    path: PathLike,
    segments: Sequence[MatchedSegment],
    *,
    delta_m: float,
    algorithm: "MatchingAlgorithm | str",
) -> Path:
    """Write a matched segment report, creating parent folders as needed."""

    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    report = segments_report(segments, delta_m=delta_m, algorithm=algorithm)
    output_path.write_text(
        json.dumps(_normalise_value(report), indent=2) + "\n", encoding="utf-8"
    )
    _LOG.debug("Wrote %d segments to %s", len(segments), output_path)
    return output_path


__all__ = ["parse_tracks", "read_tracks", "segments_report", "write_segments"]
