"""Generate interactive overlays of matched segments for a track file."""

from __future__ import annotations

import argparse
import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import folium

from ..config import INPUT_FILE, MATCHING_DEFAULT_ALGORITHM, MATCHING_DEFAULT_DELTA_M
from ..errors import TrackFormatError
from ..matching import SegmentMatcher
from ..matching.models import MatchedSegment, MatchingAlgorithm, Track
from ..matching.visualization import create_match_map
from ..track_io import read_tracks

PathLike = Union[str, Path]


def build_match_map(
    tracks: Sequence[Track],
    delta_m: float,
    algorithm: "MatchingAlgorithm | str" = MatchingAlgorithm.STANDARD,
    *,
    output_html: Optional[PathLike] = None,
    highlight_segment_id: Optional[str] = None,
    matcher: Optional[SegmentMatcher] = None,
) -> Tuple[folium.Map, List[MatchedSegment]]:
    """Match ``tracks`` and render the result.

    Returns:
        Tuple of the :class:`folium.Map` and the matched segments it shows.

    Raises:
        ValueError: If there is nothing to plot or the algorithm is unknown.
    """

    matcher = matcher or SegmentMatcher()
    segments = matcher.match(tracks, delta_m, algorithm)
    map_object = create_match_map(
        tracks,
        segments,
        highlight_segment_id=highlight_segment_id,
        output_html_path=output_html,
    )
    return map_object, segments


def _slugify(value: str) -> str:
    """Return a filesystem-friendly slug."""

    normalized = value.strip().lower()
    slug = re.sub(r"[^a-z0-9]+", "-", normalized)
    slug = slug.strip("-")
    return slug or "map"


def _default_output_path(input_path: PathLike, algorithm: str, delta_m: float) -> Path:
    """Return a default HTML output path for the generated map."""

    stem = _slugify(Path(input_path).stem)
    filename = f"{stem}-{_slugify(algorithm)}-{delta_m:g}m.html"
    return Path("maps") / filename


def _build_parser() -> argparse.ArgumentParser:
    """Return the CLI argument parser for the match map tool."""

    parser = argparse.ArgumentParser(
        description="Generate an interactive HTML map of matched track segments."
    )
    parser.add_argument("--input", default=INPUT_FILE)
    parser.add_argument(
        "--delta-m",
        type=float,
        default=MATCHING_DEFAULT_DELTA_M,
        help="Matching tolerance in metres (default: %(default)s)",
    )
    parser.add_argument(
        "--algorithm",
        choices=[member.value for member in MatchingAlgorithm],
        default=MatchingAlgorithm.parse(MATCHING_DEFAULT_ALGORITHM).value,
    )
    parser.add_argument("--highlight", help="Segment id to draw in the highlight colour")
    parser.add_argument(
        "--output",
        type=Path,
        help="Optional output HTML path; defaults to maps/<slug>.html",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point used via ``python -m track_matching.tools.match_map``."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )

    try:
        tracks = read_tracks(args.input)
    except (TrackFormatError, FileNotFoundError) as exc:
        logging.error("Failed to load tracks '%s': %s", args.input, exc)
        return 1

    output_path = args.output or _default_output_path(
        args.input, args.algorithm, args.delta_m
    )
    try:
        _map, segments = build_match_map(
            tracks,
            args.delta_m,
            args.algorithm,
            output_html=output_path,
            highlight_segment_id=args.highlight,
        )
    except ValueError as exc:
        logging.error("Failed to build match map: %s", exc)
        return 1

    logging.info("Plotted %d tracks and %d matched segments", len(tracks), len(segments))
    logging.info("Match map written to %s", output_path)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
