from datetime import datetime
import argparse
import logging
import time
from typing import Dict, List, Optional, Sequence

from .config import (
    INPUT_FILE,
    MATCHING_DEFAULT_ALGORITHM,
    MATCHING_DEFAULT_DELTA_M,
    MATCHING_MAX_WORKERS,
    OUTPUT_FILE,
    OUTPUT_FILE_TIMESTAMP_ENABLED,
)
from .errors import TrackFormatError
from .matching import SegmentMatcher, visible_tracks
from .matching.elevation import segment_stats
from .matching.models import MatchedSegment, MatchingAlgorithm, Track
from .services import MatchService
from .track_io import read_tracks, write_segments
from .utils import format_duration_ms


def _setup_logging() -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _resolve_output_path() -> str:
    if OUTPUT_FILE_TIMESTAMP_ENABLED:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return f"{OUTPUT_FILE}_{timestamp}.json"
    return f"{OUTPUT_FILE}.json"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Find sections where GPS tracks follow the same route."
    )
    parser.add_argument(
        "--input",
        default=INPUT_FILE,
        help=f"JSON track file (default: {INPUT_FILE})",
    )
    parser.add_argument(
        "--output",
        help="Report path; defaults to the configured output file name",
    )
    parser.add_argument(
        "--delta-m",
        type=float,
        default=MATCHING_DEFAULT_DELTA_M,
        help=f"Matching tolerance in metres (default: {MATCHING_DEFAULT_DELTA_M:g})",
    )
    parser.add_argument(
        "--algorithm",
        choices=[member.value for member in MatchingAlgorithm],
        default=MatchingAlgorithm.parse(MATCHING_DEFAULT_ALGORITHM).value,
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=MATCHING_MAX_WORKERS,
        help="Threads used to match track pairs (default: %(default)s)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def _log_segments(segments: Sequence[MatchedSegment], tracks: Sequence[Track]) -> None:
    by_id: Dict[str, Track] = {track.id: track for track in tracks}
    for segment in segments:
        stats_a = segment_stats(
            by_id[segment.track_a_id].points, segment.start_index_a, segment.end_index_a
        )
        stats_b = segment_stats(
            by_id[segment.track_b_id].points, segment.start_index_b, segment.end_index_b
        )
        logging.info(
            "%s / %s: %.2f km heading %s (gain %.0f m vs %.0f m)",
            segment.track_a_name,
            segment.track_b_name,
            segment.distance_km,
            segment.direction_label,
            stats_a.elevation_gain_m,
            stats_b.elevation_gain_m,
        )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        tracks: List[Track] = read_tracks(args.input)
    except (TrackFormatError, FileNotFoundError) as exc:
        logging.error("Failed to load tracks '%s': %s", args.input, exc)
        return 1
    try:
        matcher = SegmentMatcher(max_workers=args.max_workers)
    except ValueError as exc:
        logging.error("%s", exc)
        return 1

    logging.info(
        "Matching %d tracks (%d visible) with delta=%.1fm algorithm=%s ...",
        len(tracks),
        len(visible_tracks(tracks)),
        args.delta_m,
        args.algorithm,
    )
    started = time.perf_counter()
    with MatchService(matcher) as service:
        segments = service.submit(tracks, args.delta_m, args.algorithm).result()
    logging.info(
        "Found %d matched segments in %s",
        len(segments),
        format_duration_ms(time.perf_counter() - started),
    )
    _log_segments(segments, tracks)

    output_file = args.output or _resolve_output_path()
    write_segments(output_file, segments, delta_m=args.delta_m, algorithm=args.algorithm)
    logging.info("Results saved to %s", output_file)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
