"""Tests for the match map overlay and its CLI helper."""

from __future__ import annotations

import json
from pathlib import Path

import folium
import pytest

from conftest import make_parallel_tracks
from track_matching.matching import find_matching_segments
from track_matching.matching.visualization import (
    _HIGHLIGHT_COLOR,
    _SEGMENT_COLOR,
    create_match_map,
)
from track_matching.tools.match_map import (
    _default_output_path,
    _slugify,
    build_match_map,
    main as match_map_main,
)


def _polyline_colors(map_object: folium.Map) -> set:
    return {
        child.options.get("color")
        for child in map_object._children.values()
        if isinstance(child, folium.vector_layers.PolyLine)
    }


def test_create_match_map_draws_tracks_and_segments(tmp_path: Path) -> None:
    """Verify that matched segments are overlaid on the tracks."""

    tracks = list(make_parallel_tracks())
    segments = find_matching_segments(tracks, 50.0)
    output_path = tmp_path / "maps" / "overlay.html"
    map_object = create_match_map(tracks, segments, output_html_path=output_path)

    assert isinstance(map_object, folium.Map)
    assert output_path.exists(), "Expected the HTML map output to be written"
    colors = _polyline_colors(map_object)
    assert _SEGMENT_COLOR in colors
    assert _HIGHLIGHT_COLOR not in colors
    assert len(colors) == 3


def test_create_match_map_highlights_selected_segment() -> None:
    tracks = list(make_parallel_tracks())
    segments = find_matching_segments(tracks, 50.0)
    map_object = create_match_map(tracks, segments, highlight_segment_id=segments[0].id)
    assert _HIGHLIGHT_COLOR in _polyline_colors(map_object)


def test_create_match_map_uses_track_colours() -> None:
    track_a, track_b = make_parallel_tracks()
    track_a.color = "#000000"
    map_object = create_match_map([track_a, track_b], [])
    assert "#000000" in _polyline_colors(map_object)


def test_create_match_map_requires_coordinates() -> None:
    with pytest.raises(ValueError):
        create_match_map([], [])


def test_build_match_map_returns_segments(tmp_path: Path) -> None:
    tracks = list(make_parallel_tracks())
    output_path = tmp_path / "match.html"
    map_object, segments = build_match_map(tracks, 50.0, "standard", output_html=output_path)
    assert isinstance(map_object, folium.Map)
    assert len(segments) == 1
    html = output_path.read_text(encoding="utf-8")
    assert "Matched" in html


def test_default_output_path_is_slugified() -> None:
    assert _slugify("  Morning Ride #2 ") == "morning-ride-2"
    assert _slugify("!!!") == "map"
    path = _default_output_path("data/Club Rides.json", "adaptive", 30.0)
    assert path == Path("maps") / "club-rides-adaptive-30m.html"


def test_match_map_cli(tmp_path: Path) -> None:
    track_a, track_b = make_parallel_tracks()
    input_path = tmp_path / "tracks.json"
    input_path.write_text(
        json.dumps(
            [
                {"id": t.id, "name": t.name, "points": [{"lat": p.lat, "lng": p.lng} for p in t.points]}
                for t in (track_a, track_b)
            ]
        ),
        encoding="utf-8",
    )
    output_path = tmp_path / "out.html"
    code = match_map_main(
        ["--input", str(input_path), "--delta-m", "50", "--output", str(output_path)]
    )
    assert code == 0
    assert output_path.exists()
    assert match_map_main(["--input", str(tmp_path / "missing.json")]) == 1
