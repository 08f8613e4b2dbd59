"""Utilities for visualising tracks and matched segments on a map."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import folium  # Using folium to build an interactive Leaflet map.

from .models import MatchedSegment, Track

LatLon = Tuple[float, float]
PathLike = Union[str, Path]

_TRACK_PALETTE = ("#2c7bb6", "#fdae61", "#abd9e9", "#7b3294", "#a6611a")
_SEGMENT_COLOR = "#1a9641"
_HIGHLIGHT_COLOR = "#d73027"


def _track_color(track: Track, position: int) -> str:
    if isinstance(track.color, str) and track.color:
        return track.color
    return _TRACK_PALETTE[position % len(_TRACK_PALETTE)]


def _track_latlon(track: Track) -> List[LatLon]:
    return [(point.lat, point.lng) for point in track.points]


def _segment_latlon(segment: MatchedSegment) -> List[LatLon]:
    return [(point.lat, point.lng) for point in segment.points]


def _segment_popup(segment: MatchedSegment) -> folium.Popup:
    return folium.Popup(
        html=(
            f"<strong>{segment.track_a_name}</strong> / "
            f"<strong>{segment.track_b_name}</strong><br>"
            f"{segment.distance_km:.2f} km heading {segment.direction_label} "
            f"({segment.direction_bearing_deg:.0f}&deg;)"
        ),
        max_width=300,
    )


def create_match_map(
    tracks: Sequence[Track],
    segments: Sequence[MatchedSegment],
    *,
    highlight_segment_id: Optional[str] = None,
    output_html_path: Optional[PathLike] = None,
) -> folium.Map:
    """Create an interactive map of visible tracks with matched segments on top.

    Args:
        tracks: Tracks to draw; invisible tracks are skipped.
        segments: Matched segments drawn over the tracks.
        highlight_segment_id: Optional segment id drawn in the highlight colour.
        output_html_path: Optional path to persist the map as an HTML file.

    Returns:
        A :class:`folium.Map` instance containing the overlay.

    Raises:
        ValueError: If there is nothing with coordinates to plot.
    """

    shown = [track for track in tracks if track.visible and track.points]
    bounds: List[LatLon] = []
    for track in shown:
        bounds.extend(_track_latlon(track))
    for segment in segments:
        bounds.extend(_segment_latlon(segment))
    if not bounds:
        raise ValueError("No track or segment coordinates to plot")

    if segments:
        map_center = _segment_latlon(segments[0])[0]
    else:
        map_center = bounds[0]
    folium_map = folium.Map(location=map_center, zoom_start=14, control_scale=True)

    for position, track in enumerate(shown):
        folium.PolyLine(
            _track_latlon(track),
            color=_track_color(track, position),
            weight=3,
            opacity=0.5,
            tooltip=track.name,
        ).add_to(folium_map)

    for segment in segments:
        latlon = _segment_latlon(segment)
        if len(latlon) < 2:
            continue
        highlighted = segment.id == highlight_segment_id
        color = _HIGHLIGHT_COLOR if highlighted else _SEGMENT_COLOR
        folium.PolyLine(
            latlon,
            color=color,
            weight=8 if highlighted else 6,
            opacity=0.9,
            tooltip=f"Matched {segment.distance_km:.2f} km",
            popup=_segment_popup(segment),
        ).add_to(folium_map)
        folium.CircleMarker(
            location=latlon[0],
            radius=5,
            color=color,
            fill=True,
            fill_color=color,
            tooltip=f"Start of {segment.id}",
        ).add_to(folium_map)

    lats = [lat for lat, _ in bounds]
    lngs = [lng for _, lng in bounds]
    folium_map.fit_bounds([(min(lats), min(lngs)), (max(lats), max(lngs))])

    if output_html_path is not None:
        output_path = Path(output_html_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        folium_map.save(str(output_path))

    return folium_map


__all__ = ["create_match_map"]
