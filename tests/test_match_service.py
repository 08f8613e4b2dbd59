"""Tests for the background matching service (debounce, staleness, fallback)."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import logging
import threading
import time
from typing import List, Optional, Sequence

import pytest

from conftest import make_parallel_tracks
from track_matching.errors import MatchDispatcherUnavailableError
from track_matching.matching import SegmentMatcher
from track_matching.matching.models import MatchingAlgorithm, Track, TrackPoint
from track_matching.services import MatchRequest, MatchService


def _tiny_track(track_id: str, visible: bool = True) -> Track:
    return Track(
        id=track_id,
        name=track_id,
        points=(TrackPoint(45.0, 7.0), TrackPoint(45.001, 7.0)),
        visible=visible,
    )


class _RecordingMatcher:
    """Stand-in matcher returning the ids of the tracks it was given."""

    def __init__(self, gate: Optional[threading.Event] = None, fail: bool = False) -> None:
        self.calls: List[List[str]] = []
        self.threads: List[str] = []
        self.started = threading.Event()
        self.gate = gate
        self.fail = fail
        self.invalidated: List[str] = []

    def match(self, tracks: Sequence[Track], delta_m: float, algorithm: MatchingAlgorithm):
        self.calls.append([track.id for track in tracks])
        self.threads.append(threading.current_thread().name)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.fail:
            raise RuntimeError("boom")
        return [track.id for track in tracks]

    def invalidate(self, track_id: str) -> bool:
        self.invalidated.append(track_id)
        return True

    def clear_cache(self) -> None:
        pass


class _Collector:
    def __init__(self) -> None:
        self.results: List[list] = []
        self.event = threading.Event()

    def __call__(self, segments: list) -> None:
        self.results.append(segments)
        self.event.set()


def test_match_request_snapshots_tracks() -> None:
    """The worker copy must not carry the caller's heavyweight payloads."""

    track = Track(
        id="a",
        name="A",
        points=[TrackPoint(45.0, 7.0)],
        color="#123456",
        raw={"gpx": "..."},
    )
    request = MatchRequest.build([track], 30, "adaptive", generation=4)
    (copy,) = request.tracks
    assert copy is not track
    assert copy.raw is None
    assert copy.color is None
    assert copy.points == track.points
    assert request.algorithm is MatchingAlgorithm.ADAPTIVE
    assert request.delta_m == 30.0
    assert request.generation == 4


def test_submit_runs_real_matcher_on_worker_thread() -> None:
    tracks = list(make_parallel_tracks())
    with MatchService() as service:
        segments = service.submit(tracks, 50.0, "standard").result(timeout=10)
    assert len(segments) == 1
    assert segments[0].track_a_id == "a"


def test_submit_uses_dedicated_worker_thread() -> None:
    matcher = _RecordingMatcher()
    with MatchService(matcher) as service:
        result = service.submit([_tiny_track("a"), _tiny_track("b")], 30.0).result(timeout=5)
    assert result == ["a", "b"]
    assert matcher.threads[0].startswith("segment-matcher")


def test_submit_without_worker_runs_synchronously() -> None:
    matcher = _RecordingMatcher()
    with MatchService(matcher, use_worker=False) as service:
        future = service.submit([_tiny_track("a"), _tiny_track("b")], 30.0)
        assert future.done()
        assert future.result() == ["a", "b"]
    assert matcher.threads == [threading.current_thread().name]


def test_submit_falls_back_when_executor_refuses_work() -> None:
    executor = ThreadPoolExecutor(max_workers=1)
    executor.shutdown()
    matcher = _RecordingMatcher()
    service = MatchService(matcher, executor=executor)
    future = service.submit([_tiny_track("a"), _tiny_track("b")], 30.0)
    assert future.done()
    assert future.result() == ["a", "b"]
    service.shutdown()


def test_matching_failure_resolves_to_empty_list(caplog: pytest.LogCaptureFixture) -> None:
    matcher = _RecordingMatcher(fail=True)
    with caplog.at_level(logging.WARNING):
        with MatchService(matcher) as service:
            result = service.submit([_tiny_track("a"), _tiny_track("b")], 30.0).result(timeout=5)
    assert result == []
    assert any("Segment matching failed" in record.getMessage() for record in caplog.records)


def test_run_sync_matches_on_caller_thread() -> None:
    matcher = _RecordingMatcher()
    service = MatchService(matcher)
    assert service.run_sync([_tiny_track("a"), _tiny_track("b")], 30.0) == ["a", "b"]
    assert matcher.threads == [threading.current_thread().name]
    service.shutdown()


def test_schedule_debounces_bursts() -> None:
    """Only the last of several rapid requests is computed and delivered."""

    matcher = _RecordingMatcher()
    collector = _Collector()
    with MatchService(matcher, debounce_s=0.05) as service:
        service.schedule([_tiny_track("a"), _tiny_track("b")], 30.0, "standard", collector)
        service.schedule([_tiny_track("a"), _tiny_track("c")], 30.0, "standard", collector)
        generation = service.schedule(
            [_tiny_track("a"), _tiny_track("d")], 30.0, "standard", collector
        )
        assert service.pending
        assert collector.event.wait(timeout=5)
        time.sleep(0.2)
        assert generation == service.generation
    assert matcher.calls == [["a", "d"]]
    assert collector.results == [["a", "d"]]


def test_stale_results_are_discarded() -> None:
    gate = threading.Event()
    matcher = _RecordingMatcher(gate=gate)
    collector = _Collector()
    with MatchService(matcher, debounce_s=0.0) as service:
        service.schedule([_tiny_track("a"), _tiny_track("b")], 30.0, "standard", collector)
        assert matcher.started.wait(timeout=5)
        service.schedule([_tiny_track("a"), _tiny_track("c")], 30.0, "standard", collector)
        gate.set()
        assert collector.event.wait(timeout=5)
        time.sleep(0.1)
        assert service.latest_segments == ["a", "c"]
    assert matcher.calls == [["a", "b"], ["a", "c"]]
    assert collector.results == [["a", "c"]]


def test_disabling_drops_pending_and_in_flight_results() -> None:
    gate = threading.Event()
    matcher = _RecordingMatcher(gate=gate)
    collector = _Collector()
    with MatchService(matcher, debounce_s=0.0) as service:
        service.schedule([_tiny_track("a"), _tiny_track("b")], 30.0, "standard", collector)
        assert matcher.started.wait(timeout=5)
        service.set_enabled(False)
        assert not service.enabled
        assert service.schedule([_tiny_track("a")], 30.0, "standard", collector) is None
        gate.set()
        time.sleep(0.2)
    assert collector.results == []


def test_cancel_pending_stops_timer() -> None:
    matcher = _RecordingMatcher()
    collector = _Collector()
    with MatchService(matcher, debounce_s=0.2) as service:
        service.schedule([_tiny_track("a"), _tiny_track("b")], 30.0, "standard", collector)
        service.cancel_pending()
        assert not service.pending
        time.sleep(0.35)
    assert matcher.calls == []
    assert collector.results == []


def test_fewer_than_two_visible_tracks_deliver_empty_without_matching() -> None:
    matcher = _RecordingMatcher()
    collector = _Collector()
    with MatchService(matcher, debounce_s=0.0) as service:
        service.schedule(
            [_tiny_track("a"), _tiny_track("b", visible=False)], 30.0, "standard", collector
        )
        assert collector.event.wait(timeout=5)
    assert collector.results == [[]]
    assert matcher.calls == []


def test_callback_errors_do_not_break_the_service() -> None:
    matcher = _RecordingMatcher()
    delivered = threading.Event()

    def _explode(_: list) -> None:
        delivered.set()
        raise ValueError("callback failure")

    collector = _Collector()
    with MatchService(matcher, debounce_s=0.0) as service:
        service.schedule([_tiny_track("a"), _tiny_track("b")], 30.0, "standard", _explode)
        assert delivered.wait(timeout=5)
        service.schedule([_tiny_track("a"), _tiny_track("c")], 30.0, "standard", collector)
        assert collector.event.wait(timeout=5)
    assert collector.results == [["a", "c"]]


def test_remove_track_invalidates_grid_cache() -> None:
    tracks = list(make_parallel_tracks())
    matcher = SegmentMatcher()
    with MatchService(matcher, use_worker=False) as service:
        service.submit(tracks, 50.0).result()
        assert "b" in matcher.grid_cache
        service.remove_track("b")
        assert "b" not in matcher.grid_cache
        service.submit(tracks, 50.0).result()
        service.clear_cache()
        assert len(matcher.grid_cache) == 0


def test_shutdown_makes_service_unavailable() -> None:
    service = MatchService(_RecordingMatcher())
    service.shutdown()
    service.shutdown()
    with pytest.raises(MatchDispatcherUnavailableError):
        service.submit([_tiny_track("a"), _tiny_track("b")], 30.0)
    with pytest.raises(MatchDispatcherUnavailableError):
        service.schedule([_tiny_track("a"), _tiny_track("b")], 30.0, "standard", _Collector())
