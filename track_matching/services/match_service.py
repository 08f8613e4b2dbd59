"""Background matching service (application layer).

Runs the segment matcher off the caller's thread and debounces bursts of
input changes. Requests carry copies of the tracks, so the worker never
shares mutable state with the caller. Staleness is decided on the caller
side with a generation counter: a result is only delivered when no newer
request was scheduled and matching is still enabled.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
import logging
import threading
from typing import Callable, List, Optional, Sequence, Tuple

from ..config import MATCHING_DEBOUNCE_SECONDS, MATCHING_USE_WORKER
from ..errors import MatchDispatcherUnavailableError
from ..matching import SegmentMatcher, visible_tracks
from ..matching.models import MatchedSegment, MatchingAlgorithm, Track

ResultCallback = Callable[[List[MatchedSegment]], None]


@dataclass(frozen=True, slots=True)
class MatchRequest:
    """Immutable message handed to the matching worker."""

    tracks: Tuple[Track, ...]
    delta_m: float
    algorithm: MatchingAlgorithm
    generation: int = 0

    @classmethod
    def build(
        cls,
        tracks: Sequence[Track],
        delta_m: float,
        algorithm: "MatchingAlgorithm | str",
        generation: int = 0,
    ) -> "MatchRequest":
        """Snapshot ``tracks`` into a request, dropping non-essential payloads."""

        return cls(
            tracks=tuple(track.snapshot() for track in tracks),
            delta_m=float(delta_m),
            algorithm=MatchingAlgorithm.parse(algorithm),
            generation=generation,
        )


class MatchService:
    def __init__(
        self,
        matcher: Optional[SegmentMatcher] = None,
        *,
        debounce_s: float = MATCHING_DEBOUNCE_SECONDS,
        use_worker: bool = MATCHING_USE_WORKER,
        executor: Optional[Executor] = None,
    ) -> None:
        self.matcher = matcher or SegmentMatcher()
        self.debounce_s = max(0.0, float(debounce_s))
        self._log = logging.getLogger(self.__class__.__name__)
        self._lock = threading.RLock()
        self._use_worker = use_worker or executor is not None
        self._executor = executor
        self._owns_executor = executor is None
        self._enabled = True
        self._closed = False
        self._generation = 0
        self._timer: Optional[threading.Timer] = None
        self._latest: List[MatchedSegment] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        """Toggle matching; disabling drops pending and in-flight results."""

        with self._lock:
            self._enabled = bool(enabled)
            if not self._enabled:
                self._cancel_timer_locked()
                self._generation += 1

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def pending(self) -> bool:
        """True while a debounced recomputation is waiting to fire."""
        with self._lock:
            return self._timer is not None

    @property
    def latest_segments(self) -> List[MatchedSegment]:
        """Segments from the most recently delivered result."""
        with self._lock:
            return list(self._latest)

    def remove_track(self, track_id: str) -> None:
        """Drop cached index data for a removed track."""

        if self.matcher.invalidate(track_id):
            self._log.debug("Invalidated spatial grid for track %s", track_id)

    def clear_cache(self) -> None:
        self.matcher.clear_cache()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def submit(
        self,
        tracks: Sequence[Track],
        delta_m: float,
        algorithm: "MatchingAlgorithm | str" = MatchingAlgorithm.STANDARD,
    ) -> "Future[List[MatchedSegment]]":
        """Run one matching request and return a future for its segments.

        The request runs on the worker thread when available, otherwise
        synchronously before this call returns. Matching failures resolve the
        future to an empty list.
        """

        request = MatchRequest.build(tracks, delta_m, algorithm, self.generation)
        return self._dispatch(request)

    def run_sync(
        self,
        tracks: Sequence[Track],
        delta_m: float,
        algorithm: "MatchingAlgorithm | str" = MatchingAlgorithm.STANDARD,
    ) -> List[MatchedSegment]:
        """Match on the caller's thread."""

        return self._run_request(MatchRequest.build(tracks, delta_m, algorithm))

    def schedule(
        self,
        tracks: Sequence[Track],
        delta_m: float,
        algorithm: "MatchingAlgorithm | str",
        on_complete: ResultCallback,
    ) -> Optional[int]:
        """Debounce a recomputation; newer calls supersede pending ones.

        Returns the request generation, or ``None`` when matching is disabled.
        ``on_complete`` runs on a background thread and only for results that
        are still current when they arrive.
        """

        with self._lock:
            self._ensure_open_locked()
            if not self._enabled:
                return None
            self._generation += 1
            generation = self._generation
            self._cancel_timer_locked()
            request = MatchRequest.build(tracks, delta_m, algorithm, generation)
            timer = threading.Timer(self.debounce_s, self._fire, args=(request, on_complete))
            timer.daemon = True
            self._timer = timer
            timer.start()
        self._log.debug(
            "Scheduled matching generation %d in %.3fs", generation, self.debounce_s
        )
        return generation

    def cancel_pending(self) -> None:
        """Cancel any pending recomputation and discard in-flight results."""

        with self._lock:
            self._cancel_timer_locked()
            self._generation += 1

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._cancel_timer_locked()
            self._generation += 1
            executor = self._executor if self._owns_executor else None
            self._executor = None
        if executor is not None:
            executor.shutdown(wait=wait)

    def __enter__(self) -> "MatchService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _ensure_open_locked(self) -> None:
        if self._closed:
            raise MatchDispatcherUnavailableError("MatchService has been shut down")

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _get_executor_locked(self) -> Optional[Executor]:
        if not self._use_worker:
            return None
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="segment-matcher"
            )
        return self._executor

    def _dispatch(self, request: MatchRequest) -> "Future[List[MatchedSegment]]":
        with self._lock:
            self._ensure_open_locked()
            executor = self._get_executor_locked()
        if executor is not None:
            try:
                return executor.submit(self._run_request, request)
            except RuntimeError as exc:
                self._log.warning(
                    "Matching worker unavailable (%s); running synchronously", exc
                )
        future: "Future[List[MatchedSegment]]" = Future()
        future.set_result(self._run_request(request))
        return future

    def _run_request(self, request: MatchRequest) -> List[MatchedSegment]:
        try:
            return self.matcher.match(request.tracks, request.delta_m, request.algorithm)
        except Exception:  # noqa: BLE001
            self._log.warning(
                "Segment matching failed for generation %d; returning no segments",
                request.generation,
                exc_info=True,
            )
            return []

    def _fire(self, request: MatchRequest, on_complete: ResultCallback) -> None:
        with self._lock:
            if request.generation != self._generation or not self._enabled:
                return
            self._timer = None
        if len(visible_tracks(request.tracks)) < 2:
            self._deliver(request.generation, [], on_complete)
            return
        try:
            future = self._dispatch(request)
        except MatchDispatcherUnavailableError:
            self._log.debug("Service closed before generation %d ran", request.generation)
            return
        future.add_done_callback(
            lambda done: self._on_done(request.generation, done, on_complete)
        )

    def _on_done(
        self,
        generation: int,
        future: "Future[List[MatchedSegment]]",
        on_complete: ResultCallback,
    ) -> None:
        segments: List[MatchedSegment] = []
        if future.cancelled():
            self._log.debug("Matching generation %d was cancelled", generation)
        else:
            exc = future.exception()
            if exc is not None:
                self._log.warning(
                    "Matching worker error for generation %d: %s", generation, exc
                )
            else:
                segments = future.result()
        self._deliver(generation, segments, on_complete)

    def _deliver(
        self,
        generation: int,
        segments: List[MatchedSegment],
        on_complete: ResultCallback,
    ) -> None:
        with self._lock:
            if generation != self._generation or not self._enabled:
                self._log.debug("Discarding stale matching result (generation %d)", generation)
                return
            self._latest = list(segments)
        try:
            on_complete(segments)
        except Exception:
            self._log.debug(
                "Matching completion callback failed for generation %d",
                generation,
                exc_info=True,
            )


__all__ = ["MatchRequest", "MatchService", "ResultCallback"]
