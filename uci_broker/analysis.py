"""Single-position analysis against the supervised engine."""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from . import chess_logic, config, uci_codec
from .analysis_queue import AnalysisQueue, QueueTask
from .engine_comm import EngineState, EngineSupervisor
from .errors import InvalidInput
from .uci_codec import Score
from .utils import ReportingLevel, debug_text, error_text, info_text, report, warning_text


def score_to_json(score: Optional[Score]) -> Any:
    if score is None or isinstance(score, float):
        return score
    return str(score)


@dataclass(frozen=True)
class EvaluationSample:
    depth: Optional[int]
    score: Score
    variation_index: int
    move: Optional[str]
    pv: tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "depth": self.depth,
            "evaluation": score_to_json(self.score),
            "multipv": self.variation_index,
            "move": self.move,
            "pv": list(self.pv),
        }


ProgressSink = Callable[[EvaluationSample], None]


@dataclass(frozen=True)
class AnalysisRequest:
    fen: str
    depth: int = config.DEFAULT_POSITION_DEPTH
    movetime_ms: int = config.DEFAULT_POSITION_MOVETIME_MS
    pv_count: int = config.DEFAULT_PV_COUNT
    on_progress: Optional[ProgressSink] = None
    request_id: int = 0


@dataclass
class VariationLine:
    variation_index: int
    move: Optional[str]
    evaluation: Score
    depth: Optional[int]
    pv: tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "multipv": self.variation_index,
            "move": self.move,
            "evaluation": score_to_json(self.evaluation),
            "depth": self.depth,
            "pv": list(self.pv),
        }


@dataclass
class AnalysisResult:
    best_move: Optional[str]
    evaluation: Optional[Score] = None
    best_moves: List[VariationLine] = field(default_factory=list)
    timeout: bool = False
    error: Optional[str] = None
    samples: List[EvaluationSample] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "bestMove": self.best_move,
            "evaluation": score_to_json(self.evaluation),
            "bestMoves": [line.to_dict() for line in self.best_moves],
            "analysisData": [sample.to_dict() for sample in self.samples],
        }
        if self.timeout:
            payload["timeout"] = True
        if self.error:
            payload["error"] = self.error
        return payload


def check_limits(depth: int, movetime_ms: int, pv_count: int) -> None:
    """Raise :class:`InvalidInput` for search limits the engine cannot honour."""
    if depth < 1:
        raise InvalidInput("depth must be at least 1")
    if movetime_ms <= 0:
        raise InvalidInput("movetime must be positive")
    if pv_count < 1:
        raise InvalidInput("multipv must be at least 1")


class _AnalysisSession:
    """Accumulates engine output for one request until ``bestmove``."""

    def __init__(self, request: AnalysisRequest) -> None:
        self.request = request
        self.done = threading.Event()
        self.best_move: Optional[str] = None
        self.lines: Dict[int, EvaluationSample] = {}
        self.samples: List[EvaluationSample] = []

    def handle_event(self, event: uci_codec.Event) -> None:
        if self.done.is_set():
            return
        if isinstance(event, uci_codec.BestMoveEvent):
            self.best_move = event.move
            self.done.set()
            return
        if not isinstance(event, uci_codec.InfoEvent) or event.score is None:
            return

        index = event.variation_index or 1
        if index < 1 or index > self.request.pv_count:
            return
        sample = EvaluationSample(
            depth=event.depth,
            score=event.score,
            variation_index=index,
            move=event.move,
            pv=event.pv,
        )
        self.lines[index] = sample
        self.samples.append(sample)
        if self.request.on_progress is not None:
            self.request.on_progress(sample)

    def result(self) -> AnalysisResult:
        best_moves = [
            VariationLine(
                variation_index=index,
                move=sample.move,
                evaluation=sample.score,
                depth=sample.depth,
                pv=sample.pv,
            )
            for index, sample in sorted(self.lines.items())
        ]
        first = self.lines.get(1)
        return AnalysisResult(
            best_move=self.best_move,
            evaluation=first.score if first else None,
            best_moves=best_moves,
            samples=list(self.samples),
        )

    def degraded(self, reason: str) -> AnalysisResult:
        return AnalysisResult(
            best_move=None,
            evaluation=None,
            timeout=True,
            error=reason,
            samples=list(self.samples),
        )


class PositionAnalyzer:
    """Runs one search per request through the shared queue.

    A search that outlives ``movetime + analysis_grace`` gets a ``stop``;
    if ``bestmove`` still has not arrived after ``stop_grace`` a degraded
    result is returned instead of an error and the engine is restarted
    before the queue serves anything else.
    """

    def __init__(self, supervisor: EngineSupervisor, analysis_queue: AnalysisQueue) -> None:
        self._supervisor = supervisor
        self._queue = analysis_queue
        self._timings = supervisor.timings
        self._request_ids = itertools.count(1)

    def build_request(
        self,
        fen: str,
        *,
        depth: Optional[int] = None,
        movetime_ms: Optional[int] = None,
        pv_count: Optional[int] = None,
        on_progress: Optional[ProgressSink] = None,
    ) -> AnalysisRequest:
        normalised = chess_logic.validate_fen(fen)
        depth = config.DEFAULT_POSITION_DEPTH if depth is None else int(depth)
        movetime_ms = config.DEFAULT_POSITION_MOVETIME_MS if movetime_ms is None else int(movetime_ms)
        pv_count = config.DEFAULT_PV_COUNT if pv_count is None else int(pv_count)
        check_limits(depth, movetime_ms, pv_count)
        return AnalysisRequest(
            fen=normalised,
            depth=depth,
            movetime_ms=movetime_ms,
            pv_count=pv_count,
            on_progress=on_progress,
            request_id=next(self._request_ids),
        )

    def submit(self, fen: str, **options) -> QueueTask:
        request = self.build_request(fen, **options)
        return self._queue.submit(lambda: self.run(request), label=f"position#{request.request_id}")

    def analyze(self, fen: str, **options) -> AnalysisResult:
        return self.submit(fen, **options).result()

    def run(self, request: AnalysisRequest) -> AnalysisResult:
        """Execute ``request`` on the calling thread; only the queue calls this."""
        supervisor = self._supervisor
        if not supervisor.ready:
            if supervisor.process is None:
                supervisor.start()
            if not supervisor.wait_ready(self._timings.handshake_timeout):
                report(error_text("Engine did not answer the readiness probe"), ReportingLevel.QUIET)
                self._queue.defer(supervisor.restart)
                return _AnalysisSession(request).degraded("Engine did not become ready")

        engine = supervisor.process
        session = _AnalysisSession(request)
        supervisor.begin_analysis(request.request_id, session)
        try:
            report(
                debug_text(
                    f"Analysis {request.request_id}: depth {request.depth}, "
                    f"movetime {request.movetime_ms}ms, multipv {request.pv_count}"
                ),
                ReportingLevel.VERBOSE,
            )
            supervisor.send(uci_codec.encode_set_multipv(request.pv_count))
            supervisor.send(uci_codec.encode_new_game())
            supervisor.send(uci_codec.encode_position(request.fen))
            supervisor.send(uci_codec.encode_go(request.depth, request.movetime_ms))

            safety = (request.movetime_ms + self._timings.analysis_grace_ms) / 1000
            if session.done.wait(safety):
                return session.result()

            report(warning_text(f"Analysis {request.request_id} stalled, sending stop"))
            supervisor.send(uci_codec.encode_stop())
            if session.done.wait(self._timings.stop_grace_ms / 1000):
                return session.result()

            supervisor.end_analysis(request.request_id)
            current = supervisor.process
            restarting = supervisor.state is EngineState.RESTARTING
            if current is engine or (current is None and not restarting):
                report(error_text("Engine not responding, resetting"), ReportingLevel.QUIET)
                self._queue.defer(supervisor.restart)
            else:
                # Already replaced while this search was waiting (watchdog).
                report(warning_text(f"Analysis {request.request_id} outlived its engine"))
            return session.degraded("Analysis timeout")
        finally:
            supervisor.end_analysis(request.request_id)
            report(info_text(f"Analysis {request.request_id} finished"), ReportingLevel.VERBOSE)
