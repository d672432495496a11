"""Caller-facing surface over the supervised engine."""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Optional

from . import config
from .analysis import AnalysisResult, PositionAnalyzer, ProgressSink
from .analysis_queue import AnalysisQueue
from .engine_comm import EngineCommand, EngineSupervisor
from .engine_watchdog import Watchdog
from .errors import SpawnFailure
from .game_analysis import GameAnalysisResult, GameAnalyzer, GameProgress
from .utils import info_text, report


class AnalysisService:
    """One engine session shared by every caller.

    Build it once at startup and hand it to whoever needs analysis; it owns
    the supervisor, the queue, the watchdog and both analyzers.
    """

    def __init__(
        self,
        command: Optional[EngineCommand] = None,
        *,
        timings: config.EngineTimings = config.DEFAULT_TIMINGS,
        env: Optional[Dict[str, str]] = None,
        supervisor: Optional[EngineSupervisor] = None,
    ) -> None:
        self.supervisor = supervisor or EngineSupervisor(command, timings=timings, env=env)
        self.queue = AnalysisQueue(on_failure=self._recover_after_failure)
        self.watchdog = Watchdog(self.supervisor, timings=self.supervisor.timings)
        self.positions = PositionAnalyzer(self.supervisor, self.queue)
        self.games = GameAnalyzer(self.positions, timings=self.supervisor.timings)
        self._shutdown_lock = threading.Lock()
        self._closed = False

    def __enter__(self) -> "AnalysisService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Launch the engine eagerly instead of on the first request."""
        self.supervisor.start()
        self.watchdog.start()

    def analyze_position(
        self,
        fen: str,
        *,
        depth: Optional[int] = None,
        movetime_ms: Optional[int] = None,
        pv_count: Optional[int] = None,
        on_progress: Optional[ProgressSink] = None,
    ) -> AnalysisResult:
        self._start_watchdog()
        return self.positions.analyze(
            fen,
            depth=depth,
            movetime_ms=movetime_ms,
            pv_count=pv_count,
            on_progress=on_progress,
        )

    def analyze_pgn(
        self,
        pgn: str,
        *,
        depth: Optional[int] = None,
        movetime_ms: Optional[int] = None,
        max_moves: Optional[int] = None,
        pv_count: Optional[int] = None,
        on_progress: Optional[Callable[[GameProgress], None]] = None,
        game_timeout: Optional[float] = None,
    ) -> GameAnalysisResult:
        self._start_watchdog()
        return self.games.analyze(
            pgn,
            depth=depth,
            movetime_ms=movetime_ms,
            max_moves=max_moves,
            pv_count=pv_count,
            on_progress=on_progress,
            game_timeout=game_timeout,
        )

    def engine_health(self) -> Dict[str, Any]:
        health = self.supervisor.health()
        health["queued"] = self.queue.pending
        return health

    def reset_engine(self) -> bool:
        return self.supervisor.restart()

    def shutdown(self) -> None:
        with self._shutdown_lock:
            if not self._closed:
                self._closed = True
                self.watchdog.stop()
                self.queue.close(timeout=0, cancel_pending=True)
            self.supervisor.close()
        report(info_text("Analysis service shut down"))

    def _start_watchdog(self) -> None:
        if not self._closed:
            self.watchdog.start()

    def _recover_after_failure(self, exc: BaseException) -> None:
        if isinstance(exc, SpawnFailure):
            return
        self.supervisor.restart()
