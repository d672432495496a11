"""Ply-by-ply analysis of a PGN game."""

from __future__ import annotations

import time
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from . import chess_logic, config
from .analysis import AnalysisResult, PositionAnalyzer, VariationLine, check_limits, score_to_json
from .errors import InvalidInput, ProtocolDesync, QueueClosed
from .uci_codec import Score
from .utils import ReportingLevel, error_text, info_text, report, warning_text


@dataclass
class PlyRecord:
    fen: str
    move: str
    uci: str
    ply: int
    move_number: int
    side_to_move: str
    best_move: Optional[str] = None
    evaluation: Optional[Score] = None
    best_moves: List[VariationLine] = field(default_factory=list)
    timeout: bool = False
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "fen": self.fen,
            "move": self.move,
            "uci": self.uci,
            "ply": self.ply,
            "moveNumber": self.move_number,
            "isWhite": self.side_to_move == "white",
            "bestMove": self.best_move,
            "evaluation": score_to_json(self.evaluation),
            "bestMoves": [line.to_dict() for line in self.best_moves],
        }
        if self.timeout:
            payload["timeout"] = True
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class GameProgress:
    current_move: int
    total_moves: int
    record: PlyRecord


@dataclass
class GameAnalysisResult:
    records: List[PlyRecord] = field(default_factory=list)
    total_plies: int = 0
    truncated: bool = False
    headers: Dict[str, str] = field(default_factory=dict)
    result: str = "*"
    status: str = ""

    @property
    def failures(self) -> List[PlyRecord]:
        return [record for record in self.records if record.failed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "moves": [record.to_dict() for record in self.records],
            "totalPlies": self.total_plies,
            "analyzedPlies": len(self.records),
            "truncated": self.truncated,
            "headers": dict(self.headers),
            "result": self.result,
            "status": self.status,
        }


class _GameDeadline(Exception):
    pass


class GameAnalyzer:
    """Drives :class:`PositionAnalyzer` over the plies of one game.

    Each ply waits for its queued task to start, then races it against
    ``movetime + ply_grace``. A failed ply becomes a degraded record and the
    replay carries on. Hitting the whole-game timeout returns the records
    gathered so far with ``truncated`` set.
    """

    def __init__(
        self,
        position_analyzer: PositionAnalyzer,
        *,
        timings: config.EngineTimings = config.DEFAULT_TIMINGS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._positions = position_analyzer
        self._timings = timings
        self._clock = clock

    def analyze(
        self,
        pgn_text: str,
        *,
        depth: Optional[int] = None,
        movetime_ms: Optional[int] = None,
        max_moves: Optional[int] = None,
        pv_count: Optional[int] = None,
        on_progress: Optional[Callable[[GameProgress], None]] = None,
        game_timeout: Optional[float] = None,
    ) -> GameAnalysisResult:
        depth = config.DEFAULT_GAME_DEPTH if depth is None else depth
        movetime_ms = config.DEFAULT_GAME_MOVETIME_MS if movetime_ms is None else movetime_ms
        max_moves = config.DEFAULT_MAX_MOVES if max_moves is None else max_moves
        game_timeout = self._timings.game_timeout if game_timeout is None else game_timeout
        if max_moves < 1:
            raise InvalidInput("max_moves must be at least 1")
        check_limits(depth, movetime_ms, config.DEFAULT_PV_COUNT if pv_count is None else pv_count)

        game = chess_logic.parse_pgn(pgn_text)
        planned = min(len(game.moves), max_moves)
        report(info_text(f"Analysing {planned} of {len(game.moves)} plies"))

        outcome = GameAnalysisResult(
            total_plies=len(game.moves),
            headers=game.headers,
            result=game.result,
            status=chess_logic.get_game_result(game.final_board()),
        )
        deadline = self._clock() + game_timeout
        ply_timeout = (movetime_ms + self._timings.ply_grace_ms) / 1000

        for step in chess_logic.replay(game, planned):
            record = PlyRecord(
                fen=step.fen,
                move=step.san,
                uci=step.move.uci(),
                ply=step.ply,
                move_number=step.move_number,
                side_to_move=step.mover,
            )
            try:
                result = self._analyze_ply(record.fen, depth, movetime_ms, pv_count, ply_timeout, deadline)
            except _GameDeadline:
                report(warning_text(f"Game timeout reached after {len(outcome.records)} plies"))
                outcome.truncated = True
                break
            except (InvalidInput, QueueClosed):
                raise
            except Exception as exc:
                report(error_text(f"Error analysing ply {step.ply}: {exc}"), ReportingLevel.QUIET)
                record.error = str(exc) or exc.__class__.__name__
                record.timeout = isinstance(exc, ProtocolDesync)
            else:
                self._apply_result(record, result)

            outcome.records.append(record)
            if on_progress is not None:
                try:
                    on_progress(GameProgress(current_move=step.ply, total_moves=planned, record=record))
                except Exception as exc:
                    report(error_text(f"Progress callback failed on ply {step.ply}: {exc}"))

        report(info_text(f"Game analysis finished: {len(outcome.records)} plies"))
        return outcome

    def _analyze_ply(
        self,
        fen: str,
        depth: int,
        movetime_ms: int,
        pv_count: Optional[int],
        ply_timeout: float,
        deadline: float,
    ) -> AnalysisResult:
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise _GameDeadline()

        task = self._positions.submit(fen, depth=depth, movetime_ms=movetime_ms, pv_count=pv_count)
        if not task.started.wait(remaining):
            task.cancel()
            raise _GameDeadline()

        remaining = deadline - self._clock()
        wait = min(ply_timeout, max(remaining, 0.0))
        try:
            return task.result(timeout=wait)
        except FutureTimeout:
            if wait < ply_timeout:
                raise _GameDeadline() from None
            raise ProtocolDesync("Position analysis timeout") from None

    @staticmethod
    def _apply_result(record: PlyRecord, result: AnalysisResult) -> None:
        record.best_move = result.best_move
        record.evaluation = result.evaluation
        record.best_moves = list(result.best_moves)
        if result.timeout:
            record.timeout = True
            record.best_move = None
            record.evaluation = None
            record.error = result.error or "Analysis timeout"

