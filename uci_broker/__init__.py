"""Public package interface for the UCI analysis broker."""

from .analysis import AnalysisRequest, AnalysisResult, EvaluationSample, PositionAnalyzer
from .analysis_queue import AnalysisQueue
from .config import EngineTimings
from .engine_comm import EngineState, EngineSupervisor, locate_engine
from .engine_watchdog import Watchdog
from .errors import (
    AnalysisError,
    EngineBusy,
    InvalidInput,
    ProtocolDesync,
    QueueClosed,
    QueueTaskFailure,
    SpawnFailure,
)
from .game_analysis import GameAnalysisResult, GameAnalyzer, GameProgress, PlyRecord
from .service import AnalysisService
from .uci_codec import Mate

__all__ = [
    "AnalysisError",
    "AnalysisQueue",
    "AnalysisRequest",
    "AnalysisResult",
    "AnalysisService",
    "EngineBusy",
    "EngineState",
    "EngineSupervisor",
    "EngineTimings",
    "EvaluationSample",
    "GameAnalysisResult",
    "GameAnalyzer",
    "GameProgress",
    "InvalidInput",
    "Mate",
    "PlyRecord",
    "PositionAnalyzer",
    "ProtocolDesync",
    "QueueClosed",
    "QueueTaskFailure",
    "SpawnFailure",
    "Watchdog",
    "locate_engine",
]
