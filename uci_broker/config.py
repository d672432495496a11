"""Defaults shared by the supervisor, analyzers and CLI."""

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

PROJECT_DIR = Path(__file__).resolve().parents[1]
BIN_DIR = PROJECT_DIR / "bin"
DATA_DIR = PROJECT_DIR / "data"
PUZZLE_DB_PATH = DATA_DIR / "puzzles.db"

ENGINE_PATH_ENV = "CHESS_ENGINE_PATH"
ENGINE_COMMAND = "stockfish.exe" if sys.platform == "win32" else "stockfish"

DEFAULT_POSITION_DEPTH = 15
DEFAULT_POSITION_MOVETIME_MS = 1000
DEFAULT_GAME_DEPTH = 12
DEFAULT_GAME_MOVETIME_MS = 500
DEFAULT_MAX_MOVES = 50
DEFAULT_PV_COUNT = 1

STOCKFISH_RELEASE = "sf_16"
STOCKFISH_RELEASE_ASSETS: Dict[str, str] = {
    "darwin": "stockfish-macos-x86-64-avx2",
    "win32": "stockfish-windows-x86-64-avx2.exe",
    "linux": "stockfish-ubuntu-x86-64-avx2",
}
STOCKFISH_DOWNLOAD_BASE = "https://github.com/official-stockfish/Stockfish/releases/download"


@dataclass(frozen=True)
class EngineTimings:
    """Every delay and timeout used around the engine process, in seconds
    unless the field name says milliseconds."""

    quit_grace: float = 0.5
    restart_delay: float = 0.5
    handshake_timeout: float = 10.0
    analysis_grace_ms: int = 5000
    stop_grace_ms: int = 2000
    ply_grace_ms: int = 3000
    game_timeout: float = 60.0
    watchdog_interval: float = 30.0
    stall_threshold: float = 120.0
    stall_grace: float = 5.0


DEFAULT_TIMINGS = EngineTimings()


def engine_path_from_env() -> Optional[str]:
    value = os.environ.get(ENGINE_PATH_ENV, "").strip()
    return value or None
