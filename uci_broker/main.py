# MAIN
import argparse
import json
import sqlite3
import sys
from pathlib import Path
from typing import List, Optional

import requests

from . import config, install_engine, puzzles
from .analysis import EvaluationSample, score_to_json
from .errors import AnalysisError
from .game_analysis import GameProgress
from .service import AnalysisService
from .utils import ReportingLevel, error_text, info_text, report, set_reporting_level


def parse_args(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Analyse chess positions and games with a UCI engine")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("-fen", help="Analyse the position given as a FEN string")
    source.add_argument("-pgn", help="Analyse every ply of the game in this PGN file ('-' reads stdin)")
    source.add_argument("--puzzle", nargs="?", const="", metavar="DB", help="Print a random puzzle from the puzzle database")
    source.add_argument("--install-engine", action="store_true", help="Download Stockfish into bin/ and exit")
    source.add_argument("--health", action="store_true", help="Start the engine and report its health")

    parser.add_argument("--engine", help="Engine executable (defaults to bin/stockfish or stockfish on PATH)")
    parser.add_argument("--depth", type=int, help="Search depth per position")
    parser.add_argument("--movetime", type=int, help="Search time per position in milliseconds")
    parser.add_argument("--multipv", type=int, default=config.DEFAULT_PV_COUNT, help="Number of principal variations")
    parser.add_argument("--max-moves", type=int, default=config.DEFAULT_MAX_MOVES, help="Maximum plies analysed from a PGN")
    parser.add_argument("--progress", action="store_true", help="Report intermediate evaluations on stderr")
    parser.add_argument("-dev", action="store_true", help="Log every command exchanged with the engine")
    parser.add_argument("--quiet", action="store_true", help="Only report errors")
    return parser.parse_args(argv)


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _read_pgn(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _position_progress(sample: EvaluationSample) -> None:
    report(info_text(
        f"depth {sample.depth} multipv {sample.variation_index} "
        f"eval {score_to_json(sample.score)} move {sample.move}"
    ))


def _game_progress(progress: GameProgress) -> None:
    record = progress.record
    status = record.error or f"best {record.best_move} eval {score_to_json(record.evaluation)}"
    report(info_text(f"Move {progress.current_move}/{progress.total_moves} {record.move}: {status}"))


def run(args) -> int:
    if args.install_engine:
        try:
            install_engine.install()
        except (requests.RequestException, OSError):
            return 1
        return 0

    if args.puzzle is not None:
        try:
            _print_json(puzzles.random_puzzle(args.puzzle or None))
        except (FileNotFoundError, sqlite3.Error) as exc:
            report(error_text(f"Puzzle lookup failed: {exc}"), ReportingLevel.QUIET)
            return 1
        return 0

    with AnalysisService(args.engine) as service:
        try:
            if args.health:
                service.start()
                service.supervisor.wait_ready(service.supervisor.timings.handshake_timeout)
                _print_json(service.engine_health())
                return 0 if service.supervisor.ready else 1

            if args.fen:
                result = service.analyze_position(
                    args.fen,
                    depth=args.depth,
                    movetime_ms=args.movetime,
                    pv_count=args.multipv,
                    on_progress=_position_progress if args.progress else None,
                )
                _print_json(result.to_dict())
                return 0

            game = service.analyze_pgn(
                _read_pgn(args.pgn),
                depth=args.depth,
                movetime_ms=args.movetime,
                max_moves=args.max_moves,
                pv_count=args.multipv,
                on_progress=_game_progress if args.progress else None,
            )
            _print_json(game.to_dict())
            return 0
        except (AnalysisError, OSError) as exc:
            report(error_text(str(exc)), ReportingLevel.QUIET)
            return 1


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    if args.dev:
        set_reporting_level(ReportingLevel.VERBOSE)
    elif args.quiet:
        set_reporting_level(ReportingLevel.QUIET)
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
