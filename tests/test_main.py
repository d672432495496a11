import json

import chess
import pytest
import requests

from uci_broker import main as cli
from uci_broker import utils


@pytest.fixture(autouse=True)
def restore_level():
    previous = utils.get_reporting_level()
    yield
    utils.set_reporting_level(previous)


@pytest.fixture
def engine_script(mock_command) -> str:
    return mock_command()[0]


def test_parse_args_requires_a_source() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args([])
    with pytest.raises(SystemExit):
        cli.parse_args(["-fen", chess.STARTING_FEN, "-pgn", "game.pgn"])


def test_parse_args_defaults() -> None:
    args = cli.parse_args(["-fen", chess.STARTING_FEN])
    assert args.multipv == 1
    assert args.max_moves == 50
    assert args.depth is None
    assert args.puzzle is None


def test_fen_analysis_prints_json(engine_script, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["-fen", chess.STARTING_FEN, "--engine", engine_script, "--movetime", "100", "--multipv", "2"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["bestMove"] == "a2a3"
    assert [line["multipv"] for line in payload["bestMoves"]] == [1, 2]


def test_pgn_analysis_prints_records(engine_script, tmp_path, capsys: pytest.CaptureFixture[str]) -> None:
    pgn = tmp_path / "game.pgn"
    pgn.write_text("1. e4 e5 2. Nf3 Nc6 *\n", encoding="utf-8")
    code = cli.main(["-pgn", str(pgn), "--engine", engine_script, "--movetime", "100", "--max-moves", "3", "--progress"])
    assert code == 0
    captured = capsys.readouterr()
    payload = json.loads(captured.out)
    assert payload["analyzedPlies"] == 3
    assert payload["totalPlies"] == 4
    assert "Move 3/3" in captured.err


def test_invalid_fen_exits_with_error(engine_script, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["-fen", "not-a-fen", "--engine", engine_script])
    assert code == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Invalid FEN" in captured.err


def test_health_reports_ready_engine(engine_script, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["--health", "--engine", engine_script, "--quiet"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["ready"] is True
    assert payload["queued"] == 0


def test_puzzle_missing_database(tmp_path) -> None:
    assert cli.main(["--puzzle", str(tmp_path / "none.db")]) == 1


def test_install_engine_failure_returns_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_install():
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(cli.install_engine, "install", failing_install)
    assert cli.main(["--install-engine"]) == 1


def test_dev_flag_enables_verbose_reporting(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "run", lambda args: 0)
    assert cli.main(["-fen", chess.STARTING_FEN, "-dev"]) == 0
    assert utils.get_reporting_level() is utils.ReportingLevel.VERBOSE
