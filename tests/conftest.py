from pathlib import Path
from typing import Callable, List

import pytest

from uci_broker import config
from uci_broker.analysis import PositionAnalyzer
from uci_broker.analysis_queue import AnalysisQueue
from uci_broker.engine_comm import EngineSupervisor

MOCK_ENGINE = Path(__file__).resolve().parent / "fixtures" / "mock_engine.py"

FAST_TIMINGS = config.EngineTimings(
    quit_grace=2.0,
    restart_delay=0.05,
    handshake_timeout=10.0,
    analysis_grace_ms=300,
    stop_grace_ms=300,
    ply_grace_ms=3000,
    game_timeout=60.0,
    watchdog_interval=0.05,
    stall_threshold=0.2,
    stall_grace=0.1,
)


def _mock_command(mode: str = "normal", *extra: str) -> List[str]:
    return [str(MOCK_ENGINE), "--mode", mode, *extra]


@pytest.fixture
def mock_command() -> Callable[..., List[str]]:
    return _mock_command


@pytest.fixture
def fast_timings() -> config.EngineTimings:
    return FAST_TIMINGS


@pytest.fixture
def make_supervisor():
    created: List[EngineSupervisor] = []

    def factory(mode: str = "normal", *extra: str, timings=FAST_TIMINGS) -> EngineSupervisor:
        supervisor = EngineSupervisor(_mock_command(mode, *extra), timings=timings)
        created.append(supervisor)
        return supervisor

    yield factory
    for supervisor in created:
        supervisor.close()


@pytest.fixture
def make_analyzer(make_supervisor):
    queues: List[AnalysisQueue] = []

    def factory(mode: str = "normal", *extra: str, timings=FAST_TIMINGS) -> PositionAnalyzer:
        supervisor = make_supervisor(mode, *extra, timings=timings)
        analysis_queue = AnalysisQueue(on_failure=lambda exc: supervisor.restart())
        queues.append(analysis_queue)
        return PositionAnalyzer(supervisor, analysis_queue)

    yield factory
    for analysis_queue in queues:
        analysis_queue.close(timeout=0, cancel_pending=True)
