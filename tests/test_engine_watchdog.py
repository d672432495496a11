import time

from uci_broker import config
from uci_broker.engine_comm import InFlight
from uci_broker.engine_watchdog import Watchdog

TIMINGS = config.EngineTimings(watchdog_interval=0.05, stall_threshold=120.0, stall_grace=0.01)


class StubSupervisor:
    def __init__(self, idle: float = 0.0, request_id=None, answers_stop: bool = False) -> None:
        self.idle = idle
        self.current_analysis = InFlight(request_id, object()) if request_id is not None else None
        self.answers_stop = answers_stop
        self.sent = []
        self.restarts = 0

    def idle_seconds(self) -> float:
        return self.idle

    def send(self, line: str) -> bool:
        self.sent.append(line)
        if self.answers_stop and line == "stop\n":
            self.current_analysis = None
        return True

    def restart(self) -> bool:
        self.restarts += 1
        self.current_analysis = None
        return True


def test_idle_engine_without_request_is_left_alone() -> None:
    supervisor = StubSupervisor(idle=10_000.0)
    assert Watchdog(supervisor, timings=TIMINGS).check() is False
    assert supervisor.sent == []


def test_recent_activity_is_not_a_stall() -> None:
    supervisor = StubSupervisor(idle=119.0, request_id=1)
    assert Watchdog(supervisor, timings=TIMINGS).check() is False
    assert supervisor.restarts == 0


def test_stall_sends_stop_then_restarts() -> None:
    supervisor = StubSupervisor(idle=121.0, request_id=4)
    assert Watchdog(supervisor, timings=TIMINGS).check() is True
    assert supervisor.sent == ["stop\n"]
    assert supervisor.restarts == 1


def test_stall_resolved_by_stop_skips_restart() -> None:
    supervisor = StubSupervisor(idle=500.0, request_id=4, answers_stop=True)
    assert Watchdog(supervisor, timings=TIMINGS).check() is True
    assert supervisor.sent == ["stop\n"]
    assert supervisor.restarts == 0


def test_background_loop_checks_periodically() -> None:
    supervisor = StubSupervisor(idle=500.0, request_id=9)
    watchdog = Watchdog(supervisor, timings=TIMINGS)
    watchdog.start()
    watchdog.start()
    try:
        assert watchdog.running
        deadline = time.monotonic() + 5
        while supervisor.restarts == 0 and time.monotonic() < deadline:
            time.sleep(0.02)
    finally:
        watchdog.stop()
    assert supervisor.restarts == 1
    assert watchdog.running is False
    watchdog.stop()
