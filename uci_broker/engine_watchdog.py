"""Periodic stall detection for the engine process."""

from __future__ import annotations

import threading
from typing import Optional

from . import config, uci_codec
from .utils import ReportingLevel, error_text, report, warning_text


class Watchdog:
    """Stops, then restarts, an engine that went silent mid-search.

    Every ``interval`` seconds the supervisor's last-activity timestamp is
    compared against ``stall_threshold``. Idle engines with nothing in
    flight are left alone.
    """

    def __init__(
        self,
        supervisor,
        *,
        timings: config.EngineTimings = config.DEFAULT_TIMINGS,
    ) -> None:
        self._supervisor = supervisor
        self._interval = timings.watchdog_interval
        self._stall_threshold = timings.stall_threshold
        self._grace = timings.stall_grace
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stopped.clear()
        self._thread = threading.Thread(target=self._run, name="engine-watchdog", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stopped.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._interval + self._grace + 1.0)

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            try:
                self.check()
            except Exception as exc:
                report(error_text(f"Watchdog check failed: {exc}"), ReportingLevel.QUIET)

    def check(self) -> bool:
        """Run one liveness check; returns True when it had to intervene."""
        supervisor = self._supervisor
        current = supervisor.current_analysis
        if current is None:
            return False

        inactive = supervisor.idle_seconds()
        if inactive <= self._stall_threshold:
            return False

        report(
            warning_text(
                f"Engine inactive for {inactive:.0f}s with analysis {current.request_id} in flight"
            )
        )
        supervisor.send(uci_codec.encode_stop())

        if self._stopped.wait(self._grace):
            return True
        still = supervisor.current_analysis
        if still is not None and still.request_id == current.request_id:
            report(error_text("Resetting engine after stall"), ReportingLevel.QUIET)
            supervisor.restart()
        return True
