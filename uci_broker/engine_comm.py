"""Ownership of the single long-lived UCI engine subprocess."""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from . import config, uci_codec
from .errors import EngineBusy, SpawnFailure
from .utils import (
    ReportingLevel,
    debug_text,
    error_text,
    info_text,
    received_text,
    report,
    sending_text,
    warning_text,
)

EngineCommand = Union[str, Sequence[str]]

READ_CHUNK_SIZE = 4096


class EngineState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    READY = "ready"
    RESTARTING = "restarting"


@dataclass(frozen=True)
class EngineProcess:
    """Handle to one spawned engine; a restart replaces it, never mutates it."""

    popen: subprocess.Popen
    argv: tuple
    started_at: float

    @property
    def pid(self) -> int:
        return self.popen.pid

    @property
    def alive(self) -> bool:
        return self.popen.poll() is None


@dataclass
class InFlight:
    """The one analysis currently allowed to consume engine output."""

    request_id: int
    session: Any


def _command_argv(command: EngineCommand) -> List[str]:
    if isinstance(command, str):
        argv = [command]
    else:
        argv = [str(part) for part in command]
    if argv and argv[0].endswith(".py"):
        argv = [sys.executable] + argv
    return argv


def locate_engine(command: Optional[EngineCommand] = None) -> List[str]:
    """Resolve the argv used to launch the engine.

    Order: explicit command, ``CHESS_ENGINE_PATH``, the bundled ``bin/``
    binary, then the platform command name on ``PATH``.
    """
    if command:
        return _command_argv(command)

    env_path = config.engine_path_from_env()
    if env_path:
        return _command_argv(env_path)

    bundled = config.BIN_DIR / config.ENGINE_COMMAND
    if bundled.exists():
        return [str(bundled)]

    return [shutil.which(config.ENGINE_COMMAND) or config.ENGINE_COMMAND]


def _close_pipe(pipe) -> None:
    """Close one end of an engine pipe; the reader threads own stdout and stderr."""
    if pipe is None:
        return
    try:
        pipe.close()
    except OSError as exc:
        report(debug_text(f"Engine pipe close failed: {exc}"), ReportingLevel.VERBOSE)


class EngineSupervisor:
    """Spawns, feeds, watches and tears down the engine process.

    The process handle, the ready flag and the in-flight slot are guarded by
    one lock. Engine output is read on a dedicated thread, split into lines
    by :class:`uci_codec.LineBuffer` and routed to the in-flight session.
    """

    def __init__(
        self,
        command: Optional[EngineCommand] = None,
        *,
        timings: config.EngineTimings = config.DEFAULT_TIMINGS,
        env: Optional[Dict[str, str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._command = command
        self._timings = timings
        self._env = env
        self._clock = clock

        self._lock = threading.RLock()
        self._process: Optional[EngineProcess] = None
        self._ready = False
        self._ready_event = threading.Event()
        self._restarting = False
        self._closed = False
        self._current: Optional[InFlight] = None
        self._threads: List[threading.Thread] = []
        self._last_activity = clock()

    @property
    def timings(self) -> config.EngineTimings:
        return self._timings

    @property
    def process(self) -> Optional[EngineProcess]:
        return self._process

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def state(self) -> EngineState:
        with self._lock:
            if self._restarting:
                return EngineState.RESTARTING
            if self._process is None:
                return EngineState.STOPPED
            return EngineState.READY if self._ready else EngineState.STARTING

    @property
    def last_activity(self) -> float:
        return self._last_activity

    @property
    def current_analysis(self) -> Optional[InFlight]:
        return self._current

    @property
    def in_flight(self) -> bool:
        return self._current is not None

    def touch(self) -> None:
        self._last_activity = self._clock()

    def idle_seconds(self) -> float:
        return self._clock() - self._last_activity

    def health(self) -> Dict[str, Any]:
        with self._lock:
            process = self._process
            current = self._current
            return {
                "ready": self._ready,
                "state": self.state.value,
                "pid": process.pid if process else None,
                "in_flight": current.request_id if current else None,
                "idle_seconds": round(self.idle_seconds(), 3),
            }

    # Lifecycle

    def start(self) -> EngineProcess:
        with self._lock:
            if self._closed:
                raise SpawnFailure("Engine supervisor has been shut down")
            if self._process is not None and self._process.alive:
                return self._process

            argv = locate_engine(self._command)
            report(info_text(f"Launching engine: {' '.join(argv)}"))
            environment = None
            if self._env:
                environment = dict(os.environ)
                environment.update(self._env)
            try:
                popen = subprocess.Popen(
                    argv,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    bufsize=0,
                    env=environment,
                )
            except (OSError, ValueError) as exc:
                self._process = None
                self._ready = False
                self._ready_event.clear()
                report(error_text(f"Engine failed to start: {exc}"), ReportingLevel.QUIET)
                raise SpawnFailure(f"Unable to launch engine {argv[0]!r}: {exc}") from exc

            process = EngineProcess(popen=popen, argv=tuple(argv), started_at=self._clock())
            self._process = process
            self._ready = False
            self._ready_event.clear()
            self.touch()

            readers = [
                threading.Thread(
                    target=self._read_stdout,
                    args=(process,),
                    name=f"engine-stdout-{process.pid}",
                    daemon=True,
                ),
                threading.Thread(
                    target=self._read_stderr,
                    args=(process,),
                    name=f"engine-stderr-{process.pid}",
                    daemon=True,
                ),
            ]
            self._threads = readers
            for thread in readers:
                thread.start()

        self.send(uci_codec.encode_uci())
        self.send(uci_codec.encode_isready())
        return process

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        return self._ready_event.wait(timeout)

    def send(self, command_line: str) -> bool:
        """Write one command line; returns False instead of raising."""
        self.touch()
        if not command_line.endswith("\n"):
            command_line += "\n"
        with self._lock:
            process = self._process
        if process is None or process.popen.stdin is None:
            report(error_text(f"Engine is not running; dropped command: {command_line.strip()}"))
            return False

        report(sending_text(command_line.strip()), ReportingLevel.VERBOSE)
        try:
            process.popen.stdin.write(command_line.encode("utf-8"))
            process.popen.stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as exc:
            report(error_text(f"Engine write failed: {exc}"))
            self._release(process)
            return False
        return True

    def stop(self) -> None:
        with self._lock:
            process = self._process
        if process is None:
            return

        self.send(uci_codec.encode_quit())
        popen = process.popen
        _close_pipe(popen.stdin)
        try:
            popen.wait(timeout=self._timings.quit_grace)
        except subprocess.TimeoutExpired:
            report(warning_text(f"Engine {process.pid} ignored quit; killing it"))
            popen.kill()
            try:
                popen.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                report(error_text(f"Engine {process.pid} did not exit after kill"), ReportingLevel.QUIET)

        self._release(process)
        self._join_readers()
        report(info_text("Engine stopped"))

    def restart(self) -> bool:
        if self._closed:
            return False
        report(info_text("Restarting engine..."))
        with self._lock:
            self._restarting = True
        try:
            self.stop()
            time.sleep(self._timings.restart_delay)
            try:
                self.start()
            except SpawnFailure as exc:
                report(error_text(f"Engine restart failed: {exc}"), ReportingLevel.QUIET)
                return False
            return True
        finally:
            with self._lock:
                self._restarting = False

    def close(self) -> None:
        """Stop the engine for good; later starts and restarts are refused."""
        with self._lock:
            self._closed = True
        self.stop()

    # In-flight slot

    def begin_analysis(self, request_id: int, session: Any) -> InFlight:
        with self._lock:
            if self._current is not None:
                raise EngineBusy(
                    f"Request {request_id} cannot start while request "
                    f"{self._current.request_id} is in flight"
                )
            self._current = InFlight(request_id=request_id, session=session)
            return self._current

    def end_analysis(self, request_id: int) -> None:
        with self._lock:
            if self._current is not None and self._current.request_id == request_id:
                self._current = None

    # Output handling

    def _read_stdout(self, process: EngineProcess) -> None:
        stream = process.popen.stdout
        buffer = uci_codec.LineBuffer()
        try:
            while True:
                chunk = stream.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                for line in buffer.feed(chunk):
                    self._handle_line(process, line)
            for line in buffer.flush():
                self._handle_line(process, line)
        except (OSError, ValueError) as exc:
            report(error_text(f"Engine output read failed: {exc}"))
        finally:
            _close_pipe(stream)
            code = process.popen.poll()
            report(info_text(f"Engine process {process.pid} exited (code {code})"))
            self._release(process)

    def _read_stderr(self, process: EngineProcess) -> None:
        stream = process.popen.stderr
        buffer = uci_codec.LineBuffer()
        try:
            while True:
                chunk = stream.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                for line in buffer.feed(chunk):
                    report(warning_text(f"engine stderr: {line}"))
        except (OSError, ValueError) as exc:
            report(debug_text(f"Engine stderr closed: {exc}"), ReportingLevel.VERBOSE)
        finally:
            _close_pipe(stream)

    def _handle_line(self, process: EngineProcess, line: str) -> None:
        self.touch()
        report(received_text(line), ReportingLevel.VERBOSE)
        event = uci_codec.decode_line(line)

        with self._lock:
            if self._process is not process:
                return
            if isinstance(event, uci_codec.ReadyEvent) and event.token == "readyok":
                self._ready = True
                self._ready_event.set()
            current = self._current

        if current is None:
            return
        try:
            current.session.handle_event(event)
        except Exception as exc:
            report(error_text(f"Analysis {current.request_id} failed to handle '{line}': {exc}"))

    def _release(self, process: EngineProcess) -> None:
        with self._lock:
            if self._process is not process:
                return
            self._process = None
            self._ready = False
            self._ready_event.clear()
        _close_pipe(process.popen.stdin)

    def _join_readers(self) -> None:
        current = threading.current_thread()
        for thread in self._threads:
            if thread is not current:
                thread.join(timeout=1.0)
