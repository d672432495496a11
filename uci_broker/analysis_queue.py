"""Single-consumer FIFO that serialises work against the one engine."""

from __future__ import annotations

import itertools
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from .errors import AnalysisError, QueueClosed, QueueTaskFailure
from .utils import ReportingLevel, debug_text, error_text, report

_SENTINEL = object()


@dataclass
class QueueTask:
    task_id: int
    execute: Callable[[], Any]
    label: str = ""
    future: Future = field(default_factory=Future)
    started: threading.Event = field(default_factory=threading.Event)

    def result(self, timeout: Optional[float] = None) -> Any:
        return self.future.result(timeout)

    def cancel(self) -> bool:
        return self.future.cancel()


class AnalysisQueue:
    """Runs submitted callables one at a time on a worker thread.

    Callers wait on the returned task's future; there is no depth limit, so
    back-pressure is purely the wait itself. When a task raises, the
    ``on_failure`` hook runs (normally an engine restart) before the next
    task is picked up.
    """

    def __init__(
        self,
        on_failure: Optional[Callable[[BaseException], None]] = None,
        *,
        name: str = "analysis-queue",
    ) -> None:
        self._on_failure = on_failure
        self._name = name
        self._tasks: "queue.Queue[Any]" = queue.Queue()
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None
        self._closed = False
        self._active: Optional[QueueTask] = None
        self._deferred: List[Callable[[], Any]] = []

    @property
    def pending(self) -> int:
        return self._tasks.qsize()

    @property
    def active(self) -> Optional[QueueTask]:
        return self._active

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, execute: Callable[[], Any], *, label: str = "") -> QueueTask:
        with self._lock:
            if self._closed:
                raise QueueClosed("Analysis queue is shut down")
            task = QueueTask(task_id=next(self._ids), execute=execute, label=label)
            self._tasks.put(task)
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(target=self._drain, name=self._name, daemon=True)
                self._worker.start()
        return task

    def defer(self, action: Callable[[], Any]) -> None:
        """Run ``action`` on the worker once the current task has settled.

        The caller is answered first; the next task waits for the action.
        """
        self._deferred.append(action)

    def close(self, timeout: Optional[float] = None, *, cancel_pending: bool = False) -> None:
        """Stop accepting work.

        Queued tasks still run unless ``cancel_pending`` is set, in which
        case they fail with :class:`QueueClosed`.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            worker = self._worker
            if cancel_pending:
                self._reject_pending()
            self._tasks.put(_SENTINEL)
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout)

    def _reject_pending(self) -> None:
        while True:
            try:
                task = self._tasks.get_nowait()
            except queue.Empty:
                return
            if task is _SENTINEL or task.future.done():
                continue
            task.future.set_exception(QueueClosed("Analysis queue shut down before the task ran"))
            task.started.set()

    def _drain(self) -> None:
        while True:
            task = self._tasks.get()
            if task is _SENTINEL:
                break
            if not task.future.set_running_or_notify_cancel():
                report(debug_text(f"Skipping cancelled task {task.task_id} {task.label}"), ReportingLevel.VERBOSE)
                continue
            self._run(task)

    def _run(self, task: QueueTask) -> None:
        self._active = task
        task.started.set()
        try:
            result = task.execute()
        except Exception as exc:
            report(error_text(f"Error in analysis queue ({task.label or task.task_id}): {exc}"), ReportingLevel.QUIET)
            if isinstance(exc, AnalysisError):
                failure: BaseException = exc
            else:
                failure = QueueTaskFailure(f"Analysis task {task.label or task.task_id} failed: {exc}")
                failure.__cause__ = exc
            task.future.set_exception(failure)
            self._recover(exc)
        else:
            task.future.set_result(result)
        finally:
            self._active = None
            self._run_deferred()

    def _run_deferred(self) -> None:
        while self._deferred:
            action = self._deferred.pop(0)
            try:
                action()
            except Exception as exc:
                report(error_text(f"Deferred queue action failed: {exc}"), ReportingLevel.QUIET)

    def _recover(self, exc: BaseException) -> None:
        if self._on_failure is None:
            return
        try:
            self._on_failure(exc)
        except Exception as hook_exc:
            report(error_text(f"Queue recovery hook failed: {hook_exc}"), ReportingLevel.QUIET)
