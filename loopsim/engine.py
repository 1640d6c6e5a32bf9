"""Cooperative event loop engine with a virtual clock.

Run loop:

    script -> drain microtasks -> [pop next due macrotask -> jump clock ->
    run it -> drain microtasks]* -> report unhandled rejections

Exactly one callback runs at a time, start to finish. Every callback runs
behind an error boundary: an exception is recorded in the trace and the loop
moves on to the next queued item.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Iterable
from enum import Enum, auto
from typing import Any

from loopsim.clock import VirtualClock, coerce_time
from loopsim.config import LoopConfig
from loopsim.continuation import ContinuationRunner, activate
from loopsim.errors import LoopError, StepLimitExceeded
from loopsim.events import RunResult, TraceEntry, TraceKind
from loopsim.macrotasks import MacrotaskQueue, Task, TaskKind
from loopsim.microtasks import Microtask, MicrotaskQueue
from loopsim.promise import (
    Promise,
    new_promise,
    promise_all,
    promise_all_settled,
    promise_any,
    promise_race,
    reject_value,
    resolve_value,
)

logger = logging.getLogger(__name__)

Script = Callable[["Engine"], Any]


class EngineState(Enum):
    IDLE = auto()
    RUNNING_SCRIPT = auto()
    DRAINING_MICROTASKS = auto()
    RUNNING_MACROTASK = auto()


class Engine:
    """Owns the clock, both queues, the continuation runner and the trace.

    Scripts receive the engine and use it as their runtime surface::

        def script(loop):
            loop.emit("Start")
            loop.set_timeout(lambda: loop.emit("Timeout"), 0)
            loop.resolve(None).then(lambda _: loop.emit("Promise"))
            loop.emit("End")

        Engine().run(script).values  # ["Start", "End", "Promise", "Timeout"]
    """

    def __init__(self, config: LoopConfig | None = None) -> None:
        self.config = config or LoopConfig()
        self.clock = VirtualClock(self.config.start_time)
        self.macrotasks = MacrotaskQueue(self.clock, self.config.category_priority)
        self.microtasks = MicrotaskQueue()
        self.continuations = ContinuationRunner(self)
        self._trace: list[TraceEntry] = []
        self._trace_seq = itertools.count(1)
        self._promise_ids = itertools.count(1)
        self._unhandled: dict[int, Promise] = {}
        self._state = EngineState.IDLE
        self._source: str | None = None
        self._steps = 0
        self._running = False

    @property
    def now(self) -> float:
        return self.clock.current_time

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def trace(self) -> tuple[TraceEntry, ...]:
        return tuple(self._trace)

    # ------------------------------------------------------------------
    # timers
    # ------------------------------------------------------------------

    def set_timeout(self, callback: Callable[..., Any], delay: float = 0, *args: Any) -> int:
        return self.macrotasks.schedule(TaskKind.TIMEOUT, callback, delay, args=args)

    def clear_timeout(self, task_id: Any) -> None:
        self.macrotasks.cancel(task_id)

    def set_interval(self, callback: Callable[..., Any], period: float, *args: Any) -> int:
        period = max(coerce_time(period, name="period"), self.config.min_interval)
        return self.macrotasks.schedule(TaskKind.INTERVAL, callback, period, period=period, args=args)

    def clear_interval(self, task_id: Any) -> None:
        self.macrotasks.cancel(task_id)

    def set_immediate(self, callback: Callable[..., Any], *args: Any) -> int:
        return self.macrotasks.schedule(TaskKind.IMMEDIATE, callback, 0, args=args)

    def clear_immediate(self, task_id: Any) -> None:
        self.macrotasks.cancel(task_id)

    # ------------------------------------------------------------------
    # microtasks and promises
    # ------------------------------------------------------------------

    def queue_microtask(self, callback: Callable[[], Any]) -> None:
        self.microtasks.enqueue(callback, label="queue_microtask")

    def resolve(self, value: Any = None) -> Promise:
        return resolve_value(self, value)

    def reject(self, reason: Any = None) -> Promise:
        return reject_value(self, reason)

    def new_promise(self, executor: Callable[[Callable[..., None], Callable[..., None]], Any]) -> Promise:
        return new_promise(self, executor)

    def all(self, items: Iterable[Any]) -> Promise:
        return promise_all(self, items)

    def race(self, items: Iterable[Any]) -> Promise:
        return promise_race(self, items)

    def all_settled(self, items: Iterable[Any]) -> Promise:
        return promise_all_settled(self, items)

    def any(self, items: Iterable[Any]) -> Promise:
        return promise_any(self, items)

    def delay(self, delay: float, value: Any = None) -> Promise:
        """Promise fulfilled with ``value`` by a timeout ``delay`` ms from now."""
        return self.new_promise(lambda resolve, _reject: self.set_timeout(resolve, delay, value))

    def async_call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Promise:
        return self.continuations.start(func, *args, **kwargs)

    # ------------------------------------------------------------------
    # trace
    # ------------------------------------------------------------------

    def emit(self, value: Any) -> None:
        self._record(TraceKind.EMIT, value)

    def _record(self, kind: TraceKind, value: Any, source: str | None = None) -> None:
        self._trace.append(
            TraceEntry(
                seq=next(self._trace_seq),
                time=self.clock.current_time,
                kind=kind,
                value=value,
                source=source if source is not None else self._source,
            )
        )

    # ------------------------------------------------------------------
    # hooks used by promises
    # ------------------------------------------------------------------

    def _next_promise_id(self) -> int:
        return next(self._promise_ids)

    def _enqueue_microtask(self, callback: Callable[[], Any], label: str | None = None) -> None:
        self.microtasks.enqueue(callback, label=label)

    def _track_rejection(self, promise: Promise) -> None:
        self._unhandled[promise.promise_id] = promise

    def _rejection_handled(self, promise: Promise) -> None:
        self._unhandled.pop(promise.promise_id, None)

    # ------------------------------------------------------------------
    # run loop
    # ------------------------------------------------------------------

    def run(self, script: Script | None = None, *, until: float | None = None) -> RunResult:
        """Run ``script`` and then the loop until no macrotask remains.

        Args:
            script: Called synchronously with the engine before the loop starts.
            until: Stop before the first macrotask due strictly after this
                virtual time, leaving the clock at ``until``.

        Raises:
            StepLimitExceeded: the next callback would exceed ``config.max_steps``.
                Nothing is consumed, so a later ``run`` continues from there.
            LoopError: ``run`` was called from inside a running loop.
        """
        if self._running:
            raise LoopError("Engine is already running")
        limit = coerce_time(until, name="until") if until is not None else None
        self._running = True
        self._steps = 0
        try:
            with activate(self):
                if script is not None:
                    self._state = EngineState.RUNNING_SCRIPT
                    self._count_step()
                    self._invoke(script, (self,), "script")
                self._drain_microtasks()
                while self.macrotasks.next_due(limit) is not None:
                    self._count_step()
                    task = self.macrotasks.pop_next(limit)
                    self._run_macrotask(task)
                    self._drain_microtasks()
                if limit is not None:
                    self.clock.advance_to(limit)
                self._report_unhandled()
        finally:
            self._state = EngineState.IDLE
            self._source = None
            self._running = False
        return self._snapshot()

    def _count_step(self) -> None:
        # Called before the next callback is taken off its queue.
        if self._steps >= self.config.max_steps:
            raise StepLimitExceeded(self.config.max_steps, self._snapshot())
        self._steps += 1

    def _invoke(self, callback: Callable[..., Any], args: tuple[Any, ...], source: str) -> None:
        self._source = source
        try:
            callback(*args)
        except Exception as exc:
            if self.config.log_callback_errors:
                logger.warning("Uncaught %s in %s: %s", type(exc).__name__, source, exc)
            self._record(TraceKind.CALLBACK_ERROR, exc, source)
        finally:
            self._source = None

    def _run_macrotask(self, task: Task) -> None:
        self._state = EngineState.RUNNING_MACROTASK
        self.clock.advance_to(task.due)
        task.fired += 1
        logger.debug("firing %s #%d at %s", task.kind.value, task.task_id, task.due)
        self._invoke(task.callback, task.args, f"{task.kind.value}:{task.task_id}")
        if task.kind is TaskKind.INTERVAL:
            self.macrotasks.rearm(task)

    def _run_microtask(self, microtask: Microtask) -> None:
        self._invoke(microtask.callback, (), microtask.label or f"microtask:{microtask.microtask_id}")

    def _drain_microtasks(self) -> None:
        self._state = EngineState.DRAINING_MICROTASKS
        self.microtasks.drain(self._run_microtask, before_each=self._count_step)

    def _report_unhandled(self) -> None:
        pending, self._unhandled = list(self._unhandled.values()), {}
        for promise in pending:
            logger.warning("Unhandled rejection in %r", promise)
            self._record(TraceKind.UNHANDLED_REJECTION, promise.reason, f"promise:{promise.promise_id}")

    def _snapshot(self) -> RunResult:
        return RunResult(
            trace=tuple(self._trace),
            time=self.clock.current_time,
            steps=self._steps,
            pending_tasks=tuple(self.macrotasks.pending_ids()),
        )


def run(
    script: Script,
    *,
    config: LoopConfig | None = None,
    until: float | None = None,
) -> RunResult:
    """Run ``script`` on a fresh engine."""
    return Engine(config).run(script, until=until)


__all__ = [
    "Engine",
    "EngineState",
    "Script",
    "run",
]
