"""
loopsim - deterministic simulation of a cooperative event loop.

Models a single-threaded runtime with a macrotask queue (timeouts, intervals,
immediates), an exhaustively drained microtask queue, promises, and async
functions written as generators. Time is virtual: the clock jumps to the next
due task instead of sleeping, so every run is reproducible.

Example:
    >>> from loopsim import run
    >>>
    >>> def script(loop):
    ...     loop.emit("Start")
    ...     loop.set_timeout(lambda: loop.emit("Timeout"), 0)
    ...     loop.resolve().then(lambda _: loop.emit("Promise"))
    ...     loop.emit("End")
    >>>
    >>> run(script).values
    ['Start', 'End', 'Promise', 'Timeout']
"""

from loopsim.clock import VirtualClock
from loopsim.config import DEFAULT_CONFIG, LoopConfig
from loopsim.continuation import (
    AsyncFunction,
    Continuation,
    ContinuationRunner,
    async_function,
    current_engine,
)
from loopsim.engine import Engine, EngineState, run
from loopsim.errors import (
    AggregateRejection,
    LoopError,
    NoRunningLoopError,
    RejectionError,
    StepLimitExceeded,
)
from loopsim.events import RunResult, TraceEntry, TraceKind
from loopsim.macrotasks import MacrotaskQueue, Task, TaskKind
from loopsim.microtasks import Microtask, MicrotaskQueue
from loopsim.promise import Promise, PromiseState

__all__ = [
    "AggregateRejection",
    "AsyncFunction",
    "Continuation",
    "ContinuationRunner",
    "DEFAULT_CONFIG",
    "Engine",
    "EngineState",
    "LoopConfig",
    "LoopError",
    "MacrotaskQueue",
    "Microtask",
    "MicrotaskQueue",
    "NoRunningLoopError",
    "Promise",
    "PromiseState",
    "RejectionError",
    "RunResult",
    "StepLimitExceeded",
    "Task",
    "TaskKind",
    "TraceEntry",
    "TraceKind",
    "VirtualClock",
    "async_function",
    "current_engine",
    "run",
]
