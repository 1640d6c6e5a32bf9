"""Trace types produced by the engine.

The trace is the observable output of a run: an ordered list of entries
that scenarios and tests assert against.

Entry kinds:
- EMIT: a value passed to ``Engine.emit`` by a callback
- CALLBACK_ERROR: an exception escaped a script, timer or microtask callback
- UNHANDLED_REJECTION: a promise was rejected and never got a rejection handler
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TraceKind(str, Enum):
    EMIT = "emit"
    CALLBACK_ERROR = "callback_error"
    UNHANDLED_REJECTION = "unhandled_rejection"


@dataclass(frozen=True)
class TraceEntry:
    """A structured, orderable fact recorded during a run.

    ``seq`` is global to the engine, so entries from successive ``run`` calls
    stay totally ordered.
    """

    seq: int
    time: float
    kind: TraceKind
    value: Any = None
    source: str | None = None


@dataclass(frozen=True)
class RunResult:
    trace: tuple[TraceEntry, ...]
    time: float
    steps: int
    pending_tasks: tuple[int, ...] = field(default_factory=tuple)

    @property
    def values(self) -> list[Any]:
        return [entry.value for entry in self.trace if entry.kind is TraceKind.EMIT]

    @property
    def errors(self) -> list[TraceEntry]:
        return [entry for entry in self.trace if entry.kind is TraceKind.CALLBACK_ERROR]

    @property
    def unhandled_rejections(self) -> list[TraceEntry]:
        return [entry for entry in self.trace if entry.kind is TraceKind.UNHANDLED_REJECTION]

    @property
    def is_idle(self) -> bool:
        return not self.pending_tasks

    def timeline(self) -> list[tuple[float, Any]]:
        """Emitted values paired with the virtual time they were emitted at."""
        return [(entry.time, entry.value) for entry in self.trace if entry.kind is TraceKind.EMIT]


__all__ = [
    "RunResult",
    "TraceEntry",
    "TraceKind",
]
