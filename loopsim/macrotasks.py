"""Min-heap queue of time-ordered macrotasks (timeouts, intervals, immediates)."""

from __future__ import annotations

import heapq
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loopsim.clock import VirtualClock, coerce_time

logger = logging.getLogger(__name__)


class TaskKind(str, Enum):
    TIMEOUT = "timeout"
    INTERVAL = "interval"
    IMMEDIATE = "immediate"


@dataclass
class Task:
    """A pending macrotask.

    ``sequence`` is reassigned every time an interval is re-armed, so repeated
    firings are ordered against other pending tasks by their new due time.
    """

    task_id: int
    kind: TaskKind
    due: float
    sequence: int
    callback: Callable[..., Any]
    args: tuple[Any, ...] = ()
    period: float | None = None
    cancelled: bool = False
    fired: int = 0


class MacrotaskQueue:
    """Pending macrotasks ordered by (due time, category priority, sequence).

    Tasks are stored in an arena keyed by id. The heap only holds keys, and
    entries for cancelled or re-armed tasks are skipped when they surface.
    """

    def __init__(
        self,
        clock: VirtualClock,
        category_priority: Mapping[TaskKind, int] | None = None,
    ) -> None:
        self._clock = clock
        self._priority: dict[TaskKind, int] = dict(category_priority or {})
        self._items: list[tuple[float, int, int, int]] = []
        self._tasks: dict[int, Task] = {}
        self._next_task_id = 1
        self._sequence = 0

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def _push(self, task: Task) -> None:
        priority = self._priority.get(task.kind, 0)
        heapq.heappush(self._items, (task.due, priority, task.sequence, task.task_id))

    def schedule(
        self,
        kind: TaskKind,
        callback: Callable[..., Any],
        delay: float = 0.0,
        period: float | None = None,
        args: tuple[Any, ...] = (),
    ) -> int:
        if not callable(callback):
            raise TypeError(f"callback must be callable, got {type(callback).__name__}")
        due = self._clock.due_at(delay)
        if kind is TaskKind.INTERVAL:
            if period is None:
                raise ValueError("interval tasks require a period")
            period = coerce_time(period, name="period")

        task_id = self._next_task_id
        self._next_task_id += 1
        task = Task(
            task_id=task_id,
            kind=kind,
            due=due,
            sequence=self._next_sequence(),
            callback=callback,
            args=tuple(args),
            period=period,
        )
        self._tasks[task_id] = task
        self._push(task)
        logger.debug("scheduled %s #%d due at %s", kind.value, task_id, task.due)
        return task_id

    def cancel(self, task_id: Any) -> bool:
        task = self._tasks.pop(task_id, None) if isinstance(task_id, int) else None
        if task is None:
            return False
        task.cancelled = True
        logger.debug("cancelled %s #%d", task.kind.value, task_id)
        return True

    def _live_head(self) -> Task | None:
        while self._items:
            _due, _priority, sequence, task_id = self._items[0]
            task = self._tasks.get(task_id)
            if task is not None and not task.cancelled and task.sequence == sequence:
                return task
            heapq.heappop(self._items)
        return None

    def next_due(self, until: float | None = None) -> Task | None:
        task = self._live_head()
        if task is None or (until is not None and task.due > until):
            return None
        return task

    def pop_next(self, until: float | None = None) -> Task | None:
        task = self.next_due(until)
        if task is None:
            return None
        heapq.heappop(self._items)
        if task.kind is not TaskKind.INTERVAL:
            del self._tasks[task.task_id]
        return task

    def rearm(self, task: Task) -> bool:
        """Re-insert a fired interval unless it was cancelled while firing."""
        if task.kind is not TaskKind.INTERVAL or task.cancelled or task.period is None:
            return False
        if self._tasks.get(task.task_id) is not task:
            return False
        task.due = task.due + task.period
        task.sequence = self._next_sequence()
        self._push(task)
        return True

    def pending_ids(self) -> list[int]:
        return sorted(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)


__all__ = [
    "MacrotaskQueue",
    "Task",
    "TaskKind",
]
