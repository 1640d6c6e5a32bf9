"""Strict FIFO microtask queue."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Microtask:
    microtask_id: int
    sequence: int
    callback: Callable[[], Any]
    label: str | None = None


class MicrotaskQueue:
    """Zero-argument continuations run before the next macrotask.

    ``drain`` is exhaustive: microtasks enqueued by callbacks run during a
    drain are run in the same drain.
    """

    def __init__(self) -> None:
        self._ready: deque[Microtask] = deque()
        self._sequence = 0

    def enqueue(self, callback: Callable[[], Any], label: str | None = None) -> Microtask:
        if not callable(callback):
            raise TypeError(f"callback must be callable, got {type(callback).__name__}")
        self._sequence += 1
        microtask = Microtask(
            microtask_id=self._sequence,
            sequence=self._sequence,
            callback=callback,
            label=label,
        )
        self._ready.append(microtask)
        return microtask

    def drain(
        self,
        runner: Callable[[Microtask], None],
        before_each: Callable[[], None] | None = None,
    ) -> int:
        """Run queued microtasks until none remain.

        ``before_each`` is called while the next microtask is still queued, so
        an exception it raises stops the drain without consuming anything.
        """
        count = 0
        while self._ready:
            if before_each is not None:
                before_each()
            microtask = self._ready.popleft()
            runner(microtask)
            count += 1
        return count

    def has_ready(self) -> bool:
        return bool(self._ready)

    def __len__(self) -> int:
        return len(self._ready)


__all__ = [
    "Microtask",
    "MicrotaskQueue",
]
