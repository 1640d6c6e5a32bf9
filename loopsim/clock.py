"""Virtual clock for the event loop simulator.

Times are milliseconds. The clock never sleeps: the engine jumps it to the
due time of the next macrotask once the script and all microtasks are
exhausted.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field


def coerce_time(value: float, *, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{name} must be a number of milliseconds, got {type(value).__name__}")
    millis = float(value)
    if not math.isfinite(millis):
        raise ValueError(f"{name} must be finite, got {value!r}")
    return millis


@dataclass
class VirtualClock:
    start_time: float = 0.0
    jumps: int = field(default=0, init=False)
    _now: float = field(default=0.0, init=False, repr=False)

    def __post_init__(self) -> None:
        self.start_time = coerce_time(self.start_time, name="start_time")
        self._now = self.start_time

    @property
    def current_time(self) -> float:
        return self._now

    @property
    def elapsed(self) -> float:
        return self._now - self.start_time

    def due_at(self, delay: float) -> float:
        """Absolute due time of a task scheduled ``delay`` ms from now.

        Negative delays mean "now".
        """
        return self._now + max(coerce_time(delay, name="delay"), 0.0)

    def advance_to(self, target_time: float) -> float:
        # Targets in the past leave the clock where it is.
        target = coerce_time(target_time, name="target_time")
        if target > self._now:
            self._now = target
            self.jumps += 1
        return self._now


__all__ = [
    "VirtualClock",
    "coerce_time",
]
