"""Engine configuration.

``LoopConfig`` can be built directly or from dotted override keys::

    config = LoopConfig.from_overrides({"loop.max_steps": 500})
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from loopsim.clock import coerce_time
from loopsim.macrotasks import TaskKind

# Default loop configuration
DEFAULT_CONFIG: dict[str, Any] = {
    "loop.start_time": 0.0,
    "loop.max_steps": 100_000,
    "loop.min_interval": 1.0,
    "loop.category_priority": {},
    "loop.log_callback_errors": True,
}


@dataclass(frozen=True)
class LoopConfig:
    """Settings for one ``Engine``.

    Attributes:
        start_time: Initial virtual time in milliseconds.
        max_steps: Callbacks (macrotasks plus microtasks) a single ``run`` may
            execute before ``StepLimitExceeded`` is raised.
        min_interval: Lower bound for interval periods, so a repeating task
            always moves the clock forward.
        category_priority: Extra tie-break between macrotask kinds due at the
            same time (lower runs first). Empty means ordering by due time and
            registration only.
        log_callback_errors: Log callback exceptions at WARNING level in
            addition to recording them in the trace.
    """

    start_time: float = 0.0
    max_steps: int = 100_000
    min_interval: float = 1.0
    category_priority: Mapping[TaskKind, int] = field(default_factory=dict)
    log_callback_errors: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "start_time", coerce_time(self.start_time, name="start_time"))
        object.__setattr__(self, "min_interval", coerce_time(self.min_interval, name="min_interval"))
        if isinstance(self.max_steps, bool) or not isinstance(self.max_steps, int):
            raise TypeError(f"max_steps must be int, got {type(self.max_steps).__name__}")
        if self.max_steps <= 0:
            raise ValueError(f"max_steps must be positive, got {self.max_steps}")
        if self.min_interval < 0:
            raise ValueError(f"min_interval must be non-negative, got {self.min_interval}")
        priority = {TaskKind(kind): int(rank) for kind, rank in dict(self.category_priority).items()}
        object.__setattr__(self, "category_priority", priority)

    @classmethod
    def from_overrides(cls, overrides: Mapping[str, Any] | None = None) -> LoopConfig:
        """Merge dotted ``loop.*`` keys over ``DEFAULT_CONFIG``.

        Raises:
            KeyError: for keys that are not known loop settings.
        """
        config = {**DEFAULT_CONFIG}
        for key, value in (overrides or {}).items():
            if key not in DEFAULT_CONFIG:
                raise KeyError(f"Unknown loop setting: {key!r}")
            config[key] = value
        return cls(**{key.removeprefix("loop."): value for key, value in config.items()})


__all__ = [
    "DEFAULT_CONFIG",
    "LoopConfig",
]
