"""Event loop simulator error types."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from loopsim.events import RunResult


class LoopError(Exception):
    """Base class for errors raised by the simulator itself.

    These are harness errors (misuse of the engine), never errors raised by
    user callbacks. Callback failures are recorded in the trace instead.
    """


class NoRunningLoopError(LoopError):
    """Raised when an async function is called outside of ``Engine.run``."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Async function {name!r} called without a running engine\n"
            f"Hint: call it from a script passed to `Engine.run(...)` or use `engine.async_call(...)`"
        )


class StepLimitExceeded(LoopError):
    """Raised when a run executes more callbacks than ``LoopConfig.max_steps``.

    The usual cause is an interval that is never cleared. Pass ``until=`` to
    ``Engine.run`` to bound such runs by virtual time instead.

    Attributes:
        steps: Number of callbacks executed when the limit was hit.
        result: Snapshot of the trace up to that point.
    """

    def __init__(self, steps: int, result: RunResult) -> None:
        self.steps = steps
        self.result = result
        super().__init__(f"Maximum steps exceeded ({steps}) at virtual time {result.time}")


class RejectionError(Exception):
    """Carries a non-exception rejection reason into a suspended async function."""

    def __init__(self, reason: Any) -> None:
        self.reason = reason
        super().__init__(f"Promise rejected with {reason!r}")


class AggregateRejection(Exception):
    """Rejection reason of ``any`` when every input rejected."""

    def __init__(self, reasons: list[Any]) -> None:
        self.reasons = reasons
        super().__init__(f"All {len(reasons)} promises were rejected")


__all__ = [
    "AggregateRejection",
    "LoopError",
    "NoRunningLoopError",
    "RejectionError",
    "StepLimitExceeded",
]
