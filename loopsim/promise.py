"""Promise state machine and combinators.

A promise is an explicit tagged state (pending / fulfilled / rejected) with
an owned reaction list. Settlement is one-way and never invokes reactions
directly: each reaction becomes its own microtask, in registration order.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

from loopsim.errors import AggregateRejection

if TYPE_CHECKING:
    from loopsim.engine import Engine


class PromiseState(Enum):
    PENDING = auto()
    FULFILLED = auto()
    REJECTED = auto()


@dataclass(frozen=True)
class Reaction:
    on_fulfilled: Callable[[Any], Any]
    on_rejected: Callable[[Any], Any]


class Promise:
    def __init__(self, engine: Engine, label: str | None = None) -> None:
        self._engine = engine
        self.promise_id: int = engine._next_promise_id()
        self.label = label
        self._state = PromiseState.PENDING
        self._value: Any = None
        self._reactions: list[Reaction] = []
        self._locked = False
        self._handled = False

    def __repr__(self) -> str:
        name = f"Promise#{self.promise_id}" + (f" {self.label}" if self.label else "")
        if self._state is PromiseState.PENDING:
            return f"<{name} pending>"
        return f"<{name} {self._state.name.lower()}: {self._value!r}>"

    @property
    def state(self) -> PromiseState:
        return self._state

    @property
    def is_settled(self) -> bool:
        return self._state is not PromiseState.PENDING

    @property
    def value(self) -> Any:
        return self._value if self._state is PromiseState.FULFILLED else None

    @property
    def reason(self) -> Any:
        return self._value if self._state is PromiseState.REJECTED else None

    # ------------------------------------------------------------------
    # settlement
    # ------------------------------------------------------------------

    def _settle(self, state: PromiseState, value: Any) -> bool:
        if self._state is not PromiseState.PENDING:
            return False
        self._state = state
        self._value = value
        reactions, self._reactions = self._reactions, []
        if state is PromiseState.REJECTED and not self._handled:
            self._engine._track_rejection(self)
        for reaction in reactions:
            self._queue_reaction(reaction)
        return True

    def _queue_reaction(self, reaction: Reaction) -> None:
        value = self._value
        if self._state is PromiseState.FULFILLED:
            callback = reaction.on_fulfilled
        else:
            callback = reaction.on_rejected
        self._engine._enqueue_microtask(lambda: callback(value), label=f"reaction:{self.promise_id}")

    def _resolve(self, value: Any = None) -> None:
        """Resolve procedure: adopt thenables, fulfil with anything else."""
        if self._locked:
            return
        self._locked = True
        if value is self:
            self._settle(PromiseState.REJECTED, TypeError("Chaining cycle detected for promise"))
            return
        if isinstance(value, Promise):
            self._engine._enqueue_microtask(
                lambda: self._adopt(value), label=f"adopt:{self.promise_id}"
            )
            return
        then = getattr(value, "then", None)
        if callable(then):
            self._engine._enqueue_microtask(
                lambda: self._adopt_foreign(then), label=f"adopt:{self.promise_id}"
            )
            return
        self._settle(PromiseState.FULFILLED, value)

    def _reject(self, reason: Any = None) -> None:
        if self._locked:
            return
        self._locked = True
        self._settle(PromiseState.REJECTED, reason)

    def _adopt(self, other: Promise) -> None:
        # Already settled promises forward in this same job; pending ones
        # forward through an ordinary reaction when they settle.
        def fulfil(value: Any) -> None:
            self._settle(PromiseState.FULFILLED, value)

        def reject(reason: Any) -> None:
            self._settle(PromiseState.REJECTED, reason)

        other._handled = True
        if other._state is PromiseState.FULFILLED:
            fulfil(other._value)
        elif other._state is PromiseState.REJECTED:
            self._engine._rejection_handled(other)
            reject(other._value)
        else:
            other._reactions.append(Reaction(fulfil, reject))

    def _adopt_foreign(self, then: Callable[..., Any]) -> None:
        called = False

        def resolve_once(value: Any = None) -> None:
            nonlocal called
            if called:
                return
            called = True
            self._locked = False
            self._resolve(value)

        def reject_once(reason: Any = None) -> None:
            nonlocal called
            if called:
                return
            called = True
            self._settle(PromiseState.REJECTED, reason)

        try:
            then(resolve_once, reject_once)
        except Exception as exc:
            reject_once(exc)

    # ------------------------------------------------------------------
    # reactions
    # ------------------------------------------------------------------

    def _subscribe(self, on_fulfilled: Callable[[Any], Any], on_rejected: Callable[[Any], Any]) -> None:
        reaction = Reaction(on_fulfilled, on_rejected)
        if not self._handled:
            self._handled = True
            if self._state is PromiseState.REJECTED:
                self._engine._rejection_handled(self)
        if self._state is PromiseState.PENDING:
            self._reactions.append(reaction)
        else:
            self._queue_reaction(reaction)

    def then(
        self,
        on_fulfilled: Callable[[Any], Any] | None = None,
        on_rejected: Callable[[Any], Any] | None = None,
    ) -> Promise:
        derived = Promise(self._engine)
        fulfilled_handler = on_fulfilled if callable(on_fulfilled) else None
        rejected_handler = on_rejected if callable(on_rejected) else None

        def handle_fulfilled(value: Any) -> None:
            if fulfilled_handler is None:
                derived._resolve(value)
            else:
                _run_handler(derived, fulfilled_handler, value)

        def handle_rejected(reason: Any) -> None:
            if rejected_handler is None:
                derived._reject(reason)
            else:
                _run_handler(derived, rejected_handler, reason)

        self._subscribe(handle_fulfilled, handle_rejected)
        return derived

    def catch(self, on_rejected: Callable[[Any], Any] | None) -> Promise:
        return self.then(None, on_rejected)

    def finally_(self, on_finally: Callable[[], Any] | None) -> Promise:
        """Run ``on_finally`` on either outcome and pass the outcome through.

        A thenable returned by ``on_finally`` is waited for; raising (or
        returning a promise that rejects) replaces the outcome.
        """
        if not callable(on_finally):
            return self.then(on_finally, on_finally)
        engine = self._engine

        def after_fulfilled(value: Any) -> Promise:
            return engine.resolve(on_finally()).then(lambda _: value)

        def after_rejected(reason: Any) -> Promise:
            return engine.resolve(on_finally()).then(lambda _: engine.reject(reason))

        return self.then(after_fulfilled, after_rejected)


def _run_handler(derived: Promise, handler: Callable[[Any], Any], argument: Any) -> None:
    try:
        result = handler(argument)
    except Exception as exc:
        derived._reject(exc)
        return
    derived._resolve(result)


def resolve_value(engine: Engine, value: Any) -> Promise:
    if isinstance(value, Promise) and value._engine is engine:
        return value
    promise = Promise(engine)
    promise._resolve(value)
    return promise


def reject_value(engine: Engine, reason: Any) -> Promise:
    promise = Promise(engine)
    promise._reject(reason)
    return promise


def new_promise(engine: Engine, executor: Callable[[Callable[..., None], Callable[..., None]], Any]) -> Promise:
    """Create a promise settled by ``executor(resolve, reject)``, run synchronously."""
    promise = Promise(engine)
    try:
        executor(promise._resolve, promise._reject)
    except Exception as exc:
        promise._reject(exc)
    return promise


# ----------------------------------------------------------------------
# combinators
# ----------------------------------------------------------------------


@dataclass
class CombinatorState:
    """Shared bookkeeping of one ``all`` / ``all_settled`` / ``any`` call."""

    remaining: int
    slots: list[Any] = field(default_factory=list)


def _inputs(engine: Engine, items: Iterable[Any]) -> list[Promise]:
    return [resolve_value(engine, item) for item in items]


def promise_all(engine: Engine, items: Iterable[Any]) -> Promise:
    result = Promise(engine, label="all")
    inputs = _inputs(engine, items)
    if not inputs:
        result._resolve([])
        return result
    state = CombinatorState(remaining=len(inputs), slots=[None] * len(inputs))

    for index, item in enumerate(inputs):

        def on_fulfilled(value: Any, index: int = index) -> None:
            state.slots[index] = value
            state.remaining -= 1
            if state.remaining == 0:
                result._resolve(list(state.slots))

        item._subscribe(on_fulfilled, result._reject)
    return result


def promise_race(engine: Engine, items: Iterable[Any]) -> Promise:
    result = Promise(engine, label="race")
    for item in _inputs(engine, items):
        item._subscribe(result._resolve, result._reject)
    return result


def promise_all_settled(engine: Engine, items: Iterable[Any]) -> Promise:
    result = Promise(engine, label="all_settled")
    inputs = _inputs(engine, items)
    if not inputs:
        result._resolve([])
        return result
    state = CombinatorState(remaining=len(inputs), slots=[None] * len(inputs))

    def record(index: int, outcome: dict[str, Any]) -> None:
        state.slots[index] = outcome
        state.remaining -= 1
        if state.remaining == 0:
            result._resolve(list(state.slots))

    for index, item in enumerate(inputs):
        item._subscribe(
            lambda value, index=index: record(index, {"status": "fulfilled", "value": value}),
            lambda reason, index=index: record(index, {"status": "rejected", "reason": reason}),
        )
    return result


def promise_any(engine: Engine, items: Iterable[Any]) -> Promise:
    result = Promise(engine, label="any")
    inputs = _inputs(engine, items)
    if not inputs:
        result._reject(AggregateRejection([]))
        return result
    state = CombinatorState(remaining=len(inputs), slots=[None] * len(inputs))

    for index, item in enumerate(inputs):

        def on_rejected(reason: Any, index: int = index) -> None:
            state.slots[index] = reason
            state.remaining -= 1
            if state.remaining == 0:
                result._reject(AggregateRejection(list(state.slots)))

        item._subscribe(result._resolve, on_rejected)
    return result


__all__ = [
    "CombinatorState",
    "Promise",
    "PromiseState",
    "Reaction",
    "new_promise",
    "promise_all",
    "promise_all_settled",
    "promise_any",
    "promise_race",
    "reject_value",
    "resolve_value",
]
