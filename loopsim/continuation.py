"""Async functions as generator continuations.

An async function is a generator function decorated with ``@async_function``;
each ``yield`` is an await point::

    @async_function
    def fetch(loop):
        loop.emit("start")
        value = yield loop.resolve(42)
        loop.emit(value)
        return value

The body runs synchronously until its first ``yield``. The suspended
generator is then stored as a ``Continuation`` and subscribed to the awaited
promise. Resumption always happens in a microtask, never synchronously, even
when the awaited value is already settled.
"""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Callable, Generator, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from loopsim.errors import NoRunningLoopError, RejectionError
from loopsim.promise import Promise, resolve_value

if TYPE_CHECKING:
    from loopsim.engine import Engine

logger = logging.getLogger(__name__)

_current_engine: ContextVar[Engine | None] = ContextVar("loopsim_current_engine", default=None)


def current_engine() -> Engine | None:
    return _current_engine.get()


@contextmanager
def activate(engine: Engine) -> Iterator[Engine]:
    token = _current_engine.set(engine)
    try:
        yield engine
    finally:
        _current_engine.reset(token)


@dataclass
class Continuation:
    """A suspended async call: the generator plus the promise it waits on."""

    continuation_id: int
    name: str
    generator: Generator[Any, Any, Any]
    result: Promise
    awaited: Promise | None = None
    hops: int = 0


class ContinuationRunner:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._suspended: dict[int, Continuation] = {}
        self._next_id = 1

    def start(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Promise:
        name = getattr(func, "__qualname__", repr(func))
        result = Promise(self._engine, label=f"async:{name}")
        try:
            body = func(*args, **kwargs)
        except Exception as exc:
            result._reject(exc)
            return result
        if not inspect.isgenerator(body):
            result._resolve(body)
            return result

        continuation = Continuation(
            continuation_id=self._next_id,
            name=name,
            generator=body,
            result=result,
        )
        self._next_id += 1
        self._step(continuation, None)
        return result

    def suspended(self) -> list[Continuation]:
        return list(self._suspended.values())

    def _step(
        self,
        continuation: Continuation,
        value: Any,
        error: BaseException | None = None,
        wrapped: bool = False,
    ) -> None:
        self._suspended.pop(continuation.continuation_id, None)
        generator = continuation.generator
        try:
            if error is None:
                awaited = generator.send(value)
            else:
                awaited = generator.throw(error)
        except StopIteration as stop:
            continuation.result._resolve(stop.value)
            return
        except RejectionError as exc:
            continuation.result._reject(exc.reason if wrapped and exc is error else exc)
            return
        except Exception as exc:
            continuation.result._reject(exc)
            return
        self._suspend(continuation, awaited)

    def _suspend(self, continuation: Continuation, awaited: Any) -> None:
        promise = resolve_value(self._engine, awaited)
        continuation.awaited = promise
        continuation.hops += 1
        self._suspended[continuation.continuation_id] = continuation
        logger.debug("%s suspended on %r", continuation.name, promise)
        promise._subscribe(
            lambda value: self._step(continuation, value),
            lambda reason: self._throw(continuation, reason),
        )

    def _throw(self, continuation: Continuation, reason: Any) -> None:
        if isinstance(reason, BaseException):
            self._step(continuation, None, reason)
        else:
            self._step(continuation, None, RejectionError(reason), wrapped=True)


class AsyncFunction:
    """Callable wrapper returned by ``@async_function``."""

    def __init__(self, func: Callable[..., Any]) -> None:
        self.func = func
        functools.update_wrapper(self, func)

    def __call__(self, *args: Any, **kwargs: Any) -> Promise:
        engine = _current_engine.get()
        if engine is None:
            raise NoRunningLoopError(self.func.__qualname__)
        return engine.continuations.start(self.func, *args, **kwargs)

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return functools.partial(self.__call__, instance)


def async_function(func: Callable[..., Any]) -> AsyncFunction:
    return AsyncFunction(func)


__all__ = [
    "AsyncFunction",
    "Continuation",
    "ContinuationRunner",
    "activate",
    "async_function",
    "current_engine",
]
