"""Built-in scenarios: the documented orderings of the cooperative loop.

Each scenario is a script plus the emitted values it must produce.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loopsim.continuation import async_function
from loopsim.engine import Engine, Script


@dataclass(frozen=True)
class Scenario:
    name: str
    description: str
    script: Script
    expected: tuple[Any, ...]
    until: float | None = None


def sync_first(loop: Engine) -> None:
    loop.emit("Start")
    loop.set_timeout(lambda: loop.emit("Timeout"), 0)
    loop.resolve().then(lambda _: loop.emit("Promise"))
    loop.emit("End")


def interleaved(loop: Engine) -> None:
    loop.emit("A")
    loop.queue_microtask(lambda: loop.emit("B"))
    loop.resolve().then(lambda _: loop.emit("C"))
    loop.set_timeout(lambda: loop.emit("D"), 0)
    loop.emit("E")


def timer_delays(loop: Engine) -> None:
    loop.set_timeout(lambda: loop.emit("slow"), 100)
    loop.set_timeout(lambda: loop.emit("fast 1"), 0)
    loop.set_timeout(lambda: loop.emit("fast 2"), 0)


def interval_cancel(loop: Engine) -> None:
    count = 0

    def tick() -> None:
        nonlocal count
        count += 1
        loop.emit(f"tick {count}")
        if count == 3:
            loop.clear_interval(interval_id)

    interval_id = loop.set_interval(tick, 10)


def chained_resolved_return(loop: Engine) -> None:
    def first(_: Any) -> Any:
        loop.emit("a1")
        return loop.resolve()

    start = loop.resolve()
    start.then(first).then(lambda _: loop.emit("a2"))
    start.then(lambda _: loop.emit("b1")).then(lambda _: loop.emit("b2")).then(lambda _: loop.emit("b3"))


@async_function
def _await_resolved(loop: Engine):
    loop.emit("async start")
    yield loop.resolve()
    loop.emit("after await")


def async_await(loop: Engine) -> None:
    loop.emit("script start")
    _await_resolved(loop)
    loop.resolve().then(lambda _: loop.emit("then"))
    loop.emit("script end")


def all_waits_for_last(loop: Engine) -> None:
    first = loop.delay(100, "one")
    second = loop.delay(200, "two")
    loop.all([first, second]).then(lambda values: loop.emit(f"all {values} at {loop.now:g}"))


def race_first_wins(loop: Engine) -> None:
    fast = loop.delay(100, "fast")
    slow = loop.delay(200, "slow")
    loop.race([slow, fast]).then(lambda value: loop.emit(f"race {value} at {loop.now:g}"))


def _boom() -> None:
    raise RuntimeError("boom")


def error_isolation(loop: Engine) -> None:
    loop.set_timeout(_boom, 0)
    loop.set_timeout(lambda: loop.emit("still running"), 0)


def unhandled_rejection(loop: Engine) -> None:
    loop.reject(ValueError("lost"))
    loop.reject("x").catch(lambda reason: loop.emit(f"caught {reason}"))
    loop.resolve().then(lambda _: loop.emit("done"))


def immediate_order(loop: Engine) -> None:
    loop.set_timeout(lambda: loop.emit("later"), 10)
    loop.set_timeout(lambda: loop.emit("timeout"), 0)
    loop.set_immediate(lambda: loop.emit("immediate"))


SCENARIOS: dict[str, Scenario] = {
    scenario.name: scenario
    for scenario in (
        Scenario(
            "sync-first",
            "Synchronous code, then microtasks, then timers",
            sync_first,
            ("Start", "End", "Promise", "Timeout"),
        ),
        Scenario(
            "interleaved",
            "queueMicrotask and promise reactions share one FIFO queue",
            interleaved,
            ("A", "E", "B", "C", "D"),
        ),
        Scenario(
            "timer-delays",
            "Equal delays fire in registration order, shorter delays first",
            timer_delays,
            ("fast 1", "fast 2", "slow"),
        ),
        Scenario(
            "interval-cancel",
            "An interval cleared on its third firing fires exactly three times",
            interval_cancel,
            ("tick 1", "tick 2", "tick 3"),
        ),
        Scenario(
            "chained-resolved-return",
            "Returning a resolved promise from a handler costs one extra microtask turn",
            chained_resolved_return,
            ("a1", "b1", "b2", "a2", "b3"),
        ),
        Scenario(
            "async-await",
            "Statements after an await run after all synchronous code",
            async_await,
            ("script start", "async start", "script end", "after await", "then"),
        ),
        Scenario(
            "all",
            "all() observes its result only once the last input settles",
            all_waits_for_last,
            ("all ['one', 'two'] at 200",),
        ),
        Scenario(
            "race",
            "race() settles with the first input to settle",
            race_first_wins,
            ("race fast at 100",),
        ),
        Scenario(
            "error-isolation",
            "A throwing timer does not stop the loop",
            error_isolation,
            ("still running",),
        ),
        Scenario(
            "unhandled-rejection",
            "A rejection nobody handles is reported when the loop runs dry",
            unhandled_rejection,
            ("caught x", "done"),
        ),
        Scenario(
            "immediate-order",
            "Immediates and zero-delay timers due at the same time run in registration order",
            immediate_order,
            ("timeout", "immediate", "later"),
        ),
    )
}


def get_scenario(name: str) -> Scenario:
    try:
        return SCENARIOS[name]
    except KeyError:
        available = ", ".join(sorted(SCENARIOS))
        raise KeyError(f"Unknown scenario {name!r} (available: {available})") from None


__all__ = [
    "SCENARIOS",
    "Scenario",
    "get_scenario",
]
