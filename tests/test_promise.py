"""Tests for the promise state machine: settlement, reactions, propagation."""

from __future__ import annotations

from typing import Any

from loopsim import Engine, Promise, PromiseState, TraceKind


def test_then_handlers_never_run_synchronously(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        loop.resolve("value").then(lambda v: loop.emit(f"then {v}"))
        loop.emit("after then")

    assert engine.run(script).values == ["after then", "then value"]


def test_settlement_happens_at_most_once(engine: Engine) -> None:
    captured: dict[str, Promise] = {}

    def executor(resolve: Any, reject: Any) -> None:
        resolve(1)
        reject("ignored")
        resolve(2)

    def script(loop: Engine) -> None:
        promise = loop.new_promise(executor)
        captured["promise"] = promise
        promise.then(lambda v: loop.emit(v), lambda r: loop.emit(f"rejected {r}"))

    result = engine.run(script)

    assert result.values == [1]
    assert captured["promise"].state is PromiseState.FULFILLED
    assert captured["promise"].value == 1
    assert captured["promise"].reason is None


def test_reactions_registered_before_settlement_fire_in_order(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        resolvers: list[Any] = []
        promise = loop.new_promise(lambda resolve, _reject: resolvers.append(resolve))
        promise.then(lambda v: loop.emit(f"first {v}"))
        promise.then(lambda v: loop.emit(f"second {v}"))
        promise.then(lambda v: loop.emit(f"third {v}"))
        loop.set_timeout(lambda: resolvers[0]("x"), 10)

    result = engine.run(script)

    assert result.values == ["first x", "second x", "third x"]
    assert {time for time, _ in result.timeline()} == {10.0}


def test_reaction_registered_after_settlement_fires_once(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        promise = loop.resolve("done")

        def late() -> None:
            promise.then(lambda v: loop.emit(f"late {v}"))

        loop.set_timeout(late, 50)

    result = engine.run(script)

    assert result.timeline() == [(50.0, "late done")]


def test_rejection_skips_fulfillment_handlers_until_caught(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        (
            loop.reject("bad")
            .then(lambda _: loop.emit("skipped 1"))
            .then(lambda _: loop.emit("skipped 2"))
            .catch(lambda reason: loop.emit(f"caught {reason}"))
            .then(lambda _: loop.emit("recovered"))
        )

    result = engine.run(script)

    assert result.values == ["caught bad", "recovered"]
    assert result.unhandled_rejections == []


def test_handler_exception_rejects_derived_promise(engine: Engine) -> None:
    def fail(_: Any) -> None:
        raise ValueError("handler failed")

    def script(loop: Engine) -> None:
        loop.resolve(1).then(fail).catch(lambda exc: loop.emit(f"{type(exc).__name__}: {exc}"))

    result = engine.run(script)

    assert result.values == ["ValueError: handler failed"]
    assert result.errors == []


def test_handler_return_value_flows_down_the_chain(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        loop.resolve(2).then(lambda v: v * 10).then(lambda v: v + 1).then(loop.emit)

    assert engine.run(script).values == [21]


def test_finally_passes_value_and_reason_through(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        loop.resolve("v").finally_(lambda: loop.emit("cleanup 1")).then(lambda v: loop.emit(f"value {v}"))
        loop.reject("r").finally_(lambda: loop.emit("cleanup 2")).catch(lambda r: loop.emit(f"reason {r}"))

    result = engine.run(script)

    assert result.values.index("cleanup 1") < result.values.index("value v")
    assert result.values.index("cleanup 2") < result.values.index("reason r")
    assert sorted(result.values) == sorted(["cleanup 1", "value v", "cleanup 2", "reason r"])
    assert result.unhandled_rejections == []


def test_finally_raising_replaces_outcome(engine: Engine) -> None:
    def explode() -> None:
        raise RuntimeError("cleanup failed")

    def script(loop: Engine) -> None:
        loop.resolve("v").finally_(explode).catch(lambda exc: loop.emit(str(exc)))

    assert engine.run(script).values == ["cleanup failed"]


def test_finally_waits_for_returned_promise(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        loop.resolve("v").finally_(lambda: loop.delay(30)).then(lambda v: loop.emit(f"{v} at {loop.now:g}"))

    assert engine.run(script).values == ["v at 30"]


def test_resolving_promise_with_itself_rejects_with_type_error(engine: Engine) -> None:
    holder: dict[str, Promise] = {}

    def script(loop: Engine) -> None:
        chained = loop.resolve(1).then(lambda _: holder["chained"])
        holder["chained"] = chained
        chained.catch(lambda exc: loop.emit(type(exc).__name__))

    assert engine.run(script).values == ["TypeError"]


class _Thenable:
    def __init__(self, value: Any) -> None:
        self.value = value

    def then(self, on_fulfilled: Any, on_rejected: Any) -> None:
        on_fulfilled(self.value)
        on_fulfilled("ignored second call")


class _BrokenThenable:
    def then(self, on_fulfilled: Any, on_rejected: Any) -> None:
        raise KeyError("no then for you")


def test_foreign_thenable_is_adopted(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        loop.resolve(_Thenable(42)).then(loop.emit)

    assert engine.run(script).values == [42]


def test_foreign_thenable_resolving_to_thenable_is_unwrapped(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        loop.resolve(_Thenable(_Thenable("deep"))).then(loop.emit)

    assert engine.run(script).values == ["deep"]


def test_throwing_thenable_rejects(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        loop.resolve(_BrokenThenable()).catch(lambda exc: loop.emit(type(exc).__name__))

    assert engine.run(script).values == ["KeyError"]


def test_adopting_pending_promise_waits_for_it(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        loop.resolve(loop.delay(40, "inner")).then(lambda v: loop.emit(f"{v} at {loop.now:g}"))

    assert engine.run(script).values == ["inner at 40"]


def test_executor_exception_rejects_promise(engine: Engine) -> None:
    def executor(resolve: Any, reject: Any) -> None:
        raise LookupError("executor failed")

    def script(loop: Engine) -> None:
        loop.new_promise(executor).catch(lambda exc: loop.emit(str(exc)))

    result = engine.run(script)

    assert result.values == ["executor failed"]
    assert result.errors == []


def test_unhandled_rejection_is_reported_not_raised(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        loop.reject("nobody listens")
        loop.emit("still fine")

    result = engine.run(script)

    assert result.values == ["still fine"]
    assert [entry.value for entry in result.unhandled_rejections] == ["nobody listens"]
    assert result.trace[-1].kind is TraceKind.UNHANDLED_REJECTION


def test_rejection_handled_later_in_same_drain_is_not_reported(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        promise = loop.reject("late")
        loop.queue_microtask(lambda: promise.catch(lambda reason: loop.emit(f"caught {reason}")))

    result = engine.run(script)

    assert result.values == ["caught late"]
    assert result.unhandled_rejections == []


def test_unhandled_rejection_at_end_of_chain(engine: Engine) -> None:
    def script(loop: Engine) -> None:
        loop.reject("x").then(lambda _: None)

    result = engine.run(script)

    assert len(result.unhandled_rejections) == 1
    assert result.unhandled_rejections[0].value == "x"


def test_unhandled_rejections_are_reported_once(engine: Engine) -> None:
    engine.run(lambda loop: loop.reject("once"))
    result = engine.run()

    assert [entry.value for entry in result.unhandled_rejections] == ["once"]


def test_repr_shows_state() -> None:
    engine = Engine()
    pending = engine.new_promise(lambda resolve, reject: None)
    fulfilled = engine.resolve(3)

    assert "pending" in repr(pending)
    assert "fulfilled: 3" in repr(fulfilled)
