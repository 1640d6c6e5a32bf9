from __future__ import annotations

import pytest

from loopsim.clock import VirtualClock
from loopsim.macrotasks import MacrotaskQueue, TaskKind


def _noop() -> None:
    return None


def _drain(queue: MacrotaskQueue) -> list[int]:
    order: list[int] = []
    while (task := queue.pop_next()) is not None:
        order.append(task.task_id)
    return order


def test_orders_by_due_time_then_registration() -> None:
    queue = MacrotaskQueue(VirtualClock())

    slow = queue.schedule(TaskKind.TIMEOUT, _noop, 100)
    first = queue.schedule(TaskKind.TIMEOUT, _noop, 0)
    second = queue.schedule(TaskKind.TIMEOUT, _noop, 0)
    middle = queue.schedule(TaskKind.TIMEOUT, _noop, 50)

    assert _drain(queue) == [first, second, middle, slow]


def test_due_time_is_relative_to_clock() -> None:
    clock = VirtualClock(1000)
    queue = MacrotaskQueue(clock)

    queue.schedule(TaskKind.TIMEOUT, _noop, 25)

    task = queue.next_due()
    assert task is not None
    assert task.due == 1025.0


def test_negative_delay_is_clamped_to_now() -> None:
    queue = MacrotaskQueue(VirtualClock(10))

    queue.schedule(TaskKind.TIMEOUT, _noop, -5)

    assert queue.next_due().due == 10.0


def test_immediates_share_ordering_with_timers() -> None:
    queue = MacrotaskQueue(VirtualClock())

    timeout = queue.schedule(TaskKind.TIMEOUT, _noop, 0)
    immediate = queue.schedule(TaskKind.IMMEDIATE, _noop)
    later = queue.schedule(TaskKind.TIMEOUT, _noop, 1)

    assert _drain(queue) == [timeout, immediate, later]


def test_category_priority_breaks_ties_at_equal_due_time() -> None:
    queue = MacrotaskQueue(VirtualClock(), category_priority={TaskKind.TIMEOUT: 1})

    timeout = queue.schedule(TaskKind.TIMEOUT, _noop, 0)
    immediate = queue.schedule(TaskKind.IMMEDIATE, _noop)

    assert _drain(queue) == [immediate, timeout]


def test_cancel_removes_task_and_is_idempotent() -> None:
    queue = MacrotaskQueue(VirtualClock())
    keep = queue.schedule(TaskKind.TIMEOUT, _noop, 10)
    drop = queue.schedule(TaskKind.TIMEOUT, _noop, 5)

    assert queue.cancel(drop) is True
    assert queue.cancel(drop) is False
    assert drop not in queue
    assert len(queue) == 1
    assert _drain(queue) == [keep]


@pytest.mark.parametrize("task_id", [999, None, "abc", 1.5])
def test_cancel_unknown_id_is_noop(task_id: object) -> None:
    queue = MacrotaskQueue(VirtualClock())
    queue.schedule(TaskKind.TIMEOUT, _noop, 0)

    assert queue.cancel(task_id) is False
    assert len(queue) == 1


def test_pop_next_respects_until() -> None:
    queue = MacrotaskQueue(VirtualClock())
    queue.schedule(TaskKind.TIMEOUT, _noop, 100)

    assert queue.pop_next(until=50) is None
    assert len(queue) == 1
    assert queue.pop_next(until=100) is not None


def test_interval_stays_registered_and_rearms() -> None:
    queue = MacrotaskQueue(VirtualClock())
    interval_id = queue.schedule(TaskKind.INTERVAL, _noop, 10, period=10)

    task = queue.pop_next()
    assert task is not None
    assert task.due == 10.0
    assert interval_id in queue

    assert queue.rearm(task) is True
    assert queue.next_due().due == 20.0


def test_rearmed_interval_orders_after_tasks_registered_earlier_for_same_time() -> None:
    queue = MacrotaskQueue(VirtualClock())
    interval_id = queue.schedule(TaskKind.INTERVAL, _noop, 10, period=10)
    timeout_id = queue.schedule(TaskKind.TIMEOUT, _noop, 20)

    task = queue.pop_next()
    queue.rearm(task)

    assert _drain(queue)[:2] == [timeout_id, interval_id]


def test_interval_cancelled_while_firing_is_not_rearmed() -> None:
    queue = MacrotaskQueue(VirtualClock())
    interval_id = queue.schedule(TaskKind.INTERVAL, _noop, 10, period=10)

    task = queue.pop_next()
    queue.cancel(interval_id)

    assert queue.rearm(task) is False
    assert queue.next_due() is None
    assert len(queue) == 0


def test_interval_requires_period() -> None:
    queue = MacrotaskQueue(VirtualClock())
    with pytest.raises(ValueError, match="require a period"):
        queue.schedule(TaskKind.INTERVAL, _noop, 10)


def test_schedule_rejects_non_callable() -> None:
    queue = MacrotaskQueue(VirtualClock())
    with pytest.raises(TypeError, match="callback must be callable"):
        queue.schedule(TaskKind.TIMEOUT, "not callable", 0)  # type: ignore[arg-type]


def test_pending_ids_lists_live_tasks() -> None:
    queue = MacrotaskQueue(VirtualClock())
    a = queue.schedule(TaskKind.TIMEOUT, _noop, 1)
    b = queue.schedule(TaskKind.TIMEOUT, _noop, 2)
    queue.cancel(a)

    assert queue.pending_ids() == [b]
