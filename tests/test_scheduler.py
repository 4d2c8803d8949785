from __future__ import annotations

from radmon.instrument.scheduler import Scheduler


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.value = start

    def __call__(self) -> float:
        return self.value


def test_call_every_runs_when_due():
    clock = FakeClock()
    scheduler = Scheduler(clock=clock)
    calls = []
    scheduler.call_every(1.0, calls.append, name="tick")
    assert scheduler.run_pending(0.5) == 0
    assert scheduler.run_pending(1.0) == 1
    assert scheduler.run_pending(1.5) == 0
    assert scheduler.run_pending(2.0) == 1
    assert calls == [1.0, 2.0]


def test_cancelled_task_never_runs_again():
    scheduler = Scheduler(clock=FakeClock())
    calls = []
    handle = scheduler.call_every(1.0, calls.append)
    scheduler.run_pending(1.0)
    handle.cancel()
    scheduler.run_pending(5.0)
    assert calls == [1.0]
    assert scheduler.active == 0


def test_callable_interval_is_reread():
    scheduler = Scheduler(clock=FakeClock())
    period = [8.0]
    calls = []
    scheduler.call_every(lambda: period[0], calls.append)
    assert scheduler.run_pending(2.0) == 0
    period[0] = 2.0
    assert scheduler.run_pending(2.0) == 1
    assert scheduler.next_due() == 4.0


def test_due_tasks_run_in_due_order_and_respect_mid_pass_cancel():
    scheduler = Scheduler(clock=FakeClock())
    order = []
    late = scheduler.call_every(2.0, lambda now: order.append("late"))

    def early(now: float) -> None:
        order.append("early")
        late.cancel()

    scheduler.call_every(1.0, early)
    scheduler.run_pending(3.0)
    assert order == ["early"]


def test_cancel_all_clears_tasks():
    scheduler = Scheduler(clock=FakeClock())
    scheduler.call_every(1.0, lambda now: None)
    scheduler.call_every(2.0, lambda now: None)
    assert scheduler.active == 2
    scheduler.cancel_all()
    assert scheduler.active == 0
    assert scheduler.next_due() is None
