from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Union

logger = logging.getLogger(__name__)

Interval = Union[float, Callable[[], float]]


class TaskHandle:
    """Periodic task registered with a `Scheduler`; `cancel()` stops it for good."""

    def __init__(
        self,
        callback: Callable[[float], None],
        interval: Interval,
        started: float,
        name: str,
    ) -> None:
        self._callback = callback
        self._interval = interval
        self.last_run = started
        self.name = name
        self.cancelled = False

    @property
    def interval(self) -> float:
        # Callable intervals are re-read on every check.
        if callable(self._interval):
            return float(self._interval())
        return float(self._interval)

    @property
    def due(self) -> float:
        return self.last_run + self.interval

    def cancel(self) -> None:
        self.cancelled = True

    def run(self, now: float) -> None:
        self.last_run = now
        self._callback(now)


class Scheduler:
    """
    Cooperative timer wheel driven by the host loop.

    Nothing runs on its own: the owner calls `run_pending()` between events,
    so every callback executes to completion on the caller's thread.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._tasks: List[TaskHandle] = []

    def now(self) -> float:
        return self._clock()

    def call_every(
        self,
        interval: Interval,
        callback: Callable[[float], None],
        *,
        name: str = "task",
    ) -> TaskHandle:
        handle = TaskHandle(callback, interval, self.now(), name)
        self._tasks.append(handle)
        logger.debug("Scheduled %s", name)
        return handle

    def run_pending(self, now: Optional[float] = None) -> int:
        now = self.now() if now is None else now
        self._tasks = [task for task in self._tasks if not task.cancelled]
        due = sorted((task for task in self._tasks if task.due <= now), key=lambda task: task.due)
        ran = 0
        for task in due:
            # An earlier callback may have cancelled this one.
            if task.cancelled:
                continue
            task.run(now)
            ran += 1
        return ran

    def next_due(self) -> Optional[float]:
        pending = [task.due for task in self._tasks if not task.cancelled]
        return min(pending) if pending else None

    def cancel_all(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()

    @property
    def active(self) -> int:
        return sum(1 for task in self._tasks if not task.cancelled)
