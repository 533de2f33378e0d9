"""Cooperative scheduler for delayed, cancelable callbacks.

Nothing runs on another thread: due tasks fire only when the owner calls
:meth:`CooperativeScheduler.run_pending`.
"""
import time
from typing import Callable


class ScheduledTask:
    def __init__(self, due: float, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)


class CooperativeScheduler:
    def __init__(self, clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self._clock = clock
        self._sleep = sleep
        self._tasks: list[ScheduledTask] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        task = ScheduledTask(self._clock() + delay, callback)
        self._tasks.append(task)
        return task

    def pending(self) -> list[ScheduledTask]:
        return sorted((t for t in self._tasks if t.active), key=lambda t: t.due)

    def run_pending(self, block: bool = False) -> int:
        """Fire due tasks in due order; with ``block`` wait for every pending task.

        Returns the number of callbacks run.
        """
        ran = 0
        while True:
            tasks = self.pending()
            if not tasks:
                break
            task = tasks[0]
            wait = task.due - self._clock()
            if wait > 0:
                if not block:
                    break
                self._sleep(wait)
            # A callback run earlier in this loop may have cancelled it.
            if not task.active:
                continue
            task.fired = True
            task.callback()
            ran += 1
        self._tasks = [t for t in self._tasks if t.active]
        return ran

    def cancel_all(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks = []
