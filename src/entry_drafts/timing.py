"""Clock and deferred-callback primitives injected into the registry and its persistence."""
from __future__ import annotations

import heapq
import itertools
import threading
import time
from typing import Callable, List, Protocol, Tuple

Clock = Callable[[], int]


def system_clock() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a callback once after a delay, returning a cancellable handle."""

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Schedules callbacks on daemon :class:`threading.Timer` threads."""

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(delay_ms / 1000, callback)
        timer.daemon = True
        timer.start()
        return timer


class _ManualHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Deterministic scheduler and clock for tests and simulations.

    Time only moves when :meth:`advance` is called; due callbacks run synchronously in
    due-time order, including ones scheduled while advancing.
    """

    def __init__(self, start_ms: int = 0) -> None:
        self.now_ms = start_ms
        self._queue: List[Tuple[int, int, _ManualHandle, Callable[[], None]]] = []
        self._sequence = itertools.count()

    def __call__(self) -> int:
        return self.now_ms

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        handle = _ManualHandle()
        heapq.heappush(self._queue, (self.now_ms + delay_ms, next(self._sequence), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def advance(self, delta_ms: int) -> None:
        target = self.now_ms + delta_ms
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            self.now_ms = max(self.now_ms, due)
            if not handle.cancelled:
                callback()
        self.now_ms = target


__all__ = ["Clock", "ManualScheduler", "Scheduler", "ThreadingScheduler", "TimerHandle", "system_clock"]
