"""
Eviction scheduling for StarLedger.

Provides a table of cancellable delayed tasks keyed by name, used by the
mempool to expire validation requests:
- TimerScheduler: threading.Timer per key, for the running service
- ManualScheduler: deterministic, clock-driven, for tests and tooling

Usage:
    scheduler = TimerScheduler()
    scheduler.schedule("1Abc...", 300, lambda: evict("1Abc..."))
    scheduler.cancel("1Abc...")

    manual = ManualScheduler(start=1_700_000_000)
    manual.schedule("key", 10, callback)
    manual.advance(10)  # fires callback
"""

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    """Information about a scheduled task."""

    key: str
    due_at: float
    callback: Callable[[], None] = field(repr=False)
    cancelled: bool = False


class EvictionScheduler(ABC):
    """
    Abstract base class for eviction schedulers.

    Scheduling a key that already has a task replaces that task.
    Cancelling an unknown key is a no-op.
    """

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds since epoch, as seen by this scheduler."""
        pass

    @abstractmethod
    def schedule(self, key: str, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        """
        Run callback once after delay seconds.

        Args:
            key: Task identifier
            delay: Seconds from now (negative is treated as zero)
            callback: Zero-argument function to run

        Returns:
            The scheduled task
        """
        pass

    @abstractmethod
    def cancel(self, key: str) -> bool:
        """
        Cancel the task for a key.

        Returns:
            True if a pending task was cancelled, False otherwise
        """
        pass

    @abstractmethod
    def is_scheduled(self, key: str) -> bool:
        """Check if a task is pending for a key."""
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Cancel every pending task."""
        pass


class TimerScheduler(EvictionScheduler):
    """
    Wall-clock scheduler backed by one daemon threading.Timer per key.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._timers: dict[str, threading.Timer] = {}
        self._tasks: dict[str, ScheduledTask] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def schedule(self, key: str, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        delay = max(0.0, delay)
        task = ScheduledTask(key=key, due_at=self.now() + delay, callback=callback)

        def _fire():
            with self._lock:
                # A replaced or cancelled task must not run
                if self._tasks.get(key) is not task:
                    return
                self._tasks.pop(key, None)
                self._timers.pop(key, None)
            try:
                callback()
            except Exception:
                logger.exception("Scheduled task for '%s' failed", key)

        timer = threading.Timer(delay, _fire)
        timer.daemon = True

        with self._lock:
            previous = self._timers.pop(key, None)
            if previous is not None:
                previous.cancel()
                self._tasks[key].cancelled = True
            self._timers[key] = timer
            self._tasks[key] = task
            timer.start()

        return task

    def cancel(self, key: str) -> bool:
        with self._lock:
            timer = self._timers.pop(key, None)
            task = self._tasks.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        task.cancelled = True
        return True

    def is_scheduled(self, key: str) -> bool:
        with self._lock:
            return key in self._timers

    def shutdown(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            tasks = list(self._tasks.values())
            self._timers.clear()
            self._tasks.clear()
        for timer in timers:
            timer.cancel()
        for task in tasks:
            task.cancelled = True


class ManualScheduler(EvictionScheduler):
    """
    Deterministic scheduler with its own clock.

    Time only moves when advance() is called; due tasks run synchronously
    in due order on the calling thread.
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._tasks: dict[str, ScheduledTask] = {}
        self._queue: list[tuple[float, int, ScheduledTask]] = []
        self._sequence = itertools.count()
        self._lock = threading.RLock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def schedule(self, key: str, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        with self._lock:
            previous = self._tasks.get(key)
            if previous is not None:
                previous.cancelled = True
            task = ScheduledTask(key=key, due_at=self._now + max(0.0, delay), callback=callback)
            self._tasks[key] = task
            heapq.heappush(self._queue, (task.due_at, next(self._sequence), task))
            return task

    def cancel(self, key: str) -> bool:
        with self._lock:
            task = self._tasks.pop(key, None)
            if task is None:
                return False
            task.cancelled = True
            return True

    def is_scheduled(self, key: str) -> bool:
        with self._lock:
            return key in self._tasks

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward and run every task that became due.

        Returns:
            Number of callbacks run
        """
        fired = 0
        with self._lock:
            target = self._now + seconds
            while self._queue and self._queue[0][0] <= target:
                due_at, _, task = heapq.heappop(self._queue)
                if task.cancelled:
                    continue
                self._now = max(self._now, due_at)
                self._tasks.pop(task.key, None)
                task.callback()
                fired += 1
            self._now = target
        return fired

    def shutdown(self) -> None:
        with self._lock:
            for task in self._tasks.values():
                task.cancelled = True
            self._tasks.clear()
            self._queue.clear()
