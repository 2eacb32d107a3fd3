"""
Timers - cooperative scheduling for the proctoring pipeline

Every detector, grace period, corroboration window, penalty countdown and
the quiz clock runs on a Scheduler. Two schedulers are provided:

- AsyncioScheduler: the running event loop (production)
- ManualScheduler: a virtual clock advanced explicitly (replay, tests)

TimerRegistry keeps named handles so each timer can be cancelled on its own
and all of them at once when the attempt is finalized.
"""

import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TimerHandle(ABC):
    """Cancellable scheduled callback"""

    @abstractmethod
    def cancel(self) -> None:
        ...

    @property
    @abstractmethod
    def cancelled(self) -> bool:
        ...


class Scheduler(ABC):
    """Source of time and delayed callbacks"""

    @abstractmethod
    def now(self) -> float:
        """Monotonic time in seconds"""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once after delay seconds"""


class _AsyncioHandle(TimerHandle):
    def __init__(self, handle: asyncio.TimerHandle):
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()


class AsyncioScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return _AsyncioHandle(self.loop.call_later(max(0.0, delay), callback))


class _ManualHandle(TimerHandle):
    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """
    Virtual-time scheduler.

    Callbacks fire only from advance(), in due-time order; ties fire in
    scheduling order. Callbacks scheduled while advancing run in the same
    advance() call if they fall due before its target time.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, _ManualHandle, Callable[[], None]]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = _ManualHandle()
        due = self._now + max(0.0, delay)
        heapq.heappush(self._queue, (due, next(self._counter), handle, callback))
        return handle

    def advance(self, seconds: float) -> None:
        """Move virtual time forward, firing due callbacks"""
        target = self._now + seconds
        while self._queue and self._queue[0][0] <= target + 1e-9:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, due)
            callback()
        self._now = target

    def pending(self) -> int:
        """Number of live scheduled callbacks"""
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)


class TimerRegistry:
    """
    Named, individually cancellable timers on top of a Scheduler.

    Starting a timer under an existing name replaces it. After cancel_all()
    the registry is closed: nothing can be re-armed, so late callbacks
    cannot reschedule themselves onto a finalized attempt.
    """

    def __init__(self, scheduler: Scheduler):
        self.scheduler = scheduler
        self._handles: Dict[str, TimerHandle] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def now(self) -> float:
        return self.scheduler.now()

    def start(self, name: str, delay: float, callback: Callable[[], None]) -> bool:
        """Start (or restart) a one-shot timer. Returns False once closed."""
        if self._closed:
            logger.debug(f"Timer registry closed, not starting {name}")
            return False

        self.cancel(name)
        handle_box: List[TimerHandle] = []

        def fire():
            if self._handles.get(name) is handle_box[0]:
                del self._handles[name]
            callback()

        handle = self.scheduler.call_later(delay, fire)
        handle_box.append(handle)
        self._handles[name] = handle
        return True

    def every(self, name: str, interval: float, callback: Callable[[], None]) -> bool:
        """Start a repeating timer; the next tick is armed before the callback runs"""
        def tick():
            self.start(name, interval, tick)
            callback()

        return self.start(name, interval, tick)

    def cancel(self, name: str) -> bool:
        handle = self._handles.pop(name, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_prefix(self, prefix: str) -> int:
        names = [name for name in self._handles if name.startswith(prefix)]
        for name in names:
            self.cancel(name)
        return len(names)

    def cancel_all(self) -> int:
        """Cancel every outstanding timer and close the registry"""
        count = len(self._handles)
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        self._closed = True
        logger.debug(f"Cancelled {count} outstanding timers")
        return count

    def is_active(self, name: str) -> bool:
        return name in self._handles

    def active(self) -> List[str]:
        return sorted(self._handles)
