"""
Quiz Clock - one-second countdown for an attempt

Ticks continue during a penalty; penalty time is debited from the exam,
never added to it.
"""

import logging
from typing import Callable

from .timers import TimerRegistry

logger = logging.getLogger(__name__)


class QuizClock:
    """
    Monotonic countdown from time_limit_seconds.

    remaining_seconds never increases. on_expired is called exactly once,
    when the countdown reaches zero through a tick or a deduction.
    """

    TIMER = "quiz-clock"

    def __init__(
        self,
        timers: TimerRegistry,
        time_limit_seconds: int,
        on_expired: Callable[[], None],
        is_finalized: Callable[[], bool] = lambda: False
    ):
        self.timers = timers
        self.time_limit_seconds = int(time_limit_seconds)
        self.remaining_seconds = int(time_limit_seconds)
        self.on_expired = on_expired
        self.is_finalized = is_finalized
        self.running = False
        self.expired = False
        self.ticks = 0

    @property
    def time_spent_seconds(self) -> int:
        return self.time_limit_seconds - self.remaining_seconds

    def start(self):
        if self.running or self.expired:
            return
        self.running = True
        self.timers.every(self.TIMER, 1.0, self._tick)
        logger.debug(f"Quiz clock started at {self.remaining_seconds}s")

    def stop(self):
        self.running = False
        self.timers.cancel(self.TIMER)

    def _tick(self):
        if self.is_finalized() or self.expired:
            self.stop()
            return
        self.ticks += 1
        self._decrease(1)

    def deduct(self, seconds: int) -> int:
        """Debit penalty time; returns the new remaining time"""
        if seconds <= 0 or self.expired or self.is_finalized():
            return self.remaining_seconds
        self._decrease(seconds)
        return self.remaining_seconds

    def _decrease(self, seconds: int):
        self.remaining_seconds = max(0, self.remaining_seconds - seconds)
        if self.remaining_seconds == 0 and not self.expired:
            self.expired = True
            self.stop()
            logger.info("Quiz clock expired")
            self.on_expired()
