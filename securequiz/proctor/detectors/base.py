"""
SignalSource - base class for the independent detectors

A source observes one platform channel and reports through a sink
(the corroboration aggregator): record() for candidate signals and
present() when the candidate is observably back. Sources never touch
session state.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Protocol, Tuple

from ...config import settings as default_settings
from ..models import CandidateSignal, Confidence, ViolationType
from ..platform import Platform, PlatformEvent
from ..timers import TimerRegistry

logger = logging.getLogger(__name__)


class CandidateSink(Protocol):
    def record(self, candidate: CandidateSignal) -> bool:
        ...

    def present(self, category: ViolationType) -> None:
        ...


class SignalSource(ABC):
    """Detector for a single channel"""

    name = "signal-source"

    def __init__(self, settings=None):
        self.settings = settings or default_settings
        self.platform: Optional[Platform] = None
        self.sink: Optional[CandidateSink] = None
        self.timers: Optional[TimerRegistry] = None
        self._subscriptions: List[Tuple[str, Callable[[PlatformEvent], None]]] = []
        self._timer_names: List[str] = []

    @property
    def attached(self) -> bool:
        return self.platform is not None

    def attach(self, platform: Platform, sink: CandidateSink, timers: TimerRegistry):
        self.platform = platform
        self.sink = sink
        self.timers = timers
        self.on_attach()
        logger.debug(f"{self.name} attached")

    def detach(self):
        if self.platform is not None:
            for event_name, handler in self._subscriptions:
                self.platform.remove_listener(event_name, handler)
        if self.timers is not None:
            for timer_name in self._timer_names:
                self.timers.cancel_prefix(timer_name)
        self._subscriptions = []
        self.platform = None
        self.sink = None

    @abstractmethod
    def on_attach(self):
        """Subscribe to events and start timers"""

    def listen(self, event_name: str, handler: Callable[[PlatformEvent], None]):
        self.platform.add_listener(event_name, handler)
        self._subscriptions.append((event_name, handler))

    def start_timer(self, name: str, delay: float, callback: Callable[[], None]) -> bool:
        if name not in self._timer_names:
            self._timer_names.append(name)
        return self.timers.start(name, delay, callback)

    def every(self, name: str, interval: float, callback: Callable[[], None]) -> bool:
        if name not in self._timer_names:
            self._timer_names.append(name)
        return self.timers.every(name, interval, callback)

    def emit(self, category: ViolationType, method: str, evidence: str, confidence: Confidence) -> bool:
        if self.sink is None:
            return False
        return self.sink.record(CandidateSignal(
            category=category,
            method=method,
            evidence=evidence,
            confidence=confidence,
        ))

    def present(self, category: ViolationType):
        if self.sink is not None:
            self.sink.present(category)
