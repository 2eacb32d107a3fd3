"""
Corroboration Aggregator - turns candidate signals into confirmed violations

Candidates from every SignalSource are buffered per violation category.
Each accepted candidate schedules an evaluation CORROBORATION_WINDOW later;
at that point the candidates inside the trigger's window are examined and
a Violation is promoted when two distinct methods agree or the adverse
condition still holds. Promotion never happens synchronously with the
candidate that triggered it.
"""

import itertools
import logging
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from ...config import settings as default_settings
from ..models import CandidateSignal, Violation, ViolationType
from ..scoring.ledger import ViolationLedger
from ..timers import TimerRegistry
from ..utils.logging import log_candidate_dropped, log_violation_confirmed

logger = logging.getLogger(__name__)


EPSILON = 1e-9


class GracePeriods:
    """
    Startup and post-fullscreen-attempt grace windows.

    While either is open, candidates are ignored. Both are tracked as
    named timers so they are cancelled with the rest of the session.
    """

    STARTUP = "startup-grace"
    FULLSCREEN = "fullscreen-grace"

    def __init__(self, timers: TimerRegistry, settings=None):
        self.timers = timers
        self.settings = settings or default_settings
        self._until: Dict[str, float] = {}

    def start_session(self):
        self._open(self.STARTUP, self.settings.STARTUP_GRACE_PERIOD)

    def note_fullscreen_attempt(self):
        self._open(self.FULLSCREEN, self.settings.FULLSCREEN_ATTEMPT_GRACE_PERIOD)

    def _open(self, name: str, duration: float):
        self._until[name] = self.timers.now() + duration
        self.timers.start(name, duration, lambda: logger.debug(f"{name} ended"))

    def active(self) -> Optional[str]:
        """Name of an open grace window, or None"""
        now = self.timers.now()
        for name, until in self._until.items():
            if now < until - EPSILON:
                return name
        return None


class CorroborationAggregator:
    """
    Buffers candidates and promotes corroborated violations.

    Read-only with respect to session state: its only outputs are ledger
    entries and the on_violation / on_presence callbacks.
    """

    def __init__(
        self,
        timers: TimerRegistry,
        ledger: ViolationLedger,
        grace: GracePeriods,
        on_violation: Callable[[Violation], None],
        conditions: Optional[Dict[ViolationType, Callable[[], bool]]] = None,
        on_presence: Optional[Callable[[ViolationType], None]] = None,
        is_finalized: Callable[[], bool] = lambda: False,
        session_id: str = "-",
        settings=None
    ):
        self.timers = timers
        self.ledger = ledger
        self.grace = grace
        self.on_violation = on_violation
        self.conditions = conditions or {}
        self.on_presence = on_presence
        self.is_finalized = is_finalized
        self.session_id = session_id
        self.settings = settings or default_settings

        self._pending: Dict[ViolationType, List[CandidateSignal]] = {}
        self._debounce_until: Dict[ViolationType, float] = {}
        self._counter = itertools.count(1)

        self.accepted = 0
        self.dropped = 0

    def record(self, candidate: CandidateSignal) -> bool:
        """
        Accept a candidate into the corroboration buffer.

        Returns:
            True if buffered, False if dropped by a guard
        """
        reason = self._guard(candidate.category)
        if reason:
            self.dropped += 1
            log_candidate_dropped(self.session_id, candidate.category.value, candidate.method, reason)
            return False

        stamped = replace(candidate, timestamp=self.timers.now())
        self._pending.setdefault(stamped.category, []).append(stamped)
        self.accepted += 1

        name = f"corroborate:{stamped.category.value}:{next(self._counter)}"
        self.timers.start(name, self.settings.CORROBORATION_WINDOW, lambda: self._evaluate(stamped))
        return True

    def present(self, category: ViolationType):
        """Forward a 'candidate is back' notification"""
        if self.is_finalized():
            return
        if self.on_presence is not None:
            self.on_presence(category)

    def pending(self, category: ViolationType) -> int:
        return len(self._pending.get(category, ()))

    def _guard(self, category: ViolationType) -> Optional[str]:
        if self.is_finalized() or self.ledger.frozen:
            return "finalized"
        grace = self.grace.active()
        if grace:
            return grace
        if self.timers.now() < self._debounce_until.get(category, float("-inf")) - EPSILON:
            return "debounce"
        return None

    def _evaluate(self, trigger: CandidateSignal):
        if self.is_finalized() or self.ledger.frozen:
            return

        pending = self._pending.get(trigger.category, [])
        index = next((i for i, c in enumerate(pending) if c is trigger), None)
        if index is None:
            # Already consumed by an earlier promotion
            return

        grace = self.grace.active()
        if grace:
            self._discard(trigger.category, index, grace)
            return

        end = trigger.timestamp + self.settings.CORROBORATION_WINDOW + EPSILON
        window = [c for c in pending if trigger.timestamp - EPSILON <= c.timestamp <= end]
        methods = sorted({c.method for c in window})
        condition = self.conditions.get(trigger.category)
        adverse = condition() if condition is not None else True

        if len(methods) >= 2 or adverse:
            self._promote(trigger.category, window, methods)
        else:
            self._discard(trigger.category, index, "uncorroborated")

    def _discard(self, category: ViolationType, index: int, reason: str):
        pending = self._pending[category]
        for candidate in pending[:index + 1]:
            self.dropped += 1
            log_candidate_dropped(self.session_id, category.value, candidate.method, reason)
        del pending[:index + 1]

    def _promote(self, category: ViolationType, window: List[CandidateSignal], methods: List[str]):
        representative = min(window, key=lambda c: (-c.confidence.rank, c.timestamp))

        violation = Violation(
            type=category,
            sequence_number=self.ledger.next_sequence(),
            timestamp=representative.timestamp,
            corroborating_methods=tuple(methods),
            method=representative.method,
            evidence=representative.evidence,
            confidence=representative.confidence,
        )
        self.ledger.append(violation)

        self._pending[category] = []
        self.timers.cancel_prefix(f"corroborate:{category.value}:")
        self._debounce_until[category] = self.timers.now() + self.settings.PROMOTION_DEBOUNCE

        log_violation_confirmed(self.session_id, category.value, violation.sequence_number, methods)
        self.on_violation(violation)
