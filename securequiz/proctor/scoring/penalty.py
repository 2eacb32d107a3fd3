"""
Penalty State Machine - escalation from warning to lockout

One PenaltyState per category with its own threshold (TabSwitch,
FullscreenExit). Transitions:

    Normal      --violation (count < max)-->        Warned
    Warned      --return, count > last penalized--> PenaltyWait (or Normal
                                                    when the policy has no penalty)
    PenaltyWait --countdown reaches zero-->         Normal / Warned / PenaltyWait
    any         --count >= max or no return-->      Locked (terminal)

Other categories are ledger-only and raise a notice. A very-high confidence
ExtensionDetected also blocks input for as long as the re-scan still finds
the extension.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ...config import settings as default_settings
from ..clock import QuizClock
from ..models import Confidence, QuizAttemptSession, Violation, ViolationType
from ..timers import TimerRegistry
from ..utils.logging import log_critical_event, log_proctor_event, log_state_transition

logger = logging.getLogger(__name__)


class PenaltyPhase(str, Enum):
    NORMAL = "Normal"
    WARNED = "Warned"
    PENALTY_WAIT = "PenaltyWait"
    LOCKED = "Locked"


@dataclass(frozen=True)
class CategoryPolicy:
    """
    Escalation policy for one category.

    Attributes:
        max_count: Confirmed violations that lock the attempt
        return_timeout: Seconds the candidate has to come back, None for no limit
        penalty_seconds: Input-blocked wait applied on return, 0 for none
        block_while_warned: Block answer changes while away
    """
    max_count: int
    return_timeout: Optional[float]
    penalty_seconds: int
    block_while_warned: bool


def default_policies(settings=None) -> Dict[ViolationType, CategoryPolicy]:
    settings = settings or default_settings
    return {
        ViolationType.TAB_SWITCH: CategoryPolicy(
            max_count=settings.MAX_TAB_SWITCHES,
            return_timeout=settings.TAB_SWITCH_TIMEOUT,
            penalty_seconds=settings.PENALTY_DURATION,
            block_while_warned=True,
        ),
        ViolationType.FULLSCREEN_EXIT: CategoryPolicy(
            max_count=settings.MAX_FULLSCREEN_EXITS,
            return_timeout=settings.FULLSCREEN_EXIT_RETURN_TIMEOUT,
            penalty_seconds=settings.FULLSCREEN_EXIT_PENALTY,
            block_while_warned=False,
        ),
    }


@dataclass
class PenaltyState:
    category: ViolationType
    count: int = 0
    state: PenaltyPhase = PenaltyPhase.NORMAL
    penalty_remaining_seconds: int = 0
    total_penalty_seconds_used: int = 0
    last_penalized_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "count": self.count,
            "state": self.state.value,
            "penalty_remaining_seconds": self.penalty_remaining_seconds,
            "total_penalty_seconds_used": self.total_penalty_seconds_used,
        }


class PenaltyStateMachine:
    """
    Consumes confirmed violations and owns the per-category counters.

    Together with the SubmissionCoordinator it is the only component that
    mutates terminal session state (is_locked) and debits the clock.
    """

    def __init__(
        self,
        session: QuizAttemptSession,
        timers: TimerRegistry,
        clock: QuizClock,
        on_lock: Callable[[str], None],
        conditions: Optional[Dict[ViolationType, Callable[[], bool]]] = None,
        policies: Optional[Dict[ViolationType, CategoryPolicy]] = None,
        on_notice: Optional[Callable[[Violation], None]] = None,
        settings=None
    ):
        self.session = session
        self.timers = timers
        self.clock = clock
        self.on_lock = on_lock
        self.conditions = conditions or {}
        self.settings = settings or default_settings
        self.policies = policies or default_policies(self.settings)
        self.on_notice = on_notice
        self.states: Dict[ViolationType, PenaltyState] = {
            category: PenaltyState(category) for category in self.policies
        }
        self.notices: List[Violation] = []
        self.lock_reason: Optional[str] = None
        self.blocking_extension: Optional[Violation] = None

    @property
    def locked(self) -> bool:
        return self.lock_reason is not None

    @property
    def input_block_reason(self) -> Optional[str]:
        """Why answer-mutating operations are refused, or None"""
        if self.locked:
            return "locked"
        if self.blocking_extension is not None and self._adverse(ViolationType.EXTENSION_DETECTED):
            return "extension"
        for category, state in self.states.items():
            if state.state == PenaltyPhase.PENALTY_WAIT:
                return f"penalty:{category.value}"
            if state.state == PenaltyPhase.WARNED and self.policies[category].block_while_warned:
                return f"warned:{category.value}"
        return None

    def state(self, category: ViolationType) -> PenaltyState:
        return self.states[category]

    def _adverse(self, category: ViolationType) -> bool:
        condition = self.conditions.get(category)
        return condition() if condition is not None else False

    def _inactive(self) -> bool:
        return self.locked or self.session.is_submitted

    def _transition(self, state: PenaltyState, new: PenaltyPhase):
        if state.state == new:
            return
        log_state_transition(self.session.attempt_id, state.category.value, state.state.value, new.value, state.count)
        state.state = new

    def handle_violation(self, violation: Violation):
        """Apply a confirmed violation"""
        if self._inactive():
            logger.debug(f"Ignoring violation #{violation.sequence_number} after lock/submit")
            return

        state = self.states.get(violation.type)
        if state is None:
            self.notices.append(violation)
            if violation.type == ViolationType.EXTENSION_DETECTED and violation.confidence == Confidence.VERY_HIGH:
                self.blocking_extension = violation
            log_proctor_event(self.session.attempt_id, "notice", {"category": violation.type.value})
            if self.on_notice is not None:
                self.on_notice(violation)
            return

        policy = self.policies[violation.type]
        state.count += 1

        if state.count >= policy.max_count:
            self._lock(violation.type, f"Maximum {violation.type.value} violations reached ({state.count})")
            return

        self._arm_return_timeout(violation.type)
        if state.state == PenaltyPhase.PENALTY_WAIT:
            # Countdown keeps running; the new count is handled when it ends
            return

        self._transition(state, PenaltyPhase.WARNED)
        if not self._adverse(violation.type):
            # Already back before the violation was confirmed
            self.handle_return(violation.type)

    def handle_return(self, category: ViolationType):
        """The candidate is observably back on the assessment surface"""
        if self._inactive():
            return
        state = self.states.get(category)
        if state is None:
            return

        self.timers.cancel(f"return-timeout:{category.value}")
        if state.state != PenaltyPhase.WARNED:
            return

        if state.count > state.last_penalized_count:
            if self.policies[category].penalty_seconds > 0:
                self._start_penalty(category)
                return
            state.last_penalized_count = state.count
        self._transition(state, PenaltyPhase.NORMAL)

    def _arm_return_timeout(self, category: ViolationType):
        timeout = self.policies[category].return_timeout
        if timeout is None:
            return
        self.timers.start(
            f"return-timeout:{category.value}",
            timeout,
            lambda: self._return_expired(category),
        )

    def _return_expired(self, category: ViolationType):
        if self._inactive():
            return
        if self._adverse(category):
            self._lock(category, f"Did not return within {self.policies[category].return_timeout:.0f}s")
        else:
            self.handle_return(category)

    def _start_penalty(self, category: ViolationType):
        state = self.states[category]
        state.penalty_remaining_seconds = self.policies[category].penalty_seconds
        state.last_penalized_count = state.count
        self._transition(state, PenaltyPhase.PENALTY_WAIT)
        self.timers.every(f"penalty:{category.value}", 1.0, lambda: self._penalty_tick(category))

    def _penalty_tick(self, category: ViolationType):
        if self._inactive():
            self.timers.cancel(f"penalty:{category.value}")
            return
        state = self.states[category]
        state.penalty_remaining_seconds = max(0, state.penalty_remaining_seconds - 1)
        state.total_penalty_seconds_used += 1
        if not self.clock.running:
            # A running clock already spends the penalty second
            self.clock.deduct(1)

        if self._inactive():
            return
        if state.penalty_remaining_seconds <= 0:
            self.timers.cancel(f"penalty:{category.value}")
            self._end_penalty(category)

    def _end_penalty(self, category: ViolationType):
        state = self.states[category]
        if state.count > state.last_penalized_count:
            if self._adverse(category):
                self._transition(state, PenaltyPhase.WARNED)
            else:
                self._start_penalty(category)
            return
        self._transition(state, PenaltyPhase.NORMAL)

    def _lock(self, category: ViolationType, reason: str):
        if self.locked:
            return
        self.lock_reason = reason
        for state in self.states.values():
            self.timers.cancel(f"penalty:{state.category.value}")
            self.timers.cancel(f"return-timeout:{state.category.value}")
        self._transition(self.states[category], PenaltyPhase.LOCKED)
        self.session.is_locked = True
        log_critical_event(self.session.attempt_id, "locked", {"category": category.value, "reason": reason})
        self.on_lock(reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "locked": self.locked,
            "lock_reason": self.lock_reason,
            "input_block_reason": self.input_block_reason,
            "categories": {c.value: s.to_dict() for c, s in self.states.items()},
            "notices": len(self.notices),
        }
