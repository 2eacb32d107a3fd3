"""
Proctor Session - wires the proctoring pipeline for one quiz attempt

SecurityGate → QuizClock + FullscreenController → SignalSources →
CorroborationAggregator → PenaltyStateMachine → SubmissionCoordinator
"""

import logging
from typing import Any, Callable, Coroutine, Dict, List, Optional

from ..config import settings as default_settings
from ..services.lms_client import AttemptDetails, LMSClient
from .clock import QuizClock
from .detectors import ArtifactRescanSource, SignalSource, default_sources
from .exceptions import GateBlockedError, InputBlockedError, SessionStateError
from .fullscreen import FullscreenController
from .gate import SecurityGate
from .metrics.aggregator import CorroborationAggregator, GracePeriods
from .models import QuizAttemptSession, SecurityReport, Violation, ViolationType
from .platform import MirroredPlatform, Platform, PlatformEvent
from .scoring.ledger import ViolationLedger
from .scoring.penalty import PenaltyStateMachine
from .submission import SubmissionCoordinator, SubmissionOutcome, spawn_task
from .timers import AsyncioScheduler, Scheduler, TimerRegistry
from .utils.logging import log_proctor_event, log_session_start

logger = logging.getLogger(__name__)


def attempt_from_details(attempt_id: str, details: AttemptDetails, student_id: Optional[str] = None) -> QuizAttemptSession:
    return QuizAttemptSession(
        attempt_id=attempt_id,
        time_limit_seconds=details.time_limit_seconds,
        student_id=student_id,
        quiz_id=details.quiz_id,
        course_id=details.course_id,
        passing_score=details.passing_score,
        question_ids=[q.question_id for q in details.questions],
    )


class ProctorSession:
    """
    One monitored quiz attempt.

    Detectors and the aggregator only ever emit; the penalty machine and
    the submission coordinator are the only writers of terminal state.
    """

    def __init__(
        self,
        attempt: QuizAttemptSession,
        platform: Platform,
        client: LMSClient,
        scheduler: Optional[Scheduler] = None,
        sources: Optional[List[SignalSource]] = None,
        spawn: Callable[[Coroutine], Any] = spawn_task,
        settings=None
    ):
        self.settings = settings or default_settings
        self.attempt = attempt
        self.platform = platform
        self.timers = TimerRegistry(scheduler or AsyncioScheduler())
        self.ledger = ViolationLedger()
        self.grace = GracePeriods(self.timers, self.settings)
        self.sources = sources if sources is not None else default_sources(self.settings)
        self.report: Optional[SecurityReport] = None
        self.started = False
        self.notices: List[Dict[str, Any]] = []

        self.clock = QuizClock(
            self.timers,
            attempt.time_limit_seconds,
            on_expired=lambda: self.coordinator.request_auto_submit("Time expired"),
            is_finalized=lambda: attempt.is_submitted,
        )
        self.coordinator = SubmissionCoordinator(
            attempt, self.ledger, self.clock, self.timers, client,
            spawn=spawn, settings=self.settings,
        )
        self.fullscreen = FullscreenController(platform, self.timers, self.grace, self.settings)

        conditions = self._adverse_conditions()
        self.penalty = PenaltyStateMachine(
            attempt,
            self.timers,
            self.clock,
            on_lock=self.coordinator.request_auto_submit,
            conditions=conditions,
            on_notice=self._on_notice,
            settings=self.settings,
        )
        self.aggregator = CorroborationAggregator(
            self.timers,
            self.ledger,
            self.grace,
            on_violation=self._on_violation,
            conditions=conditions,
            on_presence=self.penalty.handle_return,
            is_finalized=lambda: attempt.is_submitted,
            session_id=attempt.attempt_id,
            settings=self.settings,
        )

    def _adverse_conditions(self) -> Dict[ViolationType, Callable[[], bool]]:
        platform = self.platform
        rescan = next((s for s in self.sources if isinstance(s, ArtifactRescanSource)), None)

        def away() -> bool:
            return platform.is_hidden() or not platform.has_focus()

        def not_exclusive() -> bool:
            return not platform.is_exclusive()

        def compromised() -> bool:
            return rescan.compromised if rescan is not None else True

        return {
            ViolationType.TAB_SWITCH: away,
            ViolationType.FULLSCREEN_EXIT: not_exclusive,
            ViolationType.FULLSCREEN_AVOIDANCE: not_exclusive,
            ViolationType.EXTENSION_DETECTED: compromised,
        }

    @property
    def session_id(self) -> str:
        return self.attempt.attempt_id

    def start(self, report: Optional[SecurityReport]):
        """Start monitoring; requires a passing SecurityReport"""
        if self.started:
            raise SessionStateError(f"Session {self.session_id} already started")
        if report is None:
            raise SessionStateError("A security report is required to start a session")
        if not report.can_proceed:
            raise GateBlockedError(report)

        self.report = report
        self.started = True
        self.grace.start_session()
        self.clock.start()
        self.fullscreen.request(user_gesture=False)
        for source in self.sources:
            source.attach(self.platform, self.aggregator, self.timers)

        log_session_start(self.session_id, self.attempt.time_limit_seconds, len(self.attempt.question_ids))

    def stop(self):
        """Tear down an abandoned session without submitting"""
        for source in self.sources:
            source.detach()
        if not self.timers.closed:
            self.timers.cancel_all()
        log_proctor_event(self.session_id, "session_stopped")

    def _on_violation(self, violation: Violation):
        self.penalty.handle_violation(violation)
        self.fullscreen.on_violation(violation)

    def _on_notice(self, violation: Violation):
        self.notices.append(violation.to_payload())

    def handle_event(self, event: PlatformEvent) -> int:
        """Feed a client-reported platform event into the pipeline"""
        if isinstance(self.platform, MirroredPlatform):
            return self.platform.apply(event)
        return self.platform.dispatch(event)

    def _check_input(self):
        if not self.started:
            raise SessionStateError(f"Session {self.session_id} has not started")
        if self.attempt.is_finalizing:
            raise InputBlockedError("submitted")
        reason = self.penalty.input_block_reason
        if reason:
            raise InputBlockedError(reason)

    def _check_question(self, question_id: str):
        if self.attempt.question_ids and question_id not in self.attempt.question_ids:
            raise ValueError(f"Unknown question: {question_id}")

    def answer(self, question_id: str, option: int):
        self._check_input()
        self._check_question(question_id)
        self.attempt.answers[question_id] = option

    def toggle_review(self, question_id: str) -> bool:
        """Flip the review mark; returns whether the question is now marked"""
        self._check_input()
        self._check_question(question_id)
        marked = self.attempt.marked_for_review
        if question_id in marked:
            marked.discard(question_id)
            return False
        marked.add(question_id)
        return True

    def request_fullscreen(self, user_gesture: bool = True) -> bool:
        if not self.started or self.attempt.is_submitted:
            raise SessionStateError(f"Session {self.session_id} is not active")
        return self.fullscreen.request(user_gesture=user_gesture)

    async def submit(self) -> Optional[SubmissionOutcome]:
        if not self.started:
            raise SessionStateError(f"Session {self.session_id} has not started")
        return await self.coordinator.submit_manual()

    def status(self) -> Dict[str, Any]:
        outcome = self.coordinator.outcome
        return {
            "session_id": self.session_id,
            "started": self.started,
            "time_remaining_seconds": self.clock.remaining_seconds,
            "time_spent_seconds": self.clock.time_spent_seconds,
            "answers": dict(self.attempt.answers),
            "marked_for_review": sorted(self.attempt.marked_for_review),
            "is_locked": self.attempt.is_locked,
            "is_submitting": self.attempt.is_submitting,
            "is_submitted": self.attempt.is_submitted,
            "pending_reconciliation": self.attempt.pending_reconciliation,
            "violations": [v.to_payload() for v in self.ledger.entries()],
            "notices": list(self.notices),
            "penalty": self.penalty.to_dict(),
            "fullscreen": self.fullscreen.to_dict(),
            "security_report": self.report.to_dict() if self.report else None,
            "outcome": outcome.to_dict() if outcome else None,
        }


async def open_session(
    attempt_id: str,
    platform: Platform,
    client: LMSClient,
    gate: Optional[SecurityGate] = None,
    student_id: Optional[str] = None,
    scheduler: Optional[Scheduler] = None,
    settings=None
) -> ProctorSession:
    """
    Gate, fetch and start a session.

    Raises:
        GateBlockedError: critical evidence found by the gate
        AttemptLoadError: the attempt could not be fetched
    """
    gate = gate or SecurityGate(settings)
    report = gate.evaluate(platform)
    if not report.can_proceed:
        raise GateBlockedError(report)

    details = await client.fetch_attempt(attempt_id)
    attempt = attempt_from_details(attempt_id, details, student_id)
    session = ProctorSession(attempt, platform, client, scheduler=scheduler, settings=settings)
    session.start(report)
    return session
