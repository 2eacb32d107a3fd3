"""
Submission Coordinator - the single choke point for finalizing an attempt

Guarantees that exactly one SubmissionPayload leaves a session:
- manual submit is honored only when nothing is in flight and the attempt
  is not locked
- auto submit is honored even when locked; while a manual submit is in
  flight it is only noted, never posted a second time
- auto submit cancels every timer at claim time; manual submit on success
- an auto submit that cannot be delivered still finalizes locally with a
  zero result flagged for server reconciliation
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Optional, Set

from ..config import settings as default_settings
from ..services.lms_client import LMSClient, LMSClientError, LockDecision, SubmissionResult
from .clock import QuizClock
from .exceptions import SubmissionFailedError
from .models import QuizAttemptSession, SubmissionPayload, ViolationType
from .scoring.ledger import ViolationLedger
from .timers import TimerRegistry
from .utils.logging import log_critical_event, log_session_end

logger = logging.getLogger(__name__)


def spawn_task(coro: Coroutine) -> Any:
    """Run coro on the running loop, or to completion when there is none"""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    return loop.create_task(coro)


@dataclass
class SubmissionOutcome:
    payload: SubmissionPayload
    result: SubmissionResult
    is_auto_submit: bool
    pending_reconciliation: bool = False
    reason: Optional[str] = None
    lock_decision: Optional[LockDecision] = None

    def to_dict(self):
        return {
            "is_auto_submit": self.is_auto_submit,
            "pending_reconciliation": self.pending_reconciliation,
            "reason": self.reason,
            "result": self.result.model_dump(),
            "quiz_locked": bool(self.lock_decision and self.lock_decision.locked),
        }


class SubmissionCoordinator:
    def __init__(
        self,
        session: QuizAttemptSession,
        ledger: ViolationLedger,
        clock: QuizClock,
        timers: TimerRegistry,
        client: LMSClient,
        spawn: Callable[[Coroutine], Any] = spawn_task,
        settings=None
    ):
        self.session = session
        self.ledger = ledger
        self.clock = clock
        self.timers = timers
        self.client = client
        self.spawn = spawn
        self.settings = settings or default_settings

        self.outcome: Optional[SubmissionOutcome] = None
        self.payloads_sent = 0
        self._auto_requested: Optional[str] = None
        self._deliveries: Set[asyncio.Future] = set()

    def _build(self, is_auto_submit: bool, violations) -> SubmissionPayload:
        return SubmissionPayload(
            answers=tuple(self.session.answers.items()),
            violation_ledger=tuple(violations),
            tab_switch_count=sum(1 for v in violations if v.type == ViolationType.TAB_SWITCH),
            is_auto_submit=is_auto_submit,
            time_spent_seconds=self.clock.time_spent_seconds,
        )

    async def _post(self, payload: SubmissionPayload) -> SubmissionResult:
        self.payloads_sent += 1
        return await self.client.submit_attempt(self.session.attempt_id, payload.to_wire())

    async def submit_manual(self) -> Optional[SubmissionOutcome]:
        """
        Submit on the candidate's request.

        Returns:
            The outcome, or None when the request was ignored (already
            submitting, submitted or locked)

        Raises:
            SubmissionFailedError: the post failed; the exam keeps running
        """
        session = self.session
        if session.is_submitting or session.is_submitted or session.is_locked:
            logger.info(f"Manual submit ignored for {session.attempt_id}")
            return None

        session.is_submitting = True
        payload = self._build(False, self.ledger.entries())
        try:
            result = await self._post(payload)
        except LMSClientError as e:
            if self._auto_requested:
                logger.warning(f"Manual submit failed after auto-submit request: {e}")
                return await self._finalize(payload, None, self._auto_requested, auto=True)
            session.is_submitting = False
            raise SubmissionFailedError(
                f"Submission failed: {e}",
                retryable=e.retryable,
                status_code=e.status_code,
            ) from e

        return await self._finalize(payload, result, None, auto=False)

    def claim_auto(self, reason: str) -> Optional[SubmissionPayload]:
        """
        Synchronously claim the attempt for an auto-submit.

        Cancels every timer and freezes the ledger before anything is
        awaited, so no callback can touch the attempt afterwards.
        """
        session = self.session
        if session.is_submitted:
            return None
        if session.is_submitting:
            if not self._auto_requested:
                self._auto_requested = reason
                logger.info(f"Auto-submit requested during manual submit: {reason}")
            return None

        session.is_submitting = True
        self.timers.cancel_all()
        self.clock.stop()
        violations = self.ledger.freeze()
        log_critical_event(session.attempt_id, "auto_submit", {"reason": reason})
        return self._build(True, violations)

    async def submit_auto(self, reason: str) -> Optional[SubmissionOutcome]:
        payload = self.claim_auto(reason)
        if payload is None:
            return None
        return await self._deliver_auto(payload, reason)

    def request_auto_submit(self, reason: str):
        """Timer-safe entry point: claim now, deliver asynchronously"""
        payload = self.claim_auto(reason)
        if payload is None:
            return None
        task = self.spawn(self._deliver_auto(payload, reason))
        if isinstance(task, asyncio.Future):
            # The loop keeps only weak references to tasks
            self._deliveries.add(task)
            task.add_done_callback(lambda done: self._delivery_done(done, payload, reason))
        return task

    def _delivery_done(self, task: asyncio.Future, payload: SubmissionPayload, reason: str):
        self._deliveries.discard(task)
        if task.cancelled():
            error = "delivery cancelled"
        elif task.exception() is not None:
            error = repr(task.exception())
        else:
            return
        logger.error(f"Auto-submit delivery for {self.session.attempt_id} ended unexpectedly: {error}")
        if not self.session.is_submitted:
            self._complete(payload, None, reason, auto=True)

    async def _deliver_auto(self, payload: SubmissionPayload, reason: str) -> SubmissionOutcome:
        try:
            result = await self._post(payload)
        except LMSClientError as e:
            logger.error(f"Auto-submit delivery failed for {self.session.attempt_id}: {e}")
            result = None
        return await self._finalize(payload, result, reason, auto=True)

    async def _finalize(
        self,
        payload: SubmissionPayload,
        result: Optional[SubmissionResult],
        reason: Optional[str],
        auto: bool
    ) -> SubmissionOutcome:
        outcome = self._complete(payload, result, reason, auto)
        if not outcome.pending_reconciliation:
            outcome.lock_decision = await self._check_lock(outcome.result)
        return outcome

    def _complete(
        self,
        payload: SubmissionPayload,
        result: Optional[SubmissionResult],
        reason: Optional[str],
        auto: bool
    ) -> SubmissionOutcome:
        """Mark the attempt submitted; a missing result becomes the local fallback"""
        session = self.session
        pending = result is None
        if pending:
            result = SubmissionResult.local_fallback(len(session.question_ids))
            session.pending_reconciliation = True

        if not self.timers.closed:
            self.timers.cancel_all()
        self.clock.stop()
        if not self.ledger.frozen:
            self.ledger.freeze()

        session.is_submitted = True
        session.is_submitting = False
        self.outcome = SubmissionOutcome(
            payload=payload,
            result=result,
            is_auto_submit=auto,
            pending_reconciliation=pending,
            reason=reason,
        )
        log_session_end(session.attempt_id, auto, len(payload.violation_ledger), pending)
        return self.outcome

    async def _check_lock(self, result: SubmissionResult) -> Optional[LockDecision]:
        session = self.session
        passing = session.passing_score or self.settings.DEFAULT_PASSING_SCORE
        if result.passed or result.percentage >= passing:
            return None
        if not session.student_id or not session.quiz_id:
            logger.debug("Skipping quiz lock check: student or quiz id unknown")
            return None
        try:
            decision = await self.client.check_and_lock(
                session.student_id,
                session.quiz_id,
                session.course_id,
                result.percentage,
                passing,
            )
        except LMSClientError as e:
            logger.warning(f"Quiz lock check failed for {session.attempt_id}: {e}")
            return None
        if decision.locked:
            logger.info(f"Quiz {session.quiz_id} locked: {decision.unlock_authorization_level}")
        return decision
