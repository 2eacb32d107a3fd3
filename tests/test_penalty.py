"""
Tests for the penalty state machine and the quiz clock
"""

from dataclasses import replace

import pytest

from securequiz.proctor.clock import QuizClock
from securequiz.proctor.models import Confidence, QuizAttemptSession, Violation, ViolationType
from securequiz.proctor.scoring.penalty import PenaltyPhase, PenaltyStateMachine
from securequiz.proctor.timers import ManualScheduler, TimerRegistry


TAB = ViolationType.TAB_SWITCH
FS = ViolationType.FULLSCREEN_EXIT


class Harness:
    """Penalty machine wired to virtual time and a controllable presence flag"""

    def __init__(self, settings, start_clock=False):
        self.scheduler = ManualScheduler()
        self.timers = TimerRegistry(self.scheduler)
        self.session = QuizAttemptSession(attempt_id="attempt-1", time_limit_seconds=1800)
        self.expired = []
        self.clock = QuizClock(self.timers, 1800, on_expired=lambda: self.expired.append(True))
        if start_clock:
            self.clock.start()
        self.away = {TAB: False, FS: False}
        self.locks = []
        self.machine = PenaltyStateMachine(
            self.session,
            self.timers,
            self.clock,
            on_lock=self.locks.append,
            conditions={TAB: lambda: self.away[TAB], FS: lambda: self.away[FS]},
            settings=settings,
        )
        self.sequence = 0

    def violation(self, category=TAB):
        self.sequence += 1
        return Violation(
            type=category,
            sequence_number=self.sequence,
            timestamp=self.scheduler.now(),
            corroborating_methods=("visibility-api", "window-blur"),
            method="visibility-api",
            evidence="document hidden",
            confidence=Confidence.HIGH,
        )

    def depart(self, category=TAB):
        self.away[category] = True
        self.machine.handle_violation(self.violation(category))

    def come_back(self, category=TAB):
        self.away[category] = False
        self.machine.handle_return(category)


@pytest.fixture
def harness(settings):
    return Harness(settings)


class TestTabSwitchEscalation:
    """Tests for the TabSwitch policy"""

    def test_first_violation_warns_and_blocks_input(self, harness):
        harness.depart()

        state = harness.machine.state(TAB)
        assert state.count == 1
        assert state.state == PenaltyPhase.WARNED
        assert harness.machine.input_block_reason == "warned:TabSwitch"

    def test_return_starts_penalty_wait(self, harness, settings):
        harness.depart()
        harness.come_back()

        state = harness.machine.state(TAB)
        assert state.state == PenaltyPhase.PENALTY_WAIT
        assert state.penalty_remaining_seconds == settings.PENALTY_DURATION
        assert harness.machine.input_block_reason == "penalty:TabSwitch"

    def test_penalty_debits_clock_and_returns_to_normal(self, harness):
        """A full 60s penalty on a 1800s exam leaves 1740s"""
        harness.depart()
        harness.come_back()

        harness.scheduler.advance(60)

        state = harness.machine.state(TAB)
        assert state.state == PenaltyPhase.NORMAL
        assert state.total_penalty_seconds_used == 60
        assert harness.clock.remaining_seconds == 1740
        assert harness.machine.input_block_reason is None

    def test_running_clock_is_not_debited_twice(self, settings):
        harness = Harness(settings, start_clock=True)
        harness.depart()
        harness.come_back()

        harness.scheduler.advance(60)

        assert harness.clock.remaining_seconds == 1740
        assert harness.machine.state(TAB).total_penalty_seconds_used == 60
        assert harness.machine.state(TAB).state == PenaltyPhase.NORMAL

    def test_already_back_when_confirmed_goes_straight_to_penalty(self, harness):
        harness.machine.handle_violation(harness.violation())
        assert harness.machine.state(TAB).state == PenaltyPhase.PENALTY_WAIT

    def test_violation_is_not_penalized_twice(self, harness):
        harness.depart()
        harness.come_back()
        harness.scheduler.advance(60)

        # A stray return signal after the penalty has been served
        harness.machine.handle_return(TAB)
        assert harness.machine.state(TAB).state == PenaltyPhase.NORMAL
        assert harness.machine.state(TAB).total_penalty_seconds_used == 60

    def test_violation_during_penalty_chains_another_penalty(self, harness):
        harness.depart()
        harness.come_back()
        harness.scheduler.advance(10)

        harness.depart()
        assert harness.machine.state(TAB).state == PenaltyPhase.PENALTY_WAIT
        harness.come_back()

        harness.scheduler.advance(50)
        state = harness.machine.state(TAB)
        assert state.state == PenaltyPhase.PENALTY_WAIT
        assert state.penalty_remaining_seconds == 60
        assert state.last_penalized_count == 2

    def test_third_violation_locks_once(self, harness):
        harness.depart()
        harness.come_back()
        harness.depart()
        harness.come_back()
        harness.depart()

        assert harness.machine.locked
        assert harness.session.is_locked
        assert harness.machine.state(TAB).state == PenaltyPhase.LOCKED
        assert len(harness.locks) == 1
        assert harness.machine.input_block_reason == "locked"
        assert not harness.timers.is_active("penalty:TabSwitch")

        harness.machine.handle_violation(harness.violation())
        assert len(harness.locks) == 1
        assert harness.machine.state(TAB).count == 3

    def test_no_return_within_timeout_locks(self, harness, settings):
        harness.depart()
        harness.scheduler.advance(settings.TAB_SWITCH_TIMEOUT - 0.1)
        assert not harness.machine.locked

        harness.scheduler.advance(0.2)
        assert harness.machine.locked
        assert "Did not return" in harness.locks[0]

    def test_return_cancels_timeout(self, harness, settings):
        harness.depart()
        harness.scheduler.advance(5)
        harness.come_back()
        harness.scheduler.advance(settings.TAB_SWITCH_TIMEOUT)

        assert not harness.machine.locked

    def test_submitted_session_ignores_violations(self, harness):
        harness.session.is_submitted = True
        harness.depart()

        assert harness.machine.state(TAB).count == 0
        assert harness.locks == []


class TestFullscreenExitEscalation:
    """Tests for the FullscreenExit policy"""

    def test_exit_warns_without_blocking_input(self, harness):
        harness.depart(FS)
        assert harness.machine.state(FS).state == PenaltyPhase.WARNED
        assert harness.machine.input_block_reason is None

    def test_no_return_timeout_while_outside_fullscreen(self, harness):
        harness.depart(FS)
        harness.scheduler.advance(600)
        assert not harness.machine.locked

    def test_reentry_returns_to_normal(self, harness):
        harness.depart(FS)
        harness.come_back(FS)
        assert harness.machine.state(FS).state == PenaltyPhase.NORMAL

    def test_third_exit_locks(self, harness):
        for _ in range(3):
            harness.depart(FS)
            harness.come_back(FS)

        assert harness.machine.locked
        assert "FullscreenExit" in harness.machine.lock_reason


class TestNotices:
    """Categories without an escalation policy"""

    def test_context_menu_is_a_notice(self, harness):
        notices = []
        harness.machine.on_notice = notices.append

        harness.machine.handle_violation(harness.violation(ViolationType.CONTEXT_MENU))

        assert len(notices) == 1
        assert harness.machine.to_dict()["notices"] == 1
        assert harness.machine.input_block_reason is None

    def test_critical_extension_blocks_while_present(self, harness):
        present = {"extension": True}
        harness.machine.conditions[ViolationType.EXTENSION_DETECTED] = lambda: present["extension"]
        violation = harness.violation(ViolationType.EXTENSION_DETECTED)

        harness.machine.handle_violation(replace(violation, confidence=Confidence.VERY_HIGH))
        assert harness.machine.input_block_reason == "extension"

        present["extension"] = False
        assert harness.machine.input_block_reason is None

    def test_suspicious_extension_is_only_a_notice(self, harness):
        harness.machine.conditions[ViolationType.EXTENSION_DETECTED] = lambda: True

        harness.machine.handle_violation(harness.violation(ViolationType.EXTENSION_DETECTED))

        assert harness.machine.input_block_reason is None
        assert len(harness.machine.notices) == 1


class TestQuizClock:
    """Tests for QuizClock"""

    def test_counts_down_and_expires_once(self):
        scheduler = ManualScheduler()
        timers = TimerRegistry(scheduler)
        expired = []
        clock = QuizClock(timers, 3, on_expired=lambda: expired.append(scheduler.now()))
        clock.start()

        scheduler.advance(10)

        assert clock.remaining_seconds == 0
        assert clock.time_spent_seconds == 3
        assert expired == [3.0]
        assert not timers.is_active(QuizClock.TIMER)

    def test_deduction_can_expire(self):
        timers = TimerRegistry(ManualScheduler())
        expired = []
        clock = QuizClock(timers, 30, on_expired=lambda: expired.append(True))

        assert clock.deduct(10) == 20
        clock.deduct(25)
        clock.deduct(5)

        assert clock.remaining_seconds == 0
        assert expired == [True]

    def test_stops_when_finalized(self):
        scheduler = ManualScheduler()
        timers = TimerRegistry(scheduler)
        state = {"done": False}
        clock = QuizClock(timers, 100, on_expired=lambda: None, is_finalized=lambda: state["done"])
        clock.start()

        scheduler.advance(5)
        state["done"] = True
        scheduler.advance(5)

        assert clock.remaining_seconds == 95
        assert clock.deduct(10) == 95
