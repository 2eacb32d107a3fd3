"""
End-to-end tests for a proctored session on virtual time
"""

import asyncio

import pytest

from conftest import FakeLMSClient, come_back, leave, passing_report
from securequiz.proctor.exceptions import GateBlockedError, InputBlockedError, SessionStateError, SubmissionFailedError
from securequiz.proctor.models import ViolationType
from securequiz.proctor.platform import CONTEXT_MENU, FULLSCREEN_CHANGE, MirroredPlatform, PlatformEvent
from securequiz.proctor.scoring.penalty import PenaltyPhase
from securequiz.proctor.session import ProctorSession, attempt_from_details, open_session
from securequiz.proctor.timers import ManualScheduler
from securequiz.services.lms_client import AttemptDetails


TAB = ViolationType.TAB_SWITCH


def tab_state(session):
    return session.penalty.state(TAB)


class TestLifecycle:
    """Session start and input handling"""

    def test_start_requests_fullscreen_and_starts_clock(self, proctor_session, scheduler):
        assert proctor_session.started
        assert proctor_session.platform.is_exclusive()

        scheduler.advance(5)
        assert proctor_session.clock.remaining_seconds == 1795

    def test_cannot_start_twice(self, proctor_session, report):
        with pytest.raises(SessionStateError):
            proctor_session.start(report)

    def test_blocked_report_refuses_start(self, platform, lms_client, scheduler):
        from dataclasses import replace

        attempt = attempt_from_details("attempt-2", lms_client.details)
        session = ProctorSession(attempt, platform, lms_client, scheduler=scheduler)
        blocked = replace(passing_report(), can_proceed=False, blocking_reason="Critical extensions detected")

        with pytest.raises(GateBlockedError):
            session.start(blocked)
        assert not session.started
        assert scheduler.pending() == 0

    def test_input_before_start(self, platform, lms_client, scheduler):
        attempt = attempt_from_details("attempt-2", lms_client.details)
        session = ProctorSession(attempt, platform, lms_client, scheduler=scheduler)

        with pytest.raises(SessionStateError):
            session.answer("q1", 0)

    def test_answer_and_review(self, proctor_session):
        proctor_session.answer("q1", 1)
        proctor_session.answer("q1", 0)

        assert proctor_session.toggle_review("q2") is True
        assert proctor_session.toggle_review("q2") is False
        status = proctor_session.status()
        assert status["answers"] == {"q1": 0}
        assert status["marked_for_review"] == []

    def test_unknown_question(self, proctor_session):
        with pytest.raises(ValueError):
            proctor_session.answer("q99", 0)

    def test_open_session(self, platform, lms_client, scheduler):
        session = asyncio.run(open_session("attempt-3", platform, lms_client, scheduler=scheduler))

        assert session.started
        assert session.report.can_proceed
        assert session.attempt.question_ids == ["q1", "q2"]


class TestTabSwitching:
    """Departures from the assessment surface"""

    def test_departure_during_startup_grace_is_ignored(self, proctor_session, platform, scheduler):
        scheduler.advance(2)
        leave(platform)
        scheduler.advance(2)
        come_back(platform)
        scheduler.advance(16)

        assert len(proctor_session.ledger) == 0
        assert tab_state(proctor_session).state == PenaltyPhase.NORMAL

    def test_one_departure_is_one_violation(self, proctor_session, platform, scheduler):
        scheduler.advance(9)
        leave(platform)
        scheduler.advance(1)

        violations = proctor_session.ledger.entries()
        assert len(violations) == 1
        assert set(violations[0].corroborating_methods) == {
            "visibility-api", "window-blur", "document-hidden", "document-focus",
        }
        assert tab_state(proctor_session).state == PenaltyPhase.WARNED
        with pytest.raises(InputBlockedError) as exc:
            proctor_session.answer("q1", 1)
        assert exc.value.reason == "warned:TabSwitch"

    def test_return_serves_penalty(self, proctor_session, platform, scheduler):
        scheduler.advance(9)
        leave(platform)
        scheduler.advance(1)
        come_back(platform)

        assert tab_state(proctor_session).state == PenaltyPhase.PENALTY_WAIT
        with pytest.raises(InputBlockedError):
            proctor_session.toggle_review("q1")

        scheduler.advance(60)
        assert tab_state(proctor_session).state == PenaltyPhase.NORMAL
        # Penalty seconds are spent on the running clock, not added to it
        assert proctor_session.clock.remaining_seconds == 1800 - 70
        proctor_session.answer("q1", 1)

    def test_third_departure_auto_submits_once(self, proctor_session, platform, scheduler, lms_client):
        scheduler.advance(9)
        leave(platform)
        scheduler.advance(1)
        come_back(platform)
        scheduler.advance(2)
        leave(platform)
        scheduler.advance(1)
        come_back(platform)
        scheduler.advance(2)
        leave(platform)
        scheduler.advance(1)

        attempt = proctor_session.attempt
        assert attempt.is_locked
        assert attempt.is_submitted
        assert len(lms_client.submissions) == 1
        wire = lms_client.submissions[0]
        assert wire["isAutoSubmit"] is True
        assert wire["tabSwitchCount"] == 3
        assert [v["sequenceNumber"] for v in wire["securityViolations"]] == [1, 2, 3]

        scheduler.advance(60)
        come_back(platform)
        leave(platform)
        scheduler.advance(60)
        assert len(lms_client.submissions) == 1
        assert len(proctor_session.ledger) == 3
        assert scheduler.pending() == 0

    def test_not_returning_locks(self, proctor_session, platform, scheduler, lms_client, settings):
        scheduler.advance(9)
        leave(platform)
        scheduler.advance(1 + settings.TAB_SWITCH_TIMEOUT)

        assert proctor_session.attempt.is_locked
        outcome = proctor_session.coordinator.outcome
        assert outcome.is_auto_submit
        assert outcome.reason.startswith("Did not return")
        assert len(lms_client.submissions) == 1


class TestOtherViolations:

    def test_fullscreen_exit_reenters(self, proctor_session, platform, scheduler, settings):
        scheduler.advance(9)
        platform.apply(PlatformEvent(FULLSCREEN_CHANGE, {"exclusive": False}))
        scheduler.advance(1)

        state = proctor_session.penalty.state(ViolationType.FULLSCREEN_EXIT)
        assert state.count == 1
        assert proctor_session.penalty.input_block_reason is None

        scheduler.advance(settings.FULLSCREEN_REENTRY_DELAY)
        assert platform.is_exclusive()
        assert state.state == PenaltyPhase.NORMAL

    def test_context_menu_is_a_notice(self, proctor_session, platform, scheduler):
        scheduler.advance(9)
        platform.apply(PlatformEvent(CONTEXT_MENU))
        scheduler.advance(1)

        status = proctor_session.status()
        assert len(status["notices"]) == 1
        assert status["violations"][0]["type"] == "ContextMenu"
        assert status["penalty"]["input_block_reason"] is None

    def test_refused_fullscreen_needs_user_action(self, lms_client, scheduler, report, clean_environment):
        platform = MirroredPlatform(environment=clean_environment, grants_without_gesture=False)
        attempt = attempt_from_details("attempt-4", lms_client.details)
        session = ProctorSession(attempt, platform, lms_client, scheduler=scheduler)
        session.start(report)

        assert session.status()["fullscreen"]["needs_user_action"] is True
        assert session.request_fullscreen(user_gesture=True)
        assert platform.is_exclusive()

    def test_extension_found_mid_quiz_blocks_input(self, proctor_session, platform, scheduler, settings, clean_environment):
        from dataclasses import replace

        scheduler.advance(9)
        platform.environment = replace(clean_environment, global_names=frozenset({"alwaysActiveWindow"}))
        scheduler.advance(2)

        status = proctor_session.status()
        assert status["violations"][0]["type"] == "ExtensionDetected"
        assert status["penalty"]["input_block_reason"] == "extension"
        with pytest.raises(InputBlockedError) as exc:
            proctor_session.answer("q1", 1)
        assert exc.value.reason == "extension"

        # Unblocked once the next re-scan comes back clean
        platform.environment = clean_environment
        scheduler.advance(settings.EXTENSION_SCAN_INTERVAL)
        proctor_session.answer("q1", 1)
        assert proctor_session.attempt.answers == {"q1": 1}


class TestSubmission:

    def test_clock_expiry_auto_submits(self, platform, scheduler, report):
        client = FakeLMSClient(details=AttemptDetails(
            time_limit_seconds=30,
            questions=[{"questionId": "q1", "options": ["a", "b"]}],
        ))
        attempt = attempt_from_details("attempt-5", client.details)
        session = ProctorSession(attempt, platform, client, scheduler=scheduler)
        session.start(report)

        scheduler.advance(30)

        assert attempt.is_submitted
        wire = client.submissions[0]
        assert wire["isAutoSubmit"] is True
        assert wire["timeSpent"] == 30
        assert session.coordinator.outcome.reason == "Time expired"

    def test_manual_submit_ends_monitoring(self, proctor_session, platform, scheduler, lms_client):
        proctor_session.answer("q1", 1)
        outcome = asyncio.run(proctor_session.submit())

        assert outcome is not None
        assert lms_client.submissions[0]["answers"] == [{"questionId": "q1", "selectedOption": 1}]
        assert scheduler.pending() == 0

        with pytest.raises(InputBlockedError):
            proctor_session.answer("q2", 0)
        assert asyncio.run(proctor_session.submit()) is None

    def test_departure_during_failed_manual_submit_is_kept(self, proctor_session, platform, scheduler, lms_client):
        lms_client.fail_submit = True

        async def submit_while_away():
            lms_client.hold = asyncio.Event()
            pending = asyncio.create_task(proctor_session.submit())
            await asyncio.sleep(0)
            assert proctor_session.attempt.is_submitting

            scheduler.advance(9)
            leave(platform)
            scheduler.advance(1)

            lms_client.hold.set()
            with pytest.raises(SubmissionFailedError):
                await pending

        asyncio.run(submit_while_away())

        assert not proctor_session.attempt.is_submitted
        assert len(proctor_session.ledger) == 1
        assert tab_state(proctor_session).state == PenaltyPhase.WARNED
        with pytest.raises(InputBlockedError) as exc:
            proctor_session.answer("q1", 1)
        assert exc.value.reason == "warned:TabSwitch"
