"""
Pytest Configuration for SecureQuiz Tests
"""
import asyncio
import os
import sys
from typing import Any, Dict, List, Optional

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from securequiz.config import Settings  # noqa: E402
from securequiz.proctor.models import RiskLevel, SecurityReport, utcnow  # noqa: E402
from securequiz.proctor.platform import (  # noqa: E402
    BLUR, FOCUS, VISIBILITY_CHANGE, EnvironmentSnapshot, MirroredPlatform, PlatformEvent,
)
from securequiz.proctor.timers import ManualScheduler  # noqa: E402
from securequiz.services.lms_client import (  # noqa: E402
    AttemptDetails, LMSClientError, LockDecision, SubmissionResult,
)


class FakeLMSClient:
    """In-memory stand-in for LMSClient"""

    def __init__(
        self,
        details: Optional[AttemptDetails] = None,
        result: Optional[SubmissionResult] = None,
        fail_submit: bool = False,
        fail_lock: bool = False,
        lock_decision: Optional[LockDecision] = None
    ):
        self.details = details or AttemptDetails(
            time_limit_seconds=1800,
            questions=[
                {"questionId": "q1", "text": "2+2?", "options": ["3", "4"]},
                {"questionId": "q2", "text": "3+3?", "options": ["6", "7"]},
            ],
            course_id="course-1",
            quiz_id="quiz-1",
        )
        self.result = result or SubmissionResult(score=2, max_score=2, percentage=100, passed=True)
        self.fail_submit = fail_submit
        self.fail_lock = fail_lock
        self.lock_decision = lock_decision or LockDecision(success=True, locked=True)
        self.submissions: List[Dict[str, Any]] = []
        self.lock_calls: List[Dict[str, Any]] = []
        # Set to an asyncio.Event to keep submissions in flight until it is set
        self.hold: Optional[asyncio.Event] = None

    async def fetch_attempt(self, attempt_id: str) -> AttemptDetails:
        return self.details

    async def submit_attempt(self, attempt_id: str, payload: Dict[str, Any]) -> SubmissionResult:
        self.submissions.append(payload)
        if self.hold is not None:
            await self.hold.wait()
        await asyncio.sleep(0)
        if self.fail_submit:
            raise LMSClientError("LMS unavailable", status_code=503)
        return self.result

    async def check_and_lock(self, student_id, quiz_id, course_id, score, passing_score) -> LockDecision:
        self.lock_calls.append({
            "studentId": student_id,
            "quizId": quiz_id,
            "courseId": course_id,
            "score": score,
            "passingScore": passing_score,
        })
        if self.fail_lock:
            raise LMSClientError("lock service down", status_code=500)
        return self.lock_decision


def passing_report() -> SecurityReport:
    return SecurityReport(
        timestamp=utcnow(),
        extension_risk=RiskLevel.NONE,
        environment_issues=(),
        real_time_test_passed=True,
        overall_risk=RiskLevel.LOW,
        can_proceed=True,
    )


def leave(platform: MirroredPlatform):
    """Candidate switches away: page hidden and focus lost"""
    platform.apply(PlatformEvent(VISIBILITY_CHANGE, {"hidden": True}))
    platform.apply(PlatformEvent(BLUR))


def come_back(platform: MirroredPlatform):
    platform.apply(PlatformEvent(FOCUS))
    platform.apply(PlatformEvent(VISIBILITY_CHANGE, {"hidden": False}))


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def clean_environment():
    return EnvironmentSnapshot(
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0 Safari/537.36",
        timezone="Europe/Berlin",
        storage_quota=300_000_000_000,
    )


@pytest.fixture
def platform(clean_environment):
    return MirroredPlatform(environment=clean_environment)


@pytest.fixture
def lms_client():
    return FakeLMSClient()


@pytest.fixture
def report():
    return passing_report()


@pytest.fixture
def proctor_session(platform, lms_client, scheduler, settings, report):
    """A started session on virtual time"""
    from securequiz.proctor.session import ProctorSession, attempt_from_details

    attempt = attempt_from_details("attempt-1", lms_client.details, student_id="student-1")
    session = ProctorSession(attempt, platform, lms_client, scheduler=scheduler, settings=settings)
    session.start(report)
    return session
