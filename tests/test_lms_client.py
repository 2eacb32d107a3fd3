"""
Tests for the LMS client
"""

import asyncio
import json

import httpx
import pytest

from securequiz.services.lms_client import AttemptDetails, AttemptLoadError, LMSClient, LMSClientError


def client_for(handler):
    return LMSClient(base_url="http://lms.test/", token="secret", transport=httpx.MockTransport(handler))


class TestAttemptFetch:

    def test_fetch_attempt(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={
                "timeLimitSeconds": 1200,
                "questions": [{"questionId": "q1", "text": "2+2?", "options": ["3", "4"]}],
                "quizId": "quiz-1",
                "courseId": "course-1",
                "passingScore": 70,
            })

        details = asyncio.run(client_for(handler).fetch_attempt("a-1"))

        assert seen["url"] == "http://lms.test/api/student/quiz/attempt/a-1"
        assert seen["auth"] == "Bearer secret"
        assert details.time_limit_seconds == 1200
        assert details.questions[0].question_id == "q1"
        assert details.passing_score == 70

    def test_legacy_attempt_format(self):
        details = AttemptDetails.model_validate({
            "timeLimit": 20,
            "questions": [{"_id": 7, "text": "Pick", "options": "red green  blue"}],
        })

        assert details.time_limit_seconds == 1200
        assert details.questions[0].question_id == "7"
        assert details.questions[0].options == ["red", "green", "blue"]

    def test_not_found_is_not_retryable(self):
        def handler(request):
            return httpx.Response(404, json={"message": "not found"})

        with pytest.raises(AttemptLoadError) as exc:
            asyncio.run(client_for(handler).fetch_attempt("missing"))

        assert exc.value.status_code == 404
        assert not exc.value.retryable

    def test_malformed_attempt(self):
        def handler(request):
            return httpx.Response(200, json={"questions": "nope"})

        with pytest.raises(AttemptLoadError):
            asyncio.run(client_for(handler).fetch_attempt("a-1"))


class TestSubmit:

    def test_submit_posts_payload(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"score": 1, "maxScore": 2, "percentage": 50, "passed": False})

        payload = {"answers": [{"questionId": "q1", "selectedOption": 1}], "isAutoSubmit": False}
        result = asyncio.run(client_for(handler).submit_attempt("a-1", payload))

        assert seen["path"] == "/api/student/quiz-attempt/a-1/submit"
        assert seen["body"] == payload
        assert result.max_score == 2
        assert result.percentage == 50
        assert not result.passed

    def test_server_error_is_retryable(self):
        def handler(request):
            return httpx.Response(503)

        with pytest.raises(LMSClientError) as exc:
            asyncio.run(client_for(handler).submit_attempt("a-1", {}))

        assert exc.value.status_code == 503
        assert exc.value.retryable

    def test_client_error_is_not_retryable(self):
        def handler(request):
            return httpx.Response(400, json={"message": "already submitted"})

        with pytest.raises(LMSClientError) as exc:
            asyncio.run(client_for(handler).submit_attempt("a-1", {}))

        assert not exc.value.retryable

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(LMSClientError) as exc:
            asyncio.run(client_for(handler).submit_attempt("a-1", {}))

        assert exc.value.status_code is None
        assert exc.value.retryable

    def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>")

        with pytest.raises(LMSClientError):
            asyncio.run(client_for(handler).submit_attempt("a-1", {}))


class TestCheckAndLock:

    def test_lock_request(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "success": True,
                "locked": True,
                "data": {"unlockAuthorizationLevel": "dean"},
            })

        decision = asyncio.run(client_for(handler).check_and_lock("s-1", "quiz-1", "course-1", 40, 60))

        assert seen["path"] == "/api/quiz-unlock/check-and-lock"
        assert seen["body"] == {
            "studentId": "s-1",
            "quizId": "quiz-1",
            "courseId": "course-1",
            "score": 40,
            "passingScore": 60,
        }
        assert decision.locked
        assert decision.unlock_authorization_level == "dean"
