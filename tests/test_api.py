"""
Tests for the proctoring HTTP API
"""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeLMSClient


CLEAN_ENVIRONMENT = {
    "user_agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0 Safari/537.36",
    "timezone": "Europe/Berlin",
    "storage_quota": 300_000_000_000,
}

CLEAN_ROUND_TRIP = {
    "listener_counts": {"visibilitychange": 1, "blur": 1, "focus": 1},
    "forced_hidden": True,
    "forced_visibility_state": "hidden",
    "focus_count": 3,
}


@pytest.fixture
def api():
    from securequiz.main import app
    from securequiz.proctor import api as proctor_api

    lms = FakeLMSClient()
    app.dependency_overrides[proctor_api.get_lms_client] = lambda: lms
    proctor_api._sessions.clear()
    proctor_api._gates.clear()

    with TestClient(app) as client:
        yield client, lms

    app.dependency_overrides.clear()
    proctor_api._sessions.clear()
    proctor_api._gates.clear()


def start(client, attempt_id="attempt-1", environment=None, round_trip=None):
    return client.post("/api/proctor/start", json={
        "attempt_id": attempt_id,
        "student_id": "student-1",
        "environment": environment or CLEAN_ENVIRONMENT,
        "round_trip": round_trip or CLEAN_ROUND_TRIP,
    })


class TestStart:

    def test_health(self, api):
        client, _ = api
        assert client.get("/health").json()["status"] == "healthy"
        assert client.get("/api/proctor/health").json()["active_sessions"] == 0

    def test_start_session(self, api):
        client, _ = api
        response = start(client)

        assert response.status_code == 200
        data = response.json()
        assert data["session_id"] == "attempt-1"
        assert data["time_limit_seconds"] == 1800
        assert data["questions"] == 2
        assert data["security_report"]["can_proceed"] is True
        assert data["fullscreen"]["is_exclusive"] is True

    def test_duplicate_start(self, api):
        client, _ = api
        start(client)
        assert start(client).status_code == 409

    def test_blocked_by_gate(self, api):
        client, _ = api
        tampered = {**CLEAN_ENVIRONMENT, "global_names": ["alwaysActiveWindow"]}

        response = start(client, environment=tampered)

        assert response.status_code == 403
        report = response.json()["detail"]["security_report"]
        assert report["can_proceed"] is False
        assert report["overall_risk"] == "critical"

    def test_rerun_then_exhausted(self, api):
        client, _ = api
        tampered = {**CLEAN_ENVIRONMENT, "global_names": ["stayAlive"]}

        assert start(client, environment=tampered).status_code == 403
        assert start(client, environment=tampered).status_code == 403
        assert start(client).status_code == 409

    def test_tampered_browser_round_trip_blocks(self, api):
        client, _ = api
        stuck = {**CLEAN_ROUND_TRIP, "forced_hidden": False, "forced_visibility_state": "visible"}

        response = start(client, round_trip=stuck)

        assert response.status_code == 403
        report = response.json()["detail"]["security_report"]
        assert report["can_proceed"] is False
        assert report["overall_risk"] == "critical"
        assert report["real_time_test_passed"] is False

    def test_missing_round_trip_report_blocks(self, api):
        client, _ = api
        response = client.post("/api/proctor/start", json={
            "attempt_id": "attempt-1",
            "environment": CLEAN_ENVIRONMENT,
        })

        assert response.status_code == 403
        assert response.json()["detail"]["security_report"]["overall_risk"] == "critical"

    def test_submitted_attempt_cannot_restart(self, api):
        client, lms = api
        start(client)
        assert client.post("/api/proctor/submit", json={"session_id": "attempt-1"}).json()["accepted"] is True

        assert start(client).status_code == 409
        second = client.post("/api/proctor/submit", json={"session_id": "attempt-1"})

        assert second.json()["accepted"] is False
        assert len(lms.submissions) == 1

    def test_oldest_finalized_sessions_are_evicted(self, api, monkeypatch):
        from securequiz.proctor import api as proctor_api

        client, _ = api
        monkeypatch.setattr(proctor_api.settings, "FINALIZED_SESSION_LIMIT", 1)
        for attempt_id in ("attempt-1", "attempt-2"):
            start(client, attempt_id=attempt_id)
            client.post("/api/proctor/submit", json={"session_id": attempt_id})

        start(client, attempt_id="attempt-3")

        assert client.get("/api/proctor/status/attempt-1").status_code == 404
        assert client.get("/api/proctor/status/attempt-2").json()["is_submitted"] is True
        assert client.get("/api/proctor/status/attempt-3").json()["is_submitted"] is False


class TestSessionEndpoints:

    def test_answer_review_status(self, api):
        client, _ = api
        start(client)

        answer = client.post("/api/proctor/answer", json={
            "session_id": "attempt-1", "question_id": "q1", "selected_option": 1,
        })
        assert answer.status_code == 200
        assert answer.json()["answers"] == 1

        review = client.post("/api/proctor/review", json={"session_id": "attempt-1", "question_id": "q2"})
        assert review.json()["marked"] is True

        status = client.get("/api/proctor/status/attempt-1").json()
        assert status["answers"] == {"q1": 1}
        assert status["marked_for_review"] == ["q2"]
        assert status["is_submitted"] is False

    def test_unknown_question(self, api):
        client, _ = api
        start(client)

        response = client.post("/api/proctor/answer", json={
            "session_id": "attempt-1", "question_id": "nope", "selected_option": 0,
        })
        assert response.status_code == 400

    def test_event(self, api):
        client, _ = api
        start(client)

        response = client.post("/api/proctor/event", json={
            "session_id": "attempt-1", "name": "visibilitychange", "data": {"hidden": True},
        })
        assert response.status_code == 200
        assert response.json()["delivered"] >= 1

        bad = client.post("/api/proctor/event", json={"session_id": "attempt-1", "name": "mousemove"})
        assert bad.status_code == 400

    def test_fullscreen(self, api):
        client, _ = api
        start(client)

        response = client.post("/api/proctor/fullscreen", json={"session_id": "attempt-1"})
        assert response.json()["granted"] is True

    def test_unknown_session(self, api):
        client, _ = api
        assert client.get("/api/proctor/status/missing").status_code == 404
        assert client.post("/api/proctor/submit", json={"session_id": "missing"}).status_code == 404

    def test_submit_once(self, api):
        client, lms = api
        start(client)
        client.post("/api/proctor/answer", json={
            "session_id": "attempt-1", "question_id": "q1", "selected_option": 1,
        })

        first = client.post("/api/proctor/submit", json={"session_id": "attempt-1"})
        second = client.post("/api/proctor/submit", json={"session_id": "attempt-1"})

        assert first.json()["accepted"] is True
        assert first.json()["outcome"]["is_auto_submit"] is False
        assert second.json()["accepted"] is False
        assert len(lms.submissions) == 1

        blocked = client.post("/api/proctor/answer", json={
            "session_id": "attempt-1", "question_id": "q2", "selected_option": 0,
        })
        assert blocked.status_code == 423

    def test_failed_submit_is_reported(self, api):
        client, lms = api
        lms.fail_submit = True
        start(client)

        response = client.post("/api/proctor/submit", json={"session_id": "attempt-1"})

        assert response.status_code == 502
        assert response.json()["detail"]["retryable"] is True
        assert client.get("/api/proctor/status/attempt-1").json()["is_submitted"] is False
