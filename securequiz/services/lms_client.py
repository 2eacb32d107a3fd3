"""
LMS Client - the external quiz endpoints the proctoring core consumes

- GET  /api/student/quiz/attempt/{attemptId}         attempt fetch
- POST /api/student/quiz-attempt/{attemptId}/submit  submission
- POST /api/quiz-unlock/check-and-lock               lock after a failed result
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..config import settings as default_settings

logger = logging.getLogger(__name__)


class LMSClientError(Exception):
    """Transport or HTTP failure talking to the LMS"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code >= 500 or self.status_code == 429


class AttemptLoadError(LMSClientError):
    """The attempt could not be loaded; shown to the user, not retried"""

    @property
    def retryable(self) -> bool:
        return False


class Question(BaseModel):
    question_id: str = Field(alias="questionId")
    text: str = ""
    options: List[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def _legacy_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and "questionId" not in data and "question_id" not in data and "_id" in data:
            data = {**data, "questionId": str(data["_id"])}
        return data

    @field_validator("options", mode="before")
    @classmethod
    def _split_options(cls, value: Any) -> List[str]:
        # Older quizzes store options as one space-separated string
        if isinstance(value, str):
            return [opt for opt in value.split(" ") if opt.strip()]
        if value is None:
            return []
        return value


class AttemptDetails(BaseModel):
    """Attempt-fetch response"""
    time_limit_seconds: int = Field(alias="timeLimitSeconds")
    questions: List[Question] = Field(default_factory=list)
    unit_title: Optional[str] = Field(default=None, alias="unitTitle")
    course_title: Optional[str] = Field(default=None, alias="courseTitle")
    course_id: Optional[str] = Field(default=None, alias="courseId")
    quiz_id: Optional[str] = Field(default=None, alias="quizId")
    passing_score: Optional[float] = Field(default=None, alias="passingScore")

    model_config = {"populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def _legacy_time_limit(cls, data: Any) -> Any:
        # timeLimit is expressed in minutes
        if isinstance(data, dict) and "timeLimitSeconds" not in data and "time_limit_seconds" not in data:
            data = {**data, "timeLimitSeconds": int(float(data.get("timeLimit") or 0) * 60)}
        return data


class SubmissionResult(BaseModel):
    """Submit response"""
    score: float = 0
    max_score: float = Field(default=0, alias="maxScore")
    percentage: float = 0
    passed: bool = False
    violations_detected: Optional[int] = Field(default=None, alias="violationsDetected")
    security_penalty: Optional[float] = Field(default=None, alias="securityPenalty")

    model_config = {"populate_by_name": True}

    @classmethod
    def local_fallback(cls, question_count: int) -> "SubmissionResult":
        """Zero result used when an auto-submit could not be delivered"""
        return cls(score=0, max_score=question_count, percentage=0, passed=False)


class LockDecision(BaseModel):
    success: bool = False
    locked: bool = False
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def unlock_authorization_level(self) -> Optional[str]:
        return self.data.get("unlockAuthorizationLevel")


class LMSClient:
    """
    Async client for the LMS quiz endpoints.

    A transport can be injected (httpx.MockTransport in tests).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings=None
    ):
        self.settings = settings or default_settings
        self.base_url = (base_url or self.settings.LMS_BASE_URL).rstrip("/")
        self.token = token if token is not None else self.settings.LMS_API_TOKEN
        self.timeout = timeout or self.settings.LMS_TIMEOUT
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, json=json, headers=self._headers())
        except httpx.TimeoutException as e:
            logger.warning(f"LMS request timed out: {method} {path}")
            raise LMSClientError(f"Timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            logger.warning(f"LMS request failed: {method} {path}: {e}")
            raise LMSClientError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            logger.warning(f"LMS returned {response.status_code} for {method} {path}")
            raise LMSClientError(
                f"LMS returned {response.status_code} for {method} {path}",
                status_code=response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise LMSClientError(f"Invalid JSON from {path}", status_code=response.status_code) from e

    async def fetch_attempt(self, attempt_id: str) -> AttemptDetails:
        """Load the attempt; any failure is a non-retryable AttemptLoadError"""
        try:
            data = await self._request("GET", f"/api/student/quiz/attempt/{attempt_id}")
            return AttemptDetails.model_validate(data)
        except LMSClientError as e:
            raise AttemptLoadError(f"Could not load attempt {attempt_id}: {e}", status_code=e.status_code) from e
        except ValidationError as e:
            raise AttemptLoadError(f"Malformed attempt {attempt_id}: {e.error_count()} errors") from e

    async def submit_attempt(self, attempt_id: str, payload: Dict[str, Any]) -> SubmissionResult:
        data = await self._request("POST", f"/api/student/quiz-attempt/{attempt_id}/submit", json=payload)
        try:
            return SubmissionResult.model_validate(data)
        except ValidationError as e:
            raise LMSClientError(f"Malformed submission result: {e.error_count()} errors") from e

    async def check_and_lock(
        self,
        student_id: str,
        quiz_id: str,
        course_id: Optional[str],
        score: float,
        passing_score: float
    ) -> LockDecision:
        data = await self._request("POST", "/api/quiz-unlock/check-and-lock", json={
            "studentId": student_id,
            "quizId": quiz_id,
            "courseId": course_id,
            "score": score,
            "passingScore": passing_score,
        })
        try:
            return LockDecision.model_validate(data)
        except ValidationError as e:
            raise LMSClientError(f"Malformed lock decision: {e.error_count()} errors") from e
