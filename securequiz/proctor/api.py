"""
Proctoring API - FastAPI endpoints for secure quiz sessions

Endpoints:
- POST /api/proctor/start - Run the security gate, fetch the attempt and start monitoring
- POST /api/proctor/event - Report a platform event from the client shell
- POST /api/proctor/answer - Select an answer
- POST /api/proctor/review - Toggle the review mark of a question
- POST /api/proctor/fullscreen - User-initiated fullscreen request
- POST /api/proctor/submit - Manual submission
- GET /api/proctor/status/{session_id} - Get session status
- GET /api/proctor/health - Service health
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..config import settings
from ..services.lms_client import AttemptLoadError, LMSClient
from .exceptions import (
    GateBlockedError,
    GateRerunExhaustedError,
    InputBlockedError,
    SessionStateError,
    SubmissionFailedError,
)
from .gate import SecurityGate
from .platform import EVENT_NAMES, EnvironmentSnapshot, MirroredPlatform, PlatformEvent, RoundTripObservation
from .session import ProctorSession, attempt_from_details

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/proctor", tags=["Proctoring"])

# In-memory registries keyed by attempt id, oldest first
_sessions: "OrderedDict[str, ProctorSession]" = OrderedDict()
_gates: "OrderedDict[str, SecurityGate]" = OrderedDict()


def get_lms_client() -> LMSClient:
    return LMSClient()


# ============== Request/Response Models ==============

class PlatformState(BaseModel):
    hidden: bool = False
    focused: bool = True
    exclusive: bool = False


class StartSessionRequest(BaseModel):
    """Request to start a proctored attempt"""
    attempt_id: str = Field(..., description="ID of the quiz attempt")
    student_id: Optional[str] = Field(None, description="ID of the student")
    environment: EnvironmentSnapshot = Field(default_factory=EnvironmentSnapshot)
    state: PlatformState = Field(default_factory=PlatformState)
    grants_without_gesture: bool = Field(True, description="Fullscreen may be requested without a click")
    round_trip: Optional[RoundTripObservation] = Field(
        None, description="Round-trip test as run by the client shell in the browser"
    )


class StartSessionResponse(BaseModel):
    session_id: str
    status: str
    time_limit_seconds: int
    questions: int
    security_report: Dict[str, Any]
    fullscreen: Dict[str, Any]


class EventRequest(BaseModel):
    """A platform event observed by the client shell"""
    session_id: str
    name: str
    data: Dict[str, Any] = Field(default_factory=dict)
    trusted: bool = True


class AnswerRequest(BaseModel):
    session_id: str
    question_id: str
    selected_option: int


class ReviewRequest(BaseModel):
    session_id: str
    question_id: str


class SessionRequest(BaseModel):
    session_id: str


# ============== Helpers ==============

def _get_session(session_id: str) -> ProctorSession:
    session = _sessions.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _raise_http(error: Exception):
    if isinstance(error, GateBlockedError):
        raise HTTPException(status_code=403, detail={
            "message": str(error),
            "security_report": error.report.to_dict(),
        })
    if isinstance(error, GateRerunExhaustedError):
        raise HTTPException(status_code=409, detail=str(error))
    if isinstance(error, InputBlockedError):
        raise HTTPException(status_code=423, detail={"message": str(error), "reason": error.reason})
    if isinstance(error, SessionStateError):
        raise HTTPException(status_code=409, detail=str(error))
    if isinstance(error, SubmissionFailedError):
        raise HTTPException(status_code=502, detail={"message": str(error), "retryable": error.retryable})
    if isinstance(error, AttemptLoadError):
        raise HTTPException(status_code=502, detail={"message": str(error), "retryable": False})
    if isinstance(error, ValueError):
        raise HTTPException(status_code=400, detail=str(error))
    raise error


def _prune_registries():
    """Drop the oldest submitted sessions and unused gates beyond their limits"""
    finalized = [sid for sid, s in _sessions.items() if s.attempt.is_submitted]
    excess = len(finalized) - settings.FINALIZED_SESSION_LIMIT
    for session_id in finalized[:max(0, excess)]:
        del _sessions[session_id]
        logger.debug(f"Evicted finalized session {session_id}")
    while len(_gates) > settings.PENDING_GATE_LIMIT:
        _gates.popitem(last=False)


# ============== API Endpoints ==============

@router.post("/start", response_model=StartSessionResponse)
async def start_session(request: StartSessionRequest, client: LMSClient = Depends(get_lms_client)):
    """
    Start a proctored attempt.

    The security gate runs first (initial run plus one re-run per attempt);
    only a passing report leads to the attempt fetch and monitoring start.
    An attempt gets one session: a submitted attempt cannot be started again.
    """
    if request.attempt_id in _sessions:
        raise HTTPException(status_code=409, detail="Attempt already has a proctoring session")
    _prune_registries()

    platform = MirroredPlatform(
        environment=request.environment,
        hidden=request.state.hidden,
        focused=request.state.focused,
        exclusive=request.state.exclusive,
        grants_without_gesture=request.grants_without_gesture,
        round_trip=request.round_trip,
        expects_round_trip_report=True,
    )
    gate = _gates.setdefault(request.attempt_id, SecurityGate())

    try:
        report = gate.evaluate(platform)
        if not report.can_proceed:
            raise GateBlockedError(report)
        details = await client.fetch_attempt(request.attempt_id)
        attempt = attempt_from_details(request.attempt_id, details, request.student_id)
        session = ProctorSession(attempt, platform, client)
        session.start(report)
    except (GateBlockedError, GateRerunExhaustedError, AttemptLoadError, SessionStateError) as e:
        logger.warning(f"Failed to start session for attempt {request.attempt_id}: {e}")
        _raise_http(e)

    _sessions[session.session_id] = session
    _gates.pop(request.attempt_id, None)
    logger.info(f"Started proctoring session: {session.session_id}")

    return StartSessionResponse(
        session_id=session.session_id,
        status="active",
        time_limit_seconds=attempt.time_limit_seconds,
        questions=len(attempt.question_ids),
        security_report=report.to_dict(),
        fullscreen=session.fullscreen.to_dict(),
    )


@router.post("/event")
async def report_event(request: EventRequest):
    """Feed a visibility/focus/fullscreen/key/context-menu/frame event"""
    session = _get_session(request.session_id)
    if request.name not in EVENT_NAMES:
        raise HTTPException(status_code=400, detail=f"Unknown event: {request.name}")

    delivered = session.handle_event(PlatformEvent(request.name, request.data, request.trusted))
    return {"delivered": delivered, "status": session.status()}


@router.post("/answer")
async def select_answer(request: AnswerRequest):
    session = _get_session(request.session_id)
    try:
        session.answer(request.question_id, request.selected_option)
    except (InputBlockedError, SessionStateError, ValueError) as e:
        _raise_http(e)
    return {"recorded": True, "answers": len(session.attempt.answers)}


@router.post("/review")
async def toggle_review(request: ReviewRequest):
    session = _get_session(request.session_id)
    try:
        marked = session.toggle_review(request.question_id)
    except (InputBlockedError, SessionStateError, ValueError) as e:
        _raise_http(e)
    return {"question_id": request.question_id, "marked": marked}


@router.post("/fullscreen")
async def request_fullscreen(request: SessionRequest):
    """Explicit, user-initiated fullscreen request"""
    session = _get_session(request.session_id)
    try:
        granted = session.request_fullscreen(user_gesture=True)
    except SessionStateError as e:
        _raise_http(e)
    return {"granted": granted, "fullscreen": session.fullscreen.to_dict()}


@router.post("/submit")
async def submit(request: SessionRequest):
    session = _get_session(request.session_id)
    try:
        outcome = await session.submit()
    except (SubmissionFailedError, SessionStateError) as e:
        _raise_http(e)

    if outcome is None:
        # Duplicate, in-flight or locked: report the current state instead
        return {"accepted": False, "status": session.status()}
    return {"accepted": True, "outcome": outcome.to_dict()}


@router.get("/status/{session_id}")
async def get_status(session_id: str):
    return _get_session(session_id).status()


@router.get("/health")
async def health():
    active = sum(1 for s in _sessions.values() if not s.attempt.is_submitted)
    return {"status": "healthy", "active_sessions": active, "sessions": len(_sessions)}
