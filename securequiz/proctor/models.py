"""
Proctoring data model

Candidate signals, confirmed violations, the security report, the
submission payload and the per-attempt session state.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple


class Confidence(str, Enum):
    """Confidence tier of a candidate signal"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very-high"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]


_CONFIDENCE_RANK = {
    Confidence.LOW: 0,
    Confidence.MEDIUM: 1,
    Confidence.HIGH: 2,
    Confidence.VERY_HIGH: 3,
}


class RiskLevel(str, Enum):
    """Risk tier used by the security gate"""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    @classmethod
    def highest(cls, *levels: "RiskLevel") -> "RiskLevel":
        return max(levels, key=lambda level: level.rank, default=cls.NONE)


_RISK_RANK = {
    RiskLevel.NONE: 0,
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.CRITICAL: 4,
}


class ViolationType(str, Enum):
    """Categories of confirmed violations"""
    TAB_SWITCH = "TabSwitch"
    FULLSCREEN_EXIT = "FullscreenExit"
    FULLSCREEN_AVOIDANCE = "FullscreenAvoidance"
    CONTEXT_MENU = "ContextMenu"
    KEYBOARD_SHORTCUT = "KeyboardShortcut"
    EXTENSION_DETECTED = "ExtensionDetected"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CandidateSignal:
    """Unconfirmed single-source observation"""
    category: ViolationType
    method: str
    evidence: str
    confidence: Confidence
    timestamp: float = 0.0  # scheduler time, stamped by the aggregator


@dataclass(frozen=True)
class Violation:
    """
    A confirmed violation.

    Created only by the corroboration aggregator and appended once to the
    ledger. sequence_number is strictly increasing across the session.
    """
    type: ViolationType
    sequence_number: int
    timestamp: float
    corroborating_methods: Tuple[str, ...]
    method: str
    evidence: str
    confidence: Confidence
    recorded_at: datetime = field(default_factory=utcnow)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "sequenceNumber": self.sequence_number,
            "timestamp": self.recorded_at.isoformat(),
            "method": self.method,
            "evidence": self.evidence,
            "confidence": self.confidence.value,
            "corroboratingMethods": list(self.corroborating_methods),
        }


@dataclass(frozen=True)
class SecurityReport:
    """Immutable result of the pre-session security gate"""
    timestamp: datetime
    extension_risk: RiskLevel
    environment_issues: Tuple[str, ...]
    real_time_test_passed: bool
    overall_risk: RiskLevel
    can_proceed: bool
    blocking_reason: Optional[str] = None
    recommendations: Tuple[str, ...] = ()
    critical_evidence: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "extension_risk": self.extension_risk.value,
            "environment_issues": list(self.environment_issues),
            "real_time_test_passed": self.real_time_test_passed,
            "overall_risk": self.overall_risk.value,
            "can_proceed": self.can_proceed,
            "blocking_reason": self.blocking_reason,
            "recommendations": list(self.recommendations),
            "critical_evidence": list(self.critical_evidence),
        }


@dataclass(frozen=True)
class SubmissionPayload:
    """The single outbound submission of an attempt"""
    answers: Tuple[Tuple[str, int], ...]
    violation_ledger: Tuple[Violation, ...]
    tab_switch_count: int
    is_auto_submit: bool
    time_spent_seconds: int

    def to_wire(self) -> Dict[str, Any]:
        return {
            "answers": [
                {"questionId": question_id, "selectedOption": option}
                for question_id, option in self.answers
            ],
            "securityViolations": [v.to_payload() for v in self.violation_ledger],
            "tabSwitchCount": self.tab_switch_count,
            "isAutoSubmit": self.is_auto_submit,
            "timeSpent": self.time_spent_seconds,
        }


@dataclass
class QuizAttemptSession:
    """
    Mutable state of one quiz attempt.

    Answers and the review set are changed by user input; the terminal flags
    (is_locked, is_submitting, is_submitted) only by the penalty state machine
    and the submission coordinator.
    """
    attempt_id: str
    time_limit_seconds: int
    student_id: Optional[str] = None
    quiz_id: Optional[str] = None
    course_id: Optional[str] = None
    passing_score: Optional[float] = None
    question_ids: List[str] = field(default_factory=list)
    answers: Dict[str, int] = field(default_factory=dict)
    marked_for_review: Set[str] = field(default_factory=set)
    is_locked: bool = False
    is_submitting: bool = False
    is_submitted: bool = False
    pending_reconciliation: bool = False

    @property
    def is_finalizing(self) -> bool:
        return self.is_submitting or self.is_submitted
