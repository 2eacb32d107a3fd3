"""
Proctoring Logger - Logs proctoring lifecycle events
"""

import logging
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)


def log_proctor_event(
    session_id: str,
    event_type: str,
    details: Optional[Dict[str, Any]] = None,
    level: str = "info"
):
    """
    Log a proctoring event.

    Args:
        session_id: Attempt / proctoring session ID
        event_type: Type of event (session_start, violation, transition, etc.)
        details: Optional event details
        level: Log level (debug, info, warning, error)
    """
    message = f"[PROCTOR] session={session_id} event={event_type}"

    if details:
        detail_str = " ".join(f"{k}={v}" for k, v in details.items())
        message += f" {detail_str}"

    if level == "debug":
        logger.debug(message)
    elif level == "warning":
        logger.warning(message)
    elif level == "error":
        logger.error(message)
    else:
        logger.info(message)


def log_session_start(session_id: str, time_limit_seconds: int, questions: int):
    """Log session start event"""
    log_proctor_event(
        session_id=session_id,
        event_type="session_start",
        details={
            "time_limit": time_limit_seconds,
            "questions": questions
        }
    )


def log_session_end(session_id: str, is_auto_submit: bool, violations: int, pending: bool = False):
    """Log session end event"""
    log_proctor_event(
        session_id=session_id,
        event_type="session_end",
        details={
            "auto": is_auto_submit,
            "violations": violations,
            "pending_reconciliation": pending
        }
    )


def log_violation_confirmed(session_id: str, category: str, sequence: int, methods: Iterable[str]):
    """Log a corroborated violation"""
    log_proctor_event(
        session_id=session_id,
        event_type="violation_confirmed",
        details={
            "category": category,
            "seq": sequence,
            "methods": ",".join(methods)
        },
        level="warning"
    )


def log_candidate_dropped(session_id: str, category: str, method: str, reason: str):
    """Log a candidate signal that did not reach the ledger"""
    log_proctor_event(
        session_id=session_id,
        event_type="candidate_dropped",
        details={
            "category": category,
            "method": method,
            "reason": reason
        },
        level="debug"
    )


def log_state_transition(session_id: str, category: str, old: str, new: str, count: int):
    """Log a penalty state transition"""
    log_proctor_event(
        session_id=session_id,
        event_type="transition",
        details={
            "category": category,
            "from": old,
            "to": new,
            "count": count
        }
    )


def log_critical_event(session_id: str, event: str, details: Optional[Dict[str, Any]] = None):
    """Log a critical proctoring event"""
    log_proctor_event(
        session_id=session_id,
        event_type=f"critical_{event}",
        details=details,
        level="warning"
    )
