"""External services"""

from .lms_client import (
    AttemptDetails,
    AttemptLoadError,
    LMSClient,
    LMSClientError,
    LockDecision,
    SubmissionResult,
)

__all__ = [
    "AttemptDetails",
    "AttemptLoadError",
    "LMSClient",
    "LMSClientError",
    "LockDecision",
    "SubmissionResult"
]
