"""
Proctoring exceptions
"""

from typing import Optional


class ProctorError(Exception):
    """Base class for proctoring errors"""


class GateBlockedError(ProctorError):
    """Raised when a session start is refused by the security gate"""

    def __init__(self, report):
        self.report = report
        super().__init__(report.blocking_reason or "Security gate blocked the session")


class GateRerunExhaustedError(ProctorError):
    """Raised when the security gate has already used its re-run"""


class InputBlockedError(ProctorError):
    """Raised when an answer-mutating operation arrives while input is blocked"""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Input is blocked: {reason}")


class SessionStateError(ProctorError):
    """Raised when an operation does not fit the session lifecycle phase"""


class LedgerClosedError(ProctorError):
    """Raised when appending to a frozen violation ledger"""


class PlatformError(ProctorError):
    """Raised by a platform when a request is refused or a call fails"""


class SubmissionFailedError(ProctorError):
    """Raised when a manual submission could not be delivered"""

    def __init__(self, message: str, retryable: bool = True, status_code: Optional[int] = None):
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(message)
