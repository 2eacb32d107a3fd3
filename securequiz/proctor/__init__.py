"""
SecureQuiz Proctoring Module

Enforces exam integrity during a timed quiz attempt:
- Pre-session security gate (extension artifacts, environment, live round trip)
- Independent signal sources for tab switches, fullscreen exits and shortcuts
- Corroboration of candidate signals into confirmed violations
- Penalty escalation ending in a single forced submission
"""

from .api import router

__all__ = ["router"]
