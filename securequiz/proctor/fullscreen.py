"""
Fullscreen Controller - best-effort exclusive display mode

Attempts exclusive mode at session start and after every confirmed
FullscreenExit. Once an unattended (non-gesture) attempt is refused,
automatic attempts stop and the host must offer an explicit control.
"""

import logging
from typing import Any, Dict

from ..config import settings as default_settings
from .exceptions import PlatformError
from .metrics.aggregator import GracePeriods
from .models import Violation, ViolationType
from .platform import Platform
from .timers import TimerRegistry

logger = logging.getLogger(__name__)


class FullscreenController:
    REENTRY = "fullscreen-reentry"

    def __init__(self, platform: Platform, timers: TimerRegistry, grace: GracePeriods, settings=None):
        self.platform = platform
        self.timers = timers
        self.grace = grace
        self.settings = settings or default_settings

        # Session-scoped, reset with every new attempt
        self.auto_attempts_allowed = True
        self.has_succeeded = False
        self.attempts = 0

    @property
    def is_exclusive(self) -> bool:
        return self.platform.is_exclusive()

    @property
    def needs_user_action(self) -> bool:
        return not self.is_exclusive and not self.auto_attempts_allowed

    def request(self, user_gesture: bool = False) -> bool:
        """
        Try to enter exclusive mode.

        Args:
            user_gesture: True when triggered by an explicit user action

        Returns:
            True if the platform is now exclusive
        """
        if self.is_exclusive:
            return True
        if not user_gesture and not self.auto_attempts_allowed:
            logger.debug("Automatic fullscreen suppressed; waiting for user action")
            return False

        self.attempts += 1
        self.grace.note_fullscreen_attempt()
        try:
            granted = self.platform.request_exclusive(user_gesture)
        except PlatformError as e:
            logger.warning(f"Fullscreen request failed: {e}")
            granted = False

        if granted:
            self.has_succeeded = True
        elif not user_gesture:
            self.auto_attempts_allowed = False
            logger.info("Unattended fullscreen refused; further automatic attempts disabled")
        return granted

    def schedule_reentry(self):
        if not self.auto_attempts_allowed:
            return
        self.timers.start(self.REENTRY, self.settings.FULLSCREEN_REENTRY_DELAY, self._reenter)

    def _reenter(self):
        if not self.is_exclusive:
            self.request(user_gesture=False)

    def on_violation(self, violation: Violation):
        if violation.type == ViolationType.FULLSCREEN_EXIT:
            self.schedule_reentry()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_exclusive": self.is_exclusive,
            "auto_attempts_allowed": self.auto_attempts_allowed,
            "needs_user_action": self.needs_user_action,
            "has_succeeded": self.has_succeeded,
        }
