"""
State Polling Source - periodic visibility/focus polling

Defeats tooling that blocks events but cannot fully fake state.
"""

import logging

from ..models import Confidence, ViolationType
from .base import SignalSource

logger = logging.getLogger(__name__)


class StatePollingSource(SignalSource):
    """Polls visibility and focus every STATE_POLL_INTERVAL seconds"""

    name = "state-poll"
    TIMER = "poll-state"

    def on_attach(self):
        self._was_hidden = self.platform.is_hidden()
        self._had_focus = self.platform.has_focus()
        self.every(self.TIMER, self.settings.STATE_POLL_INTERVAL, self.poll)

    def poll(self):
        if not self.attached:
            return
        hidden = self.platform.is_hidden()
        focused = self.platform.has_focus()

        if hidden and not self._was_hidden:
            self.emit(
                ViolationType.TAB_SWITCH,
                "document-hidden",
                "Polling detected the document became hidden",
                Confidence.HIGH,
            )
        if not focused and self._had_focus:
            self.emit(
                ViolationType.TAB_SWITCH,
                "document-focus",
                "Polling detected the document lost focus",
                Confidence.HIGH,
            )
        if not hidden and focused and (self._was_hidden or not self._had_focus):
            self.present(ViolationType.TAB_SWITCH)

        self._was_hidden = hidden
        self._had_focus = focused
