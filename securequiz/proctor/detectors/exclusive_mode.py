"""
Exclusive Mode Source - fullscreen change notifications
"""

import logging

from ..models import Confidence, ViolationType
from ..platform import FULLSCREEN_CHANGE
from .base import SignalSource

logger = logging.getLogger(__name__)


class ExclusiveModeSource(SignalSource):
    """
    Emits FullscreenExit when exclusive mode is left and FullscreenAvoidance
    when it is still not restored FULLSCREEN_AVOIDANCE_DELAY seconds later.
    """

    name = "fullscreen-change"
    AVOIDANCE = "fullscreen-avoidance"

    def on_attach(self):
        self._was_exclusive = self.platform.is_exclusive()
        self.listen(FULLSCREEN_CHANGE, self._on_change)

    def _on_change(self, event):
        exclusive = self.platform.is_exclusive()
        was_exclusive, self._was_exclusive = self._was_exclusive, exclusive

        if exclusive:
            self.timers.cancel(self.AVOIDANCE)
            self.present(ViolationType.FULLSCREEN_EXIT)
            return

        if was_exclusive:
            self.emit(
                ViolationType.FULLSCREEN_EXIT,
                "fullscreen-change",
                "Exited fullscreen mode",
                Confidence.HIGH,
            )
            self.start_timer(self.AVOIDANCE, self.settings.FULLSCREEN_AVOIDANCE_DELAY, self._check_avoidance)

    def _check_avoidance(self):
        if not self.attached:
            return
        if not self.platform.is_exclusive():
            self.emit(
                ViolationType.FULLSCREEN_AVOIDANCE,
                "fullscreen-avoidance",
                f"Fullscreen not restored after {self.settings.FULLSCREEN_AVOIDANCE_DELAY:.0f}s",
                Confidence.HIGH,
            )
