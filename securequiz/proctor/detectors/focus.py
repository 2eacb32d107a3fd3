"""
Focus Source - window focus loss and gain
"""

import logging

from ..models import Confidence, ViolationType
from ..platform import BLUR, FOCUS
from .base import SignalSource

logger = logging.getLogger(__name__)


class FocusSource(SignalSource):
    """
    Emits a TabSwitch candidate on a trusted blur while in exclusive mode.

    Outside exclusive mode a blur alone is too noisy (devtools, OS popups);
    the state poller still catches a sustained loss of focus.
    """

    name = "window-blur"

    def on_attach(self):
        self.listen(BLUR, self._on_blur)
        self.listen(FOCUS, self._on_focus)

    def _on_blur(self, event):
        if not event.trusted:
            return
        if self.platform.is_exclusive():
            self.emit(
                ViolationType.TAB_SWITCH,
                "window-blur",
                "Window lost focus while in fullscreen",
                Confidence.HIGH,
            )

    def _on_focus(self, event):
        if event.trusted:
            self.present(ViolationType.TAB_SWITCH)
