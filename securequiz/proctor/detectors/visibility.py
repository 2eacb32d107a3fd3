"""
Visibility Source - page-visibility transitions
"""

import logging

from ..models import Confidence, ViolationType
from ..platform import VISIBILITY_CHANGE
from .base import SignalSource

logger = logging.getLogger(__name__)


class VisibilitySource(SignalSource):
    """Emits a TabSwitch candidate when the page becomes hidden"""

    name = "visibility-api"

    def on_attach(self):
        self.listen(VISIBILITY_CHANGE, self._on_change)

    def _on_change(self, event):
        if self.platform.is_hidden():
            self.emit(
                ViolationType.TAB_SWITCH,
                "visibility-api",
                "Page became hidden",
                Confidence.HIGH,
            )
        else:
            self.present(ViolationType.TAB_SWITCH)
