"""
Context Menu Source - intercepted context-menu requests
"""

from ..models import Confidence, ViolationType
from ..platform import CONTEXT_MENU
from .base import SignalSource


class ContextMenuSource(SignalSource):
    name = "context-menu"

    def on_attach(self):
        self.listen(CONTEXT_MENU, self._on_context_menu)

    def _on_context_menu(self, event):
        if event.trusted:
            self.emit(
                ViolationType.CONTEXT_MENU,
                "context-menu",
                "Right-click context menu requested",
                Confidence.VERY_HIGH,
            )
