"""
Frame Gap Source - render-loop gap measurement

Browsers throttle the render loop of background pages. Small gaps are
normal jitter; only very large gaps become a (low-confidence) candidate.
"""

import logging
from typing import Optional

from ..models import Confidence, ViolationType
from ..platform import FRAME
from .base import SignalSource

logger = logging.getLogger(__name__)


class FrameGapSource(SignalSource):
    name = "animation-frame"

    def on_attach(self):
        self._last_frame: Optional[float] = None
        self.listen(FRAME, self._on_frame)

    def _on_frame(self, event):
        timestamp = event.data.get("timestamp")
        if timestamp is None:
            timestamp = self.timers.now()
        timestamp = float(timestamp)

        last, self._last_frame = self._last_frame, timestamp
        if last is None:
            return

        gap = timestamp - last
        if gap > self.settings.FRAME_GAP_LOG_THRESHOLD:
            logger.info(f"Render loop gap of {gap:.1f}s")
        if gap > self.settings.FRAME_GAP_SIGNAL_THRESHOLD:
            self.emit(
                ViolationType.TAB_SWITCH,
                "animation-frame",
                f"Render loop paused for {gap:.1f}s",
                Confidence.LOW,
            )
