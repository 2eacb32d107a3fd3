"""Signal sources for proctoring"""

from .base import CandidateSink, SignalSource
from .visibility import VisibilitySource
from .focus import FocusSource
from .polling import StatePollingSource
from .keyboard import KeyComboSource
from .context_menu import ContextMenuSource
from .exclusive_mode import ExclusiveModeSource
from .frame_gap import FrameGapSource
from .artifact_rescan import ArtifactRescanSource

__all__ = [
    "CandidateSink",
    "SignalSource",
    "VisibilitySource",
    "FocusSource",
    "StatePollingSource",
    "KeyComboSource",
    "ContextMenuSource",
    "ExclusiveModeSource",
    "FrameGapSource",
    "ArtifactRescanSource"
]


def default_sources(settings=None):
    """One instance of every channel"""
    return [
        VisibilitySource(settings),
        FocusSource(settings),
        StatePollingSource(settings),
        KeyComboSource(settings),
        ContextMenuSource(settings),
        ExclusiveModeSource(settings),
        FrameGapSource(settings),
        ArtifactRescanSource(settings),
    ]
