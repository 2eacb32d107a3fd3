"""
Platform - the observed assessment surface

A Platform answers state queries (visibility, focus, exclusive display mode),
delivers events to listeners and describes its environment for the security
gate. MirroredPlatform is the in-process implementation whose state is fed by
the client shell through apply().
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from .exceptions import PlatformError

logger = logging.getLogger(__name__)


VISIBILITY_CHANGE = "visibilitychange"
FOCUS = "focus"
BLUR = "blur"
FULLSCREEN_CHANGE = "fullscreenchange"
KEYDOWN = "keydown"
KEYUP = "keyup"
CONTEXT_MENU = "contextmenu"
FRAME = "frame"

EVENT_NAMES = (
    VISIBILITY_CHANGE, FOCUS, BLUR, FULLSCREEN_CHANGE,
    KEYDOWN, KEYUP, CONTEXT_MENU, FRAME,
)


@dataclass(frozen=True)
class PlatformEvent:
    """A raw event delivered by the platform"""
    name: str
    data: Dict[str, Any] = field(default_factory=dict)
    trusted: bool = True


@dataclass(frozen=True)
class EnvironmentSnapshot:
    """
    Static description of the client environment.

    Collected once by the client shell for the security gate and refreshed
    for periodic artifact re-scans.
    """
    global_names: FrozenSet[str] = frozenset()
    dom_markers: Tuple[str, ...] = ()
    script_origins: Tuple[str, ...] = ()
    resource_origins: Tuple[str, ...] = ()
    performance_entries: Tuple[str, ...] = ()
    patched_apis: FrozenSet[str] = frozenset()
    bundle_origins: Tuple[str, ...] = ()
    user_agent: str = ""
    webdriver: bool = False
    screen_width: int = 1920
    screen_height: int = 1080
    outer_width: int = 1920
    outer_height: int = 1080
    inner_width: int = 1920
    inner_height: int = 1080
    timezone: Optional[str] = None
    storage_quota: Optional[int] = None
    document_title: str = ""
    location: str = ""


@dataclass(frozen=True)
class RoundTripObservation:
    """
    Round-trip test as run by the client shell inside the browser.

    listener_counts maps visibilitychange/blur/focus to the number of test
    callbacks that fired. forced_hidden and forced_visibility_state are read
    back after forcing the hidden state. focus_count counts focus callbacks
    over three blur/focus pairs.
    """
    listener_counts: Dict[str, int] = field(default_factory=dict)
    forced_hidden: bool = False
    forced_visibility_state: str = "visible"
    focus_count: int = 0
    error: Optional[str] = None


Listener = Callable[[PlatformEvent], None]


class Platform(ABC):
    """Abstract observed surface"""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        # Set when the client shell must run its own round-trip test
        self.expects_round_trip_report = False

    def add_listener(self, name: str, listener: Listener) -> None:
        self._listeners[name].append(listener)

    def remove_listener(self, name: str, listener: Listener) -> None:
        try:
            self._listeners[name].remove(listener)
        except ValueError:
            pass

    def dispatch(self, event: PlatformEvent) -> int:
        """Deliver event to its listeners; returns how many were called"""
        listeners = list(self._listeners.get(event.name, ()))
        for listener in listeners:
            listener(event)
        return len(listeners)

    def listener_count(self, name: str) -> int:
        return len(self._listeners.get(name, ()))

    @abstractmethod
    def is_hidden(self) -> bool:
        ...

    @abstractmethod
    def visibility_state(self) -> str:
        ...

    @abstractmethod
    def has_focus(self) -> bool:
        ...

    @abstractmethod
    def is_exclusive(self) -> bool:
        ...

    @abstractmethod
    def request_exclusive(self, user_gesture: bool = False) -> bool:
        """Ask for exclusive display mode; False when refused"""

    @abstractmethod
    def force_hidden(self, hidden: bool) -> None:
        """Override the reported visibility (round-trip test only)"""

    @abstractmethod
    def restore_visibility(self) -> None:
        ...

    @abstractmethod
    def snapshot(self) -> EnvironmentSnapshot:
        ...

    def reported_round_trip(self) -> Optional[RoundTripObservation]:
        return None


class MirroredPlatform(Platform):
    """
    Platform whose state mirrors what the client shell reports.

    apply() updates the mirrored state from an incoming event and then
    notifies listeners, so detectors see state and events consistently.
    In-process listeners cannot see into the browser, so a platform serving
    a real client carries the round-trip test the shell ran there.
    """

    def __init__(
        self,
        environment: Optional[EnvironmentSnapshot] = None,
        hidden: bool = False,
        focused: bool = True,
        exclusive: bool = False,
        grants_without_gesture: bool = True,
        exclusive_supported: bool = True,
        round_trip: Optional[RoundTripObservation] = None,
        expects_round_trip_report: bool = False
    ):
        super().__init__()
        self.environment = environment or EnvironmentSnapshot()
        self._hidden = hidden
        self._focused = focused
        self._exclusive = exclusive
        self._hidden_override: Optional[bool] = None
        self.grants_without_gesture = grants_without_gesture
        self.exclusive_supported = exclusive_supported
        self.round_trip = round_trip
        self.expects_round_trip_report = expects_round_trip_report

    def is_hidden(self) -> bool:
        if self._hidden_override is not None:
            return self._hidden_override
        return self._hidden

    def visibility_state(self) -> str:
        return "hidden" if self.is_hidden() else "visible"

    def has_focus(self) -> bool:
        return self._focused

    def is_exclusive(self) -> bool:
        return self._exclusive

    def request_exclusive(self, user_gesture: bool = False) -> bool:
        if not self.exclusive_supported:
            raise PlatformError("Exclusive display mode is not supported")
        if not user_gesture and not self.grants_without_gesture:
            return False
        if not self._exclusive:
            self.apply(PlatformEvent(FULLSCREEN_CHANGE, {"exclusive": True}))
        return True

    def force_hidden(self, hidden: bool) -> None:
        self._hidden_override = hidden

    def restore_visibility(self) -> None:
        self._hidden_override = None

    def snapshot(self) -> EnvironmentSnapshot:
        return self.environment

    def reported_round_trip(self) -> Optional[RoundTripObservation]:
        return self.round_trip

    def apply(self, event: PlatformEvent) -> int:
        """Record the state carried by event, then dispatch it"""
        data = event.data
        if event.name == VISIBILITY_CHANGE and "hidden" in data:
            self._hidden = bool(data["hidden"])
        elif event.name == FOCUS:
            self._focused = True
        elif event.name == BLUR:
            self._focused = False
        elif event.name == FULLSCREEN_CHANGE and "exclusive" in data:
            self._exclusive = bool(data["exclusive"])

        # Shells may attach a full state report to any event
        state = data.get("state") or {}
        if "hidden" in state:
            self._hidden = bool(state["hidden"])
        if "focused" in state:
            self._focused = bool(state["focused"])
        if "exclusive" in state:
            self._exclusive = bool(state["exclusive"])

        return self.dispatch(event)
