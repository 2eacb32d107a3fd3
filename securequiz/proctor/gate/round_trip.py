"""
Round-Trip Test - checks that the platform reports what it was just told

Synthetic visibility/focus/blur events are dispatched and the platform is
forced into the hidden state. A platform mirroring a browser also carries
the same test as run by the client shell, which gets the same checks.
Silent listeners, extra focus callbacks or a forced state that does not
read back mean monitoring itself is compromised.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List

from ..exceptions import PlatformError
from ..platform import BLUR, FOCUS, VISIBILITY_CHANGE, Platform, PlatformEvent, RoundTripObservation

logger = logging.getLogger(__name__)


FOCUS_PAIRS = 3


@dataclass
class RoundTripResult:
    listeners_fired: Dict[str, bool] = field(default_factory=dict)
    hidden_reflected: bool = False
    focus_count: int = 0
    evidence: List[str] = field(default_factory=list)
    details: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.evidence


class RoundTripTester:
    """Live self-test of the platform's event and state reporting"""

    def run(self, platform: Platform) -> RoundTripResult:
        result = RoundTripResult()
        try:
            self._check_listeners(platform, result)
            self._check_forced_hidden(platform, result)
            self._check_focus_inflation(platform, result)
        except PlatformError as e:
            result.evidence.append(f"Platform refused the round-trip test: {e}")

        observation = platform.reported_round_trip()
        if observation is not None:
            self._check_reported(observation, result)
        elif platform.expects_round_trip_report:
            result.evidence.append("Client did not report a round-trip test")

        if result.passed:
            logger.info("Round-trip test passed")
        else:
            logger.warning(f"Round-trip test failed: {'; '.join(result.evidence)}")
        return result

    def _check_reported(self, observation: RoundTripObservation, result: RoundTripResult):
        """Apply the same checks to the test the client shell ran in the browser"""
        if observation.error:
            result.evidence.append(f"Browser refused the round-trip test: {observation.error}")

        for name in (VISIBILITY_CHANGE, BLUR, FOCUS):
            count = observation.listener_counts.get(name, 0)
            result.details.append(f"Client {name} listener fired: {count}")
            if count <= 0:
                result.listeners_fired[name] = False
                result.evidence.append(f"{name} events are being blocked in the browser")

        reflected = observation.forced_hidden and observation.forced_visibility_state == "hidden"
        result.hidden_reflected = result.hidden_reflected and reflected
        result.details.append(
            f"Client forced hidden read back: hidden={observation.forced_hidden} "
            f"state={observation.forced_visibility_state}"
        )
        if not reflected:
            result.evidence.append("Browser visibility state did not reflect a forced hidden state")

        result.focus_count = max(result.focus_count, observation.focus_count)
        result.details.append(f"Client focus event count: {observation.focus_count}")
        if observation.focus_count > FOCUS_PAIRS:
            result.evidence.append(
                f"Abnormal browser focus event count: {observation.focus_count} (expected: {FOCUS_PAIRS} or less)"
            )

    def _check_listeners(self, platform: Platform, result: RoundTripResult):
        fired: Counter = Counter()
        handlers = {name: self._counter(fired, name) for name in (VISIBILITY_CHANGE, BLUR, FOCUS)}

        for name, handler in handlers.items():
            platform.add_listener(name, handler)
        try:
            for name in handlers:
                platform.dispatch(PlatformEvent(name, {"synthetic": True}))
        finally:
            for name, handler in handlers.items():
                platform.remove_listener(name, handler)

        for name in handlers:
            result.listeners_fired[name] = fired[name] > 0
            result.details.append(f"{name} listener fired: {fired[name]}")
            if not fired[name]:
                result.evidence.append(f"{name} events are being blocked")

    def _check_forced_hidden(self, platform: Platform, result: RoundTripResult):
        platform.force_hidden(True)
        try:
            hidden = platform.is_hidden()
            state = platform.visibility_state()
        finally:
            platform.restore_visibility()

        result.hidden_reflected = hidden and state == "hidden"
        result.details.append(f"Forced hidden read back: hidden={hidden} state={state}")
        if not result.hidden_reflected:
            result.evidence.append("Visibility state did not reflect a forced hidden state")

    def _check_focus_inflation(self, platform: Platform, result: RoundTripResult):
        fired: Counter = Counter()
        handler = self._counter(fired, FOCUS)
        platform.add_listener(FOCUS, handler)
        try:
            for _ in range(FOCUS_PAIRS):
                platform.dispatch(PlatformEvent(BLUR, {"synthetic": True}))
                platform.dispatch(PlatformEvent(FOCUS, {"synthetic": True}))
        finally:
            platform.remove_listener(FOCUS, handler)

        result.focus_count = fired[FOCUS]
        result.details.append(f"Focus event count: {result.focus_count}")
        if result.focus_count > FOCUS_PAIRS:
            result.evidence.append(
                f"Abnormal focus event count: {result.focus_count} (expected: {FOCUS_PAIRS} or less)"
            )

    @staticmethod
    def _counter(counter: Counter, name: str):
        def handler(event):
            counter[name] += 1
        return handler
