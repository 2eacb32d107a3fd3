"""
Security Gate - pre-session environment audit

Combines the artifact scan, the advisory environment heuristics and the
live round-trip test into one immutable SecurityReport.

Fail closed only on critical evidence (a critical artifact or a failed
round trip); environment heuristics never block.
"""

import logging
from typing import List, Optional

from ...config import settings as default_settings
from ..exceptions import GateRerunExhaustedError
from ..models import RiskLevel, SecurityReport, utcnow
from ..platform import Platform
from .artifacts import ArtifactScanner
from .environment import EnvironmentChecker
from .round_trip import RoundTripTester

logger = logging.getLogger(__name__)


ROUND_TRIP_REMEDIATION = [
    "Disable browser extensions that interfere with tab switching detection",
    "Common problematic extensions: Always Active Window, Stay Alive, NoSleep",
    "Refresh this page after disabling the extension",
]


def extension_disable_instructions(user_agent: str) -> List[str]:
    """Browser-specific steps for turning extensions off"""
    if "Edg" in user_agent:
        return [
            "Press Ctrl+Shift+N to open InPrivate browsing",
            "Or go to Edge Settings → Extensions → Toggle off all extensions",
        ]
    if "Firefox" in user_agent:
        return [
            "Press Ctrl+Shift+P (Windows) or Cmd+Shift+P (Mac) to open private browsing",
            "Or go to Firefox Menu → Add-ons → Extensions → Disable all extensions",
        ]
    if "Chrome" in user_agent:
        return [
            "Press Ctrl+Shift+N (Windows) or Cmd+Shift+N (Mac) to open incognito mode",
            "Or go to Chrome Settings → Extensions → Toggle off all extensions",
            "Or use chrome://extensions/ to disable extensions manually",
        ]
    if "Safari" in user_agent:
        return [
            "Press Cmd+Shift+N to open private browsing",
            "Or go to Safari → Preferences → Extensions → Uncheck all extensions",
        ]
    return [
        "Open your browser in private/incognito mode",
        "Disable all browser extensions through browser settings",
    ]


class SecurityGate:
    """
    One-shot environment audit for a session bootstrap.

    evaluate() may run GATE_MAX_RUNS times in total (the initial run plus
    one re-run after the candidate remediated); further calls raise
    GateRerunExhaustedError.
    """

    def __init__(
        self,
        settings=None,
        scanner: Optional[ArtifactScanner] = None,
        checker: Optional[EnvironmentChecker] = None,
        tester: Optional[RoundTripTester] = None
    ):
        self.settings = settings or default_settings
        self.scanner = scanner or ArtifactScanner()
        self.checker = checker or EnvironmentChecker(self.settings)
        self.tester = tester or RoundTripTester()
        self.runs = 0
        self.last_report: Optional[SecurityReport] = None

    @property
    def can_rerun(self) -> bool:
        return self.runs < self.settings.GATE_MAX_RUNS

    def evaluate(self, platform: Platform) -> SecurityReport:
        """
        Run all three checks against the platform.

        Args:
            platform: Observed surface, not yet monitored by any detector

        Returns:
            SecurityReport with can_proceed == (no critical evidence)
        """
        if not self.can_rerun:
            raise GateRerunExhaustedError(
                f"Security gate already ran {self.runs} times"
            )
        self.runs += 1

        snapshot = platform.snapshot()
        artifacts = self.scanner.scan(snapshot)
        environment = self.checker.check(snapshot)
        round_trip = self.tester.run(platform)

        critical_evidence = list(artifacts.critical_evidence)
        critical_evidence.extend(f"Round-trip test: {e}" for e in round_trip.evidence)
        can_proceed = not critical_evidence

        if critical_evidence:
            overall = RiskLevel.CRITICAL
        else:
            overall = RiskLevel.highest(artifacts.risk, environment.risk)

        blocking_reason = None
        if not can_proceed:
            if artifacts.critical_evidence:
                blocking_reason = "Critical extensions detected that prevent quiz security"
            else:
                blocking_reason = "Real-time test detected tab switching interference"

        recommendations: List[str] = []
        recommendations.extend(artifacts.warnings)
        recommendations.extend(environment.recommendations)
        if not round_trip.passed:
            recommendations.extend(ROUND_TRIP_REMEDIATION)
        if artifacts.findings or not round_trip.passed:
            recommendations.extend(extension_disable_instructions(snapshot.user_agent))

        report = SecurityReport(
            timestamp=utcnow(),
            extension_risk=RiskLevel.CRITICAL if not round_trip.passed else artifacts.risk,
            environment_issues=tuple(environment.issues),
            real_time_test_passed=round_trip.passed,
            overall_risk=overall,
            can_proceed=can_proceed,
            blocking_reason=blocking_reason,
            recommendations=tuple(dict.fromkeys(recommendations)),
            critical_evidence=tuple(critical_evidence),
        )
        self.last_report = report

        logger.info(
            f"Security gate run {self.runs}: risk={overall.value} "
            f"can_proceed={can_proceed} issues={len(environment.issues)}"
        )
        return report
