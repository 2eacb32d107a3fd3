"""
Artifact Scanner - looks for tooling that suppresses visibility/focus signals

Works on an EnvironmentSnapshot: global names, DOM markers, script and
resource origins, performance entries and natively-patched APIs.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from ..models import RiskLevel
from ..platform import EnvironmentSnapshot

logger = logging.getLogger(__name__)


EXTENSION_SCHEMES = ("chrome-extension://", "moz-extension://", "safari-web-extension://", "extension://")


@dataclass(frozen=True)
class ToolingProfile:
    """Known signal-suppressing extension"""
    name: str
    severity: RiskLevel
    reason: str
    globals: Tuple[str, ...] = ()
    markers: Tuple[str, ...] = ()
    script_tokens: Tuple[str, ...] = ()
    user_agent_tokens: Tuple[str, ...] = ()


TOOLING_PROFILES: Tuple[ToolingProfile, ...] = (
    ToolingProfile(
        name="Always Active Window",
        severity=RiskLevel.CRITICAL,
        reason="Prevents proper tab switching and window focus detection during quiz",
        globals=("alwaysActiveWindow", "__alwaysActive", "__tabActive", "alwaysActive"),
        markers=("always-active", "alwaysactive", "data-always-active"),
        script_tokens=("always-active", "alwaysactive", "window-extension"),
        user_agent_tokens=("AlwaysActiveWindow",),
    ),
    ToolingProfile(
        name="Stay Alive",
        severity=RiskLevel.CRITICAL,
        reason="Keeps tabs artificially active, interfering with quiz monitoring",
        globals=("stayAlive", "keepAliveInterval", "keepAlive", "stayAwake"),
        markers=("stay-alive", "stayalive"),
        script_tokens=("stay-alive", "stayalive"),
    ),
    ToolingProfile(
        name="Tab Suspender Blocker",
        severity=RiskLevel.HIGH,
        reason="May interfere with proper tab activity detection",
        globals=("noSleep", "__noSleep"),
        markers=("nosleep",),
        script_tokens=("nosleep",),
    ),
)

# Globals that only exist when an extension API leaks into the page
EXTENSION_GLOBALS = (
    "webkitNotifications",
    "chrome.runtime",
    "chrome.storage",
    "chrome.tabs",
    "chrome.webRequest",
)

VISIBILITY_APIS = ("document.hidden", "document.visibilityState", "document.hasFocus")
TIMER_APIS = ("setTimeout", "setInterval")


@dataclass(frozen=True)
class ArtifactFinding:
    kind: str
    evidence: str
    severity: RiskLevel


@dataclass
class ArtifactScanResult:
    """Outcome of one artifact scan"""
    findings: List[ArtifactFinding] = field(default_factory=list)
    blocked_extensions: List[Dict[str, str]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def risk(self) -> RiskLevel:
        if any(f.severity == RiskLevel.CRITICAL for f in self.findings):
            return RiskLevel.CRITICAL
        count = len(self.findings)
        if count > 3 or any(f.severity == RiskLevel.HIGH for f in self.findings):
            return RiskLevel.HIGH
        if count > 1:
            return RiskLevel.MEDIUM
        if count > 0:
            return RiskLevel.LOW
        return RiskLevel.NONE

    @property
    def critical_evidence(self) -> List[str]:
        return [f.evidence for f in self.findings if f.severity == RiskLevel.CRITICAL]

    @property
    def compromised(self) -> bool:
        """True when a high or critical artifact is present"""
        return any(f.severity.rank >= RiskLevel.HIGH.rank for f in self.findings)


class ArtifactScanner:
    """
    Scans an environment snapshot for extension artifacts.

    Tooling profiles are matched first; every other check adds a finding
    of its own, so the risk tier grows with the amount of evidence.
    """

    def __init__(self, profiles: Tuple[ToolingProfile, ...] = TOOLING_PROFILES):
        self.profiles = profiles

    def scan(self, snapshot: EnvironmentSnapshot) -> ArtifactScanResult:
        result = ArtifactScanResult()
        markers = [m.lower() for m in snapshot.dom_markers]
        scripts = [s.lower() for s in snapshot.script_origins]

        for profile in self.profiles:
            evidence = self._match_profile(profile, snapshot, markers, scripts)
            if evidence:
                result.findings.append(ArtifactFinding("tooling", f"{profile.name}: {evidence}", profile.severity))
                result.blocked_extensions.append({
                    "name": profile.name,
                    "severity": profile.severity.value.upper(),
                    "reason": profile.reason,
                })
                result.warnings.append(f"{profile.name} detected - this extension MUST be disabled to take the quiz")

        for name in EXTENSION_GLOBALS:
            if name in snapshot.global_names:
                result.findings.append(ArtifactFinding("global", f"Global object detected: {name}", RiskLevel.LOW))

        for origin in snapshot.script_origins:
            if origin.lower().startswith(EXTENSION_SCHEMES):
                result.findings.append(
                    ArtifactFinding("script", f"Extension script: {origin[:50]}", RiskLevel.MEDIUM)
                )
            elif snapshot.bundle_origins and not self._in_bundle(origin, snapshot.bundle_origins):
                result.findings.append(
                    ArtifactFinding("script", f"Script outside application bundle: {origin[:50]}", RiskLevel.MEDIUM)
                )

        foreign_resources = [
            origin for origin in snapshot.resource_origins
            if origin.lower().startswith(EXTENSION_SCHEMES)
            or (snapshot.bundle_origins and not self._in_bundle(origin, snapshot.bundle_origins))
        ]
        if foreign_resources:
            result.findings.append(ArtifactFinding(
                "resource", f"Resources outside application bundle: {len(foreign_resources)}", RiskLevel.LOW
            ))

        extension_entries = [e for e in snapshot.performance_entries if e.lower().startswith(EXTENSION_SCHEMES)]
        if extension_entries:
            result.findings.append(ArtifactFinding(
                "performance", f"Extension performance entries found: {len(extension_entries)}", RiskLevel.MEDIUM
            ))

        patched_visibility = [api for api in VISIBILITY_APIS if api in snapshot.patched_apis]
        if patched_visibility:
            result.findings.append(ArtifactFinding(
                "patched-api",
                f"Page Visibility API has been overridden: {', '.join(patched_visibility)}",
                RiskLevel.CRITICAL,
            ))
            result.warnings.append("Extension detected that manipulates window focus - MUST be disabled")

        patched_timers = [api for api in TIMER_APIS if api in snapshot.patched_apis]
        if patched_timers:
            result.findings.append(ArtifactFinding(
                "patched-api",
                f"Native timer functions have been replaced: {', '.join(patched_timers)}",
                RiskLevel.CRITICAL,
            ))

        extension_markers = [m for m in markers if "extension" in m]
        if extension_markers:
            result.findings.append(ArtifactFinding(
                "dom", f"Extension DOM elements: {len(extension_markers)} found", RiskLevel.LOW
            ))

        if result.findings:
            logger.info(f"Artifact scan: {len(result.findings)} findings, risk={result.risk.value}")
        return result

    def _match_profile(self, profile, snapshot, markers, scripts) -> str:
        for name in profile.globals:
            if name in snapshot.global_names:
                return f"window.{name} present"
        for token in profile.markers:
            if any(token in marker for marker in markers):
                return f"DOM marker '{token}'"
        for token in profile.script_tokens:
            if any(token in script for script in scripts):
                return f"script matching '{token}'"
        for token in profile.user_agent_tokens:
            if token in snapshot.user_agent:
                return f"user agent token '{token}'"
        return ""

    @staticmethod
    def _in_bundle(origin: str, bundle_origins) -> bool:
        return any(origin.startswith(prefix) for prefix in bundle_origins)
