"""
Environment Heuristics - weak, advisory checks on the client environment

Each heuristic is low-confidence on its own. Results feed the overall risk
tier and the recommendations list but never block a session.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from ...config import settings as default_settings
from ..models import RiskLevel
from ..platform import EnvironmentSnapshot

logger = logging.getLogger(__name__)


AUTOMATION_GLOBALS = ("phantom", "callPhantom", "__phantomas", "_phantom", "Buffer", "emit", "spawn")

HEADLESS_TOKENS = ("HeadlessChrome", "PhantomJS")

REMOTE_DESKTOP_TOKENS = ("TeamViewer", "AnyDesk", "Chrome Remote Desktop", "Remote Desktop", "VNC")

VIRTUALIZATION_TOKENS = ("VirtualBox", "VMware", "QEMU", "Xen", "Hyper-V", "Parallels", "VirtualPC", "Docker")

MOBILE_PATTERN = re.compile(r"Android|webOS|iPhone|iPad|iPod|BlackBerry|IEMobile|Opera Mini", re.IGNORECASE)


@dataclass
class EnvironmentCheckResult:
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def risk(self) -> RiskLevel:
        if len(self.issues) > 2:
            return RiskLevel.HIGH
        if self.issues:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def add(self, issue: str, recommendation: Optional[str] = None):
        self.issues.append(issue)
        if recommendation and recommendation not in self.recommendations:
            self.recommendations.append(recommendation)


class EnvironmentChecker:
    """Runs the advisory environment heuristics over a snapshot"""

    def __init__(self, settings=None):
        self.settings = settings or default_settings

    def check(self, snapshot: EnvironmentSnapshot) -> EnvironmentCheckResult:
        result = EnvironmentCheckResult()
        ua = snapshot.user_agent

        if snapshot.webdriver:
            result.add("Automated browser detected (WebDriver)", "Use a regular browser without automation tools")

        for name in AUTOMATION_GLOBALS:
            if name in snapshot.global_names:
                result.add(f"Suspicious property detected: {name}", "Browser environment may be compromised")

        is_mobile = bool(MOBILE_PATTERN.search(ua))
        if not is_mobile and (snapshot.screen_width < 320 or snapshot.screen_height < 240):
            result.add("Unusually small screen resolution detected", "Use a standard screen resolution")

        if any(token in ua for token in HEADLESS_TOKENS) or snapshot.outer_width == 0 or snapshot.outer_height == 0:
            result.add("Headless browser detected", "Use a regular browser with GUI")

        if not snapshot.timezone or snapshot.timezone == "UTC":
            result.add("Unusual timezone settings detected")

        if snapshot.storage_quota is not None and snapshot.storage_quota < self.settings.INCOGNITO_QUOTA_BYTES:
            result.add("Private browsing mode suspected (low storage quota)", "Use a regular (non-private) browser window")

        title = snapshot.document_title
        for token in REMOTE_DESKTOP_TOKENS:
            if token in ua or token in title:
                result.add(f"Remote desktop software indicator: {token}", "Close remote desktop or screen sharing software")
                break
        if snapshot.screen_width == 1024 and snapshot.screen_height == 768:
            result.add("Common remote desktop resolution (1024x768)", "Close remote desktop or screen sharing software")

        for token in VIRTUALIZATION_TOKENS:
            if token in ua:
                result.add(f"Virtualized environment indicator: {token}", "Take the quiz on a physical machine")
                break

        if snapshot.screen_height > 0:
            ratio = snapshot.screen_width / snapshot.screen_height
            if (ratio < 1.2 or ratio > 2.5) and not is_mobile:
                result.add(f"Unusual screen aspect ratio ({ratio:.2f})")

        if result.issues:
            logger.info(f"Environment check: {len(result.issues)} advisory issues")
        return result
