"""
Artifact Rescan Source - periodic re-scan for extension artifacts

Re-runs the gate's artifact scanner every EXTENSION_SCAN_INTERVAL seconds
and checks for the impossible state (hidden yet focused). Only evidence
that was not present on the previous scan is reported.
"""

import logging
from typing import Optional, Set

from ..gate.artifacts import ArtifactScanner
from ..models import Confidence, RiskLevel, ViolationType
from .base import SignalSource

logger = logging.getLogger(__name__)


class ArtifactRescanSource(SignalSource):
    name = "artifact-rescan"
    TIMER = "extension-scan"

    def __init__(self, settings=None, scanner: Optional[ArtifactScanner] = None):
        super().__init__(settings)
        self.scanner = scanner or ArtifactScanner()
        self.compromised = False
        self.scans = 0
        self._seen: Set[str] = set()

    def on_attach(self):
        self.every(self.TIMER, self.settings.EXTENSION_SCAN_INTERVAL, self.scan)

    def scan(self):
        if not self.attached:
            return
        self.scans += 1
        result = self.scanner.scan(self.platform.snapshot())
        impossible = self.platform.is_hidden() and self.platform.has_focus()
        self.compromised = result.compromised or impossible

        current: Set[str] = set()
        for finding in result.findings:
            if finding.severity == RiskLevel.CRITICAL:
                confidence = Confidence.VERY_HIGH
            elif finding.severity == RiskLevel.HIGH:
                confidence = Confidence.HIGH
            else:
                continue
            current.add(finding.evidence)
            if finding.evidence not in self._seen:
                self.emit(ViolationType.EXTENSION_DETECTED, "artifact-rescan", finding.evidence, confidence)

        if impossible:
            evidence = "Document reports hidden while focused"
            current.add(evidence)
            if evidence not in self._seen:
                self.emit(ViolationType.EXTENSION_DETECTED, "impossible-state", evidence, Confidence.VERY_HIGH)

        self._seen = current
