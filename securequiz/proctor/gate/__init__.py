"""Pre-session security gate"""

from .artifacts import ArtifactScanner, ArtifactScanResult
from .environment import EnvironmentChecker
from .round_trip import RoundTripTester, RoundTripResult
from .security_gate import SecurityGate, extension_disable_instructions

__all__ = [
    "ArtifactScanner",
    "ArtifactScanResult",
    "EnvironmentChecker",
    "RoundTripTester",
    "RoundTripResult",
    "SecurityGate",
    "extension_disable_instructions"
]
