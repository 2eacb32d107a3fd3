"""Violation ledger and penalty escalation"""

from .ledger import ViolationLedger
from .penalty import CategoryPolicy, PenaltyPhase, PenaltyState, PenaltyStateMachine, default_policies

__all__ = [
    "ViolationLedger",
    "CategoryPolicy",
    "PenaltyPhase",
    "PenaltyState",
    "PenaltyStateMachine",
    "default_policies"
]
