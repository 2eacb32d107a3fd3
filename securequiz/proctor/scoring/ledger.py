"""
Violation Ledger - append-only log of confirmed violations
"""

import logging
from typing import Dict, List, Tuple

from ..exceptions import LedgerClosedError
from ..models import Violation, ViolationType

logger = logging.getLogger(__name__)


class ViolationLedger:
    """
    Append-only, per-category record of confirmed violations.

    Sequence numbers are issued here so they increase across the whole
    session rather than per category. freeze() is called when the attempt
    is finalized; later appends raise LedgerClosedError.
    """

    def __init__(self):
        self._entries: List[Violation] = []
        self._next_sequence = 1
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def next_sequence(self) -> int:
        """Claim the next session-wide sequence number"""
        if self._frozen:
            raise LedgerClosedError("Violation ledger is frozen")
        sequence = self._next_sequence
        self._next_sequence += 1
        return sequence

    def append(self, violation: Violation) -> Violation:
        if self._frozen:
            raise LedgerClosedError("Violation ledger is frozen")
        if self._entries and violation.sequence_number <= self._entries[-1].sequence_number:
            raise ValueError(
                f"Sequence number {violation.sequence_number} is not after "
                f"{self._entries[-1].sequence_number}"
            )
        self._entries.append(violation)
        self._next_sequence = max(self._next_sequence, violation.sequence_number + 1)
        logger.debug(f"Ledger append #{violation.sequence_number} {violation.type.value}")
        return violation

    def freeze(self) -> Tuple[Violation, ...]:
        """Stop accepting violations and return the final contents"""
        self._frozen = True
        return self.entries()

    def entries(self) -> Tuple[Violation, ...]:
        return tuple(self._entries)

    def by_category(self, category: ViolationType) -> List[Violation]:
        return [v for v in self._entries if v.type == category]

    def count(self, category: ViolationType) -> int:
        return sum(1 for v in self._entries if v.type == category)

    def counts(self) -> Dict[str, int]:
        result: Dict[str, int] = {}
        for violation in self._entries:
            result[violation.type.value] = result.get(violation.type.value, 0) + 1
        return result

    def __len__(self) -> int:
        return len(self._entries)
