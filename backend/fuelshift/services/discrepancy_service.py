"""
Discrepancy evaluation.

Pure and deterministic: given the signed discrepancy of a closing shift and
the tolerance in force, decide COMPLETED vs FLAGGED and build the record.

    |amount| <= tolerance  -> COMPLETED, no record
    |amount| >  tolerance  -> FLAGGED, excess (amount > 0) or shortage (amount < 0)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..models import (
    DISCREPANCY_EXCESS,
    DISCREPANCY_SHORTAGE,
    SHIFT_COMPLETED,
    SHIFT_FLAGGED,
)


DEFAULT_TOLERANCE = Decimal("1.00")


@dataclass(frozen=True)
class DiscrepancyRecord:
    amount: Decimal
    category: str
    resolved: bool = False


@dataclass(frozen=True)
class DiscrepancyOutcome:
    status: str
    record: DiscrepancyRecord | None = None

    @property
    def flagged(self) -> bool:
        return self.status == SHIFT_FLAGGED


def evaluate_discrepancy(amount: Decimal, tolerance: Decimal = DEFAULT_TOLERANCE) -> DiscrepancyOutcome:
    if tolerance < 0:
        raise ValueError("tolerance must be >= 0")

    if abs(amount) <= tolerance:
        return DiscrepancyOutcome(status=SHIFT_COMPLETED)

    category = DISCREPANCY_EXCESS if amount > 0 else DISCREPANCY_SHORTAGE
    return DiscrepancyOutcome(
        status=SHIFT_FLAGGED,
        record=DiscrepancyRecord(amount=amount, category=category),
    )
