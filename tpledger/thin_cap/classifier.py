"""
Interest classifier — partitions a period's interest lines into Section 94B
covered and not-covered interest, and runs the ₹1 crore threshold check.
"""
from __future__ import annotations

from typing import Optional, Sequence

from tpledger.thin_cap.rules import INTEREST_THRESHOLD, LenderType, is_interest_covered
from tpledger.thin_cap.schemas import (
    InterestAnalysis,
    InterestLineItem,
    LenderInterestBreakdown,
    ThresholdCheck,
)

REASON_NOT_AE = "Lender is not an Associated Enterprise"
REASON_RESIDENT_NON_AE = "Lender is a resident non-AE party"
REASON_TYPE_NOT_COVERED = "Interest type not covered under Section 94B"


def exclusion_reason(item: InterestLineItem) -> Optional[str]:
    """
    None when the line is covered. Otherwise the first failing test, in order:
      1. lender is an AE
      2. lender is not a resident non-AE
      3. interest type is in the covered set
    """
    if not item.is_ae:
        return REASON_NOT_AE
    if item.lender_type == LenderType.resident_non_ae:
        return REASON_RESIDENT_NON_AE
    if not is_interest_covered(item.interest_type):
        return REASON_TYPE_NOT_COVERED
    return None


def classify_interest(
    interest_lines: Sequence[InterestLineItem],
    threshold: float = INTEREST_THRESHOLD,
) -> InterestAnalysis:
    """Sum covered / not-covered interest; threshold is exceeded only when covered > threshold."""
    breakdown: list[LenderInterestBreakdown] = []
    total = 0.0
    covered = 0.0
    not_covered = 0.0

    for item in interest_lines:
        total += item.interest_amount
        reason = exclusion_reason(item)
        if reason is None:
            covered += item.interest_amount
        else:
            not_covered += item.interest_amount

        breakdown.append(
            LenderInterestBreakdown(
                lender_name=item.lender_name,
                lender_type=item.lender_type,
                interest_type=item.interest_type,
                interest_amount=item.interest_amount,
                is_covered=reason is None,
                reason_if_not_covered=reason,
            )
        )

    return InterestAnalysis(
        total_interest_expense=total,
        interest_covered=covered,
        interest_not_covered=not_covered,
        lender_breakdown=breakdown,
        threshold_check=ThresholdCheck(
            threshold=threshold,
            interest_amount=covered,
            exceeds_threshold=covered > threshold,
        ),
    )
