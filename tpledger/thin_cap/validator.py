"""
Section 94B structural input validator.

Runs BEFORE the engine computes anything and collects every issue in a single
pass. Unlike a hard validation error, issues are returned (not raised) so the
engine can still produce a best-effort result and the caller decides whether
"error"-severity issues block its workflow.

Codes:
  TC001  assessment year not in YYYY-YY form                 error
  TC002  assessment year before AY 2018-19                   warning
  TC003  financial data missing                              critical (engine raises)
  TC004  total interest expense negative                     error
  TC005  depreciation negative                               error
  TC006  no interest line items                              warning
  TC007  interest line item with a negative amount           error
  TC008  P&L interest expense below the sum of line items    info
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from tpledger.thin_cap.rules import (
    FIRST_APPLICABLE_AY,
    ay_start_year,
    is_valid_assessment_year,
)
from tpledger.thin_cap.schemas import (
    FinancialPeriod,
    InterestLineItem,
    ValidationIssue,
    ValidationSeverity,
)

logger = logging.getLogger(__name__)

_FIRST_APPLICABLE_START = int(FIRST_APPLICABLE_AY[:4])


def validate_period_input(
    financials: Optional[FinancialPeriod],
    interest_lines: Optional[Sequence[InterestLineItem]],
    assessment_year: Optional[str],
) -> list[ValidationIssue]:
    """
    Collect all structural issues for one period's input.

    Args:
        financials: P&L snapshot; None is reported as TC003.
        interest_lines: May be empty; an entity can legitimately have no borrowings.
        assessment_year: The AY the period is evaluated for.

    Returns:
        Issues in check order. Empty list means the input is clean.
    """
    issues: list[ValidationIssue] = []

    # ---- 1. Assessment year format ------------------------------------------
    if not assessment_year or not is_valid_assessment_year(assessment_year):
        issues.append(ValidationIssue(
            field="assessment_year",
            message=f"Invalid assessment year format: {assessment_year!r}",
            severity=ValidationSeverity.error,
            code="TC001",
            suggestion="Use format YYYY-YY (e.g., 2025-26)",
        ))

    # ---- 2. Section 94B only from AY 2018-19 -----------------------------------
    if assessment_year:
        try:
            start = ay_start_year(assessment_year)
        except ValueError:
            start = None
        if start is not None and start < _FIRST_APPLICABLE_START:
            issues.append(ValidationIssue(
                field="assessment_year",
                message=f"Section 94B not applicable before AY {FIRST_APPLICABLE_AY}",
                severity=ValidationSeverity.warning,
                code="TC002",
            ))

    # ---- 3–5. Financial data ---------------------------------------------------
    if financials is None:
        issues.append(ValidationIssue(
            field="financials",
            message="Financial data is required for EBITDA calculation",
            severity=ValidationSeverity.critical,
            code="TC003",
        ))
    else:
        if financials.total_interest_expense < 0:
            issues.append(ValidationIssue(
                field="financials.total_interest_expense",
                message="Interest expense cannot be negative",
                severity=ValidationSeverity.error,
                code="TC004",
            ))
        if financials.depreciation < 0:
            issues.append(ValidationIssue(
                field="financials.depreciation",
                message="Depreciation cannot be negative",
                severity=ValidationSeverity.error,
                code="TC005",
            ))

    # ---- 6–7. Interest line items ----------------------------------------------
    lines = list(interest_lines or [])
    if not lines:
        issues.append(ValidationIssue(
            field="interest_lines",
            message="At least one interest expense entry is expected",
            severity=ValidationSeverity.warning,
            code="TC006",
            suggestion="Add every borrowing, including non-AE lenders, so coverage can be shown",
        ))
    for idx, item in enumerate(lines):
        if item.interest_amount < 0:
            issues.append(ValidationIssue(
                field=f"interest_lines.{idx}.interest_amount",
                message=f"Interest amount for lender line {idx + 1} cannot be negative",
                severity=ValidationSeverity.error,
                code="TC007",
            ))

    # ---- 8. P&L vs line-item consistency ---------------------------------------
    if financials is not None and lines:
        line_total = sum(item.interest_amount for item in lines)
        if financials.total_interest_expense < line_total:
            issues.append(ValidationIssue(
                field="financials.total_interest_expense",
                message=(
                    f"P&L interest expense ₹{financials.total_interest_expense:,.0f} is below the "
                    f"₹{line_total:,.0f} listed across interest lines"
                ),
                severity=ValidationSeverity.info,
                code="TC008",
                suggestion="Check that the P&L figure is the full interest cost for the year",
            ))

    if issues:
        logger.info("Section 94B input validation: %d issue(s) for AY %s", len(issues), assessment_year)

    return issues
