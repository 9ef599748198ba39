"""
Section 94B Interest-Limitation Engine
Pure Python, deterministic, stateless between calls. Same input → same output.

Resolution order (fixed):
  1. EXEMPT           entity code in EXEMPT_ENTITIES → full deduction, stop
  2. BELOW_THRESHOLD  covered interest <= ₹1 crore   → full deduction, stop
  3. APPLICABLE       allowable = min(30% EBITDA, covered interest)
                      disallowed = covered − allowable → carry-forward ledger

The carry-forward ledger is the only state that survives between periods and
it is owned by the caller: pass the previous result's `ledger` into the next
compute_period() call.

Inapplicable periods leave the ledger untouched by default. With
age_ledger_when_inapplicable=True they still expire stale deposits.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from tpledger.config import settings
from tpledger.errors import ThinCapInputError
from tpledger.thin_cap.classifier import classify_interest
from tpledger.thin_cap.ebitda import calculate_ebitda
from tpledger.thin_cap.ledger import age_ledger, apply_carry_forward
from tpledger.thin_cap.rules import (
    ay_start_year,
    calculate_disallowed_interest,
    get_ay_rules,
    get_exemption,
)
from tpledger.thin_cap.schemas import (
    ApplicableResult,
    BelowThresholdResult,
    CarryForwardLedger,
    CarryForwardResult,
    ComputationStep,
    EBITDAResult,
    ExemptionResult,
    ExemptResult,
    FinancialPeriod,
    InterestAnalysis,
    InterestLineItem,
    LimitationResult,
)
from tpledger.thin_cap.validator import validate_period_input

logger = logging.getLogger(__name__)


def check_exemption(entity_code: Optional[str]) -> ExemptionResult:
    """Look the entity code up in the exemption table."""
    entry = get_exemption(entity_code)
    if entry is None:
        return ExemptionResult(is_exempt=False)
    return ExemptionResult(is_exempt=True, category=entry["description"], reference=entry["reference"])


def _inr(amount: float) -> str:
    return f"₹{amount:,.0f}"


class ThinCapEngine:
    """
    Section 94B calculator for one default assessment year.

    Holds configuration only (default AY, ledger-aging mode) and no per-call state,
    so one instance may serve any number of entities or periods concurrently.
    """

    def __init__(self, assessment_year: str = "2025-26", age_ledger_when_inapplicable: bool = False):
        self.assessment_year = assessment_year
        self.age_ledger_when_inapplicable = age_ledger_when_inapplicable

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def compute_period(
        self,
        financials: Optional[FinancialPeriod],
        interest_lines: Optional[Sequence[InterestLineItem]],
        entity_exemption_code: Optional[str] = None,
        prior_ledger: Optional[CarryForwardLedger] = None,
        assessment_year: Optional[str] = None,
    ) -> LimitationResult:
        """
        Evaluate Section 94B for one assessment year.

        Args:
            financials: P&L snapshot. None is the one input that cannot be defaulted.
            interest_lines: Borrowings for the year; empty is allowed (TC006 warning).
            entity_exemption_code: e.g. "BANK"; None for an ordinary company.
            prior_ledger: Ledger returned by the previous period (empty if first year).
            assessment_year: Overrides financials.assessment_year, then the engine default.

        Returns:
            ExemptResult | BelowThresholdResult | ApplicableResult, with structural
            validation issues attached rather than raised.

        Raises:
            ThinCapInputError: financials missing or assessment year unparseable.
        """
        ay = assessment_year or (financials.assessment_year if financials is not None else None) or self.assessment_year
        issues = validate_period_input(financials, interest_lines, ay)

        if financials is None:
            raise ThinCapInputError(
                "Financial data is required for EBITDA calculation",
                field="financials",
                code="TC003",
            )
        ay_start_year(ay)   # Raises ThinCapInputError when no year can be read

        rules = get_ay_rules(ay)
        prior = prior_ledger if prior_ledger is not None else CarryForwardLedger()
        lines = list(interest_lines or [])

        # Step 1: Exemption
        exemption = check_exemption(entity_exemption_code)
        if exemption.is_exempt:
            result = self._exempt_result(ay, financials, exemption, prior, issues)
            self._log(result)
            return result

        # Step 2: Covered interest + threshold
        steps: list[ComputationStep] = []
        analysis = classify_interest(lines, rules.interest_threshold)
        steps.append(ComputationStep(
            step=1,
            description="Interest to non-resident AE covered by Section 94B",
            formula="Sum of AE / guaranteed / AE-deposit-funded lines of a covered type",
            value=analysis.interest_covered,
            reference="Section 94B(1)",
        ))
        if not analysis.threshold_check.exceeds_threshold:
            result = self._below_threshold_result(ay, financials, analysis, steps, prior, issues)
            self._log(result)
            return result

        # Step 3: EBITDA and the cap
        ebitda = calculate_ebitda(financials, rules.ebitda_percentage)
        steps.append(ComputationStep(
            step=2,
            description="EBITDA calculation",
            formula="PBT + Interest + Depreciation + Amortization − Exceptional",
            value=ebitda.total_ebitda,
            reference="Section 94B(2)",
        ))
        steps.append(ComputationStep(
            step=3,
            description=f"{rules.ebitda_percentage:g}% of EBITDA",
            formula=f"EBITDA × {rules.ebitda_percentage:g}%",
            value=ebitda.allowable_cap,
            reference="Section 94B(1)",
        ))

        # Step 4: Allowable / disallowed: a negative cap allows nothing
        covered = analysis.interest_covered
        allowable = round(max(0.0, min(ebitda.allowable_cap, covered)), 2)
        disallowed = round(calculate_disallowed_interest(covered, allowable), 2)
        steps.append(ComputationStep(
            step=4,
            description=f"Allowable interest (lower of {rules.ebitda_percentage:g}% EBITDA or actual)",
            formula=f"MIN({ebitda.allowable_cap:.2f}, {covered:.2f})",
            value=allowable,
        ))
        steps.append(ComputationStep(
            step=5,
            description="Disallowed interest",
            formula="Interest covered − Allowable",
            value=disallowed,
        ))

        # Step 5: Carry-forward ledger
        unused_cap = max(0.0, ebitda.allowable_cap - covered)
        ledger, carry_forward = apply_carry_forward(
            prior, disallowed, unused_cap, ay, rules.carryforward_years,
        )
        steps.append(ComputationStep(
            step=6,
            description="Brought-forward disallowance set off (FIFO)",
            formula="MIN(brought forward, unused cap headroom)",
            value=carry_forward.utilized_in_year,
            reference="Section 94B(4)",
        ))
        steps.append(ComputationStep(
            step=7,
            description="Closing carry-forward balance",
            formula="Opening − Utilized − Expired + Current disallowance",
            value=carry_forward.closing_balance,
        ))

        result = ApplicableResult(
            assessment_year=ay,
            reason="Section 94B applies: covered interest exceeds the threshold",
            allowable_interest=allowable,
            disallowed_interest=disallowed,
            ledger=ledger,
            computation_steps=steps,
            validation_issues=issues,
            summary=self._summary(ay, ebitda, analysis, allowable, disallowed, carry_forward,
                                  rules.carryforward_years),
            ebitda=ebitda,
            interest_analysis=analysis,
            carry_forward=carry_forward,
        )
        self._log(result)
        return result

    # -----------------------------------------------------------------------
    # Terminal states
    # -----------------------------------------------------------------------

    def _inapplicable_ledger(
        self,
        prior: CarryForwardLedger,
        ay: str,
        steps: list[ComputationStep],
    ) -> tuple[CarryForwardLedger, Optional[CarryForwardResult]]:
        """Ledger handling for exempt / below-threshold periods, stamped on the audit trail."""
        if self.age_ledger_when_inapplicable:
            ledger, carry_forward = age_ledger(prior, ay)
            steps.append(ComputationStep(
                step=len(steps) + 1,
                description="Carry-forward aged without set-off (Section 94B inapplicable)",
                formula="Expire deposits with AY >= expiry AY",
                value=carry_forward.expired_in_year,
            ))
            return ledger, carry_forward
        steps.append(ComputationStep(
            step=len(steps) + 1,
            description="Carry-forward ledger not aged (Section 94B inapplicable)",
            formula="Ledger passed through unchanged",
            value=prior.closing_balance,
        ))
        return prior, None

    def _exempt_result(
        self,
        ay: str,
        financials: FinancialPeriod,
        exemption: ExemptionResult,
        prior: CarryForwardLedger,
        issues: list,
    ) -> ExemptResult:
        steps: list[ComputationStep] = []
        ledger, carry_forward = self._inapplicable_ledger(prior, ay, steps)
        return ExemptResult(
            assessment_year=ay,
            reason=f"Entity is exempt from Section 94B - {exemption.category}",
            allowable_interest=financials.total_interest_expense,
            disallowed_interest=0.0,
            ledger=ledger,
            computation_steps=steps,
            validation_issues=issues,
            summary=(
                f"Section 94B is not applicable as the entity is exempt under "
                f"{exemption.reference or 'applicable provisions'}. Full interest deduction is allowable."
            ),
            exemption=exemption,
            carry_forward=carry_forward,
        )

    def _below_threshold_result(
        self,
        ay: str,
        financials: FinancialPeriod,
        analysis: InterestAnalysis,
        steps: list[ComputationStep],
        prior: CarryForwardLedger,
        issues: list,
    ) -> BelowThresholdResult:
        ledger, carry_forward = self._inapplicable_ledger(prior, ay, steps)
        threshold = analysis.threshold_check.threshold
        return BelowThresholdResult(
            assessment_year=ay,
            reason=(
                f"Interest to non-resident AE ({_inr(analysis.interest_covered)}) does not exceed "
                f"threshold of {_inr(threshold)}"
            ),
            allowable_interest=financials.total_interest_expense,
            disallowed_interest=0.0,
            ledger=ledger,
            computation_steps=steps,
            validation_issues=issues,
            summary=(
                f"Section 94B is not applicable as interest to non-resident AE does not exceed "
                f"{_inr(threshold)}. Full interest deduction of "
                f"{_inr(financials.total_interest_expense)} is allowable."
            ),
            interest_analysis=analysis,
            carry_forward=carry_forward,
        )

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _summary(
        ay: str,
        ebitda: EBITDAResult,
        analysis: InterestAnalysis,
        allowable: float,
        disallowed: float,
        carry_forward: CarryForwardResult,
        carryforward_years: int,
    ) -> str:
        parts = [
            f"Section 94B Analysis for AY {ay}:",
            f"EBITDA: {_inr(ebitda.total_ebitda)} | "
            f"{ebitda.ebitda_percentage:g}% of EBITDA: {_inr(ebitda.allowable_cap)}",
            f"Total interest to non-resident AE: {_inr(analysis.interest_covered)}",
            f"Allowable interest: {_inr(allowable)} | Disallowed interest: {_inr(disallowed)}",
        ]
        if disallowed > 0:
            parts.append(
                f"The disallowed interest of {_inr(disallowed)} can be carried forward for "
                f"{carryforward_years} assessment years."
            )
        if carry_forward.opening_balance > 0:
            parts.append(
                f"Brought forward disallowance: {_inr(carry_forward.opening_balance)} | "
                f"Utilized: {_inr(carry_forward.utilized_in_year)} | "
                f"Expired: {_inr(carry_forward.expired_in_year)}"
            )
        if carry_forward.closing_balance > 0:
            parts.append(f"Closing carryforward balance: {_inr(carry_forward.closing_balance)}")
        return "\n\n".join(parts)

    @staticmethod
    def _log(result: LimitationResult) -> None:
        logger.info(
            "Section 94B AY %s status=%s disallowed=%.2f closing_cf=%.2f issues=%d",
            result.assessment_year,
            result.status,
            result.disallowed_interest,
            result.ledger.closing_balance,
            len(result.validation_issues),
        )


def create_thin_cap_engine(assessment_year: Optional[str] = None) -> ThinCapEngine:
    """Engine configured from settings. Builds a fresh instance every call."""
    return ThinCapEngine(
        assessment_year=assessment_year or settings.default_assessment_year,
        age_ledger_when_inapplicable=settings.age_ledger_when_inapplicable,
    )


__all__ = [
    "ThinCapEngine",
    "check_exemption",
    "create_thin_cap_engine",
]
