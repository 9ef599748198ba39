"""
schemas.py — Section 94B Pydantic v2 data contracts.

Defines:
  - FinancialPeriod, InterestLineItem        (immutable caller inputs for one AY)
  - EBITDAResult, InterestAnalysis           (derived, recomputed every call)
  - CarryForwardDeposit, CarryForwardLedger  (the only state that survives between calls)
  - CarryForwardResult                       (per-period ledger breakdown)
  - LimitationResult                         (tagged union: exempt | below_threshold | applicable)
  - GrowthAssumptions, ProjectionBase, MultiYearProjection  (forward projection)
  - UtilizationSimulation, FinancingComparison              (what-if simulations)
  - *Request models for the HTTP routes

All monetary fields are INR (float rupees). Assessment years are 'YYYY-YY' strings.

The ledger is caller-owned: the engine never mutates a deposit in place, it
returns a fresh CarryForwardLedger every period.
"""
from __future__ import annotations

import math
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tpledger.thin_cap.rules import LenderType

# Conservation is checked to the paisa: float sums drift below that
_CONSERVATION_TOLERANCE = 0.01


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------

class ValidationSeverity(str, Enum):
    critical = "critical"
    error = "error"
    warning = "warning"
    info = "info"


BLOCKING_SEVERITIES = (ValidationSeverity.critical, ValidationSeverity.error)


class ValidationIssue(BaseModel):
    """A structural problem found in the input. Rides alongside a best-effort result."""
    model_config = ConfigDict(extra="forbid")

    field: str
    message: str
    severity: ValidationSeverity
    code: str                            # TC001 … TC008
    suggestion: Optional[str] = None


class ComputationStep(BaseModel):
    """One line of the computation working. Kept for audit only, never drives control flow."""
    model_config = ConfigDict(extra="forbid")

    step: int
    description: str
    formula: str
    value: Union[float, str]
    reference: Optional[str] = None      # e.g. "Section 94B(1)"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class FinancialPeriod(BaseModel):
    """
    P&L snapshot for one assessment year.

    Sign constraints (interest expense, depreciation >= 0) are NOT enforced here:
    the validator reports them as issues so the engine can still return a
    best-effort result.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)

    assessment_year: str
    profit_before_tax: float
    total_interest_expense: float
    depreciation: float
    amortization: float = 0.0
    exceptional_items: float = 0.0       # Gains negative, losses positive; subtracted from EBITDA


class InterestLineItem(BaseModel):
    """One borrowing and the interest it carried in the period."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    lender_name: str
    lender_type: LenderType
    lender_country: str = ""
    interest_type: str = "LOAN_INTEREST"
    principal_amount: float = 0.0
    interest_rate: float = 0.0           # Percent, informational
    interest_amount: float
    is_ae: bool                          # Lender is an associated enterprise
    ae_relationship: Optional[str] = None


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------

class EBITDAResult(BaseModel):
    """
    EBITDA = PBT + interest + depreciation + amortization − exceptional items
    allowable_cap = EBITDA × ebitda_percentage / 100

    A negative EBITDA is valid and gives a negative cap.
    """
    model_config = ConfigDict(extra="forbid")

    profit_before_tax: float
    interest_add_back: float
    depreciation_add_back: float
    amortization_add_back: float
    adjustments: float
    total_ebitda: float
    ebitda_percentage: float
    allowable_cap: float
    computation: List[ComputationStep] = Field(default_factory=list)


class LenderInterestBreakdown(BaseModel):
    model_config = ConfigDict(extra="forbid")

    lender_name: str
    lender_type: LenderType
    interest_type: str
    interest_amount: float
    is_covered: bool
    reason_if_not_covered: Optional[str] = None


class ThresholdCheck(BaseModel):
    model_config = ConfigDict(extra="forbid")

    threshold: float
    interest_amount: float
    exceeds_threshold: bool


class InterestAnalysis(BaseModel):
    """Covered / not-covered partition of the period's interest lines."""
    model_config = ConfigDict(extra="forbid")

    total_interest_expense: float
    interest_covered: float
    interest_not_covered: float
    lender_breakdown: List[LenderInterestBreakdown] = Field(default_factory=list)
    threshold_check: ThresholdCheck


class ExemptionResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_exempt: bool
    category: Optional[str] = None
    reference: Optional[str] = None


# ---------------------------------------------------------------------------
# Carry-forward ledger
# ---------------------------------------------------------------------------

class CarryForwardDeposit(BaseModel):
    """
    Disallowance generated in origin_year, usable until (not including) expiry_year.

    Conservation:
      live:    utilized_to_date + remaining_balance == original_amount
      expired: remaining_balance == 0 and utilized_to_date + expired_amount == original_amount
    """
    model_config = ConfigDict(extra="forbid", frozen=True)

    origin_year: str
    original_amount: float = Field(..., ge=0)
    utilized_to_date: float = Field(default=0.0, ge=0)
    remaining_balance: float = Field(..., ge=0)
    expired_amount: float = Field(default=0.0, ge=0)
    expiry_year: str
    is_expired: bool = False

    @model_validator(mode="after")
    def check_conservation(self) -> "CarryForwardDeposit":
        if self.is_expired:
            if self.remaining_balance != 0:
                raise ValueError(
                    f"Expired deposit {self.origin_year} must have zero remaining balance, "
                    f"got ₹{self.remaining_balance:,.2f}"
                )
            accounted = self.utilized_to_date + self.expired_amount
        else:
            if self.expired_amount != 0:
                raise ValueError(f"Live deposit {self.origin_year} cannot carry an expired amount")
            accounted = self.utilized_to_date + self.remaining_balance
        if not math.isclose(accounted, self.original_amount, abs_tol=_CONSERVATION_TOLERANCE):
            raise ValueError(
                f"Deposit {self.origin_year} does not conserve its original amount: "
                f"₹{accounted:,.2f} accounted vs ₹{self.original_amount:,.2f} original"
            )
        return self


class CarryForwardLedger(BaseModel):
    """Deposits ordered by origin year, oldest first. Expired deposits are kept for audit."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    deposits: List[CarryForwardDeposit] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_origins(self) -> "CarryForwardLedger":
        origins = [d.origin_year for d in self.deposits]
        if len(origins) != len(set(origins)):
            raise ValueError("Carry-forward ledger holds more than one deposit for the same origin year")
        return self

    @property
    def active_deposits(self) -> List[CarryForwardDeposit]:
        return [d for d in self.deposits if not d.is_expired]

    @property
    def closing_balance(self) -> float:
        return sum(d.remaining_balance for d in self.deposits if not d.is_expired)

    def get(self, origin_year: str) -> Optional[CarryForwardDeposit]:
        for deposit in self.deposits:
            if deposit.origin_year == origin_year:
                return deposit
        return None


class CarryForwardYearDetail(BaseModel):
    """One row of the per-deposit table for the period evaluated."""
    model_config = ConfigDict(extra="forbid")

    origin_year: str
    opening: float
    utilized: float
    expired: float
    closing: float
    expiry_year: str


class CarryForwardFuture(BaseModel):
    model_config = ConfigDict(extra="forbid")

    origin_year: str
    amount: float
    expiry_year: str
    years_remaining: int


class CarryForwardResult(BaseModel):
    """Ledger movement for one period: opening − utilized − expired + new = closing."""
    model_config = ConfigDict(extra="forbid")

    assessment_year: str
    opening_balance: float
    current_year_disallowance: float
    headroom_available: float
    utilized_in_year: float
    expired_in_year: float
    closing_balance: float
    year_wise_details: List[CarryForwardYearDetail] = Field(default_factory=list)
    available_for_future: List[CarryForwardFuture] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# LimitationResult: tagged union on `status`
# ---------------------------------------------------------------------------

class _LimitationResultBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    assessment_year: str
    reason: str                          # Audit/display string for the terminal state
    allowable_interest: float
    disallowed_interest: float
    ledger: CarryForwardLedger           # Closing ledger: thread into the next period
    computation_steps: List[ComputationStep] = Field(default_factory=list)
    validation_issues: List[ValidationIssue] = Field(default_factory=list)
    summary: str = ""

    @property
    def has_blocking_issues(self) -> bool:
        return any(i.severity in BLOCKING_SEVERITIES for i in self.validation_issues)


class ExemptResult(_LimitationResultBase):
    """Entity category is outside Section 94B. Full interest deduction."""
    status: Literal["exempt"] = "exempt"
    is_applicable: Literal[False] = False
    exemption: ExemptionResult
    carry_forward: Optional[CarryForwardResult] = None    # Only when ledger aging is on


class BelowThresholdResult(_LimitationResultBase):
    """Covered interest does not exceed ₹1 crore. Full interest deduction."""
    status: Literal["below_threshold"] = "below_threshold"
    is_applicable: Literal[False] = False
    interest_analysis: InterestAnalysis
    carry_forward: Optional[CarryForwardResult] = None    # Only when ledger aging is on


class ApplicableResult(_LimitationResultBase):
    """Section 94B applies: allowable = min(cap, covered), excess joins the ledger."""
    status: Literal["applicable"] = "applicable"
    is_applicable: Literal[True] = True
    ebitda: EBITDAResult
    interest_analysis: InterestAnalysis
    carry_forward: CarryForwardResult


LimitationResult = Annotated[
    Union[ExemptResult, BelowThresholdResult, ApplicableResult],
    Field(discriminator="status"),
]


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

class GrowthAssumptions(BaseModel):
    """Annual compounding rates as fractions (0.10 = 10%). Checked by project_forward."""
    model_config = ConfigDict(extra="forbid")

    ebitda_growth_rate: float = 0.0
    interest_growth_rate: float = 0.0


class ProjectionBase(BaseModel):
    """The real period the projection compounds from, plus the ledger brought into it."""
    model_config = ConfigDict(extra="forbid")

    financials: FinancialPeriod
    interest_lines: List[InterestLineItem] = Field(default_factory=list)
    entity_exemption_code: Optional[str] = None
    opening_ledger: CarryForwardLedger = Field(default_factory=CarryForwardLedger)


class YearProjection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    year: str
    status: Literal["exempt", "below_threshold", "applicable"]
    projected_ebitda: float
    projected_interest: float            # All interest lines
    covered_interest: float              # Section 94B-covered subset
    allowable_interest: float
    disallowance: float
    carryforward_opening: float
    carryforward_utilization: float
    carryforward_expired: float
    carryforward_closing: float


class MultiYearProjection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_year: str
    growth: GrowthAssumptions
    years: List[YearProjection] = Field(default_factory=list)
    total_disallowance: float
    total_carryforward_utilization: float
    total_carryforward_expired: float
    assumed_tax_rate: float
    net_tax_impact: float                # (disallowance − utilization) × rate
    closing_ledger: CarryForwardLedger


class UtilizationSimulationYear(BaseModel):
    model_config = ConfigDict(extra="forbid")

    year: str
    ebitda: float
    interest_limit: float
    interest_expense: float
    disallowance: float
    headroom: float
    carryforward_utilized: float
    carryforward_expired: float
    carryforward_remaining: float


class UtilizationSimulation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    starting_year: str
    opening_balance: float
    years: List[UtilizationSimulationYear] = Field(default_factory=list)
    total_utilized: float
    total_expired: float
    closing_balance: float
    utilization_rate: float              # Percent of opening balance utilized
    closing_ledger: CarryForwardLedger


class FinancingAlternative(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    debt_reduction_pct: float = Field(..., ge=0, le=100)
    description: str = ""


class FinancingAlternativeOutcome(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    status: Literal["exempt", "below_threshold", "applicable"]
    disallowed_interest: float
    savings: float
    percentage_savings: float


class FinancingComparison(BaseModel):
    model_config = ConfigDict(extra="forbid")

    current_disallowance: float
    alternatives: List[FinancingAlternativeOutcome] = Field(default_factory=list)
    recommended_alternative: Optional[str] = None    # None when nothing saves anything


# ---------------------------------------------------------------------------
# HTTP request bodies
# ---------------------------------------------------------------------------

class ThinCapCalculationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    assessment_year: Optional[str] = None    # Defaults to financials.assessment_year
    entity_code: Optional[str] = None
    financials: FinancialPeriod
    interest_lines: List[InterestLineItem] = Field(default_factory=list)
    prior_ledger: CarryForwardLedger = Field(default_factory=CarryForwardLedger)


class ProjectionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base: ProjectionBase
    periods: int
    growth: GrowthAssumptions = Field(default_factory=GrowthAssumptions)


class UtilizationSimulationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    starting_year: str
    opening_ledger: CarryForwardLedger
    projected_ebitda: List[float]
    projected_interest: List[float]


class FinancingComparisonRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base: ProjectionBase
    alternatives: List[FinancingAlternative]


__all__ = [
    "ValidationSeverity",
    "ValidationIssue",
    "ComputationStep",
    "FinancialPeriod",
    "InterestLineItem",
    "EBITDAResult",
    "LenderInterestBreakdown",
    "ThresholdCheck",
    "InterestAnalysis",
    "ExemptionResult",
    "CarryForwardDeposit",
    "CarryForwardLedger",
    "CarryForwardYearDetail",
    "CarryForwardFuture",
    "CarryForwardResult",
    "ExemptResult",
    "BelowThresholdResult",
    "ApplicableResult",
    "LimitationResult",
    "GrowthAssumptions",
    "ProjectionBase",
    "YearProjection",
    "MultiYearProjection",
    "UtilizationSimulationYear",
    "UtilizationSimulation",
    "FinancingAlternative",
    "FinancingAlternativeOutcome",
    "FinancingComparison",
    "ThinCapCalculationRequest",
    "ProjectionRequest",
    "UtilizationSimulationRequest",
    "FinancingComparisonRequest",
]
