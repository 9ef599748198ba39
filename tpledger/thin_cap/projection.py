"""
Projection simulator — re-runs the Section 94B engine over synthetic future years.

  project_forward()                 compound a real base year at fixed growth rates
                                    for N years, threading the ledger through each
  simulate_utilization()            run the ledger over caller-supplied EBITDA and
                                    covered-interest series
  compare_financing_alternatives()  what-if: scale AE debt down and re-run the year

Every synthetic year goes through exactly the same code path as a real one
(ThinCapEngine.compute_period or apply_carry_forward), so a projection is only
as deterministic as the engine.
"""
from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

from tpledger.config import settings
from tpledger.errors import ProjectionParameterError
from tpledger.thin_cap.classifier import classify_interest
from tpledger.thin_cap.ebitda import calculate_ebitda
from tpledger.thin_cap.engine import ThinCapEngine, create_thin_cap_engine
from tpledger.thin_cap.ledger import apply_carry_forward
from tpledger.thin_cap.rules import (
    CARRYFORWARD_YEARS,
    EBITDA_LIMITATION_PCT,
    ay_start_year,
    calculate_allowable_cap,
    shift_ay,
)
from tpledger.thin_cap.schemas import (
    CarryForwardLedger,
    FinancialPeriod,
    FinancingAlternative,
    FinancingAlternativeOutcome,
    FinancingComparison,
    GrowthAssumptions,
    InterestLineItem,
    MultiYearProjection,
    ProjectionBase,
    UtilizationSimulation,
    UtilizationSimulationYear,
    YearProjection,
)

logger = logging.getLogger(__name__)


# ===========================================================================
# PARAMETER CHECKS: caller misuse is a hard failure
# ===========================================================================

def _check_growth_rate(name: str, rate: float) -> None:
    if not math.isfinite(rate):
        raise ProjectionParameterError(f"{name} must be a finite number, got {rate!r}", field=name)
    if rate < 0:
        raise ProjectionParameterError(f"{name} cannot be negative, got {rate:.4f}", field=name)
    if rate > settings.max_growth_rate:
        raise ProjectionParameterError(
            f"{name} of {rate:.2%} exceeds the {settings.max_growth_rate:.0%} annual maximum",
            field=name,
        )


def _check_periods(periods: int) -> None:
    if isinstance(periods, bool) or not isinstance(periods, int):
        raise ProjectionParameterError(f"periods must be an integer, got {periods!r}", field="periods")
    if periods < 1 or periods > settings.max_projection_years:
        raise ProjectionParameterError(
            f"periods must be between 1 and {settings.max_projection_years}, got {periods}",
            field="periods",
        )


def _check_tax_rate(tax_rate: float) -> None:
    if not math.isfinite(tax_rate) or tax_rate < 0 or tax_rate > 1:
        raise ProjectionParameterError(
            f"tax_rate must be a fraction between 0 and 1, got {tax_rate!r}",
            field="tax_rate",
        )


def _scale_lines(lines: Sequence[InterestLineItem], factor: float) -> list[InterestLineItem]:
    return [line.model_copy(update={"interest_amount": line.interest_amount * factor}) for line in lines]


# ===========================================================================
# MULTI-YEAR PROJECTION
# ===========================================================================

def project_forward(
    base_period: ProjectionBase,
    periods: int,
    growth: GrowthAssumptions,
    *,
    engine: Optional[ThinCapEngine] = None,
    tax_rate: Optional[float] = None,
) -> MultiYearProjection:
    """
    Project Section 94B outcomes for `periods` years after the base year.

    Year i (1..periods):
      EBITDA        = base EBITDA × (1 + ebitda_growth_rate)^i
      each interest = base line   × (1 + interest_growth_rate)^i
      depreciation / amortization grow with EBITDA; PBT is the balancing figure
    base_period.opening_ledger is the ledger brought into the base year: the base
    year is computed first so its own disallowance enters the ledger, then each
    synthetic year runs through compute_period() with the previous closing ledger.
    Only the synthetic years are reported and totalled.

    Raises:
        ProjectionParameterError: negative / absurd growth, periods out of range,
            tax_rate outside 0..1.
        ThinCapInputError: base year unparseable.
    """
    _check_growth_rate("ebitda_growth_rate", growth.ebitda_growth_rate)
    _check_growth_rate("interest_growth_rate", growth.interest_growth_rate)
    _check_periods(periods)
    rate = settings.assumed_tax_rate if tax_rate is None else tax_rate
    _check_tax_rate(rate)

    base = base_period.financials
    base_year = base.assessment_year
    ay_start_year(base_year)
    engine = engine or create_thin_cap_engine(base_year)

    base_ebitda = calculate_ebitda(base).total_ebitda
    base_result = engine.compute_period(
        base, base_period.interest_lines, base_period.entity_exemption_code,
        base_period.opening_ledger, base_year,
    )
    ledger: CarryForwardLedger = base_result.ledger
    years: list[YearProjection] = []

    for i in range(1, periods + 1):
        year = shift_ay(base_year, i)
        ebitda_factor = (1 + growth.ebitda_growth_rate) ** i
        interest_factor = (1 + growth.interest_growth_rate) ** i

        lines = _scale_lines(base_period.interest_lines, interest_factor)
        projected_ebitda = base_ebitda * ebitda_factor
        total_interest = base.total_interest_expense * interest_factor
        depreciation = base.depreciation * ebitda_factor
        amortization = base.amortization * ebitda_factor
        financials = FinancialPeriod(
            assessment_year=year,
            profit_before_tax=projected_ebitda - total_interest - depreciation - amortization,
            total_interest_expense=total_interest,
            depreciation=depreciation,
            amortization=amortization,
        )

        opening = ledger.closing_balance
        result = engine.compute_period(financials, lines, base_period.entity_exemption_code, ledger, year)
        ledger = result.ledger
        carry_forward = result.carry_forward

        years.append(YearProjection(
            year=year,
            status=result.status,
            projected_ebitda=projected_ebitda,
            projected_interest=sum(line.interest_amount for line in lines),
            covered_interest=classify_interest(lines).interest_covered,
            allowable_interest=result.allowable_interest,
            disallowance=result.disallowed_interest,
            carryforward_opening=carry_forward.opening_balance if carry_forward else opening,
            carryforward_utilization=carry_forward.utilized_in_year if carry_forward else 0.0,
            carryforward_expired=carry_forward.expired_in_year if carry_forward else 0.0,
            carryforward_closing=ledger.closing_balance,
        ))

    total_disallowance = sum(y.disallowance for y in years)
    total_utilization = sum(y.carryforward_utilization for y in years)
    total_expired = sum(y.carryforward_expired for y in years)

    logger.info(
        "Projection from AY %s: %d years, total_disallowance=%.2f utilized=%.2f",
        base_year, periods, total_disallowance, total_utilization,
    )

    return MultiYearProjection(
        base_year=base_year,
        growth=growth,
        years=years,
        total_disallowance=total_disallowance,
        total_carryforward_utilization=total_utilization,
        total_carryforward_expired=total_expired,
        assumed_tax_rate=rate,
        net_tax_impact=round((total_disallowance - total_utilization) * rate, 2),
        closing_ledger=ledger,
    )


# ===========================================================================
# CARRY-FORWARD UTILIZATION SIMULATION
# ===========================================================================

def simulate_utilization(
    opening_ledger: CarryForwardLedger,
    starting_year: str,
    projected_ebitda: Sequence[float],
    projected_interest: Sequence[float],
    ebitda_percentage: float = EBITDA_LIMITATION_PCT,
) -> UtilizationSimulation:
    """
    Run the ledger over explicit yearly EBITDA / covered-interest figures,
    starting the year after `starting_year`. The threshold test is skipped:
    every year is treated as one where Section 94B applies.
    """
    if len(projected_ebitda) != len(projected_interest):
        raise ProjectionParameterError(
            f"projected_ebitda has {len(projected_ebitda)} years but projected_interest has "
            f"{len(projected_interest)}",
            field="projected_interest",
        )
    if not projected_ebitda:
        raise ProjectionParameterError("At least one projected year is required", field="projected_ebitda")
    if len(projected_ebitda) > CARRYFORWARD_YEARS:
        raise ProjectionParameterError(
            f"At most {CARRYFORWARD_YEARS} years can be simulated, got {len(projected_ebitda)}",
            field="projected_ebitda",
        )
    for name, series in (("projected_ebitda", projected_ebitda), ("projected_interest", projected_interest)):
        if not all(math.isfinite(v) for v in series):
            raise ProjectionParameterError(f"{name} contains a non-finite value", field=name)
    if any(v < 0 for v in projected_interest):
        raise ProjectionParameterError("projected_interest cannot be negative", field="projected_interest")
    ay_start_year(starting_year)

    ledger = opening_ledger
    rows: list[UtilizationSimulationYear] = []

    for i, (ebitda, interest) in enumerate(zip(projected_ebitda, projected_interest), start=1):
        year = shift_ay(starting_year, i)
        cap = calculate_allowable_cap(ebitda, ebitda_percentage)
        allowable = max(0.0, min(cap, interest))
        disallowance = round(interest - allowable, 2)
        ledger, movement = apply_carry_forward(ledger, disallowance, max(0.0, cap - interest), year)
        rows.append(UtilizationSimulationYear(
            year=year,
            ebitda=ebitda,
            interest_limit=cap,
            interest_expense=interest,
            disallowance=disallowance,
            headroom=movement.headroom_available,
            carryforward_utilized=movement.utilized_in_year,
            carryforward_expired=movement.expired_in_year,
            carryforward_remaining=movement.closing_balance,
        ))

    opening_balance = opening_ledger.closing_balance
    total_utilized = sum(r.carryforward_utilized for r in rows)
    return UtilizationSimulation(
        starting_year=starting_year,
        opening_balance=opening_balance,
        years=rows,
        total_utilized=total_utilized,
        total_expired=sum(r.carryforward_expired for r in rows),
        closing_balance=ledger.closing_balance,
        utilization_rate=round(total_utilized / opening_balance * 100, 1) if opening_balance > 0 else 0.0,
        closing_ledger=ledger,
    )


# ===========================================================================
# FINANCING WHAT-IF
# ===========================================================================

def compare_financing_alternatives(
    base_period: ProjectionBase,
    alternatives: Sequence[FinancingAlternative],
    *,
    engine: Optional[ThinCapEngine] = None,
) -> FinancingComparison:
    """
    Re-run the base year with every interest line reduced by each alternative's
    debt_reduction_pct and rank the alternatives by disallowance saved.
    EBITDA is unchanged: interest is added back, so less interest leaves it flat.
    """
    if not alternatives:
        raise ProjectionParameterError("At least one financing alternative is required", field="alternatives")

    base = base_period.financials
    engine = engine or create_thin_cap_engine(base.assessment_year)
    code = base_period.entity_exemption_code

    current = engine.compute_period(base, base_period.interest_lines, code, base_period.opening_ledger)
    outcomes: list[FinancingAlternativeOutcome] = []
    for alt in alternatives:
        lines = _scale_lines(base_period.interest_lines, 1 - alt.debt_reduction_pct / 100)
        result = engine.compute_period(base, lines, code, base_period.opening_ledger)
        savings = round(current.disallowed_interest - result.disallowed_interest, 2)
        outcomes.append(FinancingAlternativeOutcome(
            name=alt.name,
            status=result.status,
            disallowed_interest=result.disallowed_interest,
            savings=savings,
            percentage_savings=(
                round(savings / current.disallowed_interest * 100, 1) if current.disallowed_interest > 0 else 0.0
            ),
        ))

    best = max(outcomes, key=lambda o: o.savings)
    return FinancingComparison(
        current_disallowance=current.disallowed_interest,
        alternatives=outcomes,
        recommended_alternative=best.name if best.savings > 0 else None,
    )


__all__ = [
    "project_forward",
    "simulate_utilization",
    "compare_financing_alternatives",
]
