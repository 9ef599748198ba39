"""
Multi-year projection, utilization simulation and financing what-ifs.

Base year used throughout: AY 2025-26, EBITDA ₹5 cr (cap ₹1.5 cr),
covered interest ₹2 cr → ₹50 L disallowed a year at zero growth.
"""
from __future__ import annotations

import math

import pytest
from pydantic import ValidationError

from tpledger.errors import ProjectionParameterError
from tpledger.tests.factories import make_financials, make_line
from tpledger.thin_cap.projection import (
    compare_financing_alternatives,
    project_forward,
    simulate_utilization,
)
from tpledger.thin_cap.rules import LenderType
from tpledger.thin_cap.schemas import (
    CarryForwardLedger,
    FinancingAlternative,
    GrowthAssumptions,
    ProjectionBase,
)


@pytest.fixture
def base() -> ProjectionBase:
    return ProjectionBase(
        financials=make_financials(50_000_000, 20_000_000),
        interest_lines=[make_line(20_000_000)],
    )


# ===========================================================================
# TEST GROUP 1: project_forward
# ===========================================================================

def test_zero_growth_repeats_the_base_year(base: ProjectionBase) -> None:
    projection = project_forward(base, 3, GrowthAssumptions())

    assert [y.year for y in projection.years] == ["2026-27", "2027-28", "2028-29"]
    for year in projection.years:
        assert year.status == "applicable"
        assert year.projected_ebitda == pytest.approx(50_000_000)
        assert year.covered_interest == pytest.approx(20_000_000)
        assert year.disallowance == pytest.approx(5_000_000)
        assert year.carryforward_utilization == 0.0
    assert projection.total_disallowance == pytest.approx(15_000_000)
    # Base-year ₹50 L plus three projected years
    assert projection.closing_ledger.closing_balance == pytest.approx(20_000_000)
    assert projection.net_tax_impact == pytest.approx(4_500_000)


def test_projection_is_deterministic(base: ProjectionBase) -> None:
    growth = GrowthAssumptions(ebitda_growth_rate=0.08, interest_growth_rate=0.03)
    assert project_forward(base, 6, growth).model_dump() == project_forward(base, 6, growth).model_dump()


def test_ebitda_growth_releases_carry_forward(base: ProjectionBase) -> None:
    """10% EBITDA growth with flat interest: disallowance shrinks, then headroom sets off the backlog."""
    projection = project_forward(base, 5, GrowthAssumptions(ebitda_growth_rate=0.10))
    disallowances = [y.disallowance for y in projection.years]

    assert disallowances[0] == pytest.approx(3_500_000)
    assert disallowances == sorted(disallowances, reverse=True)
    assert projection.years[3].disallowance == 0.0
    assert projection.years[3].carryforward_utilization > 0
    assert projection.total_carryforward_utilization > 0


def test_base_year_disallowance_enters_the_ledger(base: ProjectionBase) -> None:
    projection = project_forward(base, 1, GrowthAssumptions())

    deposit = projection.closing_ledger.get("2025-26")
    assert deposit is not None
    assert deposit.original_amount == pytest.approx(5_000_000)
    assert projection.years[0].carryforward_opening == pytest.approx(5_000_000)
    assert projection.total_disallowance == pytest.approx(5_000_000)


def test_projection_and_financing_share_one_base(two_deposit_ledger: CarryForwardLedger) -> None:
    """opening_ledger is the ledger brought into the base year for both what-ifs."""
    shared = ProjectionBase(
        financials=make_financials(50_000_000, 20_000_000),
        interest_lines=[make_line(20_000_000)],
        opening_ledger=two_deposit_ledger,
    )
    projection = project_forward(shared, 2, GrowthAssumptions())
    comparison = compare_financing_alternatives(shared, [FinancingAlternative(name="Repay 25%", debt_reduction_pct=25)])

    assert projection.closing_ledger.get("2025-26").original_amount == pytest.approx(5_000_000)
    assert projection.closing_ledger.get("2020-21").remaining_balance == pytest.approx(1_000_000)
    assert comparison.current_disallowance == pytest.approx(5_000_000)
    assert comparison.recommended_alternative == "Repay 25%"


def test_years_thread_the_ledger(base: ProjectionBase) -> None:
    projection = project_forward(base, 4, GrowthAssumptions(interest_growth_rate=0.05))
    for previous, current in zip(projection.years, projection.years[1:]):
        assert current.carryforward_opening == pytest.approx(previous.carryforward_closing)


def test_exempt_base_stays_exempt(base: ProjectionBase) -> None:
    exempt = base.model_copy(update={"entity_exemption_code": "BANK"})
    projection = project_forward(exempt, 2, GrowthAssumptions(interest_growth_rate=0.5))
    assert {y.status for y in projection.years} == {"exempt"}
    assert projection.total_disallowance == 0.0


def test_custom_tax_rate(base: ProjectionBase) -> None:
    projection = project_forward(base, 1, GrowthAssumptions(), tax_rate=0.25)
    assert projection.assumed_tax_rate == 0.25
    assert projection.net_tax_impact == pytest.approx(1_250_000)


@pytest.mark.parametrize(
    "growth",
    [
        GrowthAssumptions(ebitda_growth_rate=-0.05),
        GrowthAssumptions(interest_growth_rate=-0.01),
        GrowthAssumptions(ebitda_growth_rate=1.5),
        GrowthAssumptions(interest_growth_rate=math.nan),
    ],
)
def test_absurd_growth_is_rejected(base: ProjectionBase, growth: GrowthAssumptions) -> None:
    with pytest.raises(ProjectionParameterError):
        project_forward(base, 3, growth)


@pytest.mark.parametrize("periods", [0, -1, 26, True, 2.5])
def test_periods_out_of_range_are_rejected(base: ProjectionBase, periods) -> None:
    with pytest.raises(ProjectionParameterError) as exc_info:
        project_forward(base, periods, GrowthAssumptions())
    assert exc_info.value.field == "periods"


def test_tax_rate_must_be_a_fraction(base: ProjectionBase) -> None:
    with pytest.raises(ProjectionParameterError):
        project_forward(base, 1, GrowthAssumptions(), tax_rate=30)


# ===========================================================================
# TEST GROUP 2: simulate_utilization
# ===========================================================================

def test_simulation_sets_off_oldest_first(two_deposit_ledger: CarryForwardLedger) -> None:
    """Cap ₹15 L on EBITDA ₹50 L, interest ₹10 L → ₹5 L headroom a year."""
    sim = simulate_utilization(two_deposit_ledger, "2025-26", [5_000_000, 5_000_000], [1_000_000, 1_000_000])

    assert [y.year for y in sim.years] == ["2026-27", "2027-28"]
    assert [y.headroom for y in sim.years] == [pytest.approx(500_000), pytest.approx(500_000)]
    assert sim.total_utilized == pytest.approx(1_000_000)
    assert sim.closing_balance == pytest.approx(500_000)
    assert sim.closing_ledger.get("2020-21").remaining_balance == 0.0
    assert sim.utilization_rate == pytest.approx(66.7)


def test_simulation_expires_before_setting_off(two_deposit_ledger: CarryForwardLedger) -> None:
    sim = simulate_utilization(two_deposit_ledger, "2027-28", [10_000_000], [0.0])
    assert sim.years[0].year == "2028-29"
    assert sim.total_expired == pytest.approx(1_000_000)
    assert sim.total_utilized == pytest.approx(500_000)


def test_simulation_records_new_disallowance() -> None:
    sim = simulate_utilization(CarryForwardLedger(), "2025-26", [10_000_000], [4_000_000])
    assert sim.years[0].disallowance == pytest.approx(1_000_000)
    assert sim.closing_ledger.get("2026-27").remaining_balance == pytest.approx(1_000_000)
    assert sim.utilization_rate == 0.0


@pytest.mark.parametrize(
    "ebitda, interest",
    [
        ([1.0, 2.0], [1.0]),
        ([], []),
        ([1.0] * 9, [1.0] * 9),
        ([1.0], [-1.0]),
        ([math.inf], [1.0]),
    ],
)
def test_simulation_misuse_is_rejected(ebitda, interest) -> None:
    with pytest.raises(ProjectionParameterError):
        simulate_utilization(CarryForwardLedger(), "2025-26", ebitda, interest)


# ===========================================================================
# TEST GROUP 3: compare_financing_alternatives
# ===========================================================================

def test_alternatives_are_ranked_by_savings(base: ProjectionBase) -> None:
    comparison = compare_financing_alternatives(base, [
        FinancingAlternative(name="Status quo", debt_reduction_pct=0),
        FinancingAlternative(name="Repay 10%", debt_reduction_pct=10),
        FinancingAlternative(name="Convert 25% to equity", debt_reduction_pct=25),
    ])
    by_name = {a.name: a for a in comparison.alternatives}

    assert comparison.current_disallowance == pytest.approx(5_000_000)
    assert by_name["Status quo"].savings == 0.0
    assert by_name["Repay 10%"].disallowed_interest == pytest.approx(3_000_000)
    assert by_name["Repay 10%"].percentage_savings == pytest.approx(40.0)
    assert by_name["Convert 25% to equity"].savings == pytest.approx(5_000_000)
    assert comparison.recommended_alternative == "Convert 25% to equity"


def test_no_recommendation_when_nothing_is_disallowed() -> None:
    base = ProjectionBase(
        financials=make_financials(50_000_000, 20_000_000),
        interest_lines=[make_line(20_000_000, lender_type=LenderType.resident_non_ae, is_ae=False)],
    )
    comparison = compare_financing_alternatives(base, [FinancingAlternative(name="Repay", debt_reduction_pct=50)])
    assert comparison.current_disallowance == 0.0
    assert comparison.alternatives[0].percentage_savings == 0.0
    assert comparison.recommended_alternative is None


def test_alternatives_are_required(base: ProjectionBase) -> None:
    with pytest.raises(ProjectionParameterError):
        compare_financing_alternatives(base, [])


def test_reduction_above_hundred_percent_is_invalid() -> None:
    with pytest.raises(ValidationError):
        FinancingAlternative(name="Too much", debt_reduction_pct=150)
