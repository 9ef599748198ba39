"""
Shared fixtures for the tpledger test suite.

Scenario A figures: PBT ₹1 cr + interest ₹30 L + depreciation ₹20 L +
amortization ₹5 L = EBITDA ₹1.55 cr → 30% cap ₹46.5 L.
"""
from __future__ import annotations

import pytest

from tpledger.tests.factories import make_deposit
from tpledger.thin_cap.engine import ThinCapEngine
from tpledger.thin_cap.schemas import CarryForwardLedger, FinancialPeriod


@pytest.fixture
def engine() -> ThinCapEngine:
    return ThinCapEngine(assessment_year="2025-26")


@pytest.fixture
def aging_engine() -> ThinCapEngine:
    return ThinCapEngine(assessment_year="2025-26", age_ledger_when_inapplicable=True)


@pytest.fixture
def scenario_a_financials() -> FinancialPeriod:
    return FinancialPeriod(
        assessment_year="2025-26",
        profit_before_tax=10_000_000,
        total_interest_expense=3_000_000,
        depreciation=2_000_000,
        amortization=500_000,
    )


@pytest.fixture
def two_deposit_ledger() -> CarryForwardLedger:
    """₹10 L from AY 2020-21 and ₹5 L from AY 2022-23, nothing utilized yet."""
    return CarryForwardLedger(deposits=[
        make_deposit("2020-21", 1_000_000),
        make_deposit("2022-23", 500_000),
    ])
