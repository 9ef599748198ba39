"""
thin_cap/__init__.py — public surface of the Section 94B engine.

Route handlers live in thin_cap.routes and are NOT imported here, so the
engine can be used without FastAPI on the import path.
"""
from tpledger.thin_cap.engine import ThinCapEngine, check_exemption, create_thin_cap_engine
from tpledger.thin_cap.ledger import age_ledger, apply_carry_forward
from tpledger.thin_cap.projection import (
    compare_financing_alternatives,
    project_forward,
    simulate_utilization,
)
from tpledger.thin_cap.schemas import (
    ApplicableResult,
    BelowThresholdResult,
    CarryForwardDeposit,
    CarryForwardLedger,
    ExemptResult,
    FinancialPeriod,
    GrowthAssumptions,
    InterestLineItem,
    LimitationResult,
    ProjectionBase,
)

__all__ = [
    "ThinCapEngine",
    "check_exemption",
    "create_thin_cap_engine",
    "apply_carry_forward",
    "age_ledger",
    "project_forward",
    "simulate_utilization",
    "compare_financing_alternatives",
    "ApplicableResult",
    "BelowThresholdResult",
    "CarryForwardDeposit",
    "CarryForwardLedger",
    "ExemptResult",
    "FinancialPeriod",
    "GrowthAssumptions",
    "InterestLineItem",
    "LimitationResult",
    "ProjectionBase",
]
