"""
Section 94B HTTP routes — GET  /api/thin-cap/rules,
                           POST /api/thin-cap/calculate,
                           POST /api/thin-cap/projection,
                           POST /api/thin-cap/simulate-utilization,
                           POST /api/thin-cap/financing-alternatives

Thin wrappers: parse the body, build an engine from settings, serialise the
result. Nothing is persisted; the caller keeps the returned ledger and sends
it back as prior_ledger / opening_ledger next time.
"""
from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from tpledger.thin_cap.engine import create_thin_cap_engine
from tpledger.thin_cap.projection import (
    compare_financing_alternatives,
    project_forward,
    simulate_utilization,
)
from tpledger.thin_cap.rules import (
    AY_THIN_CAP_RULES,
    CARRYFORWARD_YEARS,
    COVERED_INTEREST_TYPES,
    EBITDA_LIMITATION_PCT,
    EXEMPT_ENTITIES,
    FIRST_APPLICABLE_AY,
    INTEREST_THRESHOLD,
)
from tpledger.thin_cap.schemas import (
    FinancingComparisonRequest,
    ProjectionRequest,
    ThinCapCalculationRequest,
    UtilizationSimulationRequest,
)

router = APIRouter(prefix="/api/thin-cap", tags=["thin_cap"])
logger = logging.getLogger(__name__)


@router.get("/rules")
async def get_rules() -> dict:
    """Section 94B thresholds, per-AY rule table, exemptions and covered interest types."""
    return {
        "section": "94B",
        "title": "Limitation on Interest Deduction",
        "effective_from": f"AY {FIRST_APPLICABLE_AY}",
        "interest_threshold": INTEREST_THRESHOLD,
        "ebitda_limitation_pct": EBITDA_LIMITATION_PCT,
        "carryforward_years": CARRYFORWARD_YEARS,
        "rules": {ay: asdict(rule) for ay, rule in AY_THIN_CAP_RULES.items()},
        "exemptions": EXEMPT_ENTITIES,
        "covered_interest_types": COVERED_INTEREST_TYPES,
    }


@router.post("/calculate")
async def calculate_thin_cap(body: ThinCapCalculationRequest) -> JSONResponse:
    """
    Evaluate Section 94B for one assessment year.

    Returns the tagged result (status = exempt | below_threshold | applicable)
    with validation issues attached. Issues never turn into a 4xx. The caller
    decides whether "error" severity blocks its workflow.
    """
    engine = create_thin_cap_engine()
    result = engine.compute_period(
        body.financials,
        body.interest_lines,
        body.entity_code,
        body.prior_ledger,
        body.assessment_year,
    )
    return JSONResponse(status_code=200, content=result.model_dump(mode="json"))


@router.post("/projection")
async def project(body: ProjectionRequest) -> JSONResponse:
    """Multi-year forecast. Negative or absurd growth rates → 422."""
    projection = project_forward(body.base, body.periods, body.growth)
    return JSONResponse(status_code=200, content=projection.model_dump(mode="json"))


@router.post("/simulate-utilization")
async def simulate(body: UtilizationSimulationRequest) -> JSONResponse:
    """Run the carry-forward ledger over explicit EBITDA / interest series."""
    simulation = simulate_utilization(
        body.opening_ledger,
        body.starting_year,
        body.projected_ebitda,
        body.projected_interest,
    )
    logger.info(
        "Utilization simulation from AY %s years=%d utilized=%.2f",
        body.starting_year, len(simulation.years), simulation.total_utilized,
    )
    return JSONResponse(status_code=200, content=simulation.model_dump(mode="json"))


@router.post("/financing-alternatives")
async def financing_alternatives(body: FinancingComparisonRequest) -> JSONResponse:
    """Rank debt-reduction alternatives by disallowance saved."""
    comparison = compare_financing_alternatives(body.base, body.alternatives)
    return JSONResponse(status_code=200, content=comparison.model_dump(mode="json"))
