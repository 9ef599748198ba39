"""
End-to-end API tests for the /api/thin-cap routes.

Tests the full stack: HTTP request → schema validation → engine → HTTP
response, including the {error: {code, message, details}} envelope for
rejected input. No live server: httpx talks to the ASGI app directly.
"""
from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tpledger.main import app


def _line(amount: float, **overrides) -> dict:
    line = {
        "lender_name": "Parent Co BV",
        "lender_type": "non_resident_ae",
        "lender_country": "NL",
        "interest_type": "LOAN_INTEREST",
        "interest_amount": amount,
        "is_ae": True,
    }
    line.update(overrides)
    return line


def _financials(ebitda: float, interest: float, assessment_year: str = "2025-26") -> dict:
    return {
        "assessment_year": assessment_year,
        "profit_before_tax": ebitda - interest,
        "total_interest_expense": interest,
        "depreciation": 0,
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def client():
    """Async httpx client using ASGI transport, no live server needed."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Test Group 1: System and reference data
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_rules(client: AsyncClient) -> None:
    response = await client.get("/api/thin-cap/rules")
    assert response.status_code == 200
    body = response.json()
    assert body["interest_threshold"] == 10_000_000
    assert body["carryforward_years"] == 8
    assert body["rules"]["2018-19"]["special_provisions"] == ["First year of applicability"]
    assert {e["code"] for e in body["exemptions"]} >= {"BANK", "INSURANCE"}


# ---------------------------------------------------------------------------
# Test Group 2: POST /api/thin-cap/calculate
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_calculate_applicable(client: AsyncClient) -> None:
    payload = {
        "financials": _financials(50_000_000, 20_000_000),
        "interest_lines": [_line(20_000_000)],
    }
    response = await client.post("/api/thin-cap/calculate", json=payload)
    assert response.status_code == 200, response.text

    result = response.json()
    assert result["status"] == "applicable"
    assert result["is_applicable"] is True
    assert result["disallowed_interest"] == pytest.approx(5_000_000)
    assert result["ledger"]["deposits"][0]["expiry_year"] == "2033-34"


@pytest.mark.asyncio
async def test_calculate_threads_returned_ledger(client: AsyncClient) -> None:
    first = await client.post("/api/thin-cap/calculate", json={
        "financials": _financials(50_000_000, 20_000_000, "2024-25"),
        "interest_lines": [_line(20_000_000)],
    })
    second = await client.post("/api/thin-cap/calculate", json={
        "financials": _financials(60_000_000, 12_000_000, "2025-26"),
        "interest_lines": [_line(12_000_000)],
        "prior_ledger": first.json()["ledger"],
    })
    assert second.status_code == 200, second.text
    assert second.json()["carry_forward"]["utilized_in_year"] == pytest.approx(5_000_000)


@pytest.mark.asyncio
async def test_calculate_exempt_entity(client: AsyncClient) -> None:
    payload = {
        "entity_code": "BANK",
        "financials": _financials(10_000_000, 20_000_000),
        "interest_lines": [_line(20_000_000)],
    }
    response = await client.post("/api/thin-cap/calculate", json=payload)
    assert response.status_code == 200
    result = response.json()
    assert result["status"] == "exempt"
    assert result["allowable_interest"] == pytest.approx(20_000_000)


@pytest.mark.asyncio
async def test_calculate_returns_soft_issues_with_200(client: AsyncClient) -> None:
    response = await client.post("/api/thin-cap/calculate", json={
        "financials": _financials(10_000_000, 0),
        "interest_lines": [],
    })
    assert response.status_code == 200
    assert [i["code"] for i in response.json()["validation_issues"]] == ["TC006"]


@pytest.mark.asyncio
async def test_calculate_missing_financials_is_422(client: AsyncClient) -> None:
    response = await client.post("/api/thin-cap/calculate", json={"interest_lines": []})
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert "financials" in [d["field"] for d in error["details"]]


@pytest.mark.asyncio
async def test_calculate_unparseable_year_is_422(client: AsyncClient) -> None:
    response = await client.post("/api/thin-cap/calculate", json={
        "financials": _financials(10_000_000, 0, "soon"),
    })
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["details"][0]["field"] == "assessment_year"


@pytest.mark.asyncio
async def test_calculate_rejects_duplicate_ledger_origins(client: AsyncClient) -> None:
    deposit = {
        "origin_year": "2022-23",
        "original_amount": 100,
        "remaining_balance": 100,
        "expiry_year": "2030-31",
    }
    response = await client.post("/api/thin-cap/calculate", json={
        "financials": _financials(10_000_000, 0),
        "prior_ledger": {"deposits": [deposit, deposit]},
    })
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_calculate_rejects_unknown_fields(client: AsyncClient) -> None:
    response = await client.post("/api/thin-cap/calculate", json={
        "financials": _financials(10_000_000, 0),
        "gst_number": "27AAAAA0000A1Z5",
    })
    assert response.status_code == 422


# ---------------------------------------------------------------------------
# Test Group 3: Projection and what-if routes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_projection(client: AsyncClient) -> None:
    response = await client.post("/api/thin-cap/projection", json={
        "base": {
            "financials": _financials(50_000_000, 20_000_000),
            "interest_lines": [_line(20_000_000)],
        },
        "periods": 3,
    })
    assert response.status_code == 200, response.text
    body = response.json()
    assert [y["year"] for y in body["years"]] == ["2026-27", "2027-28", "2028-29"]
    assert body["total_disallowance"] == pytest.approx(15_000_000)


@pytest.mark.asyncio
async def test_projection_negative_growth_is_422(client: AsyncClient) -> None:
    response = await client.post("/api/thin-cap/projection", json={
        "base": {"financials": _financials(50_000_000, 20_000_000)},
        "periods": 3,
        "growth": {"ebitda_growth_rate": -0.2},
    })
    assert response.status_code == 422
    assert response.json()["error"]["details"][0]["field"] == "ebitda_growth_rate"


@pytest.mark.asyncio
async def test_simulate_utilization(client: AsyncClient) -> None:
    response = await client.post("/api/thin-cap/simulate-utilization", json={
        "starting_year": "2025-26",
        "opening_ledger": {"deposits": [{
            "origin_year": "2022-23",
            "original_amount": 500_000,
            "remaining_balance": 500_000,
            "expiry_year": "2030-31",
        }]},
        "projected_ebitda": [5_000_000],
        "projected_interest": [1_000_000],
    })
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["total_utilized"] == pytest.approx(500_000)
    assert body["utilization_rate"] == pytest.approx(100.0)


@pytest.mark.asyncio
async def test_financing_alternatives(client: AsyncClient) -> None:
    response = await client.post("/api/thin-cap/financing-alternatives", json={
        "base": {
            "financials": _financials(50_000_000, 20_000_000),
            "interest_lines": [_line(20_000_000)],
        },
        "alternatives": [
            {"name": "Repay 10%", "debt_reduction_pct": 10},
            {"name": "Convert 25% to equity", "debt_reduction_pct": 25},
        ],
    })
    assert response.status_code == 200, response.text
    assert response.json()["recommended_alternative"] == "Convert 25% to equity"
