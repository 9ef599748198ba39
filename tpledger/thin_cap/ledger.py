"""
Carry-forward ledger — Section 94B(4).

Disallowed interest of a year is carried forward for CARRYFORWARD_YEARS
assessment years and set off, oldest first, against the unused 30%-of-EBITDA
headroom of later years.

One call = one assessment year:
  1. headroom = max(0, unused_cap − current_disallowance)
  2. expiry pass: every live deposit with current_year >= expiry_year is expired
     (remaining → 0). Runs to completion BEFORE any utilization, so an aged
     deposit never absorbs headroom.
  3. utilization pass: oldest-first (FIFO by origin year), each live deposit
     takes min(remaining, headroom) until headroom runs out.
  4. current_disallowance > 0 appends a fresh deposit expiring in
     current_year + carryforward_years.
  5. closing = Σ remaining over non-expired deposits.

The input ledger is never mutated; a new CarryForwardLedger is returned.
Deposits are never removed: expired and fully-utilized entries stay for audit.
"""
from __future__ import annotations

import logging
import math

from tpledger.errors import ThinCapInputError
from tpledger.thin_cap.rules import (
    CARRYFORWARD_YEARS,
    ay_start_year,
    carryforward_expiry_year,
    years_between,
)
from tpledger.thin_cap.schemas import (
    CarryForwardDeposit,
    CarryForwardFuture,
    CarryForwardLedger,
    CarryForwardResult,
    CarryForwardYearDetail,
)

logger = logging.getLogger(__name__)


def _paise(amount: float) -> float:
    return round(amount, 2)


def _paise_down(amount: float) -> float:
    """Truncate to whole paise so a set-off never exceeds the headroom it draws on."""
    return math.floor(round(amount * 100, 6)) / 100


def _by_origin(deposit: CarryForwardDeposit) -> int:
    return ay_start_year(deposit.origin_year)


def _expire(deposit: CarryForwardDeposit) -> CarryForwardDeposit:
    return CarryForwardDeposit(
        origin_year=deposit.origin_year,
        original_amount=deposit.original_amount,
        utilized_to_date=deposit.utilized_to_date,
        remaining_balance=0.0,
        expired_amount=deposit.remaining_balance,
        expiry_year=deposit.expiry_year,
        is_expired=True,
    )


def _utilize(deposit: CarryForwardDeposit, headroom: float) -> tuple[CarryForwardDeposit, float]:
    """Set off up to `headroom` against the deposit. Returns (new deposit, amount taken)."""
    if headroom >= deposit.remaining_balance:
        taken = deposit.remaining_balance
        remaining = 0.0
    else:
        taken = min(_paise_down(headroom), deposit.remaining_balance)
        remaining = max(0.0, _paise(deposit.remaining_balance - taken))
    updated = CarryForwardDeposit(
        origin_year=deposit.origin_year,
        original_amount=deposit.original_amount,
        utilized_to_date=_paise(deposit.utilized_to_date + taken),
        remaining_balance=remaining,
        expiry_year=deposit.expiry_year,
    )
    return updated, taken


def apply_carry_forward(
    ledger: CarryForwardLedger,
    current_disallowance: float,
    unused_cap: float,
    assessment_year: str,
    carryforward_years: int = CARRYFORWARD_YEARS,
) -> tuple[CarryForwardLedger, CarryForwardResult]:
    """
    Advance the ledger by one assessment year.

    Args:
        ledger: Deposits brought forward (any order, sorted here by origin year).
        current_disallowance: This year's Section 94B disallowance (>= 0).
        unused_cap: Cap headroom left after this year's covered interest,
            i.e. max(0, cap − covered). Zero whenever this year itself disallows.
        assessment_year: The AY being evaluated.
        carryforward_years: Validity window for a new deposit.

    Returns:
        (closing ledger, movement breakdown for the year)

    Raises:
        ThinCapInputError: ledger already holds a deposit for assessment_year and
            a new disallowance would duplicate it.
    """
    current_start = ay_start_year(assessment_year)
    current_disallowance = _paise(max(0.0, current_disallowance))
    headroom = max(0.0, unused_cap - current_disallowance)
    headroom_available = headroom

    deposits = sorted(ledger.deposits, key=_by_origin)
    opening = {d.origin_year: (0.0 if d.is_expired else d.remaining_balance) for d in deposits}
    utilized = {d.origin_year: 0.0 for d in deposits}
    expired = {d.origin_year: 0.0 for d in deposits}

    # ---- Expiry pass (always before utilization) ------------------------------
    aged: list[CarryForwardDeposit] = []
    for deposit in deposits:
        if not deposit.is_expired and current_start >= ay_start_year(deposit.expiry_year):
            expired[deposit.origin_year] = deposit.remaining_balance
            logger.debug(
                "Deposit %s expired in AY %s with ₹%.2f unutilized",
                deposit.origin_year, assessment_year, deposit.remaining_balance,
            )
            deposit = _expire(deposit)
        aged.append(deposit)

    # ---- Utilization pass: FIFO ------------------------------------------------
    settled: list[CarryForwardDeposit] = []
    for deposit in aged:
        usable = (
            not deposit.is_expired
            and deposit.remaining_balance > 0
            and ay_start_year(deposit.origin_year) < current_start
        )
        if usable and headroom > 0:
            deposit, taken = _utilize(deposit, headroom)
            headroom -= taken
            utilized[deposit.origin_year] = taken
            logger.debug("Deposit %s utilized ₹%.2f in AY %s", deposit.origin_year, taken, assessment_year)
        settled.append(deposit)

    # ---- New deposit for this year's disallowance ---------------------------------
    if current_disallowance > 0:
        if any(d.origin_year == assessment_year for d in settled):
            raise ThinCapInputError(
                f"Carry-forward ledger already holds a deposit for AY {assessment_year}",
                field="prior_ledger",
            )
        settled.append(CarryForwardDeposit(
            origin_year=assessment_year,
            original_amount=current_disallowance,
            remaining_balance=current_disallowance,
            expiry_year=carryforward_expiry_year(assessment_year, carryforward_years),
        ))
        opening[assessment_year] = 0.0
        utilized[assessment_year] = 0.0
        expired[assessment_year] = 0.0
        settled.sort(key=_by_origin)

    closing_ledger = CarryForwardLedger(deposits=settled)

    year_wise = [
        CarryForwardYearDetail(
            origin_year=d.origin_year,
            opening=opening[d.origin_year],
            utilized=utilized[d.origin_year],
            expired=expired[d.origin_year],
            closing=0.0 if d.is_expired else d.remaining_balance,
            expiry_year=d.expiry_year,
        )
        for d in settled
    ]
    available = [
        CarryForwardFuture(
            origin_year=d.origin_year,
            amount=d.remaining_balance,
            expiry_year=d.expiry_year,
            years_remaining=max(0, years_between(assessment_year, d.expiry_year)),
        )
        for d in closing_ledger.active_deposits
        if d.remaining_balance > 0
    ]

    result = CarryForwardResult(
        assessment_year=assessment_year,
        opening_balance=sum(opening[d.origin_year] for d in deposits),
        current_year_disallowance=current_disallowance,
        headroom_available=headroom_available,
        utilized_in_year=sum(utilized.values()),
        expired_in_year=sum(expired.values()),
        closing_balance=closing_ledger.closing_balance,
        year_wise_details=year_wise,
        available_for_future=available,
    )
    return closing_ledger, result


def age_ledger(
    ledger: CarryForwardLedger,
    assessment_year: str,
) -> tuple[CarryForwardLedger, CarryForwardResult]:
    """Expiry-only pass: no headroom, no new deposit."""
    return apply_carry_forward(ledger, 0.0, 0.0, assessment_year)
