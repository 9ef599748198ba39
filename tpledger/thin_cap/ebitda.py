"""
EBITDA calculator — Section 94B(2) read with Rule 10TD.
Pure function of one FinancialPeriod. Same input → same output.
"""
from __future__ import annotations

from tpledger.thin_cap.rules import EBITDA_LIMITATION_PCT, calculate_allowable_cap
from tpledger.thin_cap.schemas import ComputationStep, EBITDAResult, FinancialPeriod


def calculate_ebitda(
    financials: FinancialPeriod,
    ebitda_percentage: float = EBITDA_LIMITATION_PCT,
) -> EBITDAResult:
    """
    EBITDA and the interest cap derived from it.

    Computation sequence:
      1. Profit before tax (as per P&L)
      2. + interest expense claimed
      3. + depreciation (books)
      4. + amortization (books)
      5. − exceptional items (only shown when non-zero)
      6. total EBITDA
    cap = total × ebitda_percentage / 100

    No error conditions: a negative total is valid and yields a negative cap,
    which disallows all covered interest downstream.
    """
    adjustments = financials.exceptional_items or 0.0

    computation = [
        ComputationStep(step=1, description="Profit Before Tax", formula="As per P&L",
                        value=financials.profit_before_tax),
        ComputationStep(step=2, description="Add: Interest Expense", formula="Interest claimed as deduction",
                        value=financials.total_interest_expense),
        ComputationStep(step=3, description="Add: Depreciation", formula="As per books",
                        value=financials.depreciation),
        ComputationStep(step=4, description="Add: Amortization", formula="As per books",
                        value=financials.amortization),
    ]
    if adjustments != 0:
        computation.append(
            ComputationStep(step=5, description="Less: Exceptional items", formula="As applicable",
                            value=adjustments)
        )

    total_ebitda = (
        financials.profit_before_tax
        + financials.total_interest_expense
        + financials.depreciation
        + financials.amortization
        - adjustments
    )
    allowable_cap = calculate_allowable_cap(total_ebitda, ebitda_percentage)

    computation.append(
        ComputationStep(step=6, description="Total EBITDA", formula="PBT + Interest + Depreciation + Amortization − Exceptional",
                        value=total_ebitda)
    )

    return EBITDAResult(
        profit_before_tax=financials.profit_before_tax,
        interest_add_back=financials.total_interest_expense,
        depreciation_add_back=financials.depreciation,
        amortization_add_back=financials.amortization,
        adjustments=adjustments,
        total_ebitda=total_ebitda,
        ebitda_percentage=ebitda_percentage,
        allowable_cap=allowable_cap,
        computation=computation,
    )
