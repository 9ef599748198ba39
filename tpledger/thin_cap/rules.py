"""
Section 94B Rule Tables — interest limitation (thin capitalisation).
Pure data plus assessment-year arithmetic. No I/O, no state.

Section 94B of the Income Tax Act, 1961 (inserted by Finance Act 2017,
effective AY 2018-19) caps deductible interest paid to non-resident
associated enterprises at 30% of EBITDA, once that interest exceeds ₹1 crore.
The excess is carried forward for 8 assessment years.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from tpledger.errors import ThinCapInputError

# ===========================================================================
# STATUTORY CONSTANTS
# ===========================================================================

INTEREST_THRESHOLD        = 10_000_000   # ₹1 crore: covered interest must EXCEED this
EBITDA_LIMITATION_PCT     = 30           # Allowable = 30% of EBITDA
CARRYFORWARD_YEARS        = 8            # Disallowance usable for 8 subsequent AYs
FIRST_APPLICABLE_AY       = "2018-19"

# "2025-26": four digits, hyphen, two digits
ASSESSMENT_YEAR_PATTERN = re.compile(r"^\d{4}-\d{2}$")
_LEADING_YEAR = re.compile(r"^\s*(\d{4})")


# ===========================================================================
# LENDER CLASSIFICATION
# ===========================================================================

class LenderType(str, Enum):
    non_resident_ae = "non_resident_ae"                    # Non-resident associated enterprise
    non_resident_guaranteed = "non_resident_guaranteed"    # Third party, AE guarantee (implicit or explicit)
    resident_with_ae_deposit = "resident_with_ae_deposit"  # Resident lender funded by AE deposit
    resident_non_ae = "resident_non_ae"                    # Resident lender, no AE connection


# ===========================================================================
# EXEMPT ENTITIES: Section 94B(3) and notifications
# ===========================================================================

EXEMPT_ENTITIES: list[dict[str, str]] = [
    {
        "code": "BANK",
        "description": "Company engaged in banking business",
        "reference": "Section 5(c) of the Banking Regulation Act, 1949",
    },
    {
        "code": "INSURANCE",
        "description": "Company engaged in insurance business",
        "reference": "Insurance Act, 1938",
    },
    {
        "code": "NBFC_SYSTEMICALLY_IMPORTANT",
        "description": "NBFC classified as systemically important by RBI",
        "reference": "RBI regulations",
    },
    {
        "code": "INFRASTRUCTURE_PPP",
        "description": "Infrastructure project entity under PPP",
        "reference": "Notification No. 12/2019",
    },
]

_EXEMPT_BY_CODE = {e["code"]: e for e in EXEMPT_ENTITIES}


def get_exemption(entity_code: Optional[str]) -> Optional[dict[str, str]]:
    """Return the exemption entry for entity_code, or None. Matching is case-insensitive."""
    if not entity_code:
        return None
    return _EXEMPT_BY_CODE.get(entity_code.strip().upper())


# ===========================================================================
# COVERED INTEREST TYPES
# ===========================================================================

COVERED_INTEREST_TYPES: list[dict] = [
    {"type": "LOAN_INTEREST",     "description": "Interest on loans from non-resident AE",            "covered": True},
    {"type": "BOND_INTEREST",     "description": "Interest on bonds/debentures to non-resident AE",   "covered": True},
    {"type": "GUARANTEED_LOAN",   "description": "Interest on loan where AE has provided guarantee",  "covered": True},
    {"type": "BACK_TO_BACK_LOAN", "description": "Interest on loan funded by AE deposits",            "covered": True},
    {"type": "TRADE_CREDIT",      "description": "Interest on trade credit from non-resident AE",     "covered": True},
    {"type": "DOMESTIC_LOAN",     "description": "Interest on loans from domestic parties (non-AE)",  "covered": False},
]

_COVERED_TYPES = frozenset(t["type"] for t in COVERED_INTEREST_TYPES if t["covered"])


def is_interest_covered(interest_type: str) -> bool:
    """Unknown types are not covered. 'loan_interest' and 'LOAN_INTEREST' are the same type."""
    return interest_type.strip().upper() in _COVERED_TYPES


# ===========================================================================
# ASSESSMENT-YEAR RULE TABLE
# ===========================================================================

@dataclass(frozen=True)
class AYThinCapRule:
    assessment_year: str
    interest_threshold: float
    ebitda_percentage: float
    carryforward_years: int
    special_provisions: tuple[str, ...] = field(default_factory=tuple)


def _rule(ay: str, *provisions: str) -> AYThinCapRule:
    return AYThinCapRule(
        assessment_year=ay,
        interest_threshold=INTEREST_THRESHOLD,
        ebitda_percentage=EBITDA_LIMITATION_PCT,
        carryforward_years=CARRYFORWARD_YEARS,
        special_provisions=provisions,
    )


AY_THIN_CAP_RULES: dict[str, AYThinCapRule] = {
    "2018-19": _rule("2018-19", "First year of applicability"),
    "2019-20": _rule("2019-20", "Infrastructure PPP exemption notified"),
    "2020-21": _rule("2020-21"),
    "2021-22": _rule("2021-22"),
    "2022-23": _rule("2022-23"),
    "2023-24": _rule("2023-24"),
    "2024-25": _rule("2024-25"),
    "2025-26": _rule("2025-26"),
    "2026-27": _rule("2026-27", "Current assessment year"),
}

LATEST_RULE_AY = max(AY_THIN_CAP_RULES)


def get_ay_rules(assessment_year: str) -> AYThinCapRule:
    """Rules for the given AY; years outside the table use the latest entry."""
    return AY_THIN_CAP_RULES.get(assessment_year, AY_THIN_CAP_RULES[LATEST_RULE_AY])


# ===========================================================================
# ASSESSMENT-YEAR ARITHMETIC
# ===========================================================================

def is_valid_assessment_year(assessment_year: str) -> bool:
    """True for the 'YYYY-YY' shape (e.g. 2025-26)."""
    return bool(assessment_year) and ASSESSMENT_YEAR_PATTERN.match(assessment_year) is not None


def ay_start_year(assessment_year: str) -> int:
    """
    Leading calendar year of an AY string. '2025-26' → 2025.
    Tolerates sloppy suffixes ('2025-2026') so a flagged-but-usable year still computes.
    """
    match = _LEADING_YEAR.match(assessment_year or "")
    if match is None:
        raise ThinCapInputError(
            f"Assessment year {assessment_year!r} has no leading four-digit year",
            field="assessment_year",
            code="TC001",
        )
    return int(match.group(1))


def format_ay(start_year: int) -> str:
    """2030 → '2030-31'"""
    return f"{start_year}-{(start_year + 1) % 100:02d}"


def shift_ay(assessment_year: str, years: int) -> str:
    """'2022-23' shifted by 8 → '2030-31'"""
    return format_ay(ay_start_year(assessment_year) + years)


def carryforward_expiry_year(origin_year: str, carryforward_years: int = CARRYFORWARD_YEARS) -> str:
    """First AY in which a disallowance from origin_year is no longer usable."""
    return shift_ay(origin_year, carryforward_years)


def years_between(from_year: str, to_year: str) -> int:
    """Signed difference in AYs: years_between('2025-26', '2030-31') == 5."""
    return ay_start_year(to_year) - ay_start_year(from_year)


# ===========================================================================
# CAP ARITHMETIC
# ===========================================================================

def calculate_allowable_cap(ebitda: float, ebitda_percentage: float = EBITDA_LIMITATION_PCT) -> float:
    """30% of EBITDA. Negative EBITDA gives a negative cap; callers treat it as zero headroom."""
    return ebitda * (ebitda_percentage / 100)


def calculate_disallowed_interest(covered_interest: float, allowable_interest: float) -> float:
    """Excess of covered interest over the allowable amount, never negative."""
    return max(0.0, covered_interest - allowable_interest)


__all__ = [
    "INTEREST_THRESHOLD",
    "EBITDA_LIMITATION_PCT",
    "CARRYFORWARD_YEARS",
    "FIRST_APPLICABLE_AY",
    "ASSESSMENT_YEAR_PATTERN",
    "LenderType",
    "EXEMPT_ENTITIES",
    "COVERED_INTEREST_TYPES",
    "AYThinCapRule",
    "AY_THIN_CAP_RULES",
    "LATEST_RULE_AY",
    "get_exemption",
    "is_interest_covered",
    "get_ay_rules",
    "is_valid_assessment_year",
    "ay_start_year",
    "format_ay",
    "shift_ay",
    "carryforward_expiry_year",
    "years_between",
    "calculate_allowable_cap",
    "calculate_disallowed_interest",
]
