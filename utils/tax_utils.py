# utils/tax_utils.py
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Literal, NamedTuple, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Define the acceptable set of filing statuses for type hinting
TaxFilingStatus = Literal["single", "married_filing_jointly", "married_separate", "head_of_household"]
FILING_STATUSES: Tuple[str, ...] = ("single", "married_filing_jointly", "married_separate", "head_of_household")

# (low, high, rate) -- high is np.inf for the top bracket
Bracket = Tuple[float, float, float]

DEFAULT_TAX_INFLATION = 0.025
BRACKET_ROUNDING = 50
NIIT_ROUNDING = 1000
IRMAA_ROUNDING = 1000

ORDINARY_RATES = (0.10, 0.12, 0.22, 0.24, 0.32, 0.35, 0.37)


def _ladder(thresholds: List[float], rates: Tuple[float, ...]) -> Tuple[Bracket, ...]:
    """Turns a list of upper bounds into (low, high, rate) brackets."""
    bounds = [0.0] + list(thresholds) + [np.inf]
    return tuple((bounds[i], bounds[i + 1], rates[i]) for i in range(len(rates)))


# =============================================================================
# 1. Federal Ordinary Income Tax Brackets (published years)
# =============================================================================

ORDINARY_BRACKETS: Dict[int, Dict[str, Tuple[Bracket, ...]]] = {
    2024: {
        "single": _ladder([11_600, 47_150, 100_525, 191_950, 243_725, 609_350], ORDINARY_RATES),
        "married_filing_jointly": _ladder([23_200, 94_300, 201_050, 383_900, 487_450, 731_200], ORDINARY_RATES),
        "married_separate": _ladder([11_600, 47_150, 100_525, 191_950, 243_725, 365_600], ORDINARY_RATES),
        "head_of_household": _ladder([16_550, 63_100, 100_500, 191_950, 243_700, 609_350], ORDINARY_RATES),
    },
    2025: {
        "single": _ladder([11_925, 48_475, 103_350, 197_300, 250_525, 626_350], ORDINARY_RATES),
        "married_filing_jointly": _ladder([23_850, 96_950, 206_700, 394_600, 501_050, 751_600], ORDINARY_RATES),
        "married_separate": _ladder([11_925, 48_475, 103_350, 197_300, 250_525, 375_800], ORDINARY_RATES),
        "head_of_household": _ladder([17_000, 64_850, 103_350, 197_300, 250_500, 626_350], ORDINARY_RATES),
    },
}

# =============================================================================
# 2. Federal Preferential Income Tax Brackets (Capital Gains / QDivs)
# =============================================================================

CAPGAINS_RATES = (0.0, 0.15, 0.20)

CAPGAINS_BRACKETS: Dict[int, Dict[str, Tuple[Bracket, ...]]] = {
    2024: {
        "single": _ladder([47_025, 518_900], CAPGAINS_RATES),
        "married_filing_jointly": _ladder([94_050, 583_750], CAPGAINS_RATES),
        "married_separate": _ladder([47_025, 291_850], CAPGAINS_RATES),
        "head_of_household": _ladder([63_000, 551_350], CAPGAINS_RATES),
    },
    2025: {
        "single": _ladder([48_350, 533_400], CAPGAINS_RATES),
        "married_filing_jointly": _ladder([96_700, 600_050], CAPGAINS_RATES),
        "married_separate": _ladder([48_350, 300_000], CAPGAINS_RATES),
        "head_of_household": _ladder([64_750, 566_700], CAPGAINS_RATES),
    },
}

# =============================================================================
# 3. Federal Deduction, Exemption, and Surcharge Thresholds (Indexed)
# =============================================================================

STANDARD_DEDUCTION: Dict[int, Dict[str, float]] = {
    2024: {"single": 14_600, "married_filing_jointly": 29_200, "married_separate": 14_600, "head_of_household": 21_900},
    2025: {"single": 15_000, "married_filing_jointly": 30_000, "married_separate": 15_000, "head_of_household": 22_500},
}

# Additional deduction per person aged 65+
EXTRA_STD_DEDUCTION_65: Dict[int, Dict[str, float]] = {
    2024: {"single": 1_950, "married_filing_jointly": 1_550, "married_separate": 1_550, "head_of_household": 1_950},
    2025: {"single": 2_000, "married_filing_jointly": 1_600, "married_separate": 1_600, "head_of_household": 2_000},
}

NIIT_RATE = 0.038
NIIT_THRESHOLD: Dict[str, float] = {
    "single": 200_000,
    "married_filing_jointly": 250_000,
    "married_separate": 125_000,
    "head_of_household": 200_000,
}

# IRMAA tiers keyed on MAGI from two years prior. The bracket "rate" slot holds
# the monthly surcharge above the base Part B premium (or the Part D add-on).
BASE_PART_B_MONTHLY: Dict[int, float] = {2024: 174.70, 2025: 185.00}

_PART_B_SURCHARGES = {
    2024: (0.0, 69.90, 174.70, 279.50, 384.30, 419.30),
    2025: (0.0, 74.00, 185.00, 295.90, 406.90, 443.90),
}
_PART_D_SURCHARGES = {
    2024: (0.0, 12.90, 33.30, 53.80, 74.20, 81.00),
    2025: (0.0, 13.70, 35.30, 57.00, 78.60, 85.80),
}
_IRMAA_THRESHOLDS = {
    2024: {
        "single": [103_000, 129_000, 161_000, 193_000, 500_000],
        "married_filing_jointly": [206_000, 258_000, 322_000, 386_000, 750_000],
        "head_of_household": [103_000, 129_000, 161_000, 193_000, 500_000],
    },
    2025: {
        "single": [106_000, 133_000, 167_000, 200_000, 500_000],
        "married_filing_jointly": [212_000, 266_000, 334_000, 400_000, 750_000],
        "head_of_household": [106_000, 133_000, 167_000, 200_000, 500_000],
    },
}
# Married filing separately jumps straight to the two highest tiers
_IRMAA_MFS_THRESHOLDS = {2024: [103_000, 397_000], 2025: [106_000, 394_000]}


def _irmaa_tables(year: int, surcharges: Dict[int, Tuple[float, ...]]) -> Dict[str, Tuple[Bracket, ...]]:
    tables = {status: _ladder(limits, surcharges[year]) for status, limits in _IRMAA_THRESHOLDS[year].items()}
    top_two = surcharges[year][-2:]
    tables["married_separate"] = _ladder(_IRMAA_MFS_THRESHOLDS[year], (0.0,) + top_two)
    return tables


IRMAA_PART_B_BRACKETS = {year: _irmaa_tables(year, _PART_B_SURCHARGES) for year in _PART_B_SURCHARGES}
IRMAA_PART_D_BRACKETS = {year: _irmaa_tables(year, _PART_D_SURCHARGES) for year in _PART_D_SURCHARGES}

KNOWN_TAX_YEARS: Tuple[int, ...] = tuple(sorted(ORDINARY_BRACKETS))

# =============================================================================
# 4. Fixed / Non-Indexed Federal Tax Parameters
# =============================================================================

# Social Security provisional-income thresholds (statutory and NOT indexed)
SS_TAX_THRESHOLDS: Dict[str, Tuple[float, float]] = {
    "single": (25_000, 34_000),
    "head_of_household": (25_000, 34_000),
    "married_filing_jointly": (32_000, 44_000),
    "married_separate": (0, 0),
}

# =============================================================================
# 5. State Tax Parameters (flat-or-zero approximation, not indexed)
# =============================================================================


class StateTaxRule(NamedTuple):
    income_rate: float
    capital_gains_rate: float
    taxes_social_security: bool
    pension_exclusion: float


_NO_TAX = StateTaxRule(0.0, 0.0, False, np.inf)

STATE_TAX_RULES: Dict[str, StateTaxRule] = {
    # No income tax
    "AK": _NO_TAX, "FL": _NO_TAX, "NV": _NO_TAX, "NH": _NO_TAX, "SD": _NO_TAX,
    "TN": _NO_TAX, "TX": _NO_TAX, "WY": _NO_TAX,
    "WA": StateTaxRule(0.0, 0.07, False, np.inf),
    # Retirement income largely exempt
    "IL": StateTaxRule(0.0495, 0.0495, False, np.inf),
    "MS": StateTaxRule(0.05, 0.05, False, np.inf),
    "PA": StateTaxRule(0.0307, 0.0307, False, np.inf),
    # Partial pension exclusions
    "AL": StateTaxRule(0.05, 0.05, False, 0.0),
    "AZ": StateTaxRule(0.025, 0.025, False, 2_500),
    "GA": StateTaxRule(0.0575, 0.0575, False, 65_000),
    "SC": StateTaxRule(0.07, 0.07, False, 10_000),
    "VA": StateTaxRule(0.0575, 0.0575, False, 12_000),
    "ME": StateTaxRule(0.0715, 0.0715, False, 10_000),
    # High-tax states
    "CA": StateTaxRule(0.133, 0.133, False, 0.0),
    "NY": StateTaxRule(0.109, 0.109, False, 20_000),
    "NJ": StateTaxRule(0.1075, 0.1075, False, 100_000),
    "OR": StateTaxRule(0.099, 0.099, False, 0.0),
    "HI": StateTaxRule(0.11, 0.075, False, 0.0),
    # States that tax Social Security
    "CO": StateTaxRule(0.044, 0.044, True, 24_000),
    "CT": StateTaxRule(0.0699, 0.0699, True, 0.0),
    "KS": StateTaxRule(0.057, 0.057, True, 0.0),
    "MN": StateTaxRule(0.0985, 0.0985, True, 0.0),
    "MT": StateTaxRule(0.0675, 0.0675, True, 0.0),
    "NM": StateTaxRule(0.059, 0.059, True, 8_000),
    "RI": StateTaxRule(0.0599, 0.0599, True, 15_000),
    "UT": StateTaxRule(0.0465, 0.0465, True, 0.0),
    "VT": StateTaxRule(0.0875, 0.0875, True, 0.0),
    "WV": StateTaxRule(0.065, 0.065, True, 8_000),
}

DEFAULT_STATE_TAX_RULE = StateTaxRule(0.05, 0.05, False, 0.0)

_warned_states = set()


def get_state_tax_rule(state: str) -> StateTaxRule:
    """Looks up the flat state rule; unknown codes fall back to a moderate 5% rate."""
    code = (state or "").strip().upper()
    rule = STATE_TAX_RULES.get(code)
    if rule is None:
        if code not in _warned_states:
            _warned_states.add(code)
            logger.warning(f"No state tax rule for '{code}'. Defaulting to a flat {DEFAULT_STATE_TAX_RULE.income_rate:.0%}.")
        return DEFAULT_STATE_TAX_RULE
    return rule


# =============================================================================
# 6. Core Utility Function (Returns all indexed Federal values)
# =============================================================================


@dataclass(frozen=True)
class TaxYearConfig:
    """Read-only federal constants for one tax year and filing status."""

    year: int
    filing_status: str
    ordinary_brackets: Tuple[Bracket, ...]
    capital_gains_brackets: Tuple[Bracket, ...]
    standard_deduction: float
    extra_std_deduction: float
    niit_threshold: float
    irmaa_part_b: Tuple[Bracket, ...]
    irmaa_part_d: Tuple[Bracket, ...]
    base_part_b_monthly: float


def _round_to(value: float, step: float) -> float:
    if not np.isfinite(value):
        return value
    return float(round(value / step) * step)


def _index_brackets(brackets: Tuple[Bracket, ...], factor: float, step: float, index_rates: bool = False) -> Tuple[Bracket, ...]:
    """Inflates bracket bounds; optionally the third slot too (IRMAA dollar amounts)."""
    indexed = []
    for low, high, rate in brackets:
        new_rate = round(rate * factor, 2) if index_rates else rate
        indexed.append((_round_to(low * factor, step), _round_to(high * factor, step), new_rate))
    return tuple(indexed)


@lru_cache(maxsize=512)
def get_tax_year_config(year: int, filing_status: TaxFilingStatus, inflation_rate: float = DEFAULT_TAX_INFLATION) -> TaxYearConfig:
    """
    Returns the federal constants for ``year``. Years outside the published
    tables are extrapolated from the nearest known year by compounding
    ``inflation_rate`` and rounding to the IRS reporting granularity.
    """
    if filing_status not in FILING_STATUSES:
        raise ValueError(f"Unknown filing status '{filing_status}'")

    if year in ORDINARY_BRACKETS:
        base_year = year
    else:
        base_year = KNOWN_TAX_YEARS[-1] if year > KNOWN_TAX_YEARS[-1] else KNOWN_TAX_YEARS[0]
    factor = (1.0 + inflation_rate) ** (year - base_year)

    if base_year == year:
        return TaxYearConfig(
            year=year,
            filing_status=filing_status,
            ordinary_brackets=ORDINARY_BRACKETS[year][filing_status],
            capital_gains_brackets=CAPGAINS_BRACKETS[year][filing_status],
            standard_deduction=float(STANDARD_DEDUCTION[year][filing_status]),
            extra_std_deduction=float(EXTRA_STD_DEDUCTION_65[year][filing_status]),
            niit_threshold=float(NIIT_THRESHOLD[filing_status]),
            irmaa_part_b=IRMAA_PART_B_BRACKETS[year][filing_status],
            irmaa_part_d=IRMAA_PART_D_BRACKETS[year][filing_status],
            base_part_b_monthly=BASE_PART_B_MONTHLY[year],
        )

    # NIIT thresholds are statutory, but long horizons drift them with the rest of the code
    return TaxYearConfig(
        year=year,
        filing_status=filing_status,
        ordinary_brackets=_index_brackets(ORDINARY_BRACKETS[base_year][filing_status], factor, BRACKET_ROUNDING),
        capital_gains_brackets=_index_brackets(CAPGAINS_BRACKETS[base_year][filing_status], factor, BRACKET_ROUNDING),
        standard_deduction=_round_to(STANDARD_DEDUCTION[base_year][filing_status] * factor, BRACKET_ROUNDING),
        extra_std_deduction=_round_to(EXTRA_STD_DEDUCTION_65[base_year][filing_status] * factor, BRACKET_ROUNDING),
        niit_threshold=_round_to(NIIT_THRESHOLD[filing_status] * factor, NIIT_ROUNDING),
        irmaa_part_b=_index_brackets(IRMAA_PART_B_BRACKETS[base_year][filing_status], factor, IRMAA_ROUNDING, index_rates=True),
        irmaa_part_d=_index_brackets(IRMAA_PART_D_BRACKETS[base_year][filing_status], factor, IRMAA_ROUNDING, index_rates=True),
        base_part_b_monthly=round(BASE_PART_B_MONTHLY[base_year] * factor, 2),
    )
