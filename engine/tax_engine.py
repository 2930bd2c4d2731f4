"""
U.S. tax and Medicare premium calculator for retirement planning.
Every schedule (ordinary brackets, capital-gains bands, IRMAA tiers) is a
table of (low, high, rate) tuples from utils.tax_utils, walked by the same
two helpers below.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, NamedTuple, Optional, Tuple

from utils.tax_utils import (
    DEFAULT_TAX_INFLATION,
    NIIT_RATE,
    SS_TAX_THRESHOLDS,
    Bracket,
    TaxFilingStatus,
    get_state_tax_rule,
    get_tax_year_config,
)

logger = logging.getLogger(__name__)

MEDICARE_AGE = 65


# --- 1. Generic Bracket Walks ---

def stacked_bracket_tax(amount: float, brackets: Iterable[Bracket], stack_base: float = 0.0) -> float:
    """
    Tax on the income slice [stack_base, stack_base + amount].

    With stack_base=0 this is the ordinary bracket walk; capital gains pass the
    ordinary taxable income as stack_base so the gains occupy the range above it.
    """
    if amount <= 0:
        return 0.0
    top = stack_base + amount
    tax = 0.0
    for low, high, rate in brackets:
        start = max(low, stack_base)
        end = min(high, top)
        if end > start:
            tax += (end - start) * rate
    return max(tax, 0.0)


def bracket_lookup(amount: float, brackets: Iterable[Bracket], upper_inclusive: bool = False) -> Bracket:
    """
    Returns the bracket containing ``amount`` (low <= amount < high).

    With ``upper_inclusive`` a value sitting exactly on a threshold stays in the
    lower tier, the "at or below" reading used by IRMAA.
    """
    last = None
    for bracket in brackets:
        low, high, _ = bracket
        if amount < high or (upper_inclusive and amount == high):
            return bracket
        last = bracket
    return last


# --- 2. Single-Schedule Taxes ---

def federal_tax(taxable_income: float, filing_status: TaxFilingStatus, year: int,
                inflation_rate: float = DEFAULT_TAX_INFLATION) -> float:
    """Ordinary federal income tax on taxable income (after deductions)."""
    constants = get_tax_year_config(year, filing_status, inflation_rate)
    return stacked_bracket_tax(taxable_income, constants.ordinary_brackets)


def capital_gains_tax(gains: float, ordinary_income: float, filing_status: TaxFilingStatus, year: int,
                      inflation_rate: float = DEFAULT_TAX_INFLATION) -> float:
    """Long-term capital gains tax with the gains stacked on top of taxable ordinary income."""
    constants = get_tax_year_config(year, filing_status, inflation_rate)
    return stacked_bracket_tax(gains, constants.capital_gains_brackets, stack_base=max(ordinary_income, 0.0))


def net_investment_income_tax(investment_income: float, magi: float, filing_status: TaxFilingStatus, year: int,
                              inflation_rate: float = DEFAULT_TAX_INFLATION) -> float:
    constants = get_tax_year_config(year, filing_status, inflation_rate)
    excess = max(0.0, magi - constants.niit_threshold)
    return NIIT_RATE * min(max(investment_income, 0.0), excess)


class IrmaaSurcharge(NamedTuple):
    part_b: float
    part_d: float

    @property
    def total(self) -> float:
        return self.part_b + self.part_d


def irmaa_surcharge(magi: float, filing_status: TaxFilingStatus, year: int, age: int = MEDICARE_AGE,
                    inflation_rate: float = DEFAULT_TAX_INFLATION) -> IrmaaSurcharge:
    """
    Annual Medicare Part B / Part D surcharge for one beneficiary.

    ``magi`` is the MAGI from two years before ``year``; callers own the lookback.
    Beneficiaries under 65 owe nothing.
    """
    if age < MEDICARE_AGE:
        return IrmaaSurcharge(0.0, 0.0)
    constants = get_tax_year_config(year, filing_status, inflation_rate)
    part_b_monthly = bracket_lookup(magi, constants.irmaa_part_b, upper_inclusive=True)[2]
    part_d_monthly = bracket_lookup(magi, constants.irmaa_part_d, upper_inclusive=True)[2]
    return IrmaaSurcharge(12 * part_b_monthly, 12 * part_d_monthly)


def taxable_social_security(benefits: float, other_income: float, filing_status: TaxFilingStatus,
                            tax_exempt_interest: float = 0.0) -> float:
    """Provisional-income worksheet: 0%, up to 50%, then up to 85% of benefits."""
    if benefits <= 0:
        return 0.0
    base1, base2 = SS_TAX_THRESHOLDS[filing_status]
    provisional = other_income + tax_exempt_interest + 0.5 * benefits

    if provisional <= base1:
        return 0.0
    if provisional <= base2:
        return min(0.5 * (provisional - base1), 0.5 * benefits)
    tier_one = min(0.5 * (base2 - base1), 0.5 * benefits)
    return min(0.85 * (provisional - base2) + tier_one, 0.85 * benefits)


def state_tax(ordinary_income: float, capital_gains: float, state: str,
              taxable_social_security_amount: float = 0.0, pension_income: float = 0.0) -> float:
    """Flat-or-zero state tax with the pension exclusion and Social Security carve-out."""
    rule = get_state_tax_rule(state)
    excluded_pension = min(max(pension_income, 0.0), rule.pension_exclusion)
    ordinary_base = ordinary_income - excluded_pension
    if rule.taxes_social_security:
        ordinary_base += taxable_social_security_amount
    return max(0.0, ordinary_base) * rule.income_rate + max(0.0, capital_gains) * rule.capital_gains_rate


def marginal_rate(taxable_income: float, filing_status: TaxFilingStatus, year: int,
                  inflation_rate: float = DEFAULT_TAX_INFLATION) -> float:
    constants = get_tax_year_config(year, filing_status, inflation_rate)
    return bracket_lookup(max(taxable_income, 0.0), constants.ordinary_brackets)[2]


# --- 3. Main Orchestrator Function ---

@dataclass(frozen=True)
class TaxBreakdown:
    federal_ordinary: float = 0.0
    capital_gains: float = 0.0
    niit: float = 0.0
    state: float = 0.0
    irmaa: float = 0.0
    agi: float = 0.0

    @property
    def federal(self) -> float:
        return self.federal_ordinary + self.capital_gains + self.niit

    @property
    def income_taxes(self) -> float:
        return self.federal + self.state

    @property
    def total(self) -> float:
        return self.income_taxes + self.irmaa


def calculate_taxes(
    year: int,
    filing_status: TaxFilingStatus,
    state_of_residence: str,
    ordinary_income: float,
    capital_gains: float = 0.0,
    social_security_income: float = 0.0,
    pension_income: float = 0.0,
    ages: Tuple[Optional[int], ...] = (),
    magi_two_years_ago: Optional[float] = None,
    taxable_ss_override: Optional[float] = None,
    inflation_rate: float = DEFAULT_TAX_INFLATION,
) -> TaxBreakdown:
    """
    Calculates the household's annual federal, state and IRMAA amounts.

    ``ordinary_income`` already includes pension income; ``pension_income`` is
    passed separately only so state pension exclusions can be applied.
    ``taxable_ss_override`` pins the taxable Social Security amount (the
    withdrawal solver fixes it from base income to keep the tax piecewise linear).
    """
    constants = get_tax_year_config(year, filing_status, inflation_rate)

    seniors = sum(1 for age in ages if age is not None and age >= MEDICARE_AGE)
    deduction = constants.standard_deduction + seniors * constants.extra_std_deduction

    if taxable_ss_override is not None:
        taxable_ss = taxable_ss_override
    else:
        taxable_ss = taxable_social_security(social_security_income, ordinary_income + capital_gains, filing_status)

    agi = ordinary_income + capital_gains + taxable_ss
    taxable_income = max(0.0, agi - deduction)
    # Preferential income fills the top of taxable income
    taxable_ordinary_base = max(0.0, taxable_income - capital_gains)
    preferential = taxable_income - taxable_ordinary_base

    federal_ordinary = stacked_bracket_tax(taxable_ordinary_base, constants.ordinary_brackets)
    cg_tax = stacked_bracket_tax(preferential, constants.capital_gains_brackets, stack_base=taxable_ordinary_base)
    niit = NIIT_RATE * min(max(capital_gains, 0.0), max(0.0, agi - constants.niit_threshold))

    state = state_tax(ordinary_income, capital_gains, state_of_residence, taxable_ss, pension_income)

    irmaa = 0.0
    if magi_two_years_ago is not None:
        for age in ages:
            if age is not None:
                irmaa += irmaa_surcharge(magi_two_years_ago, filing_status, year, age, inflation_rate).total

    return TaxBreakdown(
        federal_ordinary=federal_ordinary,
        capital_gains=cg_tax,
        niit=niit,
        state=state,
        irmaa=irmaa,
        agi=agi,
    )


__all__ = [
    "TaxBreakdown",
    "IrmaaSurcharge",
    "stacked_bracket_tax",
    "bracket_lookup",
    "federal_tax",
    "capital_gains_tax",
    "net_investment_income_tax",
    "irmaa_surcharge",
    "taxable_social_security",
    "state_tax",
    "marginal_rate",
    "calculate_taxes",
]
