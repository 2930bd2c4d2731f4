# income_calculator.py
#
# Manages guaranteed income: Social Security (claiming-age adjustment, lifetime
# value, break-even), pensions, part-time work and pre-retirement earnings.
#

import logging
from typing import Iterable, NamedTuple, Optional

import numpy as np
import pandas as pd

from models import PersonParams, ScenarioParams
from utils.ss_utils import (
    DELAYED_CREDIT_PER_MONTH,
    EARLIEST_CLAIM_AGE,
    EARLY_REDUCTION_BEYOND_36,
    EARLY_REDUCTION_FIRST_36,
    LATEST_CLAIM_AGE,
    PIA_FACTORS,
    get_bend_points,
    get_max_pia,
)

logger = logging.getLogger(__name__)


# =============================================================================
# 1. Social Security
# =============================================================================

def claiming_adjustment_factor(claim_age: float, full_retirement_age: float) -> float:
    """Multiplier applied to PIA for claiming at ``claim_age`` (clamped to 62-70)."""
    claim_age = min(max(claim_age, EARLIEST_CLAIM_AGE), LATEST_CLAIM_AGE)
    months = round((claim_age - full_retirement_age) * 12)

    if months < 0:
        early = -months
        reduction = min(early, 36) * EARLY_REDUCTION_FIRST_36 + max(early - 36, 0) * EARLY_REDUCTION_BEYOND_36
        return 1.0 - reduction
    return 1.0 + months * DELAYED_CREDIT_PER_MONTH


def benefit_at_claim_age(claim_age: float, full_retirement_age: float, pia: float, year: Optional[int] = None) -> float:
    """
    Monthly benefit when claiming at ``claim_age``.

    The PIA is capped at the year's maximum when ``year`` is given.
    """
    if pia <= 0:
        return 0.0
    if year is not None:
        pia = min(pia, get_max_pia(year))
    return pia * claiming_adjustment_factor(claim_age, full_retirement_age)


def primary_insurance_amount(aime: float, year: int) -> float:
    """PIA from average indexed monthly earnings using the year's bend points."""
    first, second = get_bend_points(year)
    pia = (
        PIA_FACTORS[0] * min(aime, first)
        + PIA_FACTORS[1] * min(max(aime - first, 0.0), second - first)
        + PIA_FACTORS[2] * max(aime - second, 0.0)
    )
    return min(pia, get_max_pia(year))


def _monthly_growth(discount_rate: float, cola_rate: float, months: np.ndarray) -> np.ndarray:
    return ((1.0 + cola_rate) / (1.0 + discount_rate)) ** (months / 12.0)


def lifetime_npv(
    claim_age: float,
    life_expectancy: float,
    monthly_benefit: float,
    discount_rate: float,
    cola_rate: float,
    valuation_age: float = EARLIEST_CLAIM_AGE,
) -> float:
    """
    Present value at ``valuation_age`` of the benefit stream from ``claim_age``
    through ``life_expectancy``, month by month, grown by COLA and discounted.
    """
    start = max(int(round((claim_age - valuation_age) * 12)), 0)
    end = int(round((life_expectancy - valuation_age) * 12))
    if end <= start or monthly_benefit <= 0:
        return 0.0
    months = np.arange(start, end)
    return float(monthly_benefit * _monthly_growth(discount_rate, cola_rate, months).sum())


def break_even_age(
    early_claim_age: float,
    late_claim_age: float,
    full_retirement_age: float,
    pia: float,
    discount_rate: float = 0.0,
    cola_rate: float = 0.0,
    max_age: float = 120.0,
) -> Optional[float]:
    """
    Age at which cumulative (discounted) benefits from the later claim catch up
    with the earlier claim. None if they never do before ``max_age``.
    """
    if late_claim_age <= early_claim_age:
        return None
    months = np.arange(0, int(round((max_age - early_claim_age) * 12)))
    growth = _monthly_growth(discount_rate, cola_rate, months)
    ages = early_claim_age + months / 12.0

    after_late = ages >= late_claim_age - 1e-9
    early_stream = np.where(ages >= early_claim_age, benefit_at_claim_age(early_claim_age, full_retirement_age, pia), 0.0)
    late_stream = np.where(after_late, benefit_at_claim_age(late_claim_age, full_retirement_age, pia), 0.0)
    gap = np.cumsum((late_stream - early_stream) * growth)

    caught_up = np.nonzero(after_late & (gap >= 0))[0]
    if caught_up.size == 0:
        return None
    return float(ages[caught_up[0]])


def claiming_age_table(
    pia: float,
    full_retirement_age: float,
    life_expectancy: float,
    discount_rate: float = 0.03,
    cola_rate: float = 0.025,
    claim_ages: Iterable[float] = range(62, 71),
) -> pd.DataFrame:
    """Monthly benefit and lifetime NPV for each candidate claiming age."""
    rows = []
    for age in claim_ages:
        monthly = benefit_at_claim_age(age, full_retirement_age, pia)
        rows.append({
            "claim_age": age,
            "monthly_benefit": monthly,
            "lifetime_npv": lifetime_npv(age, life_expectancy, monthly, discount_rate, cola_rate),
        })
    return pd.DataFrame(rows)


# =============================================================================
# 2. Household Income for One Simulated Year
# =============================================================================

class IncomeBreakdown(NamedTuple):
    social_security: float = 0.0
    pension: float = 0.0
    part_time: float = 0.0
    earned: float = 0.0

    @property
    def total(self) -> float:
        return self.social_security + self.pension + self.part_time + self.earned

    @property
    def ordinary(self) -> float:
        """Fully taxable income (everything except Social Security)."""
        return self.pension + self.part_time + self.earned


def months_in_year(age: float, start_age: float, end_age: Optional[float] = None) -> float:
    """Months of the year [age, age + 1) that fall inside [start_age, end_age)."""
    low = max(age, start_age)
    high = age + 1 if end_age is None else min(age + 1, end_age)
    return max(0.0, high - low) * 12.0


def _social_security(person: PersonParams, age: int, cola_index: float, start_year: int) -> float:
    monthly = benefit_at_claim_age(person.social_security_claim_age, person.full_retirement_age,
                                   person.social_security_benefit, start_year)
    return monthly * months_in_year(age, person.social_security_claim_age) * cola_index


def _pension(person: PersonParams, age: int, year_index: int, inflation_rate: float) -> float:
    if person.pension_benefit <= 0:
        return 0.0
    cola = (1.0 + inflation_rate) ** year_index if person.pension_cola else 1.0
    return person.pension_benefit * months_in_year(age, person.pension_age) * cola


def household_income(params: ScenarioParams, year_index: int) -> IncomeBreakdown:
    """
    Guaranteed income received in ``year_index``. A deceased spouse's Social
    Security passes to the survivor when larger, and the pension continues at
    the survivor ratio.
    """
    cola_index = (1.0 + params.inflation_rate) ** year_index
    people = params.people
    ages = [p.current_age + year_index for p in people]
    alive = [age <= p.life_expectancy for p, age in zip(people, ages)]

    own_ss = [
        _social_security(p, age, cola_index, params.start_year) if is_alive else 0.0
        for p, age, is_alive in zip(people, ages, alive)
    ]
    pensions = [
        _pension(p, age, year_index, params.inflation_rate) if is_alive else 0.0
        for p, age, is_alive in zip(people, ages, alive)
    ]

    social_security = sum(own_ss)
    pension = sum(pensions)

    if len(people) == 2 and alive.count(True) == 1:
        survivor = alive.index(True)
        deceased = 1 - survivor
        dead_person = people[deceased]
        age_at_death = dead_person.life_expectancy
        if age_at_death >= dead_person.social_security_claim_age:
            inherited = 12.0 * cola_index * benefit_at_claim_age(
                dead_person.social_security_claim_age, dead_person.full_retirement_age,
                dead_person.social_security_benefit, params.start_year)
            social_security = max(own_ss[survivor], inherited)
        # Survivor pension: the deceased's annual benefit at the survivor ratio
        if dead_person.pension_benefit > 0 and age_at_death >= dead_person.pension_age:
            cola = cola_index if dead_person.pension_cola else 1.0
            pension += 12.0 * dead_person.pension_benefit * dead_person.pension_survivor_ratio * cola

    part_time = 0.0
    earned = 0.0
    for p, age, is_alive in zip(people, ages, alive):
        if not is_alive:
            continue
        wage_index = (1.0 + params.inflation_rate) ** year_index
        if p.part_time_income > 0:
            part_time += p.part_time_income * months_in_year(age, p.retirement_age, p.part_time_end_age) * wage_index
        if p.annual_income > 0:
            earned += p.annual_income * months_in_year(age, 0.0, p.retirement_age) / 12.0 * wage_index

    return IncomeBreakdown(
        social_security=social_security,
        pension=pension,
        part_time=part_time,
        earned=earned,
    )
