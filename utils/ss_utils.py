# utils/ss_utils.py
from typing import Dict, Optional

EARLIEST_CLAIM_AGE = 62.0
LATEST_CLAIM_AGE = 70.0
DEFAULT_COLA = 0.025

# Reduction per month claimed before FRA: 5/9 of 1% for the first 36 months, 5/12 of 1% beyond
EARLY_REDUCTION_FIRST_36 = 5.0 / 9.0 / 100.0
EARLY_REDUCTION_BEYOND_36 = 5.0 / 12.0 / 100.0
# Delayed retirement credit: 2/3 of 1% per month (8% per year) up to age 70
DELAYED_CREDIT_PER_MONTH = 2.0 / 3.0 / 100.0

# Maximum monthly benefit payable at FRA (worker with maximum taxable earnings)
MAX_PIA_AT_FRA: Dict[int, float] = {2024: 3_822.0, 2025: 4_018.0}

# PIA formula bend points (90% / 32% / 15%)
PIA_BEND_POINTS: Dict[int, tuple] = {2024: (1_174.0, 7_078.0), 2025: (1_226.0, 7_391.0)}
PIA_FACTORS = (0.90, 0.32, 0.15)


def _nearest_year(table: Dict[int, object], year: int) -> int:
    known = sorted(table)
    if year in table:
        return year
    return known[-1] if year > known[-1] else known[0]


def get_max_pia(year: int, cola: float = DEFAULT_COLA) -> float:
    """Maximum PIA for ``year``; unpublished years grow by ``cola``."""
    base_year = _nearest_year(MAX_PIA_AT_FRA, year)
    return MAX_PIA_AT_FRA[base_year] * (1.0 + cola) ** (year - base_year)


def get_bend_points(year: int, wage_growth: float = DEFAULT_COLA) -> tuple:
    base_year = _nearest_year(PIA_BEND_POINTS, year)
    factor = (1.0 + wage_growth) ** (year - base_year)
    first, second = PIA_BEND_POINTS[base_year]
    return round(first * factor), round(second * factor)


def get_full_retirement_age(birth_year: int, birth_month: Optional[int] = None,
                            birth_day: Optional[int] = None) -> float:
    """
    Calculates the Full Retirement Age (FRA) in years based on the birth date
    according to US Social Security Administration rules. Month and day are
    only needed to spot a January 1st birthday.
    """

    # SSA Rule: Persons born on January 1st refer to the FRA of the previous year.
    if birth_month == 1 and birth_day == 1:
        year_for_fra_calc = birth_year - 1
    else:
        year_for_fra_calc = birth_year

    if year_for_fra_calc <= 1937:
        return 65.0
    elif 1938 <= year_for_fra_calc <= 1942:
        # FRA is 65 plus 2 months for each year after 1937
        months_over_65 = (year_for_fra_calc - 1937) * 2
        return 65.0 + (months_over_65 / 12.0)
    elif 1943 <= year_for_fra_calc <= 1954:
        return 66.0
    elif 1955 <= year_for_fra_calc <= 1959:
        # FRA is 66 plus 2 months for each year after 1954
        months_over_66 = (year_for_fra_calc - 1954) * 2
        return 66.0 + (months_over_66 / 12.0)
    else: # 1960 and later
        return 67.0
