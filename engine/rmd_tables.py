# engine/rmd_tables.py

"""
RMD factor lookup:
- 2022+ Uniform Lifetime Table (ages 72-120), linearly interpolated between
  tabulated ages so fractional ages are supported
- SECURE Act 1.0/2.0 start ages (72 -> 73 -> 75)
"""

from typing import Dict, Optional

import numpy as np

DEFAULT_RMD_START_AGE = 73

# =============================================================================
# FULL 2022+ IRS UNIFORM LIFETIME TABLE (AGES 72–120)
# =============================================================================
UNIFORM_LIFETIME_TABLE_2022: Dict[int, float] = {
    72: 27.4, 73: 26.5, 74: 25.5, 75: 24.6, 76: 23.7, 77: 22.9,
    78: 22.0, 79: 21.1, 80: 20.2, 81: 19.4, 82: 18.5, 83: 17.7,
    84: 16.9, 85: 16.0, 86: 15.2, 87: 14.4, 88: 13.7, 89: 12.9,
    90: 12.2, 91: 11.5, 92: 10.8, 93: 10.1, 94: 9.5, 95: 8.9,
    96: 8.4, 97: 7.8, 98: 7.3, 99: 6.8, 100: 6.4, 101: 6.0,
    102: 5.6, 103: 5.2, 104: 4.9, 105: 4.6, 106: 4.3, 107: 4.1,
    108: 3.9, 109: 3.7, 110: 3.5, 111: 3.4, 112: 3.3, 113: 3.1,
    114: 3.0, 115: 2.9, 116: 2.8, 117: 2.7, 118: 2.5, 119: 2.3,
    120: 2.0,
}

_AGES = np.array(sorted(UNIFORM_LIFETIME_TABLE_2022), dtype=float)
_DIVISORS = np.array([UNIFORM_LIFETIME_TABLE_2022[int(a)] for a in _AGES])


# =============================================================================
# MAIN FUNCTIONS
# =============================================================================

def get_rmd_factor(age: float) -> float:
    """
    Returns the IRS divisor for RMD calculations.

    Ages below 72 return 0.0 (no distribution). Ages past 120 use the
    final divisor.
    """
    if age < _AGES[0]:
        return 0.0
    return float(np.interp(age, _AGES, _DIVISORS))


def rmd_start_age(birth_year: Optional[int]) -> int:
    """SECURE 2.0 start age; unknown birth years get the current default."""
    if birth_year is None:
        return DEFAULT_RMD_START_AGE
    if birth_year >= 1960:
        return 75
    elif 1951 <= birth_year <= 1959:
        return 73
    return 72


def required_minimum_distribution(balance: float, age: float, start_age: int = DEFAULT_RMD_START_AGE) -> float:
    if balance <= 0 or age < start_age:
        return 0.0
    factor = get_rmd_factor(age)
    if factor <= 0:
        return 0.0
    return balance / factor


__all__ = ["get_rmd_factor", "rmd_start_age", "required_minimum_distribution", "DEFAULT_RMD_START_AGE"]
