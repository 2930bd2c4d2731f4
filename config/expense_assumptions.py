# config/expense_assumptions.py
# These are **reasonable defaults** -- callers can override them per scenario

# Healthcare
medicare_start_age = 65
healthcare_inflation = 0.05

# Long-term care: 2024 national median annual costs by care setting
ltc_base_costs = {
    "home_health_aide": 61_776,
    "homemaker_services": 59_488,
    "adult_day_health": 26_000,
    "assisted_living": 70_800,
    "nursing_home_semi": 104_025,
    "nursing_home_private": 127_800,
}
# Blended annual cost across settings, national average
ltc_base_annual_cost = 75_504
ltc_inflation = 0.045

# Roughly half of 65-year-olds will need paid care at some point
ltc_lifetime_probability = 0.48
ltc_max_probability = 0.95
ltc_health_multipliers = {"excellent": 0.5, "good": 0.85, "fair": 1.3, "poor": 2.0}

# Average years of care; each event scales this by uniform(0.5, 1.5)
ltc_average_duration = {"female": 3.7, "male": 2.2}
ltc_duration_spread = (0.5, 1.5)
ltc_min_onset_age = 75

# Benefit growth for policies with inflation riders
ltc_benefit_inflation = {"none": 0.0, "3%_compound": 0.03, "5%_simple": 0.05, "cpi": 0.025}

# Cost multipliers relative to the national average
ltc_regional_cost_factors = {
    "AL": 0.85, "AK": 1.45, "AZ": 0.95, "AR": 0.80, "CA": 1.35,
    "CO": 1.10, "CT": 1.30, "DE": 1.15, "FL": 0.90, "GA": 0.85,
    "HI": 1.40, "ID": 0.95, "IL": 1.05, "IN": 0.90, "IA": 0.85,
    "KS": 0.85, "KY": 0.85, "LA": 0.80, "ME": 1.10, "MD": 1.20,
    "MA": 1.35, "MI": 0.95, "MN": 1.15, "MS": 0.75, "MO": 0.85,
    "MT": 0.95, "NE": 0.90, "NV": 1.05, "NH": 1.20, "NJ": 1.25,
    "NM": 0.90, "NY": 1.40, "NC": 0.85, "ND": 1.00, "OH": 0.90,
    "OK": 0.80, "OR": 1.10, "PA": 1.00, "RI": 1.20, "SC": 0.85,
    "SD": 0.90, "TN": 0.85, "TX": 0.90, "UT": 0.95, "VT": 1.15,
    "VA": 0.95, "WA": 1.20, "WV": 0.85, "WI": 0.95, "WY": 1.00,
}
