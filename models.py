# models.py
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from config import market_assumptions as market
from utils.ss_utils import EARLIEST_CLAIM_AGE, LATEST_CLAIM_AGE
from utils.tax_utils import FILING_STATUSES

BUCKET_NAMES: Tuple[str, ...] = ("tax_deferred", "tax_free", "capital_gains", "cash_equivalents")
LTC_POLICY_TYPES = ("none", "traditional", "hybrid")
RETURN_DISTRIBUTIONS = ("normal", "student-t")


class InvalidParameterError(ValueError):
    """Raised before any simulation starts when an input violates its contract."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


def _require(condition: bool, field_name: str, message: str) -> None:
    if not condition:
        raise InvalidParameterError(field_name, message)


def _require_non_negative(obj: Any, *names: str) -> None:
    for name in names:
        value = getattr(obj, name)
        _require(value is not None and np.isfinite(value) and value >= 0, name, f"must be a non-negative number, got {value!r}")


# =============================================================================
# 1. Asset Buckets
# =============================================================================

@dataclass
class AssetBuckets:
    """
    Balances grouped by tax treatment. ``capital_gains_basis`` is cost basis of
    the capital-gains bucket (not a balance); None means no embedded gain.
    """
    tax_deferred: float = 0.0
    tax_free: float = 0.0
    capital_gains: float = 0.0
    cash_equivalents: float = 0.0
    capital_gains_basis: Optional[float] = None

    def __post_init__(self):
        _require_non_negative(self, *BUCKET_NAMES)
        if self.capital_gains_basis is None:
            self.capital_gains_basis = self.capital_gains
        _require(self.capital_gains_basis >= 0, "capital_gains_basis", "must be non-negative")

    @property
    def total_assets(self) -> float:
        return self.tax_deferred + self.tax_free + self.capital_gains + self.cash_equivalents

    @property
    def gain_fraction(self) -> float:
        """Share of a capital-gains withdrawal that is realized gain."""
        if self.capital_gains <= 0:
            return 0.0
        return min(1.0, max(0.0, 1.0 - self.capital_gains_basis / self.capital_gains))

    def copy(self) -> "AssetBuckets":
        return replace(self)

    def as_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in BUCKET_NAMES}

    def withdraw(self, bucket: str, amount: float) -> float:
        """Removes up to ``amount`` from ``bucket``; returns what was actually taken."""
        balance = getattr(self, bucket)
        taken = min(max(amount, 0.0), balance)
        if taken <= 0:
            return 0.0
        if bucket == "capital_gains":
            self.capital_gains_basis *= (balance - taken) / balance
        setattr(self, bucket, max(0.0, balance - taken))
        return taken

    def deposit(self, bucket: str, amount: float) -> None:
        if amount <= 0:
            return
        setattr(self, bucket, getattr(self, bucket) + amount)
        if bucket == "capital_gains":
            self.capital_gains_basis += amount


# =============================================================================
# 2. Scenario Inputs
# =============================================================================

@dataclass(frozen=True)
class LTCInsurance:
    policy_type: str = "none"            # none | traditional | hybrid
    daily_benefit: float = 0.0
    benefit_period_years: float = 0.0
    elimination_days: int = 90
    inflation_protection: str = "none"   # none | 3%_compound | 5%_simple | cpi
    annual_premium: float = 0.0
    hybrid_benefit_ratio: float = 0.5

    def __post_init__(self):
        _require(self.policy_type in LTC_POLICY_TYPES, "policy_type", f"must be one of {LTC_POLICY_TYPES}")
        _require_non_negative(self, "daily_benefit", "benefit_period_years", "elimination_days", "annual_premium")
        _require(0.0 <= self.hybrid_benefit_ratio <= 1.0, "hybrid_benefit_ratio", "must be within [0, 1]")

    @property
    def has_coverage(self) -> bool:
        return self.policy_type != "none" and self.daily_benefit > 0 and self.benefit_period_years > 0


@dataclass(frozen=True)
class PersonParams:
    current_age: int
    retirement_age: int
    life_expectancy: int

    # Monthly amounts in today's dollars
    social_security_benefit: float = 0.0     # PIA at full retirement age
    social_security_claim_age: float = 67.0
    full_retirement_age: float = 67.0
    pension_benefit: float = 0.0
    pension_start_age: Optional[float] = None  # defaults to retirement age
    pension_cola: bool = False
    pension_survivor_ratio: float = 0.5
    part_time_income: float = 0.0
    part_time_end_age: float = 75.0

    # Annual amounts in today's dollars
    annual_income: float = 0.0    # earned while still working after the household retires
    annual_savings: float = 0.0

    gender: str = "male"
    health_status: str = "good"
    ltc_insurance: LTCInsurance = field(default_factory=LTCInsurance)

    def __post_init__(self):
        _require(self.current_age >= 0, "current_age", "must be non-negative")
        _require(self.retirement_age >= self.current_age, "retirement_age",
                 f"retirement age {self.retirement_age} is before current age {self.current_age}")
        _require(self.life_expectancy > self.retirement_age, "life_expectancy",
                 f"life expectancy {self.life_expectancy} must exceed retirement age {self.retirement_age}")
        _require(EARLIEST_CLAIM_AGE <= self.social_security_claim_age <= LATEST_CLAIM_AGE, "social_security_claim_age",
                 f"must be between {EARLIEST_CLAIM_AGE:.0f} and {LATEST_CLAIM_AGE:.0f}")
        _require(65.0 <= self.full_retirement_age <= 67.0, "full_retirement_age", "must be between 65 and 67")
        _require_non_negative(self, "social_security_benefit", "pension_benefit", "part_time_income",
                              "annual_income", "annual_savings")
        _require(0.0 <= self.pension_survivor_ratio <= 1.0, "pension_survivor_ratio", "must be within [0, 1]")
        _require(self.gender in ("male", "female"), "gender", "must be 'male' or 'female'")
        _require(self.health_status in ("excellent", "good", "fair", "poor"), "health_status",
                 "must be excellent, good, fair or poor")

    @property
    def pension_age(self) -> float:
        return self.retirement_age if self.pension_start_age is None else self.pension_start_age


@dataclass(frozen=True)
class AssetClassAssumption:
    expected_return: float   # CAGR
    volatility: float

    def __post_init__(self):
        _require(self.expected_return > -1.0, "expected_return", "must be greater than -100%")
        _require(self.volatility >= 0, "volatility", "must be non-negative")


def _default_correlation() -> Tuple[Tuple[float, ...], ...]:
    return tuple(tuple(float(x) for x in row) for row in market.corr_matrix)


@dataclass(frozen=True)
class MarketAssumptions:
    stocks: AssetClassAssumption = field(default_factory=lambda: AssetClassAssumption(market.stock_cagr, market.stock_sigma))
    bonds: AssetClassAssumption = field(default_factory=lambda: AssetClassAssumption(market.bond_cagr, market.bond_sigma))
    cash: AssetClassAssumption = field(default_factory=lambda: AssetClassAssumption(market.cash_cagr, market.cash_sigma))
    correlation: Tuple[Tuple[float, ...], ...] = field(default_factory=_default_correlation)

    def __post_init__(self):
        corr = np.asarray(self.correlation, dtype=float)
        _require(corr.shape == (3, 3), "correlation", "must be a 3x3 matrix")
        _require(np.allclose(corr, corr.T) and np.allclose(np.diag(corr), 1.0), "correlation",
                 "must be symmetric with a unit diagonal")
        _require(np.all(np.linalg.eigvalsh(corr) > 0), "correlation", "must be positive definite")


@dataclass(frozen=True)
class Allocation:
    stocks: float = market.default_allocation["stocks"]
    bonds: float = market.default_allocation["bonds"]
    cash: float = market.default_allocation["cash"]

    def __post_init__(self):
        for name in ("stocks", "bonds", "cash"):
            _require(0.0 <= getattr(self, name) <= 1.0, f"allocation.{name}", "must be within [0, 1]")
        _require(abs(self.stocks + self.bonds + self.cash - 1.0) < 1e-6, "allocation", "weights must sum to 1")

    def as_array(self) -> np.ndarray:
        return np.array([self.stocks, self.bonds, self.cash])


def _default_savings_split() -> Dict[str, float]:
    return {"tax_deferred": 0.6, "tax_free": 0.2, "capital_gains": 0.2}


@dataclass(frozen=True)
class ScenarioParams:
    """Immutable description of one household. The engine only ever copies ``buckets``."""
    primary: PersonParams
    buckets: AssetBuckets
    annual_expenses: float
    spouse: Optional[PersonParams] = None

    expense_inflation_rate: float = 0.025
    annual_healthcare_costs: float = 0.0
    healthcare_inflation_rate: float = 0.05
    survivor_spending_ratio: float = 0.75    # share of couple spending kept after a death
    survivor_healthcare_ratio: float = 0.85
    inflation_rate: float = 0.025           # Social Security COLA and tax table indexing
    savings_growth_rate: float = 0.0
    savings_allocation: Dict[str, float] = field(default_factory=_default_savings_split)

    market: MarketAssumptions = field(default_factory=MarketAssumptions)
    allocation: Allocation = field(default_factory=Allocation)

    filing_status: str = "single"
    state: str = "TX"
    start_year: int = 2025
    magi_history: Tuple[float, float] = (0.0, 0.0)   # MAGI two years ago, last year
    rmd_start_age: int = 73

    model_ltc: bool = True
    ltc_lifetime_probability: float = 0.48
    ltc_onset_age_range: Tuple[float, Optional[float]] = (75.0, None)
    ltc_inflation_rate: float = 0.045
    ltc_annual_cost: Optional[float] = None   # today's dollars; None uses the regional default

    use_guardrails: bool = True
    legacy_goal: float = 0.0

    def __post_init__(self):
        _require_non_negative(self, "annual_expenses", "annual_healthcare_costs", "legacy_goal")
        for name in ("expense_inflation_rate", "healthcare_inflation_rate", "inflation_rate",
                     "savings_growth_rate", "ltc_inflation_rate"):
            _require(getattr(self, name) > -1.0, name, "must be greater than -100%")
        _require(self.filing_status in FILING_STATUSES, "filing_status", f"must be one of {FILING_STATUSES}")
        _require(isinstance(self.state, str) and len(self.state.strip()) == 2, "state", "must be a two-letter state code")
        _require(0.0 <= self.ltc_lifetime_probability <= 1.0, "ltc_lifetime_probability", "must be within [0, 1]")
        for name in ("survivor_spending_ratio", "survivor_healthcare_ratio"):
            _require(0.0 <= getattr(self, name) <= 1.0, name, "must be within [0, 1]")
        _require(self.ltc_annual_cost is None or self.ltc_annual_cost >= 0, "ltc_annual_cost", "must be non-negative")
        _require(set(self.savings_allocation) <= set(BUCKET_NAMES), "savings_allocation",
                 f"keys must be bucket names {BUCKET_NAMES}")
        _require(abs(sum(self.savings_allocation.values()) - 1.0) < 1e-6, "savings_allocation", "weights must sum to 1")
        _require(70 <= self.rmd_start_age <= 75, "rmd_start_age", "must be between 70 and 75")
        low, high = self.ltc_onset_age_range
        _require(high is None or high >= low, "ltc_onset_age_range", "upper bound is below lower bound")

    @property
    def people(self) -> List[PersonParams]:
        return [self.primary] if self.spouse is None else [self.primary, self.spouse]

    @property
    def horizon_years(self) -> int:
        """Years until the last survivor reaches life expectancy (inclusive)."""
        return max(p.life_expectancy - p.current_age for p in self.people) + 1


# =============================================================================
# 3. Simulation Configuration
# =============================================================================

@dataclass(frozen=True)
class SimulationConfig:
    iterations: int = 1000
    seed: int = 12345

    use_antithetic_variates: bool = False
    use_control_variates: bool = False
    use_stratified_sampling: bool = False
    stratified_years: int = 30

    return_distribution: str = "student-t"
    student_t_df: float = market.student_t_df
    use_regime_switching: bool = False

    worker_count: int = 1
    worker_timeout: Optional[float] = None   # seconds per chunk
    time_limit: Optional[float] = None       # seconds for the whole ensemble
    include_cash_flow_bands: bool = True

    guardrail_upper_threshold: float = 0.20
    guardrail_lower_threshold: float = 0.20
    guardrail_adjustment: float = 0.10
    spending_floor_ratio: float = 0.75

    percentiles: Tuple[int, ...] = (10, 25, 50, 75, 90)

    def __post_init__(self):
        _require(self.iterations > 0, "iterations", "must be positive")
        _require(self.return_distribution in RETURN_DISTRIBUTIONS, "return_distribution",
                 f"must be one of {RETURN_DISTRIBUTIONS}")
        _require(self.student_t_df > 2, "student_t_df", "must exceed 2 for a finite variance")
        _require(self.worker_count >= 1, "worker_count", "must be at least 1")
        _require(self.stratified_years >= 1, "stratified_years", "must be at least 1")
        _require(self.worker_timeout is None or self.worker_timeout > 0, "worker_timeout", "must be positive")
        _require(self.time_limit is None or self.time_limit > 0, "time_limit", "must be positive")
        for name in ("guardrail_upper_threshold", "guardrail_lower_threshold"):
            _require(0.0 <= getattr(self, name) < 1.0, name, "must be within [0, 1)")
        _require(0.0 <= self.guardrail_adjustment < 1.0, "guardrail_adjustment", "must be within [0, 1)")
        _require(0.0 <= self.spending_floor_ratio <= 1.0, "spending_floor_ratio", "must be within [0, 1]")
        _require(all(0 < p < 100 for p in self.percentiles), "percentiles", "must lie strictly between 0 and 100")


# =============================================================================
# 4. Simulation Outputs
# =============================================================================

@dataclass(frozen=True)
class YearState:
    year_index: int
    year: int
    age: int
    spouse_age: Optional[int]
    phase: str                  # accumulation | retirement

    tax_deferred: float
    tax_free: float
    capital_gains: float
    cash_equivalents: float
    total_assets: float

    contributions: float = 0.0
    gross_withdrawal: float = 0.0
    net_withdrawal: float = 0.0
    rmd: float = 0.0
    federal_tax: float = 0.0
    state_tax: float = 0.0
    irmaa: float = 0.0
    social_security: float = 0.0
    pension: float = 0.0
    part_time_income: float = 0.0
    earned_income: float = 0.0
    expenses: float = 0.0
    healthcare_costs: float = 0.0
    ltc_cost: float = 0.0
    ltc_insurance_offset: float = 0.0
    guardrail_state: str = "normal"
    guardrail_adjustment: float = 0.0
    shortfall: float = 0.0
    surplus_reinvested: float = 0.0
    portfolio_return: float = 0.0
    regime: Optional[str] = None
    magi: float = 0.0

    @property
    def guaranteed_income(self) -> float:
        return self.social_security + self.pension + self.part_time_income + self.earned_income

    @property
    def taxes_paid(self) -> float:
        return self.federal_tax + self.state_tax + self.irmaa


@dataclass(frozen=True)
class ScenarioOutcome:
    scenario_index: int
    success: bool
    ending_balance: float
    year_states: Tuple[YearState, ...]
    depletion_age: Optional[int] = None
    legacy_goal_met: bool = True
    ltc_event_occurred: bool = False
    ltc_total_cost: float = 0.0
    guardrail_cuts: int = 0
    guardrail_raises: int = 0
    control_statistic: float = 0.0
    antithetic: bool = False

    def to_frame(self) -> pd.DataFrame:
        """The cash-flow trajectory, one row per simulated year."""
        frame = pd.DataFrame([asdict(state) for state in self.year_states])
        if not frame.empty:
            frame["taxes_paid"] = frame["federal_tax"] + frame["state_tax"] + frame["irmaa"]
        return frame


@dataclass(frozen=True)
class RiskMetrics:
    cvar_95: float = 0.0
    cvar_99: float = 0.0
    average_max_drawdown: float = 0.0
    worst_max_drawdown: float = 0.0
    average_drawdown_duration: float = 0.0
    ulcer_index: float = 0.0
    sequence_risk_score: float = 0.0
    danger_zones: Tuple[int, ...] = ()
    average_depletion_age: Optional[float] = None


@dataclass(frozen=True)
class EnsembleResult:
    success_probability: float                 # 0-100
    raw_success_probability: float
    legacy_success_probability: float
    ending_balance_percentiles: Dict[int, float]
    mean_ending_balance: float
    risk_metrics: RiskMetrics
    median_trajectory: Tuple[YearState, ...]
    cash_flow_bands: Optional[pd.DataFrame]
    ltc_impact: Dict[str, float]
    guardrail_stats: Dict[str, float]
    requested_scenarios: int
    completed_scenarios: int
    partial: bool = False
    stop_reason: Optional[str] = None
    control_variate_beta: Optional[float] = None
    outcomes: Tuple[ScenarioOutcome, ...] = ()

    def summary(self) -> Dict[str, Any]:
        """Flat dictionary of the headline numbers (no trajectories)."""
        skip = {"median_trajectory", "cash_flow_bands", "outcomes", "risk_metrics"}
        result = {f.name: getattr(self, f.name) for f in fields(self) if f.name not in skip}
        result.update(asdict(self.risk_metrics))
        return result
