# market_generator.py
#
# This code generates annual stock / bond / cash returns for one scenario.
# Shocks are correlated through a Cholesky factor of the asset correlation
# matrix and can be fat tailed (unit-variance Student-t). Optionally a Markov
# chain moves the market between regimes that shift the means, scale the
# volatility and pull stock returns back toward their long-run mean.
#

import logging
from typing import Iterator, List, NamedTuple, Optional, Union

import numpy as np
from numpy.typing import NDArray
from scipy.stats import norm, qmc

import config.market_assumptions as market
from models import Allocation, MarketAssumptions

logger = logging.getLogger(__name__)

SeedLike = Union[int, np.random.SeedSequence]

_PROB_EPS = 1e-12


class YearReturns(NamedTuple):
    stocks: float
    bonds: float
    cash: float
    regime: Optional[str] = None

    def portfolio(self, allocation: Allocation) -> float:
        """Allocation-weighted blend."""
        return float(allocation.as_array() @ np.array([self.stocks, self.bonds, self.cash]))


def cagr_to_aagr(cagr: float, sigma: float) -> float:
    return cagr + sigma ** 2 / 2.0


def aagr_to_cagr(aagr: float, sigma: float) -> float:
    return aagr - sigma ** 2 / 2.0


def scenario_seed(base_seed: int, scenario_index: int) -> np.random.SeedSequence:
    """Seed for one scenario, independent of which worker runs it or when."""
    return np.random.SeedSequence([int(base_seed), int(scenario_index)])


def stationary_distribution(transitions: NDArray[np.float64]) -> NDArray[np.float64]:
    """Long-run regime probabilities of a row-stochastic transition matrix."""
    values, vectors = np.linalg.eig(np.asarray(transitions, dtype=float).T)
    vec = np.real(vectors[:, np.argmin(np.abs(values - 1.0))])
    return vec / vec.sum()


def stratified_shocks(n_paths: int, n_years: int, seed: SeedLike) -> NDArray[np.float64]:
    """
    Latin-hypercube standard-normal shocks, shape (n_paths, n_years).
    Each column puts exactly one path in each of ``n_paths`` equal-probability strata.
    """
    sampler = qmc.LatinHypercube(d=n_years, seed=np.random.default_rng(seed))
    u = np.clip(sampler.random(n_paths), _PROB_EPS, 1.0 - _PROB_EPS)
    return norm.ppf(u)


class _RegimeModel:
    """Per-regime arithmetic means, volatility multipliers and reversion speeds."""

    def __init__(self, stock_aagr: float, bond_aagr: float):
        self.names = market.regime_names
        self.transitions = np.asarray(market.regime_transitions, dtype=float)
        self.cumulative = np.cumsum(self.transitions, axis=1)
        self.initial_cumulative = np.cumsum(market.initial_regime_probabilities)

        pi = stationary_distribution(self.transitions)
        stock_shift = np.array([market.regime_params[r]["stock_shift"] for r in self.names])
        bond_shift = np.array([market.regime_params[r]["bond_shift"] for r in self.names])
        # Remove the long-run average shift so the unconditional mean stays at the input
        self.stock_mu = stock_aagr + stock_shift - pi @ stock_shift
        self.bond_mu = bond_aagr + bond_shift - pi @ bond_shift
        self.stock_vol = np.array([market.regime_params[r]["stock_vol_mult"] for r in self.names])
        self.bond_vol = np.array([market.regime_params[r]["bond_vol_mult"] for r in self.names])
        self.reversion = np.array([market.regime_params[r]["mean_reversion"] for r in self.names])

    def first(self, u: float) -> int:
        return int(min(np.searchsorted(self.initial_cumulative, u, side="right"), len(self.names) - 1))

    def step(self, current: int, u: float) -> int:
        return int(min(np.searchsorted(self.cumulative[current], u, side="right"), len(self.names) - 1))


class ReturnGenerator:
    """
    Lazy, restartable sequence of YearReturns.

    Every ``iter()`` builds a fresh generator from the stored seed, so two
    passes over the same instance yield identical paths. ``primary_shocks``
    holds the stock shocks of the most recent pass; their mean is the control
    statistic used by the ensemble (its expectation is zero).
    """

    def __init__(
        self,
        market_assumptions: MarketAssumptions,
        n_years: int,
        seed: SeedLike,
        distribution: str = "student-t",
        df: float = market.student_t_df,
        use_regimes: bool = False,
        antithetic: bool = False,
        stratified_row: Optional[NDArray[np.float64]] = None,
    ):
        self.n_years = n_years
        self.seed = seed
        self.distribution = distribution
        self.df = df
        self.use_regimes = use_regimes
        self.antithetic = antithetic
        self.stratified_row = None if stratified_row is None else np.asarray(stratified_row, dtype=float)
        self.primary_shocks: List[float] = []

        s, b, c = market_assumptions.stocks, market_assumptions.bonds, market_assumptions.cash
        self.sigma = np.array([s.volatility, b.volatility, c.volatility])
        self.mu = np.array([
            cagr_to_aagr(s.expected_return, s.volatility),
            cagr_to_aagr(b.expected_return, b.volatility),
            cagr_to_aagr(c.expected_return, c.volatility),
        ])
        self.chol = np.linalg.cholesky(np.asarray(market_assumptions.correlation, dtype=float))
        self.regimes = _RegimeModel(self.mu[0], self.mu[1]) if use_regimes else None

    def __iter__(self) -> Iterator[YearReturns]:
        rng = np.random.default_rng(self.seed)
        self.primary_shocks = []
        regime = None
        prev_stock = self.mu[0]

        for t in range(self.n_years):
            # Fixed draw count per year keeps the stream aligned across options
            z = rng.standard_normal(3)
            scale = np.sqrt((self.df - 2.0) / rng.chisquare(self.df)) if self.distribution == "student-t" else 1.0
            regime_u = rng.random() if self.use_regimes else 0.0

            if self.stratified_row is not None and t < self.stratified_row.size:
                z[0] = self.stratified_row[t]
            if self.antithetic:
                z = -z
            self.primary_shocks.append(float(z[0]))

            eps = (self.chol @ z) * scale

            if self.regimes is not None:
                regime = self.regimes.first(regime_u) if t == 0 else self.regimes.step(regime, regime_u)
                stock_mu = self.regimes.stock_mu[regime] - self.regimes.reversion[regime] * (prev_stock - self.mu[0])
                stock = stock_mu + self.sigma[0] * self.regimes.stock_vol[regime] * eps[0]
                bond = self.regimes.bond_mu[regime] + self.sigma[1] * self.regimes.bond_vol[regime] * eps[1]
                name = self.regimes.names[regime]
            else:
                stock = self.mu[0] + self.sigma[0] * eps[0]
                bond = self.mu[1] + self.sigma[1] * eps[1]
                name = None

            cash = max(0.0, self.mu[2] + self.sigma[2] * eps[2])
            stock = max(stock, -1.0)
            bond = max(bond, -1.0)
            prev_stock = stock
            yield YearReturns(float(stock), float(bond), float(cash), name)

    def path(self) -> List[YearReturns]:
        return list(self)

    @property
    def control_statistic(self) -> float:
        """Mean primary shock of the last pass (0.0 before any pass)."""
        if not self.primary_shocks:
            return 0.0
        return float(np.mean(self.primary_shocks))


__all__ = [
    "YearReturns",
    "ReturnGenerator",
    "cagr_to_aagr",
    "aagr_to_cagr",
    "scenario_seed",
    "stationary_distribution",
    "stratified_shocks",
]
