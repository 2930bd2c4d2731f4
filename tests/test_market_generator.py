import numpy as np
import pytest
from scipy.stats import norm

import config.market_assumptions as market
from engine.market_generator import (
    ReturnGenerator,
    YearReturns,
    aagr_to_cagr,
    cagr_to_aagr,
    scenario_seed,
    stationary_distribution,
    stratified_shocks,
)
from models import Allocation, MarketAssumptions


def _generator(**kwargs):
    kwargs.setdefault("distribution", "normal")
    return ReturnGenerator(MarketAssumptions(), 25, np.random.SeedSequence(7), **kwargs)


def test_geometric_to_arithmetic_conversion():
    assert cagr_to_aagr(0.07, 0.16) == pytest.approx(0.0828)
    assert aagr_to_cagr(cagr_to_aagr(0.05, 0.1), 0.1) == pytest.approx(0.05)


def test_iteration_restarts_from_the_seed():
    gen = _generator(distribution="student-t")
    assert gen.path() == gen.path()


def test_scenario_seed_is_stable_and_distinct():
    a = np.random.default_rng(scenario_seed(42, 3)).random()
    b = np.random.default_rng(scenario_seed(42, 3)).random()
    c = np.random.default_rng(scenario_seed(42, 4)).random()
    assert a == b
    assert a != c


def test_antithetic_path_mirrors_shocks():
    base = _generator()
    mirror = _generator(antithetic=True)
    base_path, mirror_path = base.path(), mirror.path()

    assert np.allclose(np.array(mirror.primary_shocks), -np.array(base.primary_shocks))
    stock_mu = cagr_to_aagr(market.stock_cagr, market.stock_sigma)
    bond_mu = cagr_to_aagr(market.bond_cagr, market.bond_sigma)
    for x, y in zip(base_path, mirror_path):
        assert x.stocks + y.stocks == pytest.approx(2 * stock_mu)
        assert x.bonds + y.bonds == pytest.approx(2 * bond_mu)


def test_control_statistic_is_mean_primary_shock():
    gen = _generator()
    assert gen.control_statistic == 0.0
    gen.path()
    assert gen.control_statistic == pytest.approx(np.mean(gen.primary_shocks))


def test_stratified_row_replaces_leading_primary_shocks():
    gen = _generator(stratified_row=np.array([1.5, -0.5]))
    gen.path()
    assert gen.primary_shocks[:2] == [1.5, -0.5]

    mirrored = _generator(stratified_row=np.array([1.5, -0.5]), antithetic=True)
    mirrored.path()
    assert mirrored.primary_shocks[:2] == [-1.5, 0.5]


def test_stratified_shocks_fill_every_stratum():
    n_paths = 50
    shocks = stratified_shocks(n_paths, 4, np.random.SeedSequence(1))
    assert shocks.shape == (n_paths, 4)
    for column in shocks.T:
        strata = np.sort(np.floor(norm.cdf(column) * n_paths).astype(int))
        assert np.array_equal(strata, np.arange(n_paths))


def test_returns_respect_floors():
    gen = ReturnGenerator(MarketAssumptions(), 300, np.random.SeedSequence(11), use_regimes=True)
    for year in gen:
        assert year.stocks >= -1.0
        assert year.bonds >= -1.0
        assert year.cash >= 0.0
        assert year.regime in market.regime_names


def test_normal_returns_have_expected_mean():
    gen = ReturnGenerator(MarketAssumptions(), 4_000, np.random.SeedSequence(3), distribution="normal")
    stocks = np.array([year.stocks for year in gen])
    assert stocks.mean() == pytest.approx(cagr_to_aagr(market.stock_cagr, market.stock_sigma), abs=0.01)
    assert stocks.std() == pytest.approx(market.stock_sigma, rel=0.05)


def test_student_t_shocks_keep_unit_variance():
    gen = ReturnGenerator(MarketAssumptions(), 4_000, np.random.SeedSequence(5), distribution="student-t")
    stocks = np.array([year.stocks for year in gen])
    assert stocks.std() == pytest.approx(market.stock_sigma, rel=0.15)


def test_stationary_distribution_is_invariant():
    pi = stationary_distribution(market.regime_transitions)
    assert pi.sum() == pytest.approx(1.0)
    assert np.allclose(pi @ market.regime_transitions, pi)
    assert np.all(pi > 0)


def test_portfolio_blend():
    year = YearReturns(stocks=0.10, bonds=0.02, cash=0.01)
    assert year.portfolio(Allocation(0.6, 0.35, 0.05)) == pytest.approx(0.06 + 0.007 + 0.0005)
