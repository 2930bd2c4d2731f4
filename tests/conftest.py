import pytest

from models import (
    AssetBuckets,
    AssetClassAssumption,
    MarketAssumptions,
    PersonParams,
    ScenarioParams,
    SimulationConfig,
)


@pytest.fixture
def flat_market():
    """Every asset class returns exactly 0% every year."""
    zero = AssetClassAssumption(expected_return=0.0, volatility=0.0)
    return MarketAssumptions(stocks=zero, bonds=zero, cash=zero)


@pytest.fixture
def make_params():
    def _make(primary=None, buckets=None, annual_expenses=40_000.0, **kwargs):
        primary = primary or PersonParams(current_age=65, retirement_age=65, life_expectancy=85)
        buckets = buckets or AssetBuckets(tax_deferred=500_000.0, tax_free=200_000.0,
                                          capital_gains=200_000.0, cash_equivalents=50_000.0)
        kwargs.setdefault("model_ltc", False)
        return ScenarioParams(primary=primary, buckets=buckets, annual_expenses=annual_expenses, **kwargs)
    return _make


@pytest.fixture
def small_config():
    return SimulationConfig(iterations=40, seed=2024, include_cash_flow_bands=False)
