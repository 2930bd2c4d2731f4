import pytest

from engine.income_calculator import IncomeBreakdown
from engine.rmd_tables import required_minimum_distribution
from engine.withdrawal_engine import WithdrawalEngine
from models import AssetBuckets


def _solve(engine, need, buckets, income=None, age=60, state="TX", filing_status="single"):
    return engine.solve(need, buckets, income or IncomeBreakdown(), age, filing_status, state, 2025)


@pytest.mark.parametrize("need", [10_000.0, 60_000.0, 150_000.0])
def test_net_proceeds_match_need_exactly(need):
    engine = WithdrawalEngine()
    result = _solve(engine, need, AssetBuckets(tax_deferred=1_000_000.0))
    assert result.gross_withdrawal - result.taxes.income_taxes == pytest.approx(need, abs=1e-6)
    assert result.net_withdrawal == pytest.approx(need, abs=1e-6)
    assert result.shortfall == 0.0


def test_exact_with_guaranteed_income_and_state_tax():
    engine = WithdrawalEngine()
    income = IncomeBreakdown(social_security=24_000.0, pension=30_000.0)
    buckets = AssetBuckets(tax_deferred=600_000.0, capital_gains=200_000.0, capital_gains_basis=80_000.0)
    result = _solve(engine, 110_000.0, buckets, income=income, age=68, state="CA")
    spendable = income.total + result.gross_withdrawal - result.taxes.income_taxes
    assert spendable == pytest.approx(110_000.0, abs=1e-6)
    assert result.taxes.state > 0


def test_cash_is_drawn_first():
    engine = WithdrawalEngine()
    buckets = AssetBuckets(tax_deferred=500_000.0, cash_equivalents=20_000.0)
    result = _solve(engine, 60_000.0, buckets)
    assert result.per_bucket_draw["cash_equivalents"] == pytest.approx(20_000.0)
    assert result.per_bucket_draw["tax_deferred"] > 40_000.0
    assert result.per_bucket_draw["tax_free"] == 0.0


def test_lower_rmds_order_draws_tax_deferred_before_taxable():
    buckets = AssetBuckets(tax_deferred=500_000.0, capital_gains=500_000.0)
    efficient = _solve(WithdrawalEngine("tax_efficient"), 50_000.0, buckets)
    lower_rmds = _solve(WithdrawalEngine("lower_rmds"), 50_000.0, buckets)
    assert efficient.per_bucket_draw["tax_deferred"] == 0.0
    assert lower_rmds.per_bucket_draw["capital_gains"] == 0.0


def test_capital_gains_only_gain_share_is_taxable():
    engine = WithdrawalEngine()
    buckets = AssetBuckets(capital_gains=100_000.0, capital_gains_basis=50_000.0)
    result = _solve(engine, 30_000.0, buckets)
    assert result.gross_withdrawal == pytest.approx(30_000.0)
    assert result.capital_gains == pytest.approx(15_000.0)
    assert result.taxes.income_taxes == pytest.approx(0.0)


def test_rmd_forces_withdrawal_and_surplus_is_reinvested():
    engine = WithdrawalEngine()
    buckets = AssetBuckets(tax_deferred=1_000_000.0)
    rmd = required_minimum_distribution(1_000_000.0, 80)
    result = _solve(engine, 10_000.0, buckets, age=80)

    assert result.rmd == pytest.approx(rmd)
    assert result.gross_withdrawal == pytest.approx(rmd)
    assert result.surplus == pytest.approx(rmd - result.taxes.income_taxes - 10_000.0)

    engine.execute(result, buckets)
    assert buckets.tax_deferred == pytest.approx(1_000_000.0 - rmd)
    assert buckets.cash_equivalents == pytest.approx(result.surplus)


def test_shortfall_when_buckets_run_dry():
    engine = WithdrawalEngine()
    buckets = AssetBuckets(cash_equivalents=10_000.0)
    result = _solve(engine, 50_000.0, buckets)
    assert result.gross_withdrawal == pytest.approx(10_000.0)
    assert result.shortfall == pytest.approx(40_000.0)
    assert result.surplus == 0.0


def test_no_withdrawal_when_income_covers_need():
    engine = WithdrawalEngine()
    result = _solve(engine, 20_000.0, AssetBuckets(tax_free=100_000.0),
                    income=IncomeBreakdown(social_security=30_000.0))
    assert result.gross_withdrawal == 0.0
    assert result.surplus == pytest.approx(10_000.0)


def test_solve_does_not_mutate_buckets():
    engine = WithdrawalEngine()
    buckets = AssetBuckets(tax_deferred=300_000.0, capital_gains=100_000.0, cash_equivalents=5_000.0)
    before = buckets.copy()
    _solve(engine, 70_000.0, buckets, age=75)
    assert buckets == before


def test_execute_keeps_total_consistent():
    engine = WithdrawalEngine()
    buckets = AssetBuckets(tax_deferred=300_000.0, tax_free=50_000.0, capital_gains=100_000.0,
                           cash_equivalents=5_000.0)
    total = buckets.total_assets
    result = _solve(engine, 70_000.0, buckets)
    engine.execute(result, buckets)
    assert buckets.total_assets == pytest.approx(total - result.gross_withdrawal + result.surplus)


def test_unknown_strategy_rejected():
    with pytest.raises(ValueError):
        WithdrawalEngine("alphabetical")
