import numpy as np
import pytest

from engine.risk_metrics import (
    cash_flow_bands,
    compute_risk_metrics,
    cvar,
    danger_zones,
    drawdowns,
    longest_drawdown,
    max_drawdown,
    median_outcome,
    percentile_table,
    sequence_risk_score,
    ulcer_index,
)
from models import ScenarioOutcome, YearState


def _state(t, total, portfolio_return=0.0, age=None):
    return YearState(
        year_index=t, year=2025 + t, age=65 + t if age is None else age, spouse_age=None, phase="retirement",
        tax_deferred=total, tax_free=0.0, capital_gains=0.0, cash_equivalents=0.0, total_assets=total,
        portfolio_return=portfolio_return,
    )


def _outcome(index, totals, returns=None, success=True, depletion_age=None):
    returns = returns or [0.0] * len(totals)
    states = tuple(_state(t, total, r) for t, (total, r) in enumerate(zip(totals, returns)))
    return ScenarioOutcome(scenario_index=index, success=success, ending_balance=totals[-1],
                           year_states=states, depletion_age=depletion_age)


def test_cvar_averages_the_tail():
    values = np.arange(1, 101, dtype=float)
    # 5th percentile of 1..100 is 5.95, so the tail is 1..5
    assert cvar(values, 5.0) == pytest.approx(3.0)
    assert cvar([], 5.0) == 0.0


def test_percentile_table_keys():
    table = percentile_table(np.arange(101, dtype=float), (10, 50, 90))
    assert table == pytest.approx({10: 10.0, 50: 50.0, 90: 90.0})


def test_drawdown_measures():
    path = [100, 120, 90, 130]
    assert np.allclose(drawdowns(path), [0.0, 0.0, 0.25, 0.0])
    assert max_drawdown(path) == pytest.approx(0.25)
    assert longest_drawdown([100, 90, 80, 110, 100]) == 2
    assert ulcer_index([100, 50]) == pytest.approx(np.sqrt(1250.0))


def test_drawdowns_of_depleted_path():
    assert max_drawdown([100, 0, 0]) == pytest.approx(1.0)
    assert max_drawdown([0, 0]) == 0.0


def test_sequence_risk_counts_early_losses_in_failures():
    bad_start = _outcome(0, [100, 80, 60, 0], returns=[-0.2, -0.1, 0.05, 0.0], success=False, depletion_age=68)
    good_start = _outcome(1, [100, 90, 50, 0], returns=[0.1, 0.1, -0.3, 0.0], success=False, depletion_age=68)
    survivor = _outcome(2, [100, 80, 70, 60], returns=[-0.2, -0.2, 0.0, 0.0])
    assert sequence_risk_score([bad_start, good_start, survivor]) == pytest.approx(50.0)
    assert sequence_risk_score([survivor]) == 0.0


def test_danger_zones_start_where_failures_exceed_threshold():
    totals = [100.0] * 11
    outcomes = [
        _outcome(0, totals, success=False, depletion_age=70),
        _outcome(1, totals, success=False, depletion_age=72),
        _outcome(2, totals),
        _outcome(3, totals),
        _outcome(4, totals),
    ]
    assert danger_zones(outcomes) == (72, 73, 74, 75)


def test_median_outcome_by_ending_balance():
    outcomes = [_outcome(0, [100, 3]), _outcome(1, [100, 1]), _outcome(2, [100, 2])]
    assert median_outcome(outcomes).scenario_index == 2
    assert median_outcome([]) is None


def test_compute_risk_metrics_summary():
    outcomes = [
        _outcome(0, [100, 120, 60], success=False, depletion_age=67),
        _outcome(1, [100, 110, 130]),
    ]
    metrics = compute_risk_metrics(outcomes)
    assert metrics.worst_max_drawdown == pytest.approx(0.5)
    assert metrics.average_max_drawdown == pytest.approx(0.25)
    assert metrics.average_depletion_age == pytest.approx(67.0)


def test_cash_flow_bands_layout():
    outcomes = [_outcome(0, [100, 90]), _outcome(1, [200, 150])]
    bands = cash_flow_bands(outcomes, (10, 50, 90))
    assert list(bands.columns) == ["year", "age", "metric", "p10", "p50", "p90"]
    assert len(bands) == 2 * 3
    assets = bands[(bands["metric"] == "total_assets") & (bands["year"] == 2025)].iloc[0]
    assert assets["p50"] == pytest.approx(150.0)
