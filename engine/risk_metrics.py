# engine/risk_metrics.py
#
# Tail and path risk measures over an ensemble of scenario outcomes.
#

import logging
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike

from models import RiskMetrics, ScenarioOutcome

logger = logging.getLogger(__name__)

SEQUENCE_WINDOW_YEARS = 5
SEQUENCE_NEGATIVE_YEARS = 2
DANGER_ZONE_FAILURE_RATE = 0.20


# --- 1. Tail risk ---

def cvar(values: ArrayLike, level: float = 5.0) -> float:
    """Mean of the outcomes at or below the ``level`` percentile."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return 0.0
    cutoff = np.percentile(arr, level)
    return float(arr[arr <= cutoff].mean())


def percentile_table(values: ArrayLike, percentiles: Sequence[int]) -> Dict[int, float]:
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return {p: 0.0 for p in percentiles}
    return {p: float(v) for p, v in zip(percentiles, np.percentile(arr, percentiles))}


# --- 2. Path risk ---

def drawdowns(trajectory: ArrayLike) -> np.ndarray:
    """Fractional decline from the running peak for each year (0 where the peak is 0)."""
    arr = np.asarray(trajectory, dtype=float)
    if arr.size == 0:
        return arr
    peak = np.maximum.accumulate(arr)
    return np.where(peak > 0, (peak - arr) / np.where(peak > 0, peak, 1.0), 0.0)


def max_drawdown(trajectory: ArrayLike) -> float:
    dd = drawdowns(trajectory)
    return float(dd.max()) if dd.size else 0.0


def longest_drawdown(trajectory: ArrayLike) -> int:
    """Longest run of consecutive years spent below a previous peak."""
    longest = current = 0
    for underwater in drawdowns(trajectory) > 0:
        current = current + 1 if underwater else 0
        longest = max(longest, current)
    return longest


def ulcer_index(trajectory: ArrayLike) -> float:
    """Root-mean-square percentage drawdown."""
    dd = drawdowns(trajectory)
    if dd.size == 0:
        return 0.0
    return float(np.sqrt(np.mean((100.0 * dd) ** 2)))


# --- 3. Ensemble-level measures ---

def sequence_risk_score(outcomes: Sequence[ScenarioOutcome], window: int = SEQUENCE_WINDOW_YEARS,
                        min_negative: int = SEQUENCE_NEGATIVE_YEARS) -> float:
    """
    Percentage of failed scenarios that saw at least ``min_negative`` losing
    years in the first ``window`` retirement years.
    """
    failed = [o for o in outcomes if not o.success]
    if not failed:
        return 0.0
    hit = 0
    for outcome in failed:
        early = [s.portfolio_return for s in outcome.year_states if s.phase == "retirement"][:window]
        if sum(1 for r in early if r < 0) >= min_negative:
            hit += 1
    return 100.0 * hit / len(failed)


def danger_zones(outcomes: Sequence[ScenarioOutcome], threshold: float = DANGER_ZONE_FAILURE_RATE) -> Tuple[int, ...]:
    """Ages at which the cumulative share of depleted scenarios exceeds ``threshold``."""
    if not outcomes:
        return ()
    ages = sorted({s.age for o in outcomes for s in o.year_states})
    depletion = np.array([np.inf if o.depletion_age is None else o.depletion_age for o in outcomes])
    return tuple(age for age in ages if np.mean(depletion <= age) > threshold)


def compute_risk_metrics(outcomes: Sequence[ScenarioOutcome]) -> RiskMetrics:
    if not outcomes:
        return RiskMetrics()

    endings = np.array([o.ending_balance for o in outcomes])
    trajectories = [np.array([s.total_assets for s in o.year_states]) for o in outcomes]
    max_dd = np.array([max_drawdown(t) for t in trajectories])
    depleted = [o.depletion_age for o in outcomes if o.depletion_age is not None]

    return RiskMetrics(
        cvar_95=cvar(endings, 5.0),
        cvar_99=cvar(endings, 1.0),
        average_max_drawdown=float(max_dd.mean()),
        worst_max_drawdown=float(max_dd.max()),
        average_drawdown_duration=float(np.mean([longest_drawdown(t) for t in trajectories])),
        ulcer_index=float(np.mean([ulcer_index(t) for t in trajectories])),
        sequence_risk_score=sequence_risk_score(outcomes),
        danger_zones=danger_zones(outcomes),
        average_depletion_age=float(np.mean(depleted)) if depleted else None,
    )


# --- 4. Trajectories ---

def median_outcome(outcomes: Sequence[ScenarioOutcome]) -> Optional[ScenarioOutcome]:
    """The scenario whose ending balance sits at the median."""
    if not outcomes:
        return None
    order = np.argsort([o.ending_balance for o in outcomes], kind="stable")
    return outcomes[int(order[(len(order) - 1) // 2])]


def cash_flow_bands(outcomes: Sequence[ScenarioOutcome], percentiles: Sequence[int],
                    columns: Sequence[str] = ("total_assets", "net_withdrawal", "taxes_paid")) -> pd.DataFrame:
    """
    Year-by-year percentile bands across scenarios. One row per (year, column)
    pair, one column per percentile.
    """
    frames = []
    for outcome in outcomes:
        frame = outcome.to_frame()
        if frame.empty:
            continue
        frame["scenario"] = outcome.scenario_index
        frames.append(frame[["scenario", "year", "age", *columns]])
    if not frames:
        return pd.DataFrame()

    data = pd.concat(frames, ignore_index=True)
    quantiles = [p / 100.0 for p in percentiles]
    bands = (
        data.melt(id_vars=["scenario", "year", "age"], value_vars=list(columns), var_name="metric")
        .groupby(["year", "age", "metric"])["value"]
        .quantile(quantiles)
        .unstack()
    )
    bands.columns = [f"p{p}" for p in percentiles]
    return bands.reset_index()


__all__ = [
    "cvar",
    "percentile_table",
    "drawdowns",
    "max_drawdown",
    "longest_drawdown",
    "ulcer_index",
    "sequence_risk_score",
    "danger_zones",
    "compute_risk_metrics",
    "median_outcome",
    "cash_flow_bands",
]
