# engine/analysis.py
#
# Sub-analyses built from repeated ensemble runs. Every run reuses the same
# seed, so the scenarios differ only in the input being varied.
#

import logging
from dataclasses import replace
from typing import Dict, Iterable, Optional

import pandas as pd

from engine.income_calculator import benefit_at_claim_age, break_even_age, lifetime_npv
from engine.simulator import RetirementSimulator
from models import EnsembleResult, ScenarioParams, SimulationConfig
from utils.currency import format_currency_output, format_percent_output

logger = logging.getLogger(__name__)


def _run(params: ScenarioParams, config: SimulationConfig) -> EnsembleResult:
    return RetirementSimulator(params, config).run_simulation()


def _analysis_config(config: Optional[SimulationConfig]) -> SimulationConfig:
    return replace(config or SimulationConfig(), include_cash_flow_bands=False)


def claiming_age_sensitivity(
    params: ScenarioParams,
    config: Optional[SimulationConfig] = None,
    claim_ages: Iterable[int] = range(62, 71),
    discount_rate: float = 0.03,
    spouse: bool = False,
) -> pd.DataFrame:
    """
    Success probability and lifetime benefit NPV for each Social Security
    claiming age of the primary (or, with ``spouse=True``, the spouse).
    """
    cfg = _analysis_config(config)
    person = params.spouse if spouse else params.primary
    if person is None:
        raise ValueError("Scenario has no spouse to vary")

    earliest = min(claim_ages)
    rows = []
    for claim_age in claim_ages:
        varied = replace(person, social_security_claim_age=float(claim_age))
        scenario = replace(params, spouse=varied) if spouse else replace(params, primary=varied)
        result = _run(scenario, cfg)

        monthly = benefit_at_claim_age(claim_age, person.full_retirement_age, person.social_security_benefit, params.start_year)
        rows.append({
            "claim_age": claim_age,
            "monthly_benefit": monthly,
            "lifetime_npv": lifetime_npv(claim_age, person.life_expectancy, monthly, discount_rate, params.inflation_rate),
            "break_even_vs_earliest": break_even_age(earliest, claim_age, person.full_retirement_age,
                                                     person.social_security_benefit),
            "success_probability": result.success_probability,
            "median_ending_balance": result.ending_balance_percentiles.get(50, result.mean_ending_balance),
        })
        logger.info(f"Claim age {claim_age}: success {format_percent_output(result.success_probability / 100.0)}, "
                    f"median ending {format_currency_output(rows[-1]['median_ending_balance'])}")

    return pd.DataFrame(rows)


def ltc_impact_comparison(params: ScenarioParams, config: Optional[SimulationConfig] = None) -> Dict[str, float]:
    """Ensemble with and without the LTC overlay, on common random numbers."""
    cfg = _analysis_config(config)
    with_ltc = _run(replace(params, model_ltc=True), cfg)
    without_ltc = _run(replace(params, model_ltc=False), cfg)

    comparison = {
        "success_with_ltc": with_ltc.success_probability,
        "success_without_ltc": without_ltc.success_probability,
        "success_impact": without_ltc.success_probability - with_ltc.success_probability,
        "median_ending_with_ltc": with_ltc.ending_balance_percentiles.get(50, with_ltc.mean_ending_balance),
        "median_ending_without_ltc": without_ltc.ending_balance_percentiles.get(50, without_ltc.mean_ending_balance),
        "event_probability": with_ltc.ltc_impact.get("event_probability", 0.0),
        "average_cost_when_occurred": with_ltc.ltc_impact.get("average_cost_when_occurred", 0.0),
    }
    logger.info(f"LTC impact: success {format_percent_output(with_ltc.success_probability / 100.0)} with care costs vs "
                f"{format_percent_output(without_ltc.success_probability / 100.0)} without")
    return comparison


__all__ = ["claiming_age_sensitivity", "ltc_impact_comparison"]
