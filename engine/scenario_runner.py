# engine/scenario_runner.py
#
# Runs one simulated lifetime: accumulation until the primary retires, then
# yearly spending funded by guaranteed income and tax-aware withdrawals until
# the last survivor reaches life expectancy.
#

import logging
from typing import List, Optional

import numpy as np
from numpy.typing import NDArray

from engine.asset_buckets import add_contribution, apply_growth
from engine.guardrails import LOWER_TRIGGERED, NORMAL, UPPER_TRIGGERED, GuardrailPolicy, withdrawal_rate
from engine.income_calculator import household_income
from engine.ltc_overlay import LTCOverlay
from engine.market_generator import ReturnGenerator, scenario_seed
from engine.tax_engine import MEDICARE_AGE, irmaa_surcharge
from engine.withdrawal_engine import WithdrawalEngine
from models import ScenarioOutcome, ScenarioParams, SimulationConfig, YearState

logger = logging.getLogger(__name__)

SHORTFALL_TOLERANCE = 0.01


class ScenarioRunner:
    """
    Owns everything that is fixed for a household (params, config, engines).
    ``run`` builds all per-scenario state locally, so one runner can be reused
    across scenarios and processes.
    """

    def __init__(self, params: ScenarioParams, config: SimulationConfig):
        self.params = params
        self.config = config
        self.withdrawal_engine = WithdrawalEngine(rmd_start_age=params.rmd_start_age,
                                                  inflation_rate=params.inflation_rate)
        self.ltc_overlay = LTCOverlay(params)

    def _guardrail_policy(self) -> GuardrailPolicy:
        cfg = self.config
        return GuardrailPolicy(
            upper_threshold=cfg.guardrail_upper_threshold,
            lower_threshold=cfg.guardrail_lower_threshold,
            adjustment=cfg.guardrail_adjustment,
            spending_floor_ratio=cfg.spending_floor_ratio,
        )

    # =========================================================================
    # SINGLE PATH LOGIC
    # =========================================================================
    def run(
        self,
        scenario_index: int,
        path_index: Optional[int] = None,
        antithetic: bool = False,
        stratified_row: Optional[NDArray[np.float64]] = None,
    ) -> ScenarioOutcome:
        """
        Simulates one lifetime. ``path_index`` selects the random stream
        (defaults to ``scenario_index``); an antithetic mate shares its
        partner's ``path_index`` and negates the market shocks.
        """
        params, cfg = self.params, self.config
        seed = scenario_seed(cfg.seed, scenario_index if path_index is None else path_index)
        market_seed, ltc_seed = seed.spawn(2)

        generator = ReturnGenerator(
            params.market,
            params.horizon_years,
            market_seed,
            distribution=cfg.return_distribution,
            df=cfg.student_t_df,
            use_regimes=cfg.use_regime_switching,
            antithetic=antithetic,
            stratified_row=stratified_row,
        )
        ltc_events = self.ltc_overlay.draw_events(np.random.default_rng(ltc_seed))
        policy = self._guardrail_policy()

        buckets = params.buckets.copy()
        people = params.people
        primary = params.primary
        is_couple = params.spouse is not None

        # magi[t] is the MAGI from two years before simulated year t
        magi_history: List[float] = list(params.magi_history)
        states: List[YearState] = []

        planned_spending: Optional[float] = None
        initial_rate = 0.0
        last_net_withdrawal = 0.0
        success = True
        depletion_age = None
        ltc_total = 0.0
        cuts = raises = 0
        survivor_adjusted = False

        for t, returns in enumerate(generator):
            year = params.start_year + t
            ages = [p.current_age + t for p in people]
            alive = [age <= p.life_expectancy for p, age in zip(people, ages)]
            living_ages = tuple(age for age, is_alive in zip(ages, alive) if is_alive)
            age = ages[0]
            filing_status = params.filing_status if (not is_couple or all(alive)) else "single"

            # --- STEP 1: INCOME AND SAVINGS ---
            income = household_income(params, t)
            contributions = sum(
                p.annual_savings * (1.0 + params.savings_growth_rate) ** t
                for p, p_age, is_alive in zip(people, ages, alive)
                if is_alive and p_age < p.retirement_age
            )
            start_total = buckets.total_assets
            retired = age >= primary.retirement_age

            if not retired:
                add_contribution(buckets, contributions, params.savings_allocation)
                portfolio_return = returns.portfolio(params.allocation)
                apply_growth(buckets, portfolio_return, returns.cash)
                magi_history.append(income.ordinary)
                states.append(YearState(
                    year_index=t, year=year, age=age, spouse_age=ages[1] if is_couple else None,
                    phase="accumulation",
                    tax_deferred=buckets.tax_deferred, tax_free=buckets.tax_free,
                    capital_gains=buckets.capital_gains, cash_equivalents=buckets.cash_equivalents,
                    total_assets=buckets.total_assets,
                    contributions=contributions,
                    social_security=income.social_security, pension=income.pension,
                    part_time_income=income.part_time, earned_income=income.earned,
                    portfolio_return=portfolio_return, regime=returns.regime,
                    magi=income.ordinary,
                ))
                continue

            # --- STEP 2: SPENDING WITH GUARDRAILS ---
            inflation_index = (1.0 + params.expense_inflation_rate) ** t
            survivor = is_couple and not all(alive)
            spending_ratio = params.survivor_spending_ratio if survivor else 1.0
            guardrail_state, guardrail_change = NORMAL, 0.0
            if planned_spending is None:
                planned_spending = params.annual_expenses * inflation_index * spending_ratio
                survivor_adjusted = survivor
            else:
                if survivor and not survivor_adjusted:
                    # Guardrail baseline shrinks with the household
                    planned_spending *= spending_ratio
                    initial_rate *= spending_ratio
                    last_net_withdrawal *= spending_ratio
                    survivor_adjusted = True
                if params.use_guardrails:
                    rate = withdrawal_rate(last_net_withdrawal, start_total)
                    decision = policy.evaluate(rate, initial_rate, planned_spending, params.expense_inflation_rate,
                                               original_spending=params.annual_expenses * inflation_index * spending_ratio)
                    planned_spending = decision.spending
                    guardrail_state, guardrail_change = decision.state, decision.adjustment
                    if guardrail_state == LOWER_TRIGGERED and guardrail_change < 0:
                        cuts += 1
                    elif guardrail_state == UPPER_TRIGGERED:
                        raises += 1
                else:
                    planned_spending *= 1.0 + params.expense_inflation_rate

            # --- STEP 3: HEALTHCARE, IRMAA, LTC ---
            healthcare = params.annual_healthcare_costs * (1.0 + params.healthcare_inflation_rate) ** t
            if survivor:
                healthcare *= params.survivor_healthcare_ratio
            magi_two_years_ago = magi_history[t]
            irmaa = sum(
                irmaa_surcharge(magi_two_years_ago, filing_status, year, a, params.inflation_rate).total
                for a in living_ages if a >= MEDICARE_AGE
            )
            ltc = self.ltc_overlay.year_costs(ltc_events, t, ages, alive)
            ltc_total += ltc.net_cost

            net_need = planned_spending + healthcare + irmaa + ltc.net_cost + ltc.premiums + contributions

            # --- STEP 4: WITHDRAWAL ---
            result = self.withdrawal_engine.solve(
                net_need, buckets, income, living_ages[0], filing_status, params.state, year,
                household_ages=living_ages,
            )
            self.withdrawal_engine.execute(result, buckets)
            add_contribution(buckets, contributions, params.savings_allocation)

            if initial_rate <= 0:
                initial_rate = withdrawal_rate(result.net_withdrawal, start_total)
            last_net_withdrawal = result.net_withdrawal

            if result.shortfall > SHORTFALL_TOLERANCE:
                if success:
                    depletion_age = age
                success = False

            # --- STEP 5: INVESTMENT RETURNS ---
            portfolio_return = returns.portfolio(params.allocation)
            apply_growth(buckets, portfolio_return, returns.cash)
            magi_history.append(result.magi)

            states.append(YearState(
                year_index=t, year=year, age=age, spouse_age=ages[1] if is_couple else None,
                phase="retirement",
                tax_deferred=buckets.tax_deferred, tax_free=buckets.tax_free,
                capital_gains=buckets.capital_gains, cash_equivalents=buckets.cash_equivalents,
                total_assets=buckets.total_assets,
                contributions=contributions,
                gross_withdrawal=result.gross_withdrawal,
                net_withdrawal=result.net_withdrawal,
                rmd=result.rmd,
                federal_tax=result.taxes.federal,
                state_tax=result.taxes.state,
                irmaa=irmaa,
                social_security=income.social_security,
                pension=income.pension,
                part_time_income=income.part_time,
                earned_income=income.earned,
                expenses=planned_spending,
                healthcare_costs=healthcare,
                ltc_cost=ltc.cost,
                ltc_insurance_offset=ltc.insurance_offset,
                guardrail_state=guardrail_state,
                guardrail_adjustment=guardrail_change,
                shortfall=result.shortfall,
                surplus_reinvested=result.surplus,
                portfolio_return=portfolio_return,
                regime=returns.regime,
                magi=result.magi,
            ))

        ending_balance = buckets.total_assets
        return ScenarioOutcome(
            scenario_index=scenario_index,
            success=success,
            ending_balance=ending_balance,
            year_states=tuple(states),
            depletion_age=depletion_age,
            legacy_goal_met=ending_balance >= params.legacy_goal,
            ltc_event_occurred=any(e is not None for e in ltc_events),
            ltc_total_cost=ltc_total,
            guardrail_cuts=cuts,
            guardrail_raises=raises,
            control_statistic=generator.control_statistic,
            antithetic=antithetic,
        )


def run_scenario(params: ScenarioParams, config: SimulationConfig, scenario_index: int, **kwargs) -> ScenarioOutcome:
    return ScenarioRunner(params, config).run(scenario_index, **kwargs)


__all__ = ["ScenarioRunner", "run_scenario", "SHORTFALL_TOLERANCE"]
