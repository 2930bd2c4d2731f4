# engine/ltc_overlay.py
#
# Long-term-care shock. Whether care is needed, when it starts and how long it
# lasts are drawn once per person at scenario start; the yearly cost (net of
# any insurance benefit) is then read off that fixed event.
#

import logging
from dataclasses import dataclass
from typing import NamedTuple, Optional, Sequence, Tuple

import numpy as np

import config.expense_assumptions as expense
from models import LTCInsurance, PersonParams, ScenarioParams

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365


@dataclass(frozen=True)
class LTCEvent:
    onset_age: float
    duration_years: float

    @property
    def end_age(self) -> float:
        return self.onset_age + self.duration_years

    def fraction_in_care(self, age: float) -> float:
        """Share of the year [age, age + 1) spent in care."""
        return _overlap(age, self.onset_age, self.end_age)


class LTCYear(NamedTuple):
    cost: float = 0.0
    insurance_offset: float = 0.0
    premiums: float = 0.0

    @property
    def net_cost(self) -> float:
        return max(0.0, self.cost - self.insurance_offset)


def _overlap(age: float, start: float, end: float) -> float:
    return max(0.0, min(age + 1.0, end) - max(age, start))


def lifetime_probability(base_probability: float, health_status: str) -> float:
    multiplier = expense.ltc_health_multipliers.get(health_status, 1.0)
    return min(base_probability * multiplier, expense.ltc_max_probability)


def benefit_inflation_factor(protection: str, years: float) -> float:
    """Growth of the daily benefit under the policy's inflation rider."""
    rate = expense.ltc_benefit_inflation.get(protection, 0.0)
    if protection == "5%_simple":
        return 1.0 + rate * years
    return (1.0 + rate) ** years


def regional_annual_cost(state: str) -> float:
    factor = expense.ltc_regional_cost_factors.get(state.upper(), 1.0)
    return expense.ltc_base_annual_cost * factor


class LTCOverlay:
    """
    Draws and prices LTC events for one household.

    ``draw_events`` consumes exactly three uniforms per person so the stream
    stays aligned whatever the outcome.
    """

    def __init__(self, params: ScenarioParams):
        self.params = params
        self.people: Tuple[PersonParams, ...] = tuple(params.people)
        if params.ltc_annual_cost is not None:
            self.annual_cost = params.ltc_annual_cost
        else:
            self.annual_cost = regional_annual_cost(params.state)

    def draw_events(self, rng: np.random.Generator) -> Tuple[Optional[LTCEvent], ...]:
        if not self.params.model_ltc:
            return tuple(None for _ in self.people)

        events = []
        for person in self.people:
            occur_u, onset_u, duration_u = rng.random(3)
            probability = lifetime_probability(self.params.ltc_lifetime_probability, person.health_status)
            if occur_u >= probability:
                events.append(None)
                continue

            low, high = self.params.ltc_onset_age_range
            low = max(low, float(person.current_age))
            high = float(person.life_expectancy) if high is None else high
            high = max(high, low)
            onset = low + onset_u * (high - low)
            if onset >= person.life_expectancy:
                events.append(None)
                continue

            spread_low, spread_high = expense.ltc_duration_spread
            average = expense.ltc_average_duration.get(person.gender, 3.0)
            duration = max(1.0, average * (spread_low + duration_u * (spread_high - spread_low)))
            events.append(LTCEvent(onset_age=onset, duration_years=duration))
        return tuple(events)

    def year_costs(
        self,
        events: Sequence[Optional[LTCEvent]],
        year_index: int,
        ages: Sequence[int],
        alive: Sequence[bool],
    ) -> LTCYear:
        """Care cost, insurance benefit and premiums for the household in ``year_index``."""
        cost_rate = self.annual_cost * (1.0 + self.params.ltc_inflation_rate) ** year_index
        cost = offset = premiums = 0.0

        for person, event, age, is_alive in zip(self.people, events, ages, alive):
            if not is_alive:
                continue
            policy = person.ltc_insurance

            # Level premium until the claim starts
            if policy.policy_type != "none" and policy.annual_premium > 0:
                paying_until = event.onset_age if event is not None else np.inf
                premiums += policy.annual_premium * _overlap(age, -np.inf, paying_until)

            if event is None:
                continue
            in_care = event.fraction_in_care(age)
            if in_care <= 0:
                continue
            cost += cost_rate * in_care
            offset += self._insurance_offset(policy, event, age, year_index, cost_rate)

        return LTCYear(cost=cost, insurance_offset=min(offset, cost), premiums=premiums)

    @staticmethod
    def _insurance_offset(policy: LTCInsurance, event: LTCEvent, age: float, year_index: int, cost_rate: float) -> float:
        if not policy.has_coverage:
            return 0.0
        benefit_start = event.onset_age + policy.elimination_days / DAYS_PER_YEAR
        benefit_end = min(benefit_start + policy.benefit_period_years, event.end_age)
        covered = _overlap(age, benefit_start, benefit_end)
        if covered <= 0:
            return 0.0

        annual_benefit = policy.daily_benefit * DAYS_PER_YEAR * benefit_inflation_factor(policy.inflation_protection, year_index)
        paid = min(cost_rate, annual_benefit) * covered
        if policy.policy_type == "hybrid":
            paid *= policy.hybrid_benefit_ratio
        return paid


__all__ = [
    "LTCEvent",
    "LTCYear",
    "LTCOverlay",
    "lifetime_probability",
    "benefit_inflation_factor",
    "regional_annual_cost",
]
