# engine/guardrails.py
#
# Guyton-Klinger style spending guardrails. Each retirement year the current
# withdrawal rate is compared with the rate in the first retirement year:
#   rate far above initial -> lower guardrail, cut spending one step
#   rate far below initial -> upper guardrail, raise spending one step
#   otherwise              -> inflation adjustment only
#

import logging
import math
from typing import NamedTuple

logger = logging.getLogger(__name__)

NORMAL = "normal"
UPPER_TRIGGERED = "upper_triggered"
LOWER_TRIGGERED = "lower_triggered"
GUARDRAIL_STATES = (NORMAL, UPPER_TRIGGERED, LOWER_TRIGGERED)


class GuardrailDecision(NamedTuple):
    state: str
    spending: float
    adjustment: float  # change beyond inflation, as a fraction of inflation-adjusted spending


def withdrawal_rate(net_withdrawal: float, portfolio_value: float) -> float:
    """Net withdrawal over portfolio; an empty portfolio with any draw counts as infinite."""
    if portfolio_value <= 0:
        return math.inf if net_withdrawal > 0 else 0.0
    return max(net_withdrawal, 0.0) / portfolio_value


class GuardrailPolicy:
    """
    Stateless apart from the last decision, which is kept only for reporting.
    Every call to ``evaluate`` looks at the single observed rate; nothing
    carries over between years except the spending level the caller passes in.
    """

    def __init__(
        self,
        upper_threshold: float = 0.20,
        lower_threshold: float = 0.20,
        adjustment: float = 0.10,
        spending_floor_ratio: float = 0.75,
    ):
        self.upper_threshold = upper_threshold
        self.lower_threshold = lower_threshold
        self.adjustment = adjustment
        self.spending_floor_ratio = spending_floor_ratio
        self.state = NORMAL

    def evaluate(
        self,
        current_rate: float,
        initial_rate: float,
        planned_spending: float,
        inflation: float,
        original_spending: float = 0.0,
    ) -> GuardrailDecision:
        """
        Returns next year's spending given last year's ``planned_spending``.

        ``original_spending`` is the first-year spending already inflated to
        this year; cuts never take spending below ``spending_floor_ratio`` of it.
        """
        inflated = planned_spending * (1.0 + inflation)

        if initial_rate <= 0 or math.isnan(current_rate):
            return self._decide(NORMAL, inflated, 0.0)

        if current_rate > initial_rate * (1.0 + self.lower_threshold):
            floor = original_spending * self.spending_floor_ratio
            cut = max(inflated * (1.0 - self.adjustment), min(floor, inflated))
            change = cut / inflated - 1.0 if inflated > 0 else 0.0
            return self._decide(LOWER_TRIGGERED, cut, change)

        band_floor = initial_rate * (1.0 - self.upper_threshold)
        if current_rate < band_floor:
            # Inflation alone may already lift the rate back inside the band
            if current_rate * (1.0 + inflation) >= band_floor:
                return self._decide(NORMAL, inflated, 0.0)
            return self._decide(UPPER_TRIGGERED, inflated * (1.0 + self.adjustment), self.adjustment)

        return self._decide(NORMAL, inflated, 0.0)

    def _decide(self, state: str, spending: float, change: float) -> GuardrailDecision:
        self.state = state
        return GuardrailDecision(state, spending, change)


__all__ = [
    "GuardrailPolicy",
    "GuardrailDecision",
    "withdrawal_rate",
    "GUARDRAIL_STATES",
    "NORMAL",
    "UPPER_TRIGGERED",
    "LOWER_TRIGGERED",
]
