import math

import pytest

from engine.guardrails import (
    LOWER_TRIGGERED,
    NORMAL,
    UPPER_TRIGGERED,
    GuardrailPolicy,
    withdrawal_rate,
)


def test_withdrawal_rate():
    assert withdrawal_rate(5_000, 100_000) == pytest.approx(0.05)
    assert withdrawal_rate(1_000, 0) == math.inf
    assert withdrawal_rate(0, 0) == 0.0


def test_inside_band_is_inflation_only():
    policy = GuardrailPolicy()
    decision = policy.evaluate(0.04, 0.04, 100_000, 0.02)
    assert decision.state == NORMAL
    assert decision.spending == pytest.approx(102_000)
    assert decision.adjustment == 0.0


def test_lower_guardrail_cuts_one_step():
    policy = GuardrailPolicy()
    decision = policy.evaluate(0.05, 0.04, 100_000, 0.02, original_spending=102_000)
    assert decision.state == LOWER_TRIGGERED
    assert decision.spending == pytest.approx(91_800)
    assert decision.adjustment == pytest.approx(-0.10)
    assert policy.state == LOWER_TRIGGERED


def test_cut_never_breaches_spending_floor():
    policy = GuardrailPolicy(adjustment=0.5, spending_floor_ratio=0.75)
    decision = policy.evaluate(0.08, 0.04, 100_000, 0.02, original_spending=102_000)
    assert decision.spending == pytest.approx(76_500)


def test_upper_guardrail_raises_one_step():
    policy = GuardrailPolicy()
    decision = policy.evaluate(0.03, 0.04, 100_000, 0.02)
    assert decision.state == UPPER_TRIGGERED
    assert decision.spending == pytest.approx(112_200)
    assert decision.adjustment == pytest.approx(0.10)


def test_no_raise_when_inflation_restores_band():
    policy = GuardrailPolicy()
    decision = policy.evaluate(0.03, 0.04, 100_000, 0.10)
    assert decision.state == NORMAL
    assert decision.spending == pytest.approx(110_000)


@pytest.mark.parametrize("current, initial", [(float("nan"), 0.04), (0.05, 0.0)])
def test_degenerate_rates_are_normal(current, initial):
    decision = GuardrailPolicy().evaluate(current, initial, 50_000, 0.03)
    assert decision.state == NORMAL
    assert decision.spending == pytest.approx(51_500)


def test_infinite_rate_triggers_cut():
    decision = GuardrailPolicy().evaluate(math.inf, 0.04, 50_000, 0.0, original_spending=50_000)
    assert decision.state == LOWER_TRIGGERED
    assert decision.spending == pytest.approx(45_000)


def test_evaluate_is_memoryless():
    policy = GuardrailPolicy()
    policy.evaluate(0.06, 0.04, 100_000, 0.0, original_spending=100_000)
    fresh = GuardrailPolicy().evaluate(0.04, 0.04, 90_000, 0.0)
    assert policy.evaluate(0.04, 0.04, 90_000, 0.0) == fresh
