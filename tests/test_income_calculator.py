import pytest

from engine.income_calculator import (
    benefit_at_claim_age,
    break_even_age,
    claiming_adjustment_factor,
    claiming_age_table,
    household_income,
    lifetime_npv,
    months_in_year,
    primary_insurance_amount,
)
from models import AssetBuckets, PersonParams, ScenarioParams
from utils.ss_utils import get_full_retirement_age, get_max_pia


@pytest.mark.parametrize(
    "claim_age, expected",
    [
        (62, 0.70),
        (64, 0.80),
        (67, 1.00),
        (68, 1.08),
        (70, 1.24),
    ],
)
def test_claiming_adjustment_factor_fra_67(claim_age, expected):
    assert claiming_adjustment_factor(claim_age, 67) == pytest.approx(expected)


def test_claim_age_is_clamped():
    assert claiming_adjustment_factor(60, 67) == pytest.approx(0.70)
    assert claiming_adjustment_factor(72, 67) == pytest.approx(1.24)


def test_benefit_capped_at_max_pia():
    assert benefit_at_claim_age(67, 67, 10_000, year=2025) == pytest.approx(get_max_pia(2025))
    assert benefit_at_claim_age(67, 67, 0.0) == 0.0


def test_primary_insurance_amount_bend_points():
    # 90% of 1,226 + 32% of (3,000 - 1,226)
    assert primary_insurance_amount(3_000, 2025) == pytest.approx(0.9 * 1_226 + 0.32 * 1_774)


def test_lifetime_npv_nondecreasing_in_claim_age():
    pia = 2_000.0
    npvs = [
        lifetime_npv(age, 90, benefit_at_claim_age(age, 67, pia), discount_rate=0.03, cola_rate=0.025)
        for age in range(62, 71)
    ]
    assert all(b >= a for a, b in zip(npvs, npvs[1:]))


def test_lifetime_npv_zero_when_dead_before_claiming():
    assert lifetime_npv(70, 69, 2_000, 0.03, 0.025) == 0.0


def test_break_even_62_vs_70():
    age = break_even_age(62, 70, 67, 2_000)
    assert 70 < age < 90
    # Undiscounted, no COLA: 96 months of 0.70 PIA recovered at 0.54 PIA per month
    assert age == pytest.approx(70 + (96 * 0.70 / 0.54) / 12, abs=1.0 / 12)


def test_break_even_none_for_same_age():
    assert break_even_age(67, 67, 67, 2_000) is None


def test_claiming_age_table_shape():
    table = claiming_age_table(2_000, 67, 90)
    assert list(table["claim_age"]) == list(range(62, 71))
    assert table["monthly_benefit"].is_monotonic_increasing


@pytest.mark.parametrize(
    "birth_year, birth_month, birth_day, expected",
    [
        (1950, 6, 15, 66.0),
        (1957, 6, 15, 66.5),
        (1962, None, None, 67.0),
        (1960, 1, 1, 66 + 10 / 12),   # born January 1st counts as the prior year
        (1960, 1, 2, 67.0),
        (1958, 1, 15, 66 + 8 / 12),
    ],
)
def test_full_retirement_age(birth_year, birth_month, birth_day, expected):
    assert get_full_retirement_age(birth_year, birth_month, birth_day) == pytest.approx(expected)


def test_months_in_year_partial():
    assert months_in_year(66, 67) == 0.0
    assert months_in_year(66, 66.5) == pytest.approx(6.0)
    assert months_in_year(70, 62, 70.25) == pytest.approx(3.0)


def _couple(**kwargs):
    first = PersonParams(current_age=67, retirement_age=67, life_expectancy=70,
                         social_security_benefit=3_000, social_security_claim_age=67)
    second = PersonParams(current_age=67, retirement_age=67, life_expectancy=90,
                          social_security_benefit=1_000, social_security_claim_age=67)
    return ScenarioParams(primary=first, spouse=second, buckets=AssetBuckets(), annual_expenses=50_000,
                          filing_status="married_filing_jointly", inflation_rate=0.0, **kwargs)


def test_social_security_starts_at_claim_age():
    person = PersonParams(current_age=66, retirement_age=66, life_expectancy=90,
                          social_security_benefit=2_000, social_security_claim_age=67)
    params = ScenarioParams(primary=person, buckets=AssetBuckets(), annual_expenses=40_000, inflation_rate=0.025)
    assert household_income(params, 0).social_security == 0.0
    assert household_income(params, 1).social_security == pytest.approx(12 * 2_000 * 1.025)


def test_survivor_keeps_larger_benefit():
    params = _couple()
    assert household_income(params, 0).social_security == pytest.approx(12 * 4_000)
    # First spouse died at 70; survivor steps up to the larger benefit
    assert household_income(params, 4).social_security == pytest.approx(12 * 3_000)


def test_pension_survivor_ratio():
    first = PersonParams(current_age=67, retirement_age=67, life_expectancy=70,
                         pension_benefit=2_000, pension_survivor_ratio=0.5)
    second = PersonParams(current_age=67, retirement_age=67, life_expectancy=90)
    params = ScenarioParams(primary=first, spouse=second, buckets=AssetBuckets(), annual_expenses=50_000,
                            filing_status="married_filing_jointly")
    assert household_income(params, 0).pension == pytest.approx(24_000)
    assert household_income(params, 5).pension == pytest.approx(12_000)


def test_part_time_income_stops_at_end_age():
    person = PersonParams(current_age=65, retirement_age=65, life_expectancy=90,
                          part_time_income=1_000, part_time_end_age=67)
    params = ScenarioParams(primary=person, buckets=AssetBuckets(), annual_expenses=40_000, inflation_rate=0.0)
    assert household_income(params, 0).part_time == pytest.approx(12_000)
    assert household_income(params, 2).part_time == 0.0
