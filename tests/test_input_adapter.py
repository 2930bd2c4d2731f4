import pytest

from models import InvalidParameterError
from utils.input_adapter import build_scenario_params, build_simulation_config, normalize_key
from utils.xml_loader import DEFAULT_SETUP


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("currentAge", "current_age"),
        ("desiredRetirementAge", "retirement_age"),
        ("spouseDesiredRetirementAge", "spouse_retirement_age"),
        ("num-simulations", "iterations"),
        ("state", "state"),
    ],
)
def test_normalize_key(raw, expected):
    assert normalize_key(raw) == expected


def test_defaults_alone_build_a_valid_household():
    params = build_scenario_params()
    assert params.primary.current_age == DEFAULT_SETUP["primary_current_age"]
    assert params.spouse is None
    assert params.filing_status == "single"
    assert params.horizon_years == 90 - 55 + 1


def test_profile_with_asset_list():
    profile = {
        "currentAge": 60,
        "desiredRetirementAge": 65,
        "userLifeExpectancy": 92,
        "expectedMonthlyExpensesRetirement": "$5,000",
        "expectedInflationRate": "3%",
        "retirementState": "ca",
        "assets": [
            {"tax": "Roth IRA", "balance": "$100,000"},
            {"tax": "401k", "balance": 300_000},
            {"tax": "Brokerage", "balance": 50_000, "basis": 20_000},
        ],
    }
    params = build_scenario_params(profile)

    assert params.primary.current_age == 60
    assert params.primary.retirement_age == 65
    assert params.primary.life_expectancy == 92
    assert params.annual_expenses == pytest.approx(60_000.0)
    assert params.inflation_rate == pytest.approx(0.03)
    assert params.state == "CA"
    assert params.buckets.tax_free == pytest.approx(100_000.0)
    assert params.buckets.tax_deferred == pytest.approx(300_000.0)
    assert params.buckets.capital_gains == pytest.approx(50_000.0)
    assert params.buckets.capital_gains_basis == pytest.approx(20_000.0)


def test_overrides_win_over_profile():
    params = build_scenario_params({"current_age": 50}, current_age=58)
    assert params.primary.current_age == 58


def test_spouse_implies_joint_filing():
    params = build_scenario_params({
        "spouse_current_age": 58,
        "spouse_retirement_age": 63,
        "spouse_life_expectancy": 94,
        "spouse_gender": "Female",
    })
    assert params.spouse is not None
    assert params.spouse.gender == "female"
    assert params.filing_status == "married_filing_jointly"


@pytest.mark.parametrize(
    "raw, expected",
    [("Married", "married_filing_jointly"), ("HOH", "head_of_household"), ("widowed", "single")],
)
def test_filing_status_aliases(raw, expected):
    assert build_scenario_params(filing_status=raw).filing_status == expected


def test_date_of_birth_sets_age_and_full_retirement_age():
    params = build_scenario_params(date_of_birth="1962-05-01", start_year=2025)
    assert params.primary.current_age == 63
    assert params.primary.full_retirement_age == pytest.approx(67.0)


@pytest.mark.parametrize(
    "date_of_birth, expected_fra",
    [("1958-01-01", 66 + 6 / 12), ("1958-01-20", 66 + 8 / 12), ("1958", 66 + 8 / 12)],
)
def test_only_a_january_first_birthday_uses_the_prior_cohort(date_of_birth, expected_fra):
    params = build_scenario_params(date_of_birth=date_of_birth, start_year=2020)
    assert params.primary.full_retirement_age == pytest.approx(expected_fra)


def test_monthly_contribution_becomes_annual_savings():
    params = build_scenario_params(monthly_contribution="$1,000")
    assert params.primary.annual_savings == pytest.approx(12_000.0)


def test_stock_only_allocation_fills_bonds():
    params = build_scenario_params(stock_allocation="80%")
    assert params.allocation.stocks == pytest.approx(0.80)
    assert params.allocation.cash == pytest.approx(0.05)
    assert params.allocation.bonds == pytest.approx(0.15)


def test_ltc_policy_from_flag():
    params = build_scenario_params(has_long_term_care_insurance="yes", ltc_annual_premium=2_400)
    policy = params.primary.ltc_insurance
    assert policy.policy_type == "traditional"
    assert policy.daily_benefit == pytest.approx(DEFAULT_SETUP["ltc_daily_benefit"])
    assert policy.annual_premium == pytest.approx(2_400.0)


def test_unparseable_value_names_the_field():
    with pytest.raises(InvalidParameterError) as excinfo:
        build_scenario_params(current_age="sixty")
    assert excinfo.value.field == "primary_current_age"


def test_contract_violation_names_the_field():
    with pytest.raises(InvalidParameterError) as excinfo:
        build_scenario_params(current_age=70, retirement_age=65)
    assert excinfo.value.field == "primary_retirement_age"


def test_unknown_filing_status_rejected():
    with pytest.raises(InvalidParameterError) as excinfo:
        build_scenario_params(filing_status="complicated")
    assert excinfo.value.field == "filing_status"


def test_simulation_config_from_profile():
    config = build_simulation_config({"numSimulations": 200, "seed": 7, "currentAge": 60})
    assert config.iterations == 200
    assert config.seed == 7
    assert config.return_distribution == "student-t"
    assert config.guardrail_adjustment == pytest.approx(0.10)


def test_simulation_config_rejects_bad_values():
    with pytest.raises(InvalidParameterError):
        build_simulation_config(worker_count=0)
