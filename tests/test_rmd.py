import pytest

from engine.rmd_tables import get_rmd_factor, required_minimum_distribution, rmd_start_age


def test_rmd_uses_uniform_lifetime_divisor():
    assert required_minimum_distribution(265_000, 73) == pytest.approx(10_000.0)


def test_no_rmd_before_start_age():
    assert required_minimum_distribution(500_000, 72, start_age=73) == 0.0
    assert required_minimum_distribution(500_000, 74, start_age=75) == 0.0


def test_no_rmd_on_empty_balance():
    assert required_minimum_distribution(0.0, 80) == 0.0


def test_factor_interpolates_fractional_ages():
    assert get_rmd_factor(73.5) == pytest.approx((26.5 + 25.5) / 2)


def test_factor_below_table_and_past_end():
    assert get_rmd_factor(60) == 0.0
    assert get_rmd_factor(125) == pytest.approx(2.0)


@pytest.mark.parametrize(
    "birth_year, expected",
    [(1949, 72), (1955, 73), (1960, 75), (None, 73)],
)
def test_rmd_start_age_by_birth_year(birth_year, expected):
    assert rmd_start_age(birth_year) == expected
