import pytest

from engine.asset_buckets import add_contribution, apply_growth, buckets_from_accounts, classify_account
from models import AssetBuckets, InvalidParameterError
from utils.currency import clean_currency, clean_percent, format_currency_output, format_percent_output
from utils.xml_loader import CONFIG_DIR, parse_setup_xml, try_cast


@pytest.mark.parametrize(
    "text, expected",
    [
        ("$140,000.00", 140_000.0),
        (" 500 ", 500.0),
        ("", 0.0),
        (None, 0.0),
        (1_234, 1_234.0),
    ],
)
def test_clean_currency_valid(text, expected):
    assert clean_currency(text) == expected


@pytest.mark.parametrize("text", ["abc", "$12x"])
def test_clean_currency_invalid(text):
    with pytest.raises(ValueError):
        clean_currency(text)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("23%", 0.23),
        ("0.23", 0.23),
        ("23", 0.23),
        (23, 0.23),
        ("0.5%", 0.005),
        (0.07, 0.07),
    ],
)
def test_clean_percent_valid(text, expected):
    assert clean_percent(text) == pytest.approx(expected)


def test_clean_percent_empty_and_invalid():
    assert clean_percent(None) is None
    assert clean_percent("  ") is None
    with pytest.raises(ValueError):
        clean_percent("abc%")


def test_output_formatting():
    assert format_percent_output(0.234) == "23.4%"
    assert format_percent_output(None) == ""
    assert format_currency_output(1_234_567) == "$1,234,567"
    assert format_currency_output(12.5, decimals=2) == "$12.50"


@pytest.mark.parametrize(
    "text, expected",
    [("42", 42), ("4.5", 4.5), ("true", True), ("False", False), ("TX", "TX"), (None, None)],
)
def test_try_cast(text, expected):
    assert try_cast(text) == expected


def test_setup_file_sections_are_prefixed():
    setup = parse_setup_xml(CONFIG_DIR / "default_setup.xml")
    assert setup["start_year"] == 2025
    assert setup["primary_retirement_age"] == 65
    assert setup["simulation_return_distribution"] == "student-t"
    assert setup["use_guardrails"] is True


@pytest.mark.parametrize(
    "account_type, bucket",
    [("Roth IRA", "tax_free"), ("Annuity", "capital_gains"), ("401k", "tax_deferred"),
     ("Money Market", "cash_equivalents"), ("Brokerage", "capital_gains")],
)
def test_classify_account(account_type, bucket):
    assert classify_account(account_type) == bucket


def test_buckets_from_accounts_tracks_basis():
    buckets = buckets_from_accounts([
        {"tax": "taxable", "balance": 80_000, "basis": 30_000},
        {"tax": "brokerage", "balance": 20_000},
        {"tax": "traditional", "balance": 250_000, "basis": 1},
    ])
    assert buckets.capital_gains == pytest.approx(100_000)
    assert buckets.capital_gains_basis == pytest.approx(50_000)
    assert buckets.tax_deferred == pytest.approx(250_000)
    assert buckets.gain_fraction == pytest.approx(0.5)


def test_withdraw_scales_basis_proportionally():
    buckets = AssetBuckets(capital_gains=100_000, capital_gains_basis=40_000)
    taken = buckets.withdraw("capital_gains", 25_000)
    assert taken == pytest.approx(25_000)
    assert buckets.capital_gains_basis == pytest.approx(30_000)
    assert buckets.gain_fraction == pytest.approx(0.6)


def test_withdraw_caps_at_balance():
    buckets = AssetBuckets(cash_equivalents=1_000)
    assert buckets.withdraw("cash_equivalents", 5_000) == pytest.approx(1_000)
    assert buckets.cash_equivalents == 0.0


def test_growth_and_contributions():
    buckets = AssetBuckets(tax_deferred=100_000, cash_equivalents=10_000)
    apply_growth(buckets, 0.10, 0.02)
    assert buckets.tax_deferred == pytest.approx(110_000)
    assert buckets.cash_equivalents == pytest.approx(10_200)

    add_contribution(buckets, 10_000, {"tax_deferred": 0.5, "capital_gains": 0.5})
    assert buckets.tax_deferred == pytest.approx(115_000)
    assert buckets.capital_gains_basis == pytest.approx(5_000)


def test_negative_balance_rejected():
    with pytest.raises(InvalidParameterError) as excinfo:
        AssetBuckets(tax_free=-1.0)
    assert excinfo.value.field == "tax_free"
