# utils/input_adapter.py
import re
from dataclasses import fields
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from engine.asset_buckets import buckets_from_accounts
from models import (
    AssetBuckets,
    AssetClassAssumption,
    Allocation,
    InvalidParameterError,
    LTCInsurance,
    MarketAssumptions,
    PersonParams,
    ScenarioParams,
    SimulationConfig,
)
from utils.currency import clean_currency, clean_percent
from utils.ss_utils import get_full_retirement_age
from utils.xml_loader import DEFAULT_SETUP

# Profile spellings -> canonical names (after snake_casing)
KEY_ALIASES: Dict[str, str] = {
    "desired_retirement_age": "retirement_age",
    "user_life_expectancy": "life_expectancy",
    "part_time_income_retirement": "part_time_income",
    "user_gender": "gender",
    "user_health_status": "health_status",
    "retirement_state": "state",
    "tax_filing_status": "filing_status",
    "expected_inflation_rate": "inflation_rate",
    "has_long_term_care_insurance": "has_ltc_insurance",
    "num_simulations": "iterations",
    "nsims": "iterations",
}

FILING_STATUS_ALIASES = {
    "single": "single",
    "married": "married_filing_jointly",
    "married_filing_jointly": "married_filing_jointly",
    "mfj": "married_filing_jointly",
    "married_filing_separately": "married_separate",
    "married_separate": "married_separate",
    "mfs": "married_separate",
    "head_of_household": "head_of_household",
    "hoh": "head_of_household",
    "divorced": "single",
    "widowed": "single",
}


def _to_int(value: Any) -> int:
    return int(round(clean_currency(value)))


def _to_float(value: Any) -> float:
    return clean_currency(value)


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "y")
    return bool(value)


def _to_str(value: Any) -> str:
    return str(value).strip().lower()


# Person fields and how to read them. Money is monthly for benefits, annual for pay.
PERSON_FIELDS: Dict[str, Callable[[Any], Any]] = {
    "current_age": _to_int,
    "retirement_age": _to_int,
    "life_expectancy": _to_int,
    "social_security_benefit": clean_currency,
    "social_security_claim_age": _to_float,
    "full_retirement_age": _to_float,
    "pension_benefit": clean_currency,
    "pension_start_age": _to_float,
    "pension_cola": _to_bool,
    "pension_survivor_ratio": clean_percent,
    "part_time_income": clean_currency,
    "part_time_end_age": _to_float,
    "annual_income": clean_currency,
    "annual_savings": clean_currency,
    "gender": _to_str,
    "health_status": _to_str,
}

# Person-level profile keys that may arrive without a prefix
PRIMARY_KEYS = tuple(PERSON_FIELDS) + ("monthly_contribution", "date_of_birth", "has_ltc_insurance", "ltc_policy_type")

HOUSEHOLD_PERCENT_FIELDS = (
    "expense_inflation_rate", "healthcare_inflation_rate", "inflation_rate", "savings_growth_rate",
    "ltc_lifetime_probability", "ltc_inflation_rate", "survivor_spending_ratio", "survivor_healthcare_ratio",
)
HOUSEHOLD_MONEY_FIELDS = ("annual_expenses", "annual_healthcare_costs", "legacy_goal")


def normalize_key(key: str) -> str:
    """camelCase / kebab-case / snake_case -> canonical snake_case name."""
    snake = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", str(key)).replace("-", "_").lower()
    for prefix in ("spouse_", "primary_", "simulation_"):
        if snake.startswith(prefix) and snake[len(prefix):] in KEY_ALIASES:
            return prefix + KEY_ALIASES[snake[len(prefix):]]
    return KEY_ALIASES.get(snake, snake)


def normalize_profile(profile: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    return {normalize_key(k): v for k, v in (profile or {}).items()}


def _convert(field_name: str, value: Any, converter: Callable[[Any], Any]) -> Any:
    try:
        return converter(value)
    except (TypeError, ValueError) as exc:
        raise InvalidParameterError(field_name, f"cannot parse {value!r}: {exc}") from exc


def _apply_birth_dates(supplied: Dict[str, Any], start_year: int) -> None:
    """Derives current age and full retirement age from ``<prefix>date_of_birth``."""
    for prefix in ("primary_", "spouse_"):
        dob = supplied.get(f"{prefix}date_of_birth")
        if dob is None:
            continue
        match = re.match(r"\s*(\d{4})(?:-(\d{1,2})-(\d{1,2}))?", str(dob))
        if not match:
            raise InvalidParameterError(f"{prefix}date_of_birth", f"cannot read a year from {dob!r}")
        birth_year = int(match.group(1))
        month, day = (int(match.group(2)), int(match.group(3))) if match.group(2) else (None, None)
        supplied.setdefault(f"{prefix}current_age", start_year - birth_year)
        supplied.setdefault(f"{prefix}full_retirement_age", get_full_retirement_age(birth_year, month, day))


def _apply_monthly_contributions(supplied: Dict[str, Any]) -> None:
    """Monthly contributions are a common profile shape; annual savings wins when both are given."""
    for prefix in ("primary_", "spouse_"):
        monthly = supplied.get(f"{prefix}monthly_contribution")
        if monthly in (None, "") or f"{prefix}annual_savings" in supplied:
            continue
        supplied[f"{prefix}annual_savings"] = 12.0 * _convert(f"{prefix}monthly_contribution", monthly, clean_currency)


def _ltc_insurance(data: Mapping[str, Any], prefix: str) -> LTCInsurance:
    policy_type = data.get(f"{prefix}ltc_policy_type")
    if policy_type is None:
        policy_type = "traditional" if _to_bool(data.get(f"{prefix}has_ltc_insurance", False)) else "none"
    if _to_str(policy_type) == "none":
        return LTCInsurance()

    def pick(name, default):
        return data.get(f"{prefix}{name}", data.get(name, default))

    return LTCInsurance(
        policy_type=_to_str(policy_type),
        daily_benefit=_convert("ltc_daily_benefit", pick("ltc_daily_benefit", 0.0), clean_currency),
        benefit_period_years=_convert("ltc_benefit_period_years", pick("ltc_benefit_period_years", 0.0), _to_float),
        elimination_days=_convert("ltc_elimination_days", pick("ltc_elimination_days", 90), _to_int),
        inflation_protection=_to_str(pick("ltc_inflation_protection", "none")),
        annual_premium=_convert("ltc_annual_premium", pick("ltc_annual_premium", 0.0), clean_currency),
        hybrid_benefit_ratio=_convert("ltc_hybrid_benefit_ratio", pick("ltc_hybrid_benefit_ratio", 0.5), clean_percent),
    )


def _person(data: Mapping[str, Any], prefix: str) -> PersonParams:
    """Reads the ``<prefix>field`` keys of one person."""
    kwargs: Dict[str, Any] = {}
    for name, converter in PERSON_FIELDS.items():
        value = data.get(f"{prefix}{name}")
        if value is None or value == "":
            continue
        kwargs[name] = _convert(f"{prefix}{name}", value, converter)

    missing = [name for name in ("current_age", "retirement_age", "life_expectancy") if name not in kwargs]
    if missing:
        raise InvalidParameterError(f"{prefix}{missing[0]}", "is required")

    try:
        return PersonParams(ltc_insurance=_ltc_insurance(data, prefix), **kwargs)
    except InvalidParameterError as exc:
        raise InvalidParameterError(f"{prefix}{exc.field}", exc.message) from exc


def _buckets(data: Mapping[str, Any]) -> AssetBuckets:
    assets = data.get("assets")
    if assets:
        accounts = []
        for asset in assets:
            record = normalize_profile(asset)
            accounts.append({
                "tax": record.get("tax", record.get("type", "taxable")),
                "balance": _convert("assets.balance", record.get("balance", record.get("value", 0.0)), clean_currency),
                "basis": None if record.get("basis") is None else _convert("assets.basis", record["basis"], clean_currency),
            })
        return buckets_from_accounts(accounts)

    balances = {
        name: _convert(name, data.get(name, 0.0), clean_currency)
        for name in ("tax_deferred", "tax_free", "capital_gains", "cash_equivalents")
    }
    basis = data.get("capital_gains_basis")
    return AssetBuckets(
        capital_gains_basis=None if basis is None else _convert("capital_gains_basis", basis, clean_currency),
        **balances,
    )


def _allocation(data: Mapping[str, Any], profile_keys: Iterable[str]) -> Allocation:
    stocks = _convert("stock_allocation", data["stock_allocation"], clean_percent)
    cash = _convert("cash_allocation", data["cash_allocation"], clean_percent)
    if "bond_allocation" in profile_keys or "stock_allocation" not in profile_keys:
        bonds = _convert("bond_allocation", data["bond_allocation"], clean_percent)
    else:
        # Only stocks supplied: bonds take what is left after cash
        cash = min(cash, max(0.0, 1.0 - stocks))
        bonds = max(0.0, 1.0 - stocks - cash)
    return Allocation(stocks=stocks, bonds=bonds, cash=cash)


def _market(data: Mapping[str, Any]) -> MarketAssumptions:
    defaults = MarketAssumptions()
    classes = {}
    for name, prefix in (("stocks", "stock"), ("bonds", "bond"), ("cash", "cash")):
        base = getattr(defaults, name)
        ret = data.get(f"{prefix}_return")
        vol = data.get(f"{prefix}_volatility")
        classes[name] = AssetClassAssumption(
            expected_return=base.expected_return if ret is None else _convert(f"{prefix}_return", ret, clean_percent),
            volatility=base.volatility if vol is None else _convert(f"{prefix}_volatility", vol, clean_percent),
        )
    return MarketAssumptions(**classes)


def build_scenario_params(profile: Optional[Mapping[str, Any]] = None, **overrides: Any) -> ScenarioParams:
    """
    Builds validated ScenarioParams from a loosely typed profile by merging
    XML defaults, the profile and keyword overrides (later wins).
    Raises InvalidParameterError naming the offending field.
    """
    supplied = normalize_profile(profile)
    supplied.update(normalize_profile(overrides))

    # Unprefixed person keys belong to the primary
    for name in PRIMARY_KEYS:
        if name in supplied:
            supplied[f"primary_{name}"] = supplied.pop(name)

    start_year = _convert("start_year", supplied.get("start_year", DEFAULT_SETUP["start_year"]), _to_int)
    _apply_birth_dates(supplied, start_year)
    _apply_monthly_contributions(supplied)

    data = DEFAULT_SETUP.copy()
    data.update(supplied)

    if "annual_expenses" not in supplied and "expected_monthly_expenses_retirement" in supplied:
        data["annual_expenses"] = 12.0 * _convert("expected_monthly_expenses_retirement",
                                                  supplied["expected_monthly_expenses_retirement"], clean_currency)

    primary = _person(data, "primary_")
    has_spouse = "spouse_current_age" in supplied
    spouse = _person(data, "spouse_") if has_spouse else None

    if "filing_status" in supplied:
        filing_raw = supplied["filing_status"]
    elif "marital_status" in supplied:
        filing_raw = supplied["marital_status"]
    else:
        filing_raw = "married_filing_jointly" if has_spouse else data["filing_status"]
    filing_raw = _to_str(filing_raw).replace(" ", "_")
    filing_status = FILING_STATUS_ALIASES.get(filing_raw)
    if filing_status is None:
        raise InvalidParameterError("filing_status", f"unknown filing status {filing_raw!r}")

    household: Dict[str, Any] = {}
    for name in HOUSEHOLD_MONEY_FIELDS:
        household[name] = _convert(name, data.get(name, 0.0), clean_currency)
    for name in HOUSEHOLD_PERCENT_FIELDS:
        if data.get(name) is not None:
            household[name] = _convert(name, data[name], clean_percent)
    if data.get("ltc_annual_cost") is not None:
        household["ltc_annual_cost"] = _convert("ltc_annual_cost", data["ltc_annual_cost"], clean_currency)

    magi_history = (
        _convert("magi_two_years_ago", data.get("magi_two_years_ago", 0.0), clean_currency),
        _convert("magi_last_year", data.get("magi_last_year", 0.0), clean_currency),
    )

    return ScenarioParams(
        primary=primary,
        spouse=spouse,
        buckets=_buckets(data),
        market=_market(data),
        allocation=_allocation(data, supplied.keys()),
        filing_status=filing_status,
        state=str(data.get("state", "TX")).strip().upper(),
        start_year=start_year,
        magi_history=magi_history,
        rmd_start_age=_convert("rmd_start_age", data.get("rmd_start_age", 73), _to_int),
        model_ltc=_to_bool(data.get("model_ltc", True)),
        use_guardrails=_to_bool(data.get("use_guardrails", True)),
        **household,
    )


def build_simulation_config(profile: Optional[Mapping[str, Any]] = None, **overrides: Any) -> SimulationConfig:
    """
    Merges ``simulation_*`` XML defaults with the profile and overrides, keeping
    only names SimulationConfig knows about.
    """
    inputs_dict = {k[len("simulation_"):]: v for k, v in DEFAULT_SETUP.items() if k.startswith("simulation_")}
    for source in (normalize_profile(profile), normalize_profile(overrides)):
        for key, value in source.items():
            inputs_dict[key[len("simulation_"):] if key.startswith("simulation_") else key] = value

    config_field_names = {f.name for f in fields(SimulationConfig)}
    final_inputs = {key: value for key, value in inputs_dict.items() if key in config_field_names}
    return SimulationConfig(**final_inputs)


__all__ = ["build_scenario_params", "build_simulation_config", "normalize_key", "normalize_profile"]
