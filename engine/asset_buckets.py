# engine/asset_buckets.py
#
# Maps individual holdings onto the four tax buckets and applies the yearly
# growth / contribution steps to an AssetBuckets instance.
#

import logging
from typing import Dict, Iterable, Mapping

from models import BUCKET_NAMES, AssetBuckets

logger = logging.getLogger(__name__)

# Account type -> bucket. Keys are lower-case with spaces/dashes stripped.
ACCOUNT_TYPE_BUCKETS: Dict[str, str] = {
    # Tax-deferred
    "traditional": "tax_deferred", "traditionalira": "tax_deferred", "ira": "tax_deferred",
    "401k": "tax_deferred", "403b": "tax_deferred", "457b": "tax_deferred", "def457b": "tax_deferred",
    "sepira": "tax_deferred", "simpleira": "tax_deferred", "inherited": "tax_deferred",
    "rolloverira": "tax_deferred", "tsp": "tax_deferred",
    # Tax-free
    "roth": "tax_free", "rothira": "tax_free", "roth401k": "tax_free", "hsa": "tax_free",
    # Capital gains
    "taxable": "capital_gains", "brokerage": "capital_gains", "individual": "capital_gains",
    "joint": "capital_gains", "trust": "capital_gains",
    # Cash
    "cash": "cash_equivalents", "savings": "cash_equivalents", "checking": "cash_equivalents",
    "moneymarket": "cash_equivalents", "cd": "cash_equivalents",
}


def classify_account(account_type: str) -> str:
    """Returns the bucket for an account type; unknown types are treated as taxable."""
    key = str(account_type or "").strip().lower().replace(" ", "").replace("-", "").replace("_", "")
    bucket = ACCOUNT_TYPE_BUCKETS.get(key)
    if bucket is None:
        logger.warning(f"Unknown account type '{account_type}', treating it as a taxable brokerage account.")
        return "capital_gains"
    return bucket


def buckets_from_accounts(accounts: Iterable[Mapping]) -> AssetBuckets:
    """
    Aggregates account records ({'tax': ..., 'balance': ..., 'basis': ...})
    into AssetBuckets. Basis is only tracked for capital-gains holdings;
    a missing basis means no embedded gain.
    """
    totals = {name: 0.0 for name in BUCKET_NAMES}
    basis = 0.0
    for acct in accounts:
        bucket = classify_account(acct.get("tax", acct.get("type", "taxable")))
        balance = float(acct.get("balance", 0.0) or 0.0)
        totals[bucket] += balance
        if bucket == "capital_gains":
            acct_basis = acct.get("basis")
            basis += balance if acct_basis is None else float(acct_basis)
    return AssetBuckets(capital_gains_basis=basis, **totals)


def apply_growth(buckets: AssetBuckets, invested_return: float, cash_return: float) -> None:
    """Invested buckets earn the blended portfolio return; cash earns the cash return."""
    invested_factor = max(0.0, 1.0 + invested_return)
    cash_factor = max(0.0, 1.0 + cash_return)
    buckets.tax_deferred *= invested_factor
    buckets.tax_free *= invested_factor
    buckets.capital_gains *= invested_factor
    buckets.cash_equivalents *= cash_factor


def add_contribution(buckets: AssetBuckets, amount: float, split: Mapping[str, float]) -> float:
    """Spreads a savings contribution across buckets; returns the amount deposited."""
    if amount <= 0:
        return 0.0
    for bucket, weight in split.items():
        buckets.deposit(bucket, amount * weight)
    return amount
