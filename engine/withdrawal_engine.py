# withdrawal_engine.py
#
# Tax-aware withdrawal solver. Finds the gross portfolio draw G with
#   G - tax(base income + G) = spending need - guaranteed income
# by walking the bracket structure: along the bucket waterfall every income
# measure is linear in G, so tax(G) is piecewise linear and the answer is an
# exact interpolation inside the segment where the need is met.
#

import logging
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Sequence, Tuple

from engine.income_calculator import IncomeBreakdown
from engine.rmd_tables import DEFAULT_RMD_START_AGE, required_minimum_distribution
from engine.tax_engine import MEDICARE_AGE, TaxBreakdown, calculate_taxes, taxable_social_security
from models import BUCKET_NAMES, AssetBuckets
from utils.tax_utils import DEFAULT_TAX_INFLATION, get_state_tax_rule, get_tax_year_config

logger = logging.getLogger(__name__)

# Tax-free (Roth-type) money always goes last
WITHDRAWAL_ORDERS: Dict[str, Tuple[str, ...]] = {
    "tax_efficient": ("cash_equivalents", "capital_gains", "tax_deferred", "tax_free"),
    "lower_rmds": ("cash_equivalents", "tax_deferred", "capital_gains", "tax_free"),
}

_EPSILON = 1e-9


@dataclass(frozen=True)
class WithdrawalResult:
    gross_withdrawal: float
    per_bucket_draw: Dict[str, float]
    taxes: TaxBreakdown
    net_withdrawal: float        # gross less the income tax the draw itself caused
    rmd: float = 0.0
    shortfall: float = 0.0
    surplus: float = 0.0         # reinvested into cash equivalents
    ordinary_income: float = 0.0
    capital_gains: float = 0.0
    taxable_social_security: float = 0.0

    @property
    def magi(self) -> float:
        return self.taxes.agi


class _Segment(NamedTuple):
    bucket: str
    start: float
    end: float
    ordinary_per_dollar: float
    gains_per_dollar: float


class WithdrawalEngine:
    """
    Handles logic for prioritizing bucket withdrawals and grossing them up for tax.
    """
    def __init__(self, tax_strategy: str = "tax_efficient", rmd_start_age: int = DEFAULT_RMD_START_AGE,
                 inflation_rate: float = DEFAULT_TAX_INFLATION):
        if tax_strategy not in WITHDRAWAL_ORDERS:
            raise ValueError(f"Unknown tax strategy '{tax_strategy}'")
        self.tax_strategy = tax_strategy
        self.rmd_start_age = rmd_start_age
        self.inflation_rate = inflation_rate

    def _get_withdrawal_order(self) -> Tuple[str, ...]:
        return WITHDRAWAL_ORDERS[self.tax_strategy]

    # =========================================================================
    # 1. SOLVER
    # =========================================================================
    def solve(
        self,
        net_need: float,
        buckets: AssetBuckets,
        guaranteed_income: IncomeBreakdown,
        age: int,
        filing_status: str,
        state: str,
        year: int,
        household_ages: Sequence[int] = (),
    ) -> WithdrawalResult:
        """
        Computes the gross withdrawal and per-bucket draw that covers ``net_need``
        after income tax. Nothing is mutated; pass the result to ``execute``.

        An unmet need is reported as ``shortfall`` rather than raised.
        """
        ages = tuple(household_ages) or (age,)
        income = guaranteed_income

        rmd = required_minimum_distribution(buckets.tax_deferred, age, self.rmd_start_age)
        base_ordinary = income.ordinary
        taxable_ss = taxable_social_security(income.social_security, base_ordinary + rmd, filing_status)

        segments = self._build_segments(buckets, rmd)
        g_min = rmd
        g_max = segments[-1].end if segments else 0.0

        def income_at(gross: float) -> Tuple[float, float]:
            ordinary, gains = base_ordinary, 0.0
            for seg in segments:
                take = min(max(gross - seg.start, 0.0), seg.end - seg.start)
                ordinary += take * seg.ordinary_per_dollar
                gains += take * seg.gains_per_dollar
            return ordinary, gains

        def taxes_at(gross: float) -> TaxBreakdown:
            ordinary, gains = income_at(gross)
            return calculate_taxes(
                year=year,
                filing_status=filing_status,
                state_of_residence=state,
                ordinary_income=ordinary,
                capital_gains=gains,
                social_security_income=income.social_security,
                pension_income=income.pension,
                ages=ages,
                taxable_ss_override=taxable_ss,
                inflation_rate=self.inflation_rate,
            )

        def net_at(gross: float) -> float:
            return gross - taxes_at(gross).income_taxes

        need_gap = net_need - income.total
        points = self._breakpoints(segments, base_ordinary, taxable_ss, income.pension, filing_status,
                                   state, year, ages, g_min, g_max)

        gross = g_min
        shortfall = 0.0
        prev_g, prev_net = g_min, net_at(g_min)
        if prev_net < need_gap:
            for point in points:
                if point <= prev_g + _EPSILON:
                    continue
                current_net = net_at(point)
                if current_net >= need_gap:
                    slope = (current_net - prev_net) / (point - prev_g)
                    if slope > 0:
                        gross = min(point, prev_g + (need_gap - prev_net) / slope)
                    else:
                        gross = point
                    break
                prev_g, prev_net = point, current_net
            else:
                gross = g_max
                shortfall = max(0.0, need_gap - net_at(g_max))

        taxes = taxes_at(gross)
        ordinary, gains = income_at(gross)
        spendable = income.total + gross - taxes.income_taxes
        surplus = max(0.0, spendable - net_need) if shortfall == 0.0 else 0.0
        # Sub-cent residue from the interpolation is not a real surplus
        if gross > g_min and surplus < 0.01:
            surplus = 0.0

        base_taxes = taxes_at(0.0).income_taxes if g_min == 0.0 else self._no_draw_taxes(
            base_ordinary, taxable_ss, income, filing_status, state, year, ages)
        draws = self._allocate(segments, gross)

        if shortfall > 0:
            logger.debug(f"{year}: buckets exhausted, shortfall ${shortfall:,.0f}")

        return WithdrawalResult(
            gross_withdrawal=gross,
            per_bucket_draw={name: draws.get(name, 0.0) for name in BUCKET_NAMES},
            taxes=taxes,
            net_withdrawal=gross - (taxes.income_taxes - base_taxes),
            rmd=min(rmd, gross),
            shortfall=shortfall,
            surplus=surplus,
            ordinary_income=ordinary,
            capital_gains=gains,
            taxable_social_security=taxable_ss,
        )

    def execute(self, result: WithdrawalResult, buckets: AssetBuckets) -> None:
        """Applies a solved withdrawal to ``buckets`` and reinvests any surplus as cash."""
        for bucket, amount in result.per_bucket_draw.items():
            buckets.withdraw(bucket, amount)
        buckets.deposit("cash_equivalents", result.surplus)

    # =========================================================================
    # 2. HELPERS
    # =========================================================================
    def _build_segments(self, buckets: AssetBuckets, rmd: float) -> List[_Segment]:
        """Lays the waterfall out on the gross-withdrawal axis, RMD first."""
        segments = []
        cursor = 0.0
        if rmd > 0:
            segments.append(_Segment("tax_deferred", 0.0, rmd, 1.0, 0.0))
            cursor = rmd

        gain_fraction = buckets.gain_fraction
        for bucket in self._get_withdrawal_order():
            balance = getattr(buckets, bucket) - (rmd if bucket == "tax_deferred" else 0.0)
            if balance <= _EPSILON:
                continue
            ordinary_rate = 1.0 if bucket == "tax_deferred" else 0.0
            gains_rate = gain_fraction if bucket == "capital_gains" else 0.0
            segments.append(_Segment(bucket, cursor, cursor + balance, ordinary_rate, gains_rate))
            cursor += balance
        return segments

    def _breakpoints(self, segments, base_ordinary, taxable_ss, pension, filing_status, state, year,
                     ages, g_min, g_max) -> List[float]:
        """
        Every gross amount where the composite tax function can change slope:
        bucket boundaries plus the points where ordinary income or AGI crosses
        a deduction-shifted bracket threshold.
        """
        constants = get_tax_year_config(year, filing_status, self.inflation_rate)
        seniors = sum(1 for a in ages if a is not None and a >= MEDICARE_AGE)
        deduction = constants.standard_deduction + seniors * constants.extra_std_deduction

        # Thresholds on "ordinary + taxable SS" and on AGI
        ordinary_marks = [deduction + low for low, _, _ in constants.ordinary_brackets]
        ordinary_marks += [deduction + low for low, _, _ in constants.capital_gains_brackets]
        ordinary_marks.append(constants.niit_threshold)
        agi_marks = [deduction + low for low, _, _ in constants.capital_gains_brackets]
        agi_marks.append(constants.niit_threshold)

        rule = get_state_tax_rule(state)
        excluded = min(pension, rule.pension_exclusion)
        state_mark = excluded - (taxable_ss if rule.taxes_social_security else 0.0)

        points = {g_min, g_max}
        ordinary, gains = base_ordinary, 0.0
        for seg in segments:
            points.add(seg.start)
            points.add(seg.end)
            o_rate, g_rate = seg.ordinary_per_dollar, seg.gains_per_dollar
            start_ordinary = ordinary + taxable_ss
            start_agi = ordinary + gains + taxable_ss

            if o_rate > 0:
                for mark in ordinary_marks:
                    points.add(seg.start + (mark - start_ordinary) / o_rate)
                points.add(seg.start + (state_mark - ordinary) / o_rate)
            if o_rate + g_rate > 0:
                for mark in agi_marks:
                    points.add(seg.start + (mark - start_agi) / (o_rate + g_rate))

            width = seg.end - seg.start
            ordinary += width * o_rate
            gains += width * g_rate

        return sorted(p for p in points if g_min - _EPSILON <= p <= g_max + _EPSILON)

    def _no_draw_taxes(self, base_ordinary, taxable_ss, income, filing_status, state, year, ages) -> float:
        return calculate_taxes(
            year=year,
            filing_status=filing_status,
            state_of_residence=state,
            ordinary_income=base_ordinary,
            social_security_income=income.social_security,
            pension_income=income.pension,
            ages=ages,
            taxable_ss_override=taxable_ss,
            inflation_rate=self.inflation_rate,
        ).income_taxes

    @staticmethod
    def _allocate(segments: List[_Segment], gross: float) -> Dict[str, float]:
        draws: Dict[str, float] = {}
        for seg in segments:
            take = min(max(gross - seg.start, 0.0), seg.end - seg.start)
            if take > 0:
                draws[seg.bucket] = draws.get(seg.bucket, 0.0) + take
        return draws
