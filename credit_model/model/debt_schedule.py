"""
debt_schedule.py
----------------
Per-tranche amortization schedules and the blended debt profile.

Key mechanics:
  - Interest accrues on the beginning-of-year balance at the effective
    annual rate (Actual/360 quotes are grossed up by 365/360)
  - Interest-only years come first, then the tranche's repayment profile:
      amortizing     level annuity over the remaining tenor
      interest_only  no principal; balance left outstanding at maturity
      bullet         full principal repaid in the maturity year
      balloon        annuity on the amortizing share, balloon at maturity
      custom         caller-supplied % of principal per year / interval
  - Ending balances floored at zero; the maturity year clears whatever
    remains (except interest_only)
  - Multi-tranche: each tranche scheduled independently, then summed by
    year; blended rate weighted by principal
  - Tranches maturing before the final projection year, or still carrying
    a balance at a maturity inside the horizon, are flagged for refinancing
  - Custom intervals must sum to 100% (± 0.5); anything else raises
    ParameterError

Returns frozen records; debt_schedule_frame() turns a profile into a
year-by-year DataFrame.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

import pandas as pd

from credit_model.analysis.returns import solve_irr
from credit_model.model.assumptions import (
    AmortizationType,
    DebtTranche,
    ModelParameters,
    PAYMENT_FREQUENCIES,
    ParameterError,
    validate_custom_intervals,
)

logger = logging.getLogger(__name__)


EXISTING_DEBT_ID = "existing"
NEW_FACILITY_ID = "new-facility"


@dataclass(frozen=True)
class SchedulePeriod:
    period: int               # projection year index, 1..N
    beginning_balance: float
    interest: float
    principal: float
    ending_balance: float
    is_balloon: bool = False

    @property
    def service(self) -> float:
        return self.interest + self.principal


@dataclass(frozen=True)
class TrancheSchedule:
    tranche: DebtTranche
    periods: tuple[SchedulePeriod, ...]
    maturity_period: int
    effective_rate: float


@dataclass(frozen=True)
class RefinancingFlag:
    tranche_id: str
    name: str
    maturity_year: int
    outstanding_at_maturity: float


@dataclass(frozen=True)
class DebtProfile:
    schedules: tuple[TrancheSchedule, ...]
    beginning_balance: tuple[float, ...]
    interest: tuple[float, ...]
    principal: tuple[float, ...]
    ending_balance: tuple[float, ...]
    blended_rate: float
    refinancing: tuple[RefinancingFlag, ...]

    @property
    def service(self) -> tuple[float, ...]:
        return tuple(i + p for i, p in zip(self.interest, self.principal))

    @property
    def total_principal(self) -> float:
        return sum(s.tranche.principal for s in self.schedules)

    @property
    def tranches(self) -> tuple[DebtTranche, ...]:
        return tuple(s.tranche for s in self.schedules)


# ---------------------------------------------------------------------------
# Rate / frequency helpers
# ---------------------------------------------------------------------------

def effective_annual_rate(nominal_rate: float, convention: str = "Actual/365") -> float:
    if convention == "Actual/360":
        return nominal_rate * 365 / 360
    return nominal_rate


def periods_per_year(frequency: str) -> int:
    return PAYMENT_FREQUENCIES.get(frequency, 4)


def annuity_payment(principal: float, rate: float, n_years: int) -> float:
    """Level payment repaying `principal` over `n_years` at `rate`."""
    if principal <= 0 or n_years <= 0:
        return 0.0
    if rate == 0:
        return principal / n_years
    growth = (1 + rate) ** n_years
    return principal * rate * growth / (growth - 1)


def compute_annual_service(
    principal: float,
    annual_rate: float,
    tenor_years: int,
    amortization_type: AmortizationType = AmortizationType.AMORTIZING,
    balloon_pct: float = 0.0,
    custom_intervals: Sequence[float] = (),
) -> float:
    """
    Annual debt service for a single loan.

    balloon_pct is a percentage of principal (50 = half repaid at maturity).
    Custom schedules have no level payment; their average annual service
    over the tenor is returned (ParameterError when the intervals do not
    sum to 100%).
    """
    if principal <= 0 or tenor_years <= 0:
        return 0.0
    amortization_type = AmortizationType(amortization_type)

    if amortization_type in (AmortizationType.INTEREST_ONLY, AmortizationType.BULLET):
        return principal * annual_rate

    if amortization_type == AmortizationType.BALLOON:
        balloon = principal * balloon_pct / 100
        return annuity_payment(principal - balloon, annual_rate, tenor_years) + balloon * annual_rate

    if amortization_type == AmortizationType.CUSTOM:
        tranche = DebtTranche(
            id="loan", name="loan", principal=principal, rate=annual_rate,
            tenor_years=tenor_years, amortization_type=AmortizationType.CUSTOM,
            custom_intervals=tuple(custom_intervals),
        )
        periods = build_tranche_schedule(tranche, tenor_years).periods
        return sum(p.service for p in periods) / tenor_years

    return annuity_payment(principal, annual_rate, tenor_years)


def expand_custom_intervals(tenor_years: int, interest_only_years: int,
                            intervals: Sequence[float]) -> list[float]:
    """
    Per-year principal percentages (summing to 100) over the tenor.

    A list with one entry per amortizing year is used as-is after the
    interest-only years. Exactly four intervals on a longer or shorter
    amortizing period are spread over four near-equal buckets of years.

    Raises ParameterError when the intervals are empty, negative, or do
    not sum to 100 within tolerance.
    """
    issues = validate_custom_intervals("custom amortization", tuple(intervals))
    if issues:
        raise ParameterError("; ".join(issues))

    io_years = max(0, min(tenor_years, interest_only_years))
    amort_years = max(tenor_years - io_years, 1)
    per_year = [0.0] * io_years

    if len(intervals) == 4 and amort_years != 4:
        base, rem = divmod(amort_years, 4)
        for k in range(4):
            bucket = base + (1 if k < rem else 0)
            per_year.extend([intervals[k] / bucket] * bucket if bucket else [])
    else:
        per_year.extend(float(v) for v in intervals)

    if len(per_year) > tenor_years:
        # fold any intervals past maturity into the final year
        per_year = per_year[:tenor_years - 1] + [sum(per_year[tenor_years - 1:])]
    per_year.extend([0.0] * (tenor_years - len(per_year)))

    total = sum(per_year)
    if total > 0 and abs(total - 100.0) > 1e-9:
        for i in range(len(per_year) - 1, io_years - 1, -1):
            if per_year[i] > 0:
                per_year[i] += 100.0 - total
                break
    return per_year


def period_breakdown(beginning_balance: float, annual_principal: float,
                     payments_per_year: int, annual_rate: float) -> list[dict]:
    """
    Split one year's service into sub-annual payments.

    Principal is spread evenly across the payments; interest is
    recalculated on the declining balance each period.
    """
    if payments_per_year <= 1:
        annual_interest = beginning_balance * annual_rate
        return [{
            "period":         1,
            "principal":      annual_principal,
            "interest":       annual_interest,
            "total":          annual_principal + annual_interest,
            "ending_balance": max(0.0, beginning_balance - annual_principal),
        }]

    periodic_rate = annual_rate / payments_per_year
    principal_per_period = annual_principal / payments_per_year
    remaining = beginning_balance
    schedule = []
    for period in range(1, payments_per_year + 1):
        interest = remaining * periodic_rate
        remaining = max(0.0, remaining - principal_per_period)
        schedule.append({
            "period":         period,
            "principal":      principal_per_period,
            "interest":       interest,
            "total":          principal_per_period + interest,
            "ending_balance": remaining,
        })
    return schedule


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------

def build_tranche_schedule(
    tranche: DebtTranche,
    horizon: int,
    start_year: int | None = None,
    day_count_convention: str = "Actual/365",
) -> TrancheSchedule:
    """
    Year-by-year schedule for one tranche over `horizon` projection years.

    `start_year` (the calendar year of projection year 1) is only needed
    when the tranche carries an explicit maturity date. A custom tranche
    whose intervals do not sum to 100% raises ParameterError.
    """
    rate = effective_annual_rate(tranche.rate, day_count_convention)
    if tranche.maturity_date is not None and start_year is not None:
        maturity = tranche.maturity_year(start_year) - start_year + 1
    else:
        maturity = tranche.tenor_years
    maturity = max(1, maturity)

    kind = tranche.amortization_type
    io_years = max(0, min(tranche.interest_only_years, maturity - 1))
    amort_years = max(1, maturity - io_years)

    balloon = 0.0
    if kind == AmortizationType.BALLOON:
        balloon = tranche.principal * tranche.balloon_pct / 100
    level_payment = annuity_payment(tranche.principal - balloon, rate, amort_years)

    custom_pcts = []
    if kind == AmortizationType.CUSTOM and tranche.principal > 0:
        custom_pcts = expand_custom_intervals(maturity, io_years, tranche.custom_intervals)

    periods = []
    balance = tranche.principal
    amortizing_balance = tranche.principal - balloon
    for p in range(1, horizon + 1):
        beginning = balance
        interest = beginning * rate
        principal = 0.0
        is_balloon = False

        if beginning > 0 and p <= maturity and kind != AmortizationType.INTEREST_ONLY:
            if p == maturity:
                principal = beginning
                is_balloon = kind == AmortizationType.BALLOON and balloon > 0
            elif p > io_years:
                if kind == AmortizationType.AMORTIZING:
                    principal = level_payment - interest
                elif kind == AmortizationType.BALLOON:
                    principal = level_payment - amortizing_balance * rate
                    amortizing_balance = max(0.0, amortizing_balance - principal)
                elif kind == AmortizationType.CUSTOM:
                    principal = tranche.principal * custom_pcts[p - 1] / 100
            principal = min(max(principal, 0.0), beginning)

        balance = max(0.0, beginning - principal)
        periods.append(SchedulePeriod(
            period            = p,
            beginning_balance = beginning,
            interest          = interest,
            principal         = principal,
            ending_balance    = balance,
            is_balloon        = is_balloon,
        ))

    return TrancheSchedule(
        tranche         = tranche,
        periods         = tuple(periods),
        maturity_period = maturity,
        effective_rate  = rate,
    )


def facility_tranches(params: ModelParameters) -> tuple[DebtTranche, ...]:
    """The tranche list a parameter set implies (explicit, or existing debt + new facility)."""
    if params.multi_tranche:
        return tuple(sorted(params.tranches, key=lambda t: t.seniority_rank))

    tranches = []
    if params.opening_debt > 0:
        tranches.append(DebtTranche(
            id                = EXISTING_DEBT_ID,
            name              = "Existing Debt",
            principal         = params.opening_debt,
            rate              = params.interest_rate,
            tenor_years       = params.debt_tenor_years,
            amortization_type = params.existing_amortization_type,
        ))
    if params.requested_loan_amount > 0:
        tranches.append(DebtTranche(
            id                  = NEW_FACILITY_ID,
            name                = "New Facility",
            principal           = params.requested_loan_amount,
            rate                = params.proposed_pricing,
            tenor_years         = params.proposed_tenor,
            amortization_type   = params.amortization_type,
            interest_only_years = params.interest_only_years,
            balloon_pct         = params.balloon_percentage,
            custom_intervals    = params.custom_amortization_intervals,
        ))
    return tuple(tranches)


def blended_rate(tranches: Sequence[DebtTranche]) -> float:
    """Σ(principal × rate) / Σ principal. 0 when there is no principal."""
    total = sum(t.principal for t in tranches)
    if total <= 0:
        return 0.0
    return sum(t.principal * t.rate for t in tranches) / total


def build_debt_profile(params: ModelParameters) -> DebtProfile:
    n = params.years
    schedules = tuple(
        build_tranche_schedule(t, n, params.start_year, params.day_count_convention)
        for t in facility_tranches(params)
    )

    def by_year(attr: str) -> tuple[float, ...]:
        return tuple(
            sum(getattr(s.periods[i], attr) for s in schedules) for i in range(n)
        )

    refinancing = []
    for s in schedules:
        maturity_year = params.start_year + s.maturity_period - 1
        if s.tranche.maturity_date is not None:
            maturity_year = s.tranche.maturity_date.year
        if maturity_year > params.last_year:
            continue
        idx = min(s.maturity_period, n) - 1
        outstanding = s.periods[idx].ending_balance if n > 0 else s.tranche.principal
        if maturity_year == params.last_year and outstanding <= 0:
            # repaid in the final projection year
            continue
        refinancing.append(RefinancingFlag(
            tranche_id              = s.tranche.id,
            name                    = s.tranche.name,
            maturity_year           = maturity_year,
            outstanding_at_maturity = outstanding,
        ))
        if outstanding > 0:
            logger.warning("%s matures in %d with %.2f outstanding; refinancing required",
                           s.tranche.name, maturity_year, outstanding)

    return DebtProfile(
        schedules         = schedules,
        beginning_balance = by_year("beginning_balance"),
        interest          = by_year("interest"),
        principal         = by_year("principal"),
        ending_balance    = by_year("ending_balance"),
        blended_rate      = blended_rate([s.tranche for s in schedules]),
        refinancing       = tuple(refinancing),
    )


def debt_schedule_frame(profile: DebtProfile, start_year: int) -> pd.DataFrame:
    """Year-by-year totals plus one ending-balance column per tranche."""
    rows = []
    for i, service in enumerate(profile.service):
        row = {
            "Year":              start_year + i,
            "Beginning Debt":    profile.beginning_balance[i],
            "Interest":          profile.interest[i],
            "Principal":         profile.principal[i],
            "Debt Service":      service,
            "Ending Debt":       profile.ending_balance[i],
        }
        for s in profile.schedules:
            row[f"{s.tranche.name} Balance"] = s.periods[i].ending_balance
        rows.append(row)
    return pd.DataFrame(rows)


# ---------------------------------------------------------------------------
# Capacity / pricing solves
# ---------------------------------------------------------------------------

def max_sustainable_debt(cash_flow: float, target_dscr: float, rate: float, tenor_years: int) -> float:
    """
    Largest amortizing loan whose level service keeps DSCR at `target_dscr`.

    `cash_flow` is the cash available for debt service (the DSCR numerator).
    """
    if cash_flow <= 0 or target_dscr <= 0 or tenor_years <= 0:
        return 0.0
    max_service = cash_flow / target_dscr
    if rate == 0:
        return max_service * tenor_years
    return max_service / annuity_payment(1.0, rate, tenor_years)


def implied_loan_rate(principal: float, annual_service: float, tenor_years: int) -> float | None:
    """Rate at which `tenor_years` level payments of `annual_service` repay `principal`."""
    if principal <= 0 or annual_service <= 0 or tenor_years <= 0:
        return None
    return solve_irr([-principal] + [annual_service] * tenor_years).rate
