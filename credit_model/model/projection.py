"""
projection.py
-------------
Year-by-year projection: income statement, cash flows, debt roll-forward,
coverage ratios, DCF valuation and equity returns.

Recurrence for t = 1..N (revenue_0 = base revenue, PPE_0 = opening PPE):
  revenue_t   = revenue_{t-1} × (1 + growth)
  EBITDA_t    = revenue_t × (1 − COGS% − OPEX%)
  D&A_t       = PPE_{t-1} × D&A%;   PPE_t = PPE_{t-1} + capex_t − D&A_t
  interest_t, principal_t from the debt profile
  tax_t       = max(0, (EBIT_t − interest_t) × tax rate)
  ΔNWC_t      = (revenue_t − revenue_{t-1}) × WC%
  FCFF_t      = EBITDA_t − tax_t − capex_t − ΔNWC_t
  FCFE_t      = FCFF_t − principal_t
  cash_t      = cash_{t-1} + FCFF_t − debt service_t  (cash_0 = cash at valuation)

DSCR = (EBITDA − capex − ΔNWC) / debt service; ICR = EBITDA / interest;
leverage = net debt / EBITDA.

Invalid parameters return a result carrying the validation errors and no
rows. A non-finite figure stops the recurrence: the offending row is
kept with its error and valuation is skipped.
"""

import logging
import math
from dataclasses import dataclass, fields
from functools import lru_cache
from typing import Iterable, Mapping

import pandas as pd

from credit_model.analysis.covenants import CreditStats, evaluate_breaches, summarize
from credit_model.analysis.returns import RateSolution, UNDEFINED, solve_irr
from credit_model.analysis.valuation import Valuation, moic, value_projection
from credit_model.model.assumptions import ModelParameters, build_parameters, validate_parameters
from credit_model.model.debt_schedule import DebtProfile, build_debt_profile
from credit_model.model.historical import HistoricalYearRecord
from credit_model.utils.ratios import (
    NEGATIVE_EBITDA_REASON,
    NO_DEBT,
    NO_INTEREST_REASON,
    NO_SERVICE_REASON,
    Ratio,
    safe_ratio,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class YearRow:
    year: int
    period: int
    revenue: float
    cogs: float
    opex: float
    ebitda: float
    da: float
    ppe: float
    ebit: float
    interest_expense: float
    tax: float
    net_income: float
    capex: float
    delta_nwc: float
    fcff: float
    fcfe: float
    beginning_debt: float
    ending_debt: float
    principal_payment: float
    interest_payment: float
    debt_service: float
    cash_balance: float
    net_debt: float
    dscr: Ratio
    icr: Ratio
    net_debt_to_ebitda: Ratio
    dscr_breach: bool
    icr_breach: bool
    leverage_breach: bool
    discount_factor: float
    pv_fcff: float
    error: str | None = None

    @property
    def any_breach(self) -> bool:
        return self.dscr_breach or self.icr_breach or self.leverage_breach

    @property
    def cash_after_debt_service(self) -> float:
        return self.fcff - self.debt_service


# Plain numeric YearRow fields, in declaration order
_NUMERIC_FIELDS = tuple(
    f.name for f in fields(YearRow)
    if f.name not in ("year", "period", "dscr", "icr", "net_debt_to_ebitda",
                      "dscr_breach", "icr_breach", "leverage_breach", "error")
)


@dataclass(frozen=True)
class ProjectionResult:
    params: ModelParameters
    rows: tuple[YearRow, ...] = ()
    debt: DebtProfile | None = None
    valuation: Valuation | None = None
    irr_solution: RateSolution = UNDEFINED
    moic: float | None = None
    credit: CreditStats = CreditStats()
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors and all(r.error is None for r in self.rows)

    @property
    def irr(self) -> float | None:
        return self.irr_solution.rate

    @property
    def enterprise_value(self) -> float | None:
        return self.valuation.enterprise_value if self.valuation else None

    @property
    def equity_value(self) -> float | None:
        return self.valuation.equity_value if self.valuation else None

    @property
    def terminal_value(self) -> float | None:
        return self.valuation.terminal_value if self.valuation else None

    @property
    def pv_terminal_value(self) -> float | None:
        return self.valuation.pv_terminal_value if self.valuation else None

    @property
    def row_errors(self) -> list[str]:
        return [f"{r.year}: {r.error}" for r in self.rows if r.error]

    def to_frame(self) -> pd.DataFrame:
        """One row per projection year; inapplicable ratios are NaN."""
        records = []
        for r in self.rows:
            rec = {name: getattr(r, name) for name in _NUMERIC_FIELDS}
            rec.update({
                "year":               r.year,
                "dscr":               r.dscr.or_nan(),
                "icr":                r.icr.or_nan(),
                "net_debt_to_ebitda": r.net_debt_to_ebitda.or_nan(),
                "dscr_breach":        r.dscr_breach,
                "icr_breach":         r.icr_breach,
                "leverage_breach":    r.leverage_breach,
            })
            records.append(rec)
        df = pd.DataFrame(records)
        return df.set_index("year") if not df.empty else df


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

def _coverage(numerator: float, denominator: float, has_debt: bool, reason: str) -> Ratio:
    if not has_debt:
        return NO_DEBT
    return safe_ratio(numerator, denominator, reason)


def _first_non_finite(values: Mapping[str, float]) -> str | None:
    for name, value in values.items():
        if not math.isfinite(value):
            return name
    return None


def equity_cash_flows(rows: Iterable[YearRow], equity_invested: float,
                      exit_equity_value: float) -> list[float]:
    """[−equity, FCFE_1, …, FCFE_n + exit equity value]."""
    flows = [-equity_invested] + [r.fcfe for r in rows]
    flows[-1] += exit_equity_value
    return flows


def project(params: ModelParameters) -> ProjectionResult:
    issues = validate_parameters(params)
    if issues:
        logger.warning("Parameters rejected: %s", "; ".join(issues))
        return ProjectionResult(params=params, errors=tuple(issues))

    profile = build_debt_profile(params)
    warnings = [
        f"{flag.name} matures in {flag.maturity_year}; refinancing required"
        for flag in profile.refinancing if flag.outstanding_at_maturity > 0
    ]

    rows = []
    revenue_prev = params.base_revenue
    ppe = params.initial_ppe
    cash = params.cash_at_valuation

    for i in range(params.years):
        t = i + 1
        year = params.start_year + i

        revenue = revenue_prev * (1 + params.growth)
        cogs    = revenue * params.cogs_pct
        opex    = revenue * params.opex_pct
        ebitda  = revenue - cogs - opex
        da      = ppe * params.da_pct_of_ppe
        capex   = revenue * params.capex_pct
        ppe     = ppe + capex - da
        ebit    = ebitda - da

        beginning_debt = profile.beginning_balance[i]
        interest       = profile.interest[i]
        principal      = profile.principal[i]
        service        = interest + principal
        ending_debt    = max(0.0, beginning_debt - principal)

        tax        = max(0.0, (ebit - interest) * params.tax_rate)
        net_income = ebit - interest - tax
        delta_nwc  = (revenue - revenue_prev) * params.wc_pct_of_rev

        fcff = ebitda - tax - capex - delta_nwc
        fcfe = fcff - principal
        cash = cash + fcff - service
        net_debt = ending_debt - cash

        has_debt = beginning_debt > 0
        dscr = _coverage(ebitda - capex - delta_nwc, service, has_debt, NO_SERVICE_REASON)
        icr = _coverage(ebitda, interest, has_debt, NO_INTEREST_REASON)
        leverage = safe_ratio(net_debt, ebitda, NEGATIVE_EBITDA_REASON)
        dscr_breach, icr_breach, leverage_breach = evaluate_breaches(
            dscr, icr, leverage, params, net_debt)

        discount_factor = 1 / (1 + params.wacc) ** t

        figures = {
            "revenue": revenue, "cogs": cogs, "opex": opex, "ebitda": ebitda,
            "da": da, "ppe": ppe, "ebit": ebit, "interest_expense": interest,
            "tax": tax, "net_income": net_income, "capex": capex,
            "delta_nwc": delta_nwc, "fcff": fcff, "fcfe": fcfe,
            "beginning_debt": beginning_debt, "ending_debt": ending_debt,
            "principal_payment": principal, "interest_payment": interest,
            "debt_service": service, "cash_balance": cash, "net_debt": net_debt,
            "discount_factor": discount_factor, "pv_fcff": fcff * discount_factor,
        }
        bad = _first_non_finite(figures)
        error = f"non-finite {bad}" if bad else None

        rows.append(YearRow(
            year               = year,
            period             = t,
            dscr               = dscr,
            icr                = icr,
            net_debt_to_ebitda = leverage,
            dscr_breach        = dscr_breach,
            icr_breach         = icr_breach,
            leverage_breach    = leverage_breach,
            error              = error,
            **figures,
        ))
        logger.debug("Year %d: revenue=%.2f ebitda=%.2f fcff=%.2f service=%.2f ending debt=%.2f",
                     year, revenue, ebitda, fcff, service, ending_debt,
                     extra={"year": year})

        if error:
            logger.warning("Projection stopped in %d: %s", year, error, extra={"year": year})
            warnings.append(f"{year}: {error}; projection truncated")
            break
        revenue_prev = revenue

    rows = tuple(rows)
    credit = summarize(rows)
    complete = len(rows) == params.years and rows[-1].error is None

    valuation = None
    irr_solution = UNDEFINED
    equity_moic = None
    if complete:
        valuation = value_projection(rows, params)
        warnings.extend(w.message for w in valuation.warnings)
        if params.equity_contribution > 0:
            flows = equity_cash_flows(rows, params.equity_contribution, valuation.equity_value)
            irr_solution = solve_irr(flows)
            distributions = sum(max(0.0, r.fcfe) for r in rows) + valuation.equity_value
            equity_moic = moic(distributions, params.equity_contribution)
    else:
        warnings.append("valuation skipped: projection incomplete")

    return ProjectionResult(
        params       = params,
        rows         = rows,
        debt         = profile,
        valuation    = valuation,
        irr_solution = irr_solution,
        moic         = equity_moic,
        credit       = credit,
        warnings     = tuple(warnings),
    )


project_cached = lru_cache(maxsize=256)(project)


def run_pipeline(
    raw: Mapping,
    history: Iterable[HistoricalYearRecord] | None = None,
    edited: Iterable[str] = frozenset(),
) -> ProjectionResult:
    """raw inputs → normalize → calibrate (unedited fields) → project."""
    return project(build_parameters(raw, history=history, edited=edited))
