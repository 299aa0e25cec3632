"""
covenants.py
------------
Covenant tests and credit statistics over a projection.

Per year:
  - DSCR breach      DSCR < minimum DSCR        (equal to the minimum passes)
  - ICR breach       ICR < target ICR
  - Leverage breach  Net Debt / EBITDA > maximum; with EBITDA <= 0 the
                     ratio is undefined and any positive net debt breaches

A ratio that does not apply (no debt, no interest) never breaches and is
left out of min / max / average.

Also builds the covenant compliance schedule (PASS / BREACH per covenant,
headroom, LTV against collateral) consumed by the CSV and Excel exports.
"""

from dataclasses import dataclass
from typing import Sequence

import pandas as pd

from credit_model.utils.ratios import Ratio, ratio_stats, safe_divide


PASS = "PASS"
BREACH = "BREACH"
NOT_APPLICABLE = "N/A"

COVENANT_COLUMNS = [
    "Year", "DSCR", "DSCR Headroom", "DSCR Status",
    "ICR", "ICR Headroom", "ICR Status",
    "Net Debt/EBITDA", "Leverage Status",
    "LTV%", "LTV Headroom",
    "Total Debt Service", "Cash After Debt Service", "Overall Status",
]

# Simplified leverage → implied credit rating mapping
LEVERAGE_RATING_MAP = [
    (2.0,  "BBB+/Baa1"),
    (3.0,  "BBB/Baa2"),
    (3.5,  "BBB-/Baa3"),
    (4.5,  "BB+/Ba1"),
    (5.5,  "BB/Ba2"),
    (6.5,  "BB-/Ba3"),
    (7.5,  "B+/B1"),
    (9.0,  "B/B2"),
    (99.0, "B-/B3 or below"),
]


def implied_rating(leverage: Ratio) -> str:
    if not leverage.is_applicable:
        return "NR"
    for threshold, rating in LEVERAGE_RATING_MAP:
        if leverage.value <= threshold:
            return rating
    return "CCC"


def evaluate_breaches(dscr: Ratio, icr: Ratio, leverage: Ratio, params,
                      net_debt: float = 0.0) -> tuple[bool, bool, bool]:
    """(dscr_breach, icr_breach, leverage_breach) for one year."""
    dscr_breach = dscr.below(params.min_dscr)
    icr_breach = icr.below(params.target_icr)
    if leverage.is_applicable:
        leverage_breach = leverage.above(params.max_nd_to_ebitda)
    else:
        leverage_breach = net_debt > 0
    return dscr_breach, icr_breach, leverage_breach


@dataclass(frozen=True)
class CreditStats:
    min_dscr: float | None = None
    max_dscr: float | None = None
    avg_dscr: float | None = None
    min_icr: float | None = None
    max_icr: float | None = None
    avg_icr: float | None = None
    min_leverage: float | None = None
    max_leverage: float | None = None
    avg_leverage: float | None = None
    dscr_breaches: int = 0
    icr_breaches: int = 0
    leverage_breaches: int = 0
    years_in_breach: int = 0

    @property
    def total_breaches(self) -> int:
        return self.dscr_breaches + self.icr_breaches + self.leverage_breaches

    @property
    def compliant(self) -> bool:
        return self.total_breaches == 0


def summarize(rows: Sequence) -> CreditStats:
    """Aggregate breach counts and ratio ranges across the horizon."""
    min_dscr, max_dscr, avg_dscr = ratio_stats(r.dscr for r in rows)
    min_icr, max_icr, avg_icr = ratio_stats(r.icr for r in rows)
    min_lev, max_lev, avg_lev = ratio_stats(r.net_debt_to_ebitda for r in rows)
    return CreditStats(
        min_dscr          = min_dscr,
        max_dscr          = max_dscr,
        avg_dscr          = avg_dscr,
        min_icr           = min_icr,
        max_icr           = max_icr,
        avg_icr           = avg_icr,
        min_leverage      = min_lev,
        max_leverage      = max_lev,
        avg_leverage      = avg_lev,
        dscr_breaches     = sum(r.dscr_breach for r in rows),
        icr_breaches      = sum(r.icr_breach for r in rows),
        leverage_breaches = sum(r.leverage_breach for r in rows),
        years_in_breach   = sum(r.any_breach for r in rows),
    )


def _status(ratio: Ratio, breached: bool) -> str:
    if breached:
        return BREACH
    return PASS if ratio.is_applicable else NOT_APPLICABLE


def loan_to_value(debt: float, collateral_value: float) -> float | None:
    """Debt / collateral in percent; None without collateral."""
    if collateral_value <= 0:
        return None
    return safe_divide(debt, collateral_value) * 100


def covenant_schedule(result, params) -> pd.DataFrame:
    """
    Row-per-year compliance schedule.

    Ratios that do not apply are left blank (NaN) with status N/A;
    LTV columns are blank when no collateral value is given.
    """
    rows = []
    for r in result.rows:
        ltv = loan_to_value(r.ending_debt, params.collateral_value)
        dscr_headroom = r.dscr.headroom(params.min_dscr)
        icr_headroom = r.icr.headroom(params.target_icr)
        rows.append({
            "Year":                    r.year,
            "DSCR":                    r.dscr.value,
            "DSCR Headroom":           dscr_headroom,
            "DSCR Status":             _status(r.dscr, r.dscr_breach),
            "ICR":                     r.icr.value,
            "ICR Headroom":            icr_headroom,
            "ICR Status":              _status(r.icr, r.icr_breach),
            "Net Debt/EBITDA":         r.net_debt_to_ebitda.value,
            "Leverage Status":         BREACH if r.leverage_breach else PASS,
            "LTV%":                    ltv,
            "LTV Headroom":            params.max_ltv - ltv if ltv is not None else None,
            "Total Debt Service":      r.debt_service,
            "Cash After Debt Service": r.cash_after_debt_service,
            "Overall Status":          BREACH if r.any_breach else PASS,
        })
    return pd.DataFrame(rows, columns=COVENANT_COLUMNS)


def credit_frame(result) -> pd.DataFrame:
    """Year-by-year credit metrics with implied rating."""
    rows = []
    for r in result.rows:
        rows.append({
            "Year":              r.year,
            "EBITDA":            r.ebitda,
            "Total Debt":        r.ending_debt,
            "Net Debt":          r.net_debt,
            "DSCR (x)":          r.dscr.value,
            "ICR (x)":           r.icr.value,
            "Net Leverage (x)":  r.net_debt_to_ebitda.value,
            "FCF / EBITDA":      safe_divide(r.fcff, r.ebitda),
            "Implied Rating":    implied_rating(r.net_debt_to_ebitda),
        })
    return pd.DataFrame(rows)
