"""
historical.py
-------------
Derives baseline operating assumptions from historical financials.

Given at least two fiscal years with positive revenue:
  - growth          mean year-over-year revenue growth
  - cogs_pct        1 - avg EBITDA margin - 20% fixed opex assumption
  - opex_pct        fixed at 20%
  - wc_pct_of_rev   mean working capital / revenue
  - capex_pct       mean of max(0, (Δ total assets + net income) / revenue)
                    over consecutive years; 4% when no pair is usable

cogs_pct is an approximation (historical COGS is not an input).
With fewer than two usable years, calibrate() returns None and callers
keep their prior assumptions.
"""

from dataclasses import dataclass
from typing import Iterable

import pandas as pd


FIXED_OPEX_ASSUMPTION = 0.20
DEFAULT_CAPEX_PCT = 0.04
MAX_COGS_PCT = 0.95


@dataclass(frozen=True)
class HistoricalYearRecord:
    year: int
    revenue: float = 0.0
    ebitda: float = 0.0
    net_income: float = 0.0
    total_assets: float = 0.0
    working_capital: float = 0.0
    short_term_debt: float = 0.0
    long_term_debt: float = 0.0
    interest_expense: float = 0.0

    @property
    def total_debt(self) -> float:
        return self.short_term_debt + self.long_term_debt


@dataclass(frozen=True)
class CalibratedAssumptions:
    base_revenue: float
    growth: float
    cogs_pct: float
    opex_pct: float
    wc_pct_of_rev: float
    capex_pct: float
    avg_net_margin: float
    avg_ebitda_margin: float
    avg_revenue: float
    opening_debt: float
    implied_interest_rate: float | None
    years_used: int

    def as_parameter_overrides(self) -> dict:
        """Calibrated values keyed by ModelParameters field name."""
        return {
            "base_revenue":  self.base_revenue,
            "growth":        self.growth,
            "cogs_pct":      self.cogs_pct,
            "opex_pct":      self.opex_pct,
            "wc_pct_of_rev": self.wc_pct_of_rev,
            "capex_pct":     self.capex_pct,
            "opening_debt":  self.opening_debt,
            "interest_rate": self.implied_interest_rate,
        }


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def calibrate(records: Iterable[HistoricalYearRecord]) -> CalibratedAssumptions | None:
    valid = sorted((r for r in records if r.revenue > 0), key=lambda r: r.year)
    if len(valid) < 2:
        return None

    growth_rates = [
        (cur.revenue - prev.revenue) / prev.revenue
        for prev, cur in zip(valid, valid[1:])
    ]
    avg_ebitda_margin = _mean([r.ebitda / r.revenue for r in valid])
    avg_net_margin    = _mean([r.net_income / r.revenue for r in valid])
    avg_wc_pct        = _mean([r.working_capital / r.revenue for r in valid])

    capex_proxies = [
        max(0.0, (cur.total_assets - prev.total_assets + cur.net_income) / cur.revenue)
        for prev, cur in zip(valid, valid[1:])
    ]
    capex_pct = _mean(capex_proxies) if capex_proxies else DEFAULT_CAPEX_PCT

    cogs_pct = 1.0 - avg_ebitda_margin - FIXED_OPEX_ASSUMPTION
    cogs_pct = min(MAX_COGS_PCT, max(0.0, cogs_pct))

    latest, prior = valid[-1], valid[-2]
    avg_debt = (latest.total_debt + prior.total_debt) / 2
    implied_rate = latest.interest_expense / avg_debt if avg_debt > 0 and latest.interest_expense > 0 else None

    return CalibratedAssumptions(
        base_revenue          = latest.revenue,
        growth                = _mean(growth_rates),
        cogs_pct              = cogs_pct,
        opex_pct              = FIXED_OPEX_ASSUMPTION,
        wc_pct_of_rev         = avg_wc_pct,
        capex_pct             = capex_pct,
        avg_net_margin        = avg_net_margin,
        avg_ebitda_margin     = avg_ebitda_margin,
        avg_revenue           = _mean([r.revenue for r in valid]),
        opening_debt          = latest.total_debt,
        implied_interest_rate = implied_rate,
        years_used            = len(valid),
    )


# ---------------------------------------------------------------------------
# Tabular input
# ---------------------------------------------------------------------------
COLUMN_ALIASES = {
    "year":             ["year", "Year", "fiscal_year"],
    "revenue":          ["revenue", "Revenue"],
    "ebitda":           ["ebitda", "EBITDA"],
    "net_income":       ["net_income", "netIncome", "Net Income"],
    "total_assets":     ["total_assets", "totalAssets", "Total Assets"],
    "working_capital":  ["working_capital", "workingCapital", "Working Capital"],
    "short_term_debt":  ["short_term_debt", "shortTermDebt", "Short Term Debt"],
    "long_term_debt":   ["long_term_debt", "longTermDebt", "Long Term Debt"],
    "interest_expense": ["interest_expense", "interestExpense", "Interest Expense"],
}


def records_from_frame(df: pd.DataFrame) -> list[HistoricalYearRecord]:
    """One record per row; unknown columns ignored, missing figures = 0."""
    columns = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in df.columns:
                columns[field_name] = alias
                break
    if "year" not in columns:
        raise ValueError("historical data needs a year column")

    records = []
    for _, row in df.iterrows():
        values = {}
        for field_name, col in columns.items():
            v = row[col]
            if field_name == "year":
                values[field_name] = int(v)
            else:
                values[field_name] = 0.0 if pd.isna(v) else float(v)
        records.append(HistoricalYearRecord(**values))
    return records


def load_history_csv(path) -> list[HistoricalYearRecord]:
    return records_from_frame(pd.read_csv(path))
