"""
fetch_financials.py
-------------------
Pulls annual historical financials for a listed borrower via yfinance and
turns them into HistoricalYearRecords for the assumption calibrator.

Figures are kept in reporting currency units (not millions), matching
the projection engine. If the live fetch fails, an empty list is
returned and the caller keeps its prior assumptions.
"""

import logging
from dataclasses import asdict

import pandas as pd
import yfinance as yf

from credit_model.model.historical import HistoricalYearRecord

logger = logging.getLogger(__name__)


# yfinance line items, first match wins
INCOME_ROWS = {
    "revenue":          ["Total Revenue", "Operating Revenue"],
    "ebitda":           ["EBITDA", "Normalized EBITDA"],
    "net_income":       ["Net Income", "Net Income Common Stockholders"],
    "interest_expense": ["Interest Expense", "Interest Expense Non Operating"],
}

BALANCE_ROWS = {
    "total_assets":    ["Total Assets"],
    "working_capital": ["Working Capital"],
    "short_term_debt": ["Current Debt", "Current Debt And Capital Lease Obligation"],
    "long_term_debt":  ["Long Term Debt", "Long Term Debt And Capital Lease Obligation"],
}


def _line(statement: pd.DataFrame, candidates: list[str], col) -> float:
    for row in candidates:
        if row in statement.index:
            value = statement.loc[row, col]
            if not pd.isna(value):
                return float(value)
    return 0.0


def _fiscal_year(col) -> int:
    return col.year if hasattr(col, "year") else int(str(col)[:4])


def records_from_statements(
    financials: pd.DataFrame,
    balance_sheet: pd.DataFrame | None = None,
) -> list[HistoricalYearRecord]:
    """
    Build one record per fiscal year.

    Parameters
    ----------
    financials    : income statement, rows = line items, columns = fiscal
                    year ends (yfinance `Ticker.financials` layout)
    balance_sheet : same layout (`Ticker.balance_sheet`); matched to the
                    income statement by fiscal year

    Returns records sorted oldest first.
    """
    if financials is None or financials.empty:
        return []

    balance_by_year = {}
    if balance_sheet is not None and not balance_sheet.empty:
        balance_by_year = {_fiscal_year(c): c for c in balance_sheet.columns}

    records = []
    for col in financials.columns:
        year = _fiscal_year(col)
        values = {name: _line(financials, rows, col) for name, rows in INCOME_ROWS.items()}
        values["interest_expense"] = abs(values["interest_expense"])

        bs_col = balance_by_year.get(year)
        if bs_col is not None:
            values.update({
                name: _line(balance_sheet, rows, bs_col) for name, rows in BALANCE_ROWS.items()
            })
        records.append(HistoricalYearRecord(year=year, **values))

    return sorted(records, key=lambda r: r.year)


def fetch_historical_records(ticker: str) -> list[HistoricalYearRecord]:
    """Live yfinance pull. Returns [] on any fetch failure."""
    try:
        t = yf.Ticker(ticker)
        records = records_from_statements(t.financials, t.balance_sheet)
    except Exception as exc:
        logger.warning("yfinance fetch failed for %s (%s); no historical data", ticker, exc)
        return []
    if not records:
        logger.warning("yfinance returned no statements for %s", ticker)
    else:
        logger.info("Fetched %d fiscal years for %s", len(records), ticker)
    return records


def history_frame(records: list[HistoricalYearRecord]) -> pd.DataFrame:
    """Records as a year-indexed DataFrame with margins for display."""
    if not records:
        return pd.DataFrame()
    df = pd.DataFrame([asdict(r) for r in records]).set_index("year")
    df["ebitda_margin"] = df["ebitda"] / df["revenue"].where(df["revenue"] > 0)
    return df
