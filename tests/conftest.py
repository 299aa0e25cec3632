"""Shared fixtures for the projection engine tests."""

import pandas as pd
import pytest

from credit_model.model.assumptions import AmortizationType, DebtTranche, ModelParameters
from credit_model.model.historical import HistoricalYearRecord


# ======================================================================
# Parameter sets
# ======================================================================

@pytest.fixture
def loan_params() -> ModelParameters:
    """$100M revenue business with a single $100M 12% 5-year amortizing loan."""
    return ModelParameters(
        start_year=2025,
        years=5,
        base_revenue=100_000_000,
        growth=0.08,
        cogs_pct=0.40,
        opex_pct=0.25,
        requested_loan_amount=100_000_000,
        proposed_pricing=0.12,
        proposed_tenor=5,
        amortization_type=AmortizationType.AMORTIZING,
    )


@pytest.fixture
def unlevered_params() -> ModelParameters:
    return ModelParameters(start_year=2025, years=5, base_revenue=50_000_000)


@pytest.fixture
def tranches() -> tuple[DebtTranche, ...]:
    return (
        DebtTranche(id="a", name="Term Loan A", principal=60_000_000, rate=0.10, tenor_years=5),
        DebtTranche(id="b", name="Mezzanine Notes", principal=40_000_000, rate=0.14, tenor_years=7,
                    amortization_type=AmortizationType.BULLET, seniority="Mezzanine"),
    )


@pytest.fixture
def multi_tranche_params(tranches) -> ModelParameters:
    return ModelParameters(
        start_year=2025,
        years=5,
        base_revenue=100_000_000,
        tranches=tranches,
    )


# ======================================================================
# Historical data
# ======================================================================

@pytest.fixture
def history() -> list[HistoricalYearRecord]:
    """Three years at 10% growth; deliberately out of order."""
    return [
        HistoricalYearRecord(year=2023, revenue=121.0, ebitda=24.2, net_income=7.0,
                             total_assets=225.0, working_capital=12.1,
                             short_term_debt=10.0, long_term_debt=70.0, interest_expense=9.0),
        HistoricalYearRecord(year=2021, revenue=100.0, ebitda=20.0, net_income=5.0,
                             total_assets=200.0, working_capital=10.0),
        HistoricalYearRecord(year=2022, revenue=110.0, ebitda=23.1, net_income=6.0,
                             total_assets=210.0, working_capital=12.0,
                             short_term_debt=10.0, long_term_debt=90.0),
    ]


@pytest.fixture
def statements() -> tuple[pd.DataFrame, pd.DataFrame]:
    """yfinance-shaped income statement and balance sheet (newest column first)."""
    cols = [pd.Timestamp("2024-01-31"), pd.Timestamp("2023-01-31")]
    financials = pd.DataFrame(
        {
            cols[0]: [121.0, 24.2, 7.0, -9.0],
            cols[1]: [110.0, 23.1, 6.0, -8.0],
        },
        index=["Total Revenue", "EBITDA", "Net Income", "Interest Expense"],
    )
    balance_sheet = pd.DataFrame(
        {
            cols[0]: [225.0, 12.1, 10.0, 70.0],
            cols[1]: [210.0, 12.0, 10.0, 90.0],
        },
        index=["Total Assets", "Working Capital", "Current Debt", "Long Term Debt"],
    )
    return financials, balance_sheet
