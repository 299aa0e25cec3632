"""
capacity.py
-----------
Lender-side debt capacity: how much amortizing debt year-1 cash flow can
carry at the covenant DSCR, and how alternative structures compare.

Capacity levels (cash available for debt service = year-1 EBITDA − capex − ΔNWC):
  max         DSCR at the covenant minimum
  safe        covenant minimum × 1.20 cushion
  aggressive  1.15x floor

Recommendation:
  requested > max   → REDUCE DEBT (HIGH risk)
  requested > safe  → APPROVE WITH CONDITIONS (MEDIUM)
  otherwise         → APPROVE (LOW)

Rate and tenor are the facility terms: principal-weighted across the
tranches the parameter set implies, new-facility pricing when there is
no debt.
"""

from dataclasses import dataclass

import pandas as pd

from credit_model.analysis.covenants import evaluate_breaches, loan_to_value
from credit_model.model.assumptions import ModelParameters
from credit_model.model.debt_schedule import (
    annuity_payment,
    blended_rate,
    facility_tranches,
    max_sustainable_debt,
)
from credit_model.utils.ratios import NEGATIVE_EBITDA_REASON, NO_INTEREST_REASON, NO_SERVICE_REASON, safe_ratio


SAFETY_BUFFER = 1.20
AGGRESSIVE_DSCR = 1.15
TARGET_LEVERAGE = 3.0
TENOR_EXTENSION = 2

APPROVE = "APPROVE"
APPROVE_WITH_CONDITIONS = "APPROVE WITH CONDITIONS"
REDUCE_DEBT = "REDUCE DEBT"


@dataclass(frozen=True)
class DebtCapacity:
    cash_flow: float              # year-1 cash available for debt service
    ebitda: float                 # year-1 EBITDA
    rate: float
    tenor_years: int
    target_dscr: float
    buffered_dscr: float
    max_debt: float
    safe_debt: float
    aggressive_debt: float
    requested_debt: float
    excess_debt: float
    utilization_pct: float | None
    recommendation: str
    risk_level: str


def facility_terms(params: ModelParameters) -> tuple[float, int]:
    """(rate, tenor) the capacity solve uses."""
    tranches = [t for t in facility_tranches(params) if t.principal > 0]
    if not tranches:
        return params.proposed_pricing, params.proposed_tenor
    total = sum(t.principal for t in tranches)
    tenor = sum(t.principal * t.tenor_years for t in tranches) / total
    return blended_rate(tranches), max(1, round(tenor))


def debt_capacity(params: ModelParameters, result) -> DebtCapacity | None:
    """Capacity assessment for a projection; None when it produced no rows."""
    if not result.rows:
        return None

    first = result.rows[0]
    cash_flow = first.ebitda - first.capex - first.delta_nwc
    rate, tenor = facility_terms(params)
    target = params.min_dscr
    buffered = target * SAFETY_BUFFER

    max_debt = max_sustainable_debt(cash_flow, target, rate, tenor)
    safe_debt = max_sustainable_debt(cash_flow, buffered, rate, tenor)
    aggressive_debt = max_sustainable_debt(cash_flow, AGGRESSIVE_DSCR, rate, tenor)

    requested = params.total_debt
    if requested > max_debt:
        recommendation, risk = REDUCE_DEBT, "HIGH"
    elif requested > safe_debt:
        recommendation, risk = APPROVE_WITH_CONDITIONS, "MEDIUM"
    else:
        recommendation, risk = APPROVE, "LOW"

    return DebtCapacity(
        cash_flow       = cash_flow,
        ebitda          = first.ebitda,
        rate            = rate,
        tenor_years     = tenor,
        target_dscr     = target,
        buffered_dscr   = buffered,
        max_debt        = max_debt,
        safe_debt       = safe_debt,
        aggressive_debt = aggressive_debt,
        requested_debt  = requested,
        excess_debt     = max(0.0, requested - max_debt),
        utilization_pct = requested / max_debt * 100 if max_debt > 0 else None,
        recommendation  = recommendation,
        risk_level      = risk,
    )


def _structure(name: str, debt: float, tenor: int, capacity: DebtCapacity,
               params: ModelParameters, total_capital: float) -> dict:
    service = annuity_payment(debt, capacity.rate, tenor)
    dscr = safe_ratio(capacity.cash_flow, service, NO_SERVICE_REASON)
    icr = safe_ratio(capacity.ebitda, debt * capacity.rate, NO_INTEREST_REASON)
    leverage = safe_ratio(debt, capacity.ebitda, NEGATIVE_EBITDA_REASON)
    breaches = evaluate_breaches(dscr, icr, leverage, params, net_debt=debt)
    return {
        "Structure":           name,
        "Debt":                debt,
        "Equity":              total_capital - debt,
        "Tenor":               tenor,
        "Debt %":              debt / total_capital * 100 if total_capital > 0 else None,
        "Annual Debt Service": service,
        "DSCR":                dscr.value,
        "ICR":                 icr.value,
        "Debt/EBITDA":         leverage.value,
        "LTV%":                loan_to_value(debt, params.collateral_value),
        "Compliant":           "NO" if any(breaches) else "YES",
    }


def alternative_structures(params: ModelParameters, capacity: DebtCapacity) -> pd.DataFrame:
    """
    Current structure against three alternatives, one row each:
      reduce debt to the safe level, 3.0x EBITDA leverage, tenor + 2 years.
    Total capital (debt + sponsor equity) is held constant.
    """
    current = capacity.requested_debt
    total_capital = current + params.equity_contribution
    tenor = capacity.tenor_years
    if capacity.ebitda > 0:
        target_leverage_debt = capacity.ebitda * TARGET_LEVERAGE
    else:
        target_leverage_debt = current * 0.85

    rows = [
        _structure("Current Structure", current, tenor, capacity, params, total_capital),
        _structure("Reduce Debt to Safe Level", capacity.safe_debt, tenor, capacity, params, total_capital),
        _structure("Optimize Debt/Equity Mix", target_leverage_debt, tenor, capacity, params, total_capital),
        _structure("Extend Loan Tenor", current, tenor + TENOR_EXTENSION, capacity, params, total_capital),
    ]
    return pd.DataFrame(rows).set_index("Structure")


def capacity_summary(capacity: DebtCapacity) -> pd.DataFrame:
    """Label → value block for display and export."""
    items = {
        "Cash Available for Debt Service": capacity.cash_flow,
        "Facility Rate":                   capacity.rate,
        "Tenor (years)":                   capacity.tenor_years,
        "Target DSCR":                     capacity.target_dscr,
        "Buffered DSCR":                   capacity.buffered_dscr,
        "Maximum Sustainable Debt":        capacity.max_debt,
        "Safe Debt":                       capacity.safe_debt,
        "Aggressive Debt":                 capacity.aggressive_debt,
        "Requested Debt":                  capacity.requested_debt,
        "Excess Debt":                     capacity.excess_debt,
        "Utilization %":                   capacity.utilization_pct,
        "Recommendation":                  capacity.recommendation,
        "Risk Level":                      capacity.risk_level,
    }
    return pd.DataFrame({"Value": items})
