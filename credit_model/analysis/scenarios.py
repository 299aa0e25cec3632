"""
scenarios.py
------------
Stress scenarios: additive shocks to a base parameter set, the preset
shock table, and a runner that projects every scenario and returns a
comparison DataFrame plus the individual ProjectionResults.

apply_shocks never mutates its input. A zero delta leaves its field
untouched, so the all-zero shock returns a parameter set equal to the
base. Non-zero deltas are clamped into sensible ranges (cost ratios 0-1,
rates >= 0, WACC 1%-100%, terminal growth -20%..20%).
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace

import pandas as pd

from credit_model.model.assumptions import ModelParameters, normalize_rate
from credit_model.model.projection import ProjectionResult, project_cached
from credit_model.utils.formatting import fmt_irr, fmt_millions, fmt_moic, fmt_multiple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScenarioShock:
    growth_delta: float = 0.0
    cogs_delta: float = 0.0
    opex_delta: float = 0.0
    capex_delta: float = 0.0
    rate_delta: float = 0.0
    wacc_delta: float = 0.0
    term_g_delta: float = 0.0

    @property
    def is_zero(self) -> bool:
        return self == ZERO_SHOCK

    @classmethod
    def from_mapping(cls, raw: dict) -> "ScenarioShock":
        """
        Accepts snake_case or camelCase delta names. Whole percentages
        (|x| > 1) are read as percent, so rateDelta=2 means +2%.
        """
        aliases = {
            "growth_delta": "growthDelta", "cogs_delta": "cogsDelta",
            "opex_delta": "opexDelta", "capex_delta": "capexDelta",
            "rate_delta": "rateDelta", "wacc_delta": "waccDelta",
            "term_g_delta": "termGDelta",
        }
        values = {}
        for name, alias in aliases.items():
            value = raw.get(name, raw.get(alias))
            if value is not None:
                values[name] = normalize_rate(float(value))
        return cls(**values)


ZERO_SHOCK = ScenarioShock()

BASE = "Base Case"

PRESET_SHOCKS = {
    BASE: ZERO_SHOCK,
    "Mild Recession": ScenarioShock(
        growth_delta=-0.03, cogs_delta=0.01, opex_delta=0.005, capex_delta=-0.003,
        rate_delta=0.01, wacc_delta=0.01, term_g_delta=-0.002,
    ),
    "Severe Recession": ScenarioShock(
        growth_delta=-0.08, cogs_delta=0.03, opex_delta=0.015, capex_delta=-0.01,
        rate_delta=0.02, wacc_delta=0.02, term_g_delta=-0.01,
    ),
    "Cost Inflation": ScenarioShock(
        growth_delta=-0.02, cogs_delta=0.05, opex_delta=0.01,
        wacc_delta=0.005, term_g_delta=-0.003,
    ),
    "Rate Shock": ScenarioShock(
        growth_delta=-0.01, rate_delta=0.03, wacc_delta=0.015, term_g_delta=-0.002,
    ),
}

CUSTOM = "Custom"


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def _shift(value: float, delta: float, low: float, high: float) -> float:
    if delta == 0:
        return value
    return _clamp(value + delta, low, high)


def apply_shocks(base: ModelParameters, shock: ScenarioShock) -> ModelParameters:
    """New parameter set with each delta added to its base field."""
    if shock.is_zero:
        return base

    changes = {
        "growth":          base.growth + shock.growth_delta,
        "cogs_pct":        _shift(base.cogs_pct, shock.cogs_delta, 0.0, 1.0),
        "opex_pct":        _shift(base.opex_pct, shock.opex_delta, 0.0, 1.0),
        "capex_pct":       _shift(base.capex_pct, shock.capex_delta, 0.0, 1.0),
        "interest_rate":   _shift(base.interest_rate, shock.rate_delta, 0.0, 1.0),
        "proposed_pricing": _shift(base.proposed_pricing, shock.rate_delta, 0.0, 1.0),
        "wacc":            _shift(base.wacc, shock.wacc_delta, 0.01, 1.0),
        "terminal_growth": _shift(base.terminal_growth, shock.term_g_delta, -0.2, 0.2),
    }
    if shock.rate_delta and base.tranches:
        changes["tranches"] = tuple(
            replace(t, rate=_shift(t.rate, shock.rate_delta, 0.0, 1.0)) for t in base.tranches
        )
    return replace(base, **changes)


@dataclass
class ScenarioRun:
    results: dict
    parameters: dict
    comparison_df: pd.DataFrame

    @property
    def base(self) -> ProjectionResult:
        return self.results[BASE]


def _comparison_row(name: str, result: ProjectionResult) -> dict:
    credit = result.credit
    last = result.rows[-1] if result.rows else None
    return {
        "Scenario":          name,
        "Final Revenue":     fmt_millions(last.revenue if last else None),
        "Final EBITDA":      fmt_millions(last.ebitda if last else None),
        "Enterprise Value":  fmt_millions(result.enterprise_value),
        "Equity Value":      fmt_millions(result.equity_value),
        "IRR":               fmt_irr(result.irr),
        "MOIC":              fmt_moic(result.moic),
        "Min DSCR":          fmt_multiple(credit.min_dscr),
        "Min ICR":           fmt_multiple(credit.min_icr),
        "Max ND/EBITDA":     fmt_multiple(credit.max_leverage),
        "DSCR Breaches":     credit.dscr_breaches,
        "ICR Breaches":      credit.icr_breaches,
        "Leverage Breaches": credit.leverage_breaches,
        "Compliant":         "YES" if credit.compliant and result.ok else "NO",
        "Errors":            "; ".join(result.errors + tuple(result.row_errors)),
    }


def run_scenarios(
    base: ModelParameters,
    custom: ScenarioShock | None = None,
    max_workers: int | None = None,
) -> ScenarioRun:
    """
    Project the base case, every preset shock and an optional custom shock.

    Scenarios are independent; with max_workers > 1 they run on a thread
    pool and the results are the same as the sequential run.
    """
    shocks = dict(PRESET_SHOCKS)
    if custom is not None:
        shocks[CUSTOM] = custom
    parameters = {name: apply_shocks(base, shock) for name, shock in shocks.items()}

    if max_workers and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            projected = dict(zip(parameters, pool.map(project_cached, parameters.values())))
    else:
        projected = {name: project_cached(p) for name, p in parameters.items()}

    for name, result in projected.items():
        if result.errors:
            logger.warning("Scenario %s rejected: %s", name, "; ".join(result.errors),
                           extra={"scenario": name})

    comparison_df = pd.DataFrame(
        [_comparison_row(name, projected[name]) for name in shocks]
    ).set_index("Scenario")

    return ScenarioRun(results=projected, parameters=parameters, comparison_df=comparison_df)
