"""
sensitivity.py
--------------
Two-way sensitivity tables over the projection engine.

Table 1: WACC (rows) vs terminal growth (cols) → enterprise value
Table 2: revenue growth shock (rows) vs rate shock (cols) → minimum DSCR

Cells where the run is invalid (e.g. WACC <= terminal growth) or the
statistic is undefined are NaN.
"""

from dataclasses import replace

import numpy as np
import pandas as pd

from credit_model.analysis.scenarios import ScenarioShock, apply_shocks
from credit_model.model.assumptions import ModelParameters
from credit_model.model.projection import project_cached


def _ev_point(base: ModelParameters, wacc: float, growth: float) -> float:
    result = project_cached(replace(base, wacc=wacc, terminal_growth=growth))
    return result.enterprise_value if result.enterprise_value is not None else np.nan


def wacc_vs_terminal_growth(
    base: ModelParameters,
    waccs: list[float] = [0.08, 0.09, 0.10, 0.11, 0.12],
    growths: list[float] = [0.01, 0.02, 0.03, 0.04],
) -> pd.DataFrame:
    """Rows = WACC, Columns = terminal growth."""
    data = {}
    for g in growths:
        data[f"g {g:.1%}"] = {f"{w:.1%}": _ev_point(base, w, g) for w in waccs}
    df = pd.DataFrame(data)
    df.index.name = "WACC"
    return df


def growth_vs_rate_min_dscr(
    base: ModelParameters,
    growth_deltas: list[float] = [-0.06, -0.03, 0.0, 0.03],
    rate_deltas: list[float] = [0.0, 0.01, 0.02, 0.03],
) -> pd.DataFrame:
    """Rows = growth shock, Columns = rate shock; cells = minimum DSCR."""
    data = {}
    for rd in rate_deltas:
        col = {}
        for gd in growth_deltas:
            shocked = apply_shocks(base, ScenarioShock(growth_delta=gd, rate_delta=rd))
            result = project_cached(shocked)
            min_dscr = result.credit.min_dscr
            col[f"{gd:+.1%}"] = min_dscr if min_dscr is not None and not result.errors else np.nan
        data[f"Rate {rd:+.1%}"] = col
    df = pd.DataFrame(data)
    df.index.name = "Growth Shock"
    return df
