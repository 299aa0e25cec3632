"""
formatting.py
-------------
Number formatting helpers for comparison tables and exports.
Values in currency units are shown in millions.
"""

import math

import pandas as pd

from credit_model.utils.ratios import Ratio


def _missing(val) -> bool:
    if val is None:
        return True
    if isinstance(val, Ratio):
        return not val.is_applicable
    return isinstance(val, float) and math.isnan(val)


def fmt_millions(val, decimals: int = 1) -> str:
    if _missing(val):
        return "—"
    return f"${val / 1e6:,.{decimals}f}M"


def fmt_pct(val, decimals: int = 1) -> str:
    if _missing(val):
        return "—"
    return f"{val:.{decimals}%}"


def fmt_multiple(val, decimals: int = 2) -> str:
    if isinstance(val, Ratio):
        return fmt_multiple(val.value, decimals) if val.is_applicable else f"N/A ({val.reason})"
    if _missing(val):
        return "—"
    return f"{val:.{decimals}f}x"


def fmt_irr(val) -> str:
    if _missing(val):
        return "N/A"
    return f"{val:.1%}"


def fmt_moic(val) -> str:
    if _missing(val):
        return "N/A"
    return f"{val:.2f}x"


# Projection frame columns shown as plain decimals rather than currency
PLAIN_COLUMNS = {"discount_factor"}
RATIO_COLUMNS = {"dscr", "icr", "net_debt_to_ebitda"}
FLAG_COLUMNS = {"dscr_breach", "icr_breach", "leverage_breach"}


def format_projection_df(df: pd.DataFrame) -> pd.DataFrame:
    """Format a ProjectionResult.to_frame() for display."""
    out = df.copy().astype(object)
    for col in df.columns:
        for idx in df.index:
            v = df.loc[idx, col]
            if col in FLAG_COLUMNS:
                out.loc[idx, col] = "BREACH" if v else ""
            elif col in RATIO_COLUMNS:
                out.loc[idx, col] = fmt_multiple(v)
            elif col in PLAIN_COLUMNS:
                out.loc[idx, col] = f"{v:.4f}"
            else:
                out.loc[idx, col] = fmt_millions(v)
    return out
