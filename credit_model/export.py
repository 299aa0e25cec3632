"""
export.py
---------
Serializes projection output for downstream consumers.

  covenant_schedule_csv  covenant compliance schedule (one row per year,
                         PASS / BREACH per covenant plus overall status),
                         optionally followed by threshold and summary blocks
  build_excel_workbook   multi-sheet workbook: scenario comparison, then
                         projection + covenant sheets per scenario, base-case
                         debt capacity, debt schedule and sub-annual payment
                         breakdown

Usage
-----
    from credit_model.export import build_excel_workbook
    xl_bytes = build_excel_workbook(run)   # → bytes
"""

import io

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from credit_model.analysis.capacity import alternative_structures, capacity_summary, debt_capacity
from credit_model.analysis.covenants import BREACH, PASS, covenant_schedule
from credit_model.analysis.scenarios import BASE, ScenarioRun
from credit_model.model.debt_schedule import debt_schedule_frame, effective_annual_rate, period_breakdown


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def _block(rows: list[list]) -> str:
    return pd.DataFrame(rows).to_csv(index=False, header=False)


def covenant_schedule_csv(result, params, include_summary: bool = False) -> str:
    """Covenant schedule as CSV text. Blank cells = ratio not applicable."""
    schedule = covenant_schedule(result, params)
    text = schedule.to_csv(index=False, float_format="%.4f")
    if not include_summary:
        return text

    credit = result.credit
    thresholds = [
        ["--- Covenant Thresholds ---", ""],
        ["Minimum DSCR", params.min_dscr],
        ["Target ICR", params.target_icr],
        ["Maximum Net Debt/EBITDA", params.max_nd_to_ebitda],
        ["Maximum LTV", f"{params.max_ltv}%"],
    ]
    summary = [
        ["--- Summary Statistics ---", ""],
        ["Actual Minimum DSCR", credit.min_dscr],
        ["Actual Minimum ICR", credit.min_icr],
        ["Actual Maximum Leverage", credit.max_leverage],
        ["DSCR Breaches", credit.dscr_breaches],
        ["ICR Breaches", credit.icr_breaches],
        ["Leverage Breaches", credit.leverage_breaches],
        ["Overall", PASS if credit.compliant else BREACH],
    ]
    return text + "\n" + _block(thresholds) + "\n" + _block(summary)


# ---------------------------------------------------------------------------
# Colour palette
# ---------------------------------------------------------------------------
COLOR_NAVY_DARK  = "1F2D40"
COLOR_NAVY_MID   = "2E4057"
COLOR_ROW_ALT    = "EEF2F7"
COLOR_WHITE      = "FFFFFF"
COLOR_DARK_TEXT  = "1A1A2E"
COLOR_GREEN      = "1A6B3C"
COLOR_RED_DARK   = "8B1A1A"


# ---------------------------------------------------------------------------
# Style helpers
# ---------------------------------------------------------------------------

def _fill(hex_color):
    return PatternFill("solid", fgColor=hex_color)

def _font(bold=False, size=10, color=COLOR_DARK_TEXT):
    return Font(name="Calibri", bold=bold, size=size, color=color)

def _border(style="thin"):
    s = Side(style=style, color="B0BAC8")
    return Border(left=s, right=s, top=s, bottom=s)

def _write(ws, row, col, value, bold=False, fg=None, font_color=COLOR_DARK_TEXT,
           align="left", num_format=None):
    cell = ws.cell(row=row, column=col, value=value)
    cell.font      = _font(bold=bold, color=font_color)
    cell.alignment = Alignment(horizontal=align, vertical="center")
    cell.border    = _border()
    if fg:
        cell.fill = _fill(fg)
    if num_format:
        cell.number_format = num_format
    return cell

def _col_header(ws, row, col, label):
    _write(ws, row, col, label, bold=True, fg=COLOR_NAVY_DARK,
           font_color=COLOR_WHITE, align="center")

def _title_row(ws, label, ncols):
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=max(1, ncols))
    cell = ws.cell(row=1, column=1, value=label)
    cell.font      = _font(bold=True, size=14, color=COLOR_WHITE)
    cell.fill      = _fill(COLOR_NAVY_MID)
    cell.alignment = Alignment(horizontal="center", vertical="center")
    ws.row_dimensions[1].height = 22


def _number_format(column: str) -> str:
    label = column.lower()
    if "dscr" in label or "icr" in label or ("ebitda" in label and "/" in label):
        return '0.00"x"'
    if "ltv" in label:
        return '0.0"%"'
    return "#,##0"


def _write_frame(ws, df: pd.DataFrame, title: str, index_label: str | None = None):
    """Title row, header row, then one styled row per DataFrame row."""
    frame = df.reset_index() if index_label else df
    if index_label:
        frame = frame.rename(columns={frame.columns[0]: index_label})
    columns = list(frame.columns)

    _title_row(ws, title, len(columns))
    for c, name in enumerate(columns, start=1):
        _col_header(ws, 3, c, str(name))
        ws.column_dimensions[get_column_letter(c)].width = max(12, min(28, len(str(name)) + 4))

    for r, record in enumerate(frame.itertuples(index=False), start=4):
        bg = COLOR_ROW_ALT if r % 2 == 0 else COLOR_WHITE
        for c, value in enumerate(record, start=1):
            if isinstance(value, float) and pd.isna(value):
                value = None
            column = str(columns[c - 1])
            if value == BREACH:
                _write(ws, r, c, value, bold=True, fg=bg, font_color=COLOR_RED_DARK, align="center")
            elif value == PASS:
                _write(ws, r, c, value, fg=bg, font_color=COLOR_GREEN, align="center")
            elif isinstance(value, (int, float)) and not isinstance(value, bool) and c > 1:
                _write(ws, r, c, value, fg=bg, align="right", num_format=_number_format(column))
            else:
                _write(ws, r, c, value, fg=bg)
    ws.freeze_panes = "B4"


PROJECTION_LINES = [
    ("Revenue", "revenue"), ("COGS", "cogs"), ("OPEX", "opex"), ("EBITDA", "ebitda"),
    ("D&A", "da"), ("EBIT", "ebit"), ("Interest Expense", "interest_expense"),
    ("Tax", "tax"), ("Net Income", "net_income"), ("CapEx", "capex"),
    ("Δ NWC", "delta_nwc"), ("FCFF", "fcff"), ("FCFE", "fcfe"),
    ("Beginning Debt", "beginning_debt"), ("Principal", "principal_payment"),
    ("Ending Debt", "ending_debt"), ("Cash Balance", "cash_balance"),
    ("Net Debt", "net_debt"), ("PV of FCFF", "pv_fcff"),
]


def _projection_frame(result) -> pd.DataFrame:
    """Line items × years, the statement layout."""
    data = {
        str(r.year): {label: getattr(r, attr) for label, attr in PROJECTION_LINES}
        for r in result.rows
    }
    df = pd.DataFrame(data)
    df.index.name = "Line Item"
    return df


def _valuation_frame(result) -> pd.DataFrame:
    v = result.valuation
    items = {
        "Sum PV of FCFF":      v.sum_pv_fcff if v else None,
        "Terminal Value":      v.terminal_value if v else None,
        "PV of Terminal Value": v.pv_terminal_value if v else None,
        "Enterprise Value":    v.enterprise_value if v else None,
        "Net Debt":            v.net_debt if v else None,
        "Equity Value":        v.equity_value if v else None,
        "Price per Share":     v.price_per_share if v else None,
        "Equity IRR":          result.irr,
        "MOIC":                result.moic,
    }
    return pd.DataFrame({"Value": items})


VALUATION_FORMATS = {
    "Price per Share": "#,##0.00",
    "Equity IRR":      "0.0%",
    "MOIC":            '0.00"x"',
}

CAPACITY_FORMATS = {
    "Facility Rate":  "0.00%",
    "Tenor (years)":  "0",
    "Target DSCR":    '0.00"x"',
    "Buffered DSCR":  '0.00"x"',
    "Utilization %":  '0.0"%"',
}


def _write_capacity(ws, params, result):
    """Alternative structures table, then the capacity assessment block."""
    capacity = debt_capacity(params, result)
    if capacity is None:
        return
    alternatives = alternative_structures(params, capacity)
    _write_frame(ws, alternatives, "Base Case — Debt Capacity", index_label="Structure")

    start = 4 + len(alternatives) + 2
    ws.cell(row=start, column=1, value="Capacity Assessment").font = _font(bold=True)
    for i, (label, value) in enumerate(capacity_summary(capacity)["Value"].items(), start=start + 1):
        _write(ws, i, 1, label)
        if isinstance(value, str):
            color = COLOR_RED_DARK if value in ("REDUCE DEBT", "HIGH") else COLOR_DARK_TEXT
            _write(ws, i, 2, value, bold=True, font_color=color)
        else:
            _write(ws, i, 2, value, align="right", num_format=CAPACITY_FORMATS.get(label, "#,##0"))


def _sheet_name(scenario: str, suffix: str) -> str:
    return f"{scenario} {suffix}"[:31]


def build_excel_workbook(run: ScenarioRun) -> bytes:
    """
    Build the scenario workbook and return it as bytes.

    Parameters
    ----------
    run : ScenarioRun from analysis.scenarios.run_scenarios()
    """
    wb = Workbook()
    if "Sheet" in wb.sheetnames:
        del wb["Sheet"]

    ws = wb.create_sheet("Scenario Comparison")
    _write_frame(ws, run.comparison_df, "Scenario Comparison", index_label="Scenario")

    for name, result in run.results.items():
        if not result.rows:
            continue
        params = run.parameters[name]
        ws = wb.create_sheet(_sheet_name(name, "Projection"))
        _write_frame(ws, _projection_frame(result), f"{name} — Projection", index_label="Line Item")
        start = len(PROJECTION_LINES) + 6
        ws.cell(row=start, column=1, value="Valuation").font = _font(bold=True)
        for i, (label, value) in enumerate(_valuation_frame(result)["Value"].items(), start=start + 1):
            _write(ws, i, 1, label)
            _write(ws, i, 2, value, align="right", num_format=VALUATION_FORMATS.get(label, "#,##0"))

        ws = wb.create_sheet(_sheet_name(name, "Covenants"))
        _write_frame(ws, covenant_schedule(result, params), f"{name} — Covenant Compliance")

    base = run.results.get(BASE)
    if base is not None and base.debt is not None and base.rows:
        params = run.parameters[BASE]
        ws = wb.create_sheet("Debt Capacity")
        _write_capacity(ws, params, base)

        ws = wb.create_sheet("Debt Schedule")
        _write_frame(ws, debt_schedule_frame(base.debt, params.start_year), "Base Case — Debt Schedule")

        # same day-count basis as the tranche schedules
        rate = effective_annual_rate(base.debt.blended_rate, params.day_count_convention)
        payments = []
        for r in base.rows:
            for p in period_breakdown(r.beginning_debt, r.principal_payment,
                                      params.periods_per_year, rate):
                payments.append({"Year": r.year, **{k.replace("_", " ").title(): v for k, v in p.items()}})
        ws = wb.create_sheet("Payments")
        _write_frame(ws, pd.DataFrame(payments),
                     f"Base Case — {params.payment_frequency} Payments")

    wb.active = 0
    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.getvalue()
