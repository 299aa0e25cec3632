"""
valuation.py
------------
DCF valuation of a projection: cost of capital, terminal value (Gordon
growth or exit multiple), enterprise and equity value, price per share,
implied multiples and sanity checks.

Gordon terminal value is rejected (ValuationError) when WACC <= terminal
growth; an exit-multiple terminal value needs a positive multiple.
project() validates both conditions up front, so a projection never
reaches this module with an undefined terminal value.

Equity bridge (default "final"):
    equity = EV - (final debt - final cash) + associates - minority
With equity_bridge="opening" the net debt at the valuation date
(total opening debt - cash at valuation) is used instead.

Multiples use year-1 (forward) figures and are None when the
denominator is not positive.
"""

from dataclasses import dataclass
from typing import Sequence


# Sanity-check thresholds
TV_SHARE_CRITICAL = 0.85
TV_SHARE_WARNING = 0.75
LONG_RUN_GDP_GROWTH = 0.025
MAX_GORDON_GROWTH = 0.05
EV_EBITDA_LOW = 3.0
EV_EBITDA_HIGH = 15.0
WACC_LOW = 0.06
WACC_HIGH = 0.25
EXIT_MULTIPLE_LOW = 3.0
EXIT_MULTIPLE_HIGH = 20.0
BLUME_WEIGHT = 0.67


class ValuationError(ValueError):
    pass


@dataclass(frozen=True)
class ValuationWarning:
    code: str
    severity: str      # "critical" or "warning"
    message: str


@dataclass(frozen=True)
class Valuation:
    terminal_value: float
    pv_terminal_value: float
    sum_pv_fcff: float
    enterprise_value: float
    net_debt: float
    equity_value: float
    ev_to_ebitda: float | None
    ev_to_revenue: float | None
    ev_to_ebit: float | None
    pe: float | None
    terminal_value_share: float | None
    warnings: tuple[ValuationWarning, ...] = ()
    terminal_method: str = "gordon"
    price_per_share: float | None = None


# ---------------------------------------------------------------------------
# Cost of capital
# ---------------------------------------------------------------------------

def cost_of_equity(risk_free_rate: float, beta: float, market_risk_premium: float) -> float:
    """CAPM: rf + β × MRP."""
    return risk_free_rate + beta * market_risk_premium


def after_tax_cost_of_debt(pre_tax_rate: float, tax_rate: float) -> float:
    return pre_tax_rate * (1 - tax_rate)


def compute_wacc(cost_of_equity: float, cost_of_debt: float, tax_rate: float,
                 debt_weight: float) -> float:
    """ke × E/V + kd × (1 − t) × D/V, with D/V = debt_weight."""
    if not 0 <= debt_weight <= 1:
        raise ValueError(f"debt weight must be between 0 and 1, got {debt_weight}")
    return cost_of_equity * (1 - debt_weight) + cost_of_debt * (1 - tax_rate) * debt_weight


def unlever_beta(levered_beta: float, tax_rate: float, debt_to_equity: float) -> float:
    """Hamada: βu = βl / (1 + (1 − t) × D/E)."""
    return levered_beta / (1 + (1 - tax_rate) * debt_to_equity)


def relever_beta(unlevered_beta: float, tax_rate: float, debt_to_equity: float) -> float:
    return unlevered_beta * (1 + (1 - tax_rate) * debt_to_equity)


def adjusted_beta(raw_beta: float) -> float:
    """Blume adjustment toward 1.0."""
    return BLUME_WEIGHT * raw_beta + (1 - BLUME_WEIGHT)


# ---------------------------------------------------------------------------
# DCF
# ---------------------------------------------------------------------------

def terminal_value(final_fcf: float, wacc: float, terminal_growth: float) -> float:
    """Gordon growth: FCF_n × (1 + g) / (WACC − g)."""
    if wacc <= terminal_growth:
        raise ValuationError(
            f"WACC ({wacc:.2%}) must exceed terminal growth ({terminal_growth:.2%})"
        )
    return final_fcf * (1 + terminal_growth) / (wacc - terminal_growth)


def terminal_value_multiple(final_ebitda: float, exit_multiple: float) -> float:
    """Exit multiple: EBITDA_n × EV/EBITDA multiple."""
    if exit_multiple <= 0:
        raise ValuationError(f"exit multiple must be positive, got {exit_multiple}")
    return final_ebitda * exit_multiple


def price_per_share(equity: float, shares_outstanding: float) -> float | None:
    if shares_outstanding <= 0:
        return None
    return equity / shares_outstanding


def present_value(cash_flows: Sequence[float], rate: float) -> float:
    """Σ cf_t / (1 + rate)^t, first flow at t = 1."""
    return sum(cf / (1 + rate) ** t for t, cf in enumerate(cash_flows, start=1))


def enterprise_value(fcffs: Sequence[float], wacc: float, tv: float) -> float:
    return present_value(fcffs, wacc) + tv / (1 + wacc) ** len(fcffs)


def equity_value(ev: float, debt: float, cash: float,
                 associates: float = 0.0, minority_interest: float = 0.0) -> float:
    return ev - (debt - cash) + associates - minority_interest


def _multiple(numerator: float, denominator: float) -> float | None:
    return numerator / denominator if denominator > 0 else None


def implied_multiples(ev: float, equity: float, revenue: float, ebitda: float,
                      ebit: float, net_income: float) -> dict:
    return {
        "ev_to_revenue": _multiple(ev, revenue),
        "ev_to_ebitda":  _multiple(ev, ebitda),
        "ev_to_ebit":    _multiple(ev, ebit),
        "pe":            _multiple(equity, net_income),
    }


def moic(total_distributions: float, total_invested: float) -> float | None:
    """Multiple on invested capital; None when nothing was invested."""
    if total_invested <= 0:
        return None
    return total_distributions / total_invested


# ---------------------------------------------------------------------------
# Sanity checks
# ---------------------------------------------------------------------------

def _exit_multiple_warnings(exit_multiple: float) -> list[ValuationWarning]:
    if exit_multiple > EXIT_MULTIPLE_HIGH:
        return [ValuationWarning("EXIT_MULTIPLE_HIGH", "warning",
                                 f"Exit multiple of {exit_multiple:.1f}x seems high")]
    if exit_multiple < EXIT_MULTIPLE_LOW:
        return [ValuationWarning("EXIT_MULTIPLE_LOW", "warning",
                                 f"Exit multiple of {exit_multiple:.1f}x seems low")]
    return []


def valuation_warnings(ev: float, equity: float, tv_share: float | None,
                       final_fcf: float, terminal_growth: float, wacc: float,
                       ev_to_ebitda: float | None,
                       exit_multiple: float | None = None) -> list[ValuationWarning]:
    """
    Non-fatal flags; the valuation is still reported.

    With `exit_multiple` set the terminal value came from the multiple, so
    the Gordon checks (final FCFF sign, terminal growth) are replaced by a
    range check on the multiple.
    """
    out = []
    if ev < 0:
        out.append(ValuationWarning("NEGATIVE_EV", "critical",
                                    "Enterprise value is negative"))
    if equity < 0:
        out.append(ValuationWarning("NEGATIVE_EQUITY", "critical",
                                    "Net debt exceeds enterprise value; equity value is negative"))
    if tv_share is not None:
        if tv_share > TV_SHARE_CRITICAL:
            out.append(ValuationWarning("TV_DOMINATES", "critical",
                                        f"Terminal value is {tv_share:.0%} of enterprise value"))
        elif tv_share > TV_SHARE_WARNING:
            out.append(ValuationWarning("TV_DOMINATES", "warning",
                                        f"Terminal value is {tv_share:.0%} of enterprise value"))
    if exit_multiple is not None:
        out.extend(_exit_multiple_warnings(exit_multiple))
    else:
        if final_fcf < 0:
            out.append(ValuationWarning("NEGATIVE_FCF", "critical",
                                        "Final-year FCFF is negative; terminal value is negative"))
        if terminal_growth > MAX_GORDON_GROWTH:
            out.append(ValuationWarning("HIGH_TERMINAL_GROWTH", "critical",
                                        f"Terminal growth {terminal_growth:.2%} is not sustainable in perpetuity"))
        elif terminal_growth > LONG_RUN_GDP_GROWTH:
            out.append(ValuationWarning("HIGH_TERMINAL_GROWTH", "warning",
                                        f"Terminal growth {terminal_growth:.2%} exceeds long-run GDP growth"))
        elif terminal_growth < 0:
            out.append(ValuationWarning("NEGATIVE_TERMINAL_GROWTH", "warning",
                                        "Terminal growth is negative (perpetual decline)"))
    if ev_to_ebitda is not None and not EV_EBITDA_LOW <= ev_to_ebitda <= EV_EBITDA_HIGH:
        out.append(ValuationWarning("EBITDA_MULTIPLE_OUT_OF_RANGE", "warning",
                                    f"Implied EV/EBITDA of {ev_to_ebitda:.1f}x is outside "
                                    f"{EV_EBITDA_LOW:.0f}x-{EV_EBITDA_HIGH:.0f}x"))
    if not WACC_LOW <= wacc <= WACC_HIGH:
        out.append(ValuationWarning("WACC_OUT_OF_RANGE", "warning",
                                    f"WACC of {wacc:.2%} is outside {WACC_LOW:.0%}-{WACC_HIGH:.0%}"))
    return out


def value_projection(rows: Sequence, params) -> Valuation:
    """
    Value a completed projection.

    Parameters
    ----------
    rows   : YearRow sequence (needs fcff, revenue, ebitda, ebit,
             net_income, ending_debt, cash_balance)
    params : ModelParameters used for the run; terminal_method picks
             Gordon growth or final EBITDA × exit_multiple
    """
    if not rows:
        raise ValuationError("cannot value an empty projection")

    fcffs = [r.fcff for r in rows]
    last, first = rows[-1], rows[0]
    wacc, g = params.wacc, params.terminal_growth

    exit_multiple = None
    if params.terminal_method == "multiple":
        exit_multiple = params.exit_multiple
        tv = terminal_value_multiple(last.ebitda, exit_multiple)
    else:
        tv = terminal_value(last.fcff, wacc, g)
    pv_tv = tv / (1 + wacc) ** len(rows)
    sum_pv = present_value(fcffs, wacc)
    ev = sum_pv + pv_tv

    if params.equity_bridge == "opening":
        debt, cash = params.total_debt, params.cash_at_valuation
    else:
        debt, cash = last.ending_debt, last.cash_balance
    equity = equity_value(ev, debt, cash, params.associates_value, params.minority_interest)

    multiples = implied_multiples(ev, equity, first.revenue, first.ebitda, first.ebit, first.net_income)
    tv_share = pv_tv / ev if ev > 0 else None

    return Valuation(
        terminal_value       = tv,
        pv_terminal_value    = pv_tv,
        sum_pv_fcff          = sum_pv,
        enterprise_value     = ev,
        net_debt             = debt - cash,
        equity_value         = equity,
        ev_to_ebitda         = multiples["ev_to_ebitda"],
        ev_to_revenue        = multiples["ev_to_revenue"],
        ev_to_ebit           = multiples["ev_to_ebit"],
        pe                   = multiples["pe"],
        terminal_value_share = tv_share,
        warnings             = tuple(valuation_warnings(
            ev, equity, tv_share, last.fcff, g, wacc, multiples["ev_to_ebitda"], exit_multiple)),
        terminal_method      = params.terminal_method,
        price_per_share      = price_per_share(equity, params.shares_outstanding),
    )
