"""
returns.py
----------
NPV / IRR root finding and the standard return metrics built on it.

IRR is solved with Newton-Raphson on NPV(rate) = 0 (analytic derivative),
falling back to bisection over the full rate bracket when Newton stalls.
Every metric returns None when it is mathematically undefined, so an
unsolvable IRR can never be confused with a genuine 0% return.

Cash flow index t = 0 is undiscounted (the investment date).
"""

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy.optimize import bisect

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Solver settings
# ---------------------------------------------------------------------------
INITIAL_GUESS = 0.10
NPV_TOLERANCE = 1e-4
NEWTON_MAX_ITER = 100
BISECTION_MAX_ITER = 1000
RATE_FLOOR = -0.99
RATE_CAP = 10.0
MIN_DERIVATIVE = 1e-12


@dataclass(frozen=True)
class RateSolution:
    """Outcome of a rate solve. `rate` is None when no root exists."""
    rate: float | None
    method: str        # "newton", "bisection" or "undefined"
    iterations: int = 0

    @property
    def is_defined(self) -> bool:
        return self.rate is not None


UNDEFINED = RateSolution(rate=None, method="undefined")


# ---------------------------------------------------------------------------
# NPV
# ---------------------------------------------------------------------------

def npv(rate: float, cash_flows: Sequence[float]) -> float:
    """Σ cf_t / (1 + rate)^t for t = 0..n."""
    cf = np.asarray(cash_flows, dtype=float)
    t = np.arange(cf.size)
    return float(np.sum(cf / (1.0 + rate) ** t))


def npv_derivative(rate: float, cash_flows: Sequence[float]) -> float:
    """dNPV/drate = −Σ t·cf_t / (1 + rate)^(t+1)."""
    cf = np.asarray(cash_flows, dtype=float)
    t = np.arange(cf.size)
    return float(-np.sum(t * cf / (1.0 + rate) ** (t + 1)))


def _has_sign_change(cash_flows: Sequence[float]) -> bool:
    return any(c > 0 for c in cash_flows) and any(c < 0 for c in cash_flows)


def npv_tolerance(cash_flows: Sequence[float]) -> float:
    """Absolute NPV tolerance, scaled down for flows smaller than one unit."""
    scale = max(abs(c) for c in cash_flows)
    return NPV_TOLERANCE * min(1.0, scale)


def _newton(cash_flows: Sequence[float]) -> RateSolution | None:
    rate = INITIAL_GUESS
    tolerance = npv_tolerance(cash_flows)
    for i in range(1, NEWTON_MAX_ITER + 1):
        value = npv(rate, cash_flows)
        if abs(value) < tolerance:
            return RateSolution(rate, "newton", i)
        slope = npv_derivative(rate, cash_flows)
        if abs(slope) < MIN_DERIVATIVE or not np.isfinite(slope):
            return None
        step = min(RATE_CAP, max(RATE_FLOOR, rate - value / slope))
        if step == rate:
            # pinned at a bound
            return None
        rate = step
    return None


def _bisection(cash_flows: Sequence[float]) -> RateSolution | None:
    try:
        root, info = bisect(
            lambda r: npv(r, cash_flows),
            RATE_FLOOR, RATE_CAP,
            xtol=1e-10, maxiter=BISECTION_MAX_ITER, full_output=True,
        )
    except (ValueError, RuntimeError) as exc:
        logger.debug("Bisection found no root: %s", exc)
        return None
    if not info.converged:
        return None
    return RateSolution(float(root), "bisection", info.iterations)


def solve_irr(cash_flows: Sequence[float]) -> RateSolution:
    """
    Solve NPV(rate) = 0.

    Returns UNDEFINED when the series lacks both a positive and a negative
    flow, or when neither Newton nor bisection finds a root in [-0.99, 10].
    """
    flows = [float(c) for c in cash_flows]
    if len(flows) < 2 or not _has_sign_change(flows):
        return UNDEFINED

    solution = _newton(flows)
    if solution is not None:
        return solution

    logger.debug("Newton-Raphson did not converge; falling back to bisection")
    solution = _bisection(flows)
    if solution is not None:
        return solution

    logger.info("IRR undefined for cash flows %s", flows)
    return UNDEFINED


def irr(cash_flows: Sequence[float]) -> float | None:
    return solve_irr(cash_flows).rate


# ---------------------------------------------------------------------------
# Other return metrics
# ---------------------------------------------------------------------------

def mirr(cash_flows: Sequence[float], finance_rate: float, reinvest_rate: float) -> float | None:
    """
    Modified IRR: negatives discounted to t=0 at `finance_rate`, positives
    compounded to t=n at `reinvest_rate`.
    """
    flows = [float(c) for c in cash_flows]
    n = len(flows) - 1
    if n < 1 or not _has_sign_change(flows):
        return None
    if finance_rate <= -1 or reinvest_rate <= -1:
        return None

    pv_negative = sum(c / (1 + finance_rate) ** t for t, c in enumerate(flows) if c < 0)
    fv_positive = sum(c * (1 + reinvest_rate) ** (n - t) for t, c in enumerate(flows) if c > 0)
    if pv_negative == 0:
        return None
    return (fv_positive / -pv_negative) ** (1.0 / n) - 1


def _interpolated_payback(flows: Sequence[float]) -> float | None:
    cumulative = 0.0
    for t, c in enumerate(flows):
        previous = cumulative
        cumulative += c
        if t == 0:
            if cumulative >= 0:
                return 0.0
            continue
        if cumulative >= 0:
            # fraction of year t needed to recover the remaining shortfall
            return (t - 1) + (-previous / c if c > 0 else 0.0)
    return None


def payback_period(cash_flows: Sequence[float]) -> float | None:
    """Years until cumulative cash flow turns non-negative (linear within the year)."""
    return _interpolated_payback([float(c) for c in cash_flows])


def discounted_payback_period(cash_flows: Sequence[float], rate: float) -> float | None:
    if rate <= -1:
        return None
    discounted = [float(c) / (1 + rate) ** t for t, c in enumerate(cash_flows)]
    return _interpolated_payback(discounted)


def profitability_index(rate: float, cash_flows: Sequence[float]) -> float | None:
    """PV of flows after t=0 divided by the initial outlay."""
    flows = [float(c) for c in cash_flows]
    if not flows or flows[0] >= 0:
        return None
    return npv(rate, [0.0] + flows[1:]) / -flows[0]


def cagr(begin: float, end: float, years: float) -> float | None:
    if begin <= 0 or end < 0 or years <= 0:
        return None
    return (end / begin) ** (1 / years) - 1
