"""
ratios.py
---------
Safe division and a tagged coverage ratio.

A Ratio either carries a finite value or is "not applicable" with a reason
(no debt, no interest, non-positive EBITDA). Comparisons on a
not-applicable ratio are always False, and aggregates skip it, so a
period with no debt never reads as infinitely strong coverage.
"""

import math
from dataclasses import dataclass
from typing import Iterable


NO_DEBT_REASON = "no debt"
NO_INTEREST_REASON = "no interest"
NO_SERVICE_REASON = "no debt service"
NEGATIVE_EBITDA_REASON = "ebitda <= 0"


def safe_divide(numerator: float, denominator: float, fallback: float = 0.0) -> float:
    """numerator / denominator, or `fallback` when the result would not be finite."""
    if denominator == 0 or not math.isfinite(denominator) or not math.isfinite(numerator):
        return fallback
    result = numerator / denominator
    return result if math.isfinite(result) else fallback


@dataclass(frozen=True)
class Ratio:
    value: float | None = None
    reason: str = ""

    @classmethod
    def of(cls, value: float) -> "Ratio":
        if value is None or not math.isfinite(value):
            return cls(None, "undefined")
        return cls(float(value), "")

    @classmethod
    def not_applicable(cls, reason: str) -> "Ratio":
        return cls(None, reason)

    @property
    def is_applicable(self) -> bool:
        return self.value is not None

    def below(self, threshold: float) -> bool:
        return self.value is not None and self.value < threshold

    def above(self, threshold: float) -> bool:
        return self.value is not None and self.value > threshold

    def headroom(self, threshold: float, floor: bool = True) -> float | None:
        """Distance to a covenant; positive means room. `floor` = minimum covenant."""
        if self.value is None:
            return None
        return self.value - threshold if floor else threshold - self.value

    def or_nan(self) -> float:
        return self.value if self.value is not None else float("nan")

    def __str__(self) -> str:
        if self.value is None:
            return f"N/A ({self.reason})" if self.reason else "N/A"
        return f"{self.value:.2f}x"


NO_DEBT = Ratio.not_applicable(NO_DEBT_REASON)


def safe_ratio(numerator: float, denominator: float, reason: str) -> Ratio:
    """Ratio of two figures; not applicable (with `reason`) when the denominator is <= 0."""
    if denominator <= 0 or not math.isfinite(denominator):
        return Ratio.not_applicable(reason)
    return Ratio.of(numerator / denominator)


def applicable_values(ratios: Iterable[Ratio]) -> list[float]:
    return [r.value for r in ratios if r.is_applicable]


def ratio_stats(ratios: Iterable[Ratio]) -> tuple[float | None, float | None, float | None]:
    """(min, max, mean) over the applicable ratios; all None when none apply."""
    values = applicable_values(ratios)
    if not values:
        return None, None, None
    return min(values), max(values), sum(values) / len(values)
