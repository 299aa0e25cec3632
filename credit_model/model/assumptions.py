"""
assumptions.py
--------------
Immutable parameter set for one projection run, and the single
normalization step that builds it from raw form/JSON input.

ModelParameters is a frozen dataclass (tuples for every sequence) so it
hashes, compares field-by-field, and can key a memoized projection.
Scenario parameter sets are derived with dataclasses.replace, never by
mutating a shared instance.

All rates as decimals (e.g., 0.08 = 8%). Balloon and custom-interval
amounts are percentages of principal (0-100).
"""

import json
import logging
from dataclasses import dataclass, field, fields
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping

from credit_model.model.historical import HistoricalYearRecord, calibrate

logger = logging.getLogger(__name__)


class ParameterError(ValueError):
    """Raw input that cannot be turned into a parameter set at all."""


class AmortizationType(str, Enum):
    AMORTIZING = "amortizing"
    INTEREST_ONLY = "interest_only"
    BULLET = "bullet"
    BALLOON = "balloon"
    CUSTOM = "custom"


# ---------------------------------------------------------------------------
# Fixed tables
# ---------------------------------------------------------------------------
PAYMENT_FREQUENCIES = {
    "Monthly":       12,
    "Quarterly":     4,
    "Semi-Annually": 2,
    "Annually":      1,
    "Bullet":        1,
}

DAY_COUNT_CONVENTIONS = ("Actual/365", "Actual/360", "30/360")

EQUITY_BRIDGES = ("final", "opening")

TERMINAL_METHODS = ("gordon", "multiple")

# Priority for reporting and refinancing review (lower index = more senior)
SENIORITY_ORDER = ["Senior Secured", "Senior Unsecured", "Subordinated", "Mezzanine"]

# Covenant thresholds by industry; applied to thresholds the user has not edited
INDUSTRY_BENCHMARKS = {
    "Manufacturing":      {"min_dscr": 1.25, "target_icr": 2.5,  "max_nd_to_ebitda": 3.0},
    "Services":           {"min_dscr": 1.35, "target_icr": 3.0,  "max_nd_to_ebitda": 2.5},
    "Retail":             {"min_dscr": 1.30, "target_icr": 2.75, "max_nd_to_ebitda": 2.75},
    "Technology":         {"min_dscr": 1.40, "target_icr": 3.5,  "max_nd_to_ebitda": 2.0},
    "Healthcare":         {"min_dscr": 1.30, "target_icr": 2.5,  "max_nd_to_ebitda": 3.0},
    "Real Estate":        {"min_dscr": 1.20, "target_icr": 2.0,  "max_nd_to_ebitda": 4.0},
    "Financial Services": {"min_dscr": 1.50, "target_icr": 4.0,  "max_nd_to_ebitda": 2.0},
    "Agriculture":        {"min_dscr": 1.15, "target_icr": 2.0,  "max_nd_to_ebitda": 3.5},
    "Energy":             {"min_dscr": 1.25, "target_icr": 2.5,  "max_nd_to_ebitda": 3.5},
    "Transportation":     {"min_dscr": 1.20, "target_icr": 2.25, "max_nd_to_ebitda": 3.25},
}

CUSTOM_INTERVAL_TOLERANCE = 0.5
MAX_PROJECTION_YEARS = 50


def _seniority_rank(seniority: str) -> int:
    for i, name in enumerate(SENIORITY_ORDER):
        if name.lower() == seniority.lower():
            return i
    return 99


def benchmarks_for_industry(industry: str) -> dict:
    return INDUSTRY_BENCHMARKS.get(industry, INDUSTRY_BENCHMARKS["Manufacturing"])


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DebtTranche:
    """One debt instrument in a multi-tranche capital structure."""
    id: str
    name: str
    principal: float
    rate: float
    tenor_years: int
    amortization_type: AmortizationType = AmortizationType.AMORTIZING
    interest_only_years: int = 0
    maturity_date: date | None = None
    seniority: str = "Senior Secured"
    balloon_pct: float = 0.0
    custom_intervals: tuple[float, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "custom_intervals", tuple(self.custom_intervals))

    @property
    def seniority_rank(self) -> int:
        return _seniority_rank(self.seniority)

    def maturity_year(self, start_year: int) -> int:
        """Calendar year of final maturity; projection year 1 is `start_year`."""
        if self.maturity_date is not None:
            return self.maturity_date.year
        return start_year + self.tenor_years - 1


@dataclass(frozen=True)
class ModelParameters:
    """
    Inputs for one projection run.

    Blocks:
      1. Horizon
      2. Revenue / cost assumptions
      3. Capital structure (existing debt, tax, discounting)
      4. New facility terms
      5. Covenant thresholds
      6. Equity bridge / returns / collateral
      7. Terminal value method / per-share
    """
    # -----------------------------------------------------------------------
    # 1. HORIZON
    # -----------------------------------------------------------------------
    start_year: int = field(default_factory=lambda: date.today().year)
    years: int = 5

    # -----------------------------------------------------------------------
    # 2. REVENUE / COST
    # -----------------------------------------------------------------------
    base_revenue: float = 0.0
    growth: float = 0.08
    cogs_pct: float = 0.40
    opex_pct: float = 0.25
    capex_pct: float = 0.05
    da_pct_of_ppe: float = 0.10
    wc_pct_of_rev: float = 0.15
    opening_ppe: float | None = None     # defaults to base_revenue * capex_pct

    # -----------------------------------------------------------------------
    # 3. CAPITAL STRUCTURE
    # -----------------------------------------------------------------------
    opening_debt: float = 0.0
    interest_rate: float = 0.12
    debt_tenor_years: int = 5
    existing_amortization_type: AmortizationType = AmortizationType.AMORTIZING
    tax_rate: float = 0.21
    wacc: float = 0.10
    terminal_growth: float = 0.03
    day_count_convention: str = "Actual/365"

    # -----------------------------------------------------------------------
    # 4. NEW FACILITY
    # -----------------------------------------------------------------------
    requested_loan_amount: float = 0.0
    proposed_pricing: float = 0.12
    proposed_tenor: int = 5
    payment_frequency: str = "Quarterly"
    amortization_type: AmortizationType = AmortizationType.AMORTIZING
    interest_only_years: int = 0
    balloon_percentage: float = 50.0
    custom_amortization_intervals: tuple[float, ...] = ()

    # Multi-tranche mode: when non-empty, replaces existing debt + new facility
    tranches: tuple[DebtTranche, ...] = ()

    # -----------------------------------------------------------------------
    # 5. COVENANTS
    # -----------------------------------------------------------------------
    min_dscr: float = 1.2
    target_icr: float = 2.0
    max_nd_to_ebitda: float = 3.5
    industry: str | None = None

    # -----------------------------------------------------------------------
    # 6. EQUITY BRIDGE / RETURNS / COLLATERAL
    # -----------------------------------------------------------------------
    cash_at_valuation: float = 0.0
    associates_value: float = 0.0
    minority_interest: float = 0.0
    equity_bridge: str = "final"
    equity_contribution: float = 0.0
    collateral_value: float = 0.0
    max_ltv: float = 75.0

    # -----------------------------------------------------------------------
    # 7. TERMINAL VALUE / PER-SHARE
    # -----------------------------------------------------------------------
    terminal_method: str = "gordon"      # "gordon" or "multiple" (final EBITDA × exit multiple)
    exit_multiple: float = 8.0
    shares_outstanding: float = 0.0      # 0 = no per-share value

    def __post_init__(self):
        # Sequences are stored as tuples so the instance stays hashable
        object.__setattr__(self, "custom_amortization_intervals",
                           tuple(self.custom_amortization_intervals))
        object.__setattr__(self, "tranches", tuple(self.tranches))

    @property
    def multi_tranche(self) -> bool:
        return len(self.tranches) > 0

    @property
    def total_debt(self) -> float:
        """Debt outstanding at the start of year 1."""
        if self.multi_tranche:
            return sum(t.principal for t in self.tranches)
        return self.opening_debt + self.requested_loan_amount

    @property
    def last_year(self) -> int:
        return self.start_year + self.years - 1

    @property
    def initial_ppe(self) -> float:
        if self.opening_ppe is not None:
            return self.opening_ppe
        return self.base_revenue * self.capex_pct

    @property
    def periods_per_year(self) -> int:
        return PAYMENT_FREQUENCIES.get(self.payment_frequency, 4)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

# Every accepted spelling of a field, in one place
FIELD_ALIASES = {
    "start_year":                    ("startYear",),
    "base_revenue":                  ("baseRevenue",),
    "cogs_pct":                      ("cogsPct",),
    "opex_pct":                      ("opexPct",),
    "capex_pct":                     ("capexPct",),
    "da_pct_of_ppe":                 ("daPctOfPPE",),
    "wc_pct_of_rev":                 ("wcPctOfRev",),
    "opening_ppe":                   ("openingPPE",),
    "opening_debt":                  ("openingDebt", "existingDebt"),
    "interest_rate":                 ("interestRate",),
    "debt_tenor_years":              ("debtTenorYears",),
    "existing_amortization_type":    ("existingAmortizationType",),
    "tax_rate":                      ("taxRate",),
    "terminal_growth":               ("terminalGrowth",),
    "day_count_convention":          ("dayCountConvention",),
    "requested_loan_amount":         ("requestedLoanAmount",),
    "proposed_pricing":              ("proposedPricing", "newFacilityRate"),
    "proposed_tenor":                ("proposedTenor",),
    "payment_frequency":             ("paymentFrequency",),
    "amortization_type":             ("amortizationType",),
    "interest_only_years":           ("interestOnlyYears",),
    "balloon_percentage":            ("balloonPercentage",),
    "custom_amortization_intervals": ("customAmortizationIntervals", "customAmortization"),
    "tranches":                      ("debtTranches",),
    "min_dscr":                      ("minDSCR",),
    "target_icr":                    ("targetICR",),
    "max_nd_to_ebitda":              ("maxNDToEBITDA",),
    "cash_at_valuation":             ("cashAtValuation",),
    "associates_value":              ("associatesValue",),
    "minority_interest":             ("minorityInterest",),
    "equity_bridge":                 ("equityBridge",),
    "equity_contribution":           ("equityContribution",),
    "collateral_value":              ("collateralValue",),
    "max_ltv":                       ("maxLTV",),
    "terminal_method":               ("terminalMethod",),
    "exit_multiple":                 ("exitMultiple",),
    "shares_outstanding":            ("sharesOutstanding",),
}

# Accept whole percentages (12 -> 0.12) for these
RATE_FIELDS = {
    "growth", "cogs_pct", "opex_pct", "capex_pct", "da_pct_of_ppe",
    "wc_pct_of_rev", "interest_rate", "tax_rate", "wacc", "terminal_growth",
    "proposed_pricing",
}

INT_FIELDS = {"start_year", "years", "debt_tenor_years", "proposed_tenor", "interest_only_years"}

AMORTIZATION_FIELDS = {"amortization_type", "existing_amortization_type"}

# Calibrated values replace these unless the user edited them
CALIBRATED_FIELDS = ("growth", "cogs_pct", "opex_pct", "capex_pct", "wc_pct_of_rev")

# Calibrated values only fill these when no value was supplied
FILL_IF_EMPTY_FIELDS = ("base_revenue", "opening_debt", "interest_rate")

COVENANT_FIELDS = ("min_dscr", "target_icr", "max_nd_to_ebitda")


def normalize_rate(value: float) -> float:
    """Whole percentages (|x| > 1) become decimals."""
    return value / 100.0 if abs(value) > 1 else value


def _to_float(name: str, value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ParameterError(f"{name}: expected a number, got {value!r}") from exc


def _to_int(name: str, value) -> int:
    number = _to_float(name, value)
    if number != int(number):
        raise ParameterError(f"{name}: expected a whole number, got {value!r}")
    return int(number)


def parse_amortization_type(value) -> AmortizationType:
    if isinstance(value, AmortizationType):
        return value
    key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
    if key in ("interestonly", "io"):
        key = "interest_only"
    if key in ("customamortization", "custom_amortization"):
        key = "custom"
    try:
        return AmortizationType(key)
    except ValueError as exc:
        raise ParameterError(f"unknown amortization type {value!r}") from exc


def _parse_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ParameterError(f"maturity date {value!r} is not YYYY-MM-DD") from exc


def tranche_from_mapping(raw: Mapping, index: int = 0) -> DebtTranche:
    """Build a DebtTranche from snake_case or camelCase keys."""
    if isinstance(raw, DebtTranche):
        return raw

    def pick(*keys, default=None):
        for key in keys:
            if raw.get(key) is not None:
                return raw[key]
        return default

    tranche_id = str(pick("id", default=f"tranche-{index + 1}"))
    return DebtTranche(
        id                  = tranche_id,
        name                = str(pick("name", default=tranche_id)),
        principal           = _to_float("principal", pick("principal", "amount", default=0.0)),
        rate                = normalize_rate(_to_float("rate", pick("rate", "interestRate", default=0.0))),
        tenor_years         = _to_int("tenor_years", pick("tenor_years", "tenorYears", "tenor", default=5)),
        amortization_type   = parse_amortization_type(
                                  pick("amortization_type", "amortizationType", default="amortizing")),
        interest_only_years = _to_int("interest_only_years",
                                      pick("interest_only_years", "interestOnlyYears", default=0)),
        maturity_date       = _parse_date(pick("maturity_date", "maturityDate")),
        seniority           = str(pick("seniority", default="Senior Secured")),
        balloon_pct         = _to_float("balloon_pct", pick("balloon_pct", "balloonPercentage", default=0.0)),
        custom_intervals    = tuple(_to_float("custom_intervals", v)
                                    for v in pick("custom_intervals", "customIntervals", default=())),
    )


def _resolve(raw: Mapping, name: str):
    for key in (name, *FIELD_ALIASES.get(name, ())):
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _coerce(name: str, value):
    if name in INT_FIELDS:
        return _to_int(name, value)
    if name in RATE_FIELDS:
        return normalize_rate(_to_float(name, value))
    if name in AMORTIZATION_FIELDS:
        return parse_amortization_type(value)
    if name == "custom_amortization_intervals":
        return tuple(_to_float(name, v) for v in value)
    if name == "tranches":
        return tuple(tranche_from_mapping(t, i) for i, t in enumerate(value))
    if name in ("payment_frequency", "day_count_convention", "equity_bridge", "industry"):
        return str(value)
    if name == "terminal_method":
        return str(value).strip().lower()
    return _to_float(name, value)


def build_parameters(
    raw: Mapping,
    history: Iterable[HistoricalYearRecord] | None = None,
    edited: Iterable[str] = frozenset(),
) -> ModelParameters:
    """
    Normalize raw inputs into a ModelParameters, optionally calibrating
    from history.

    Parameters
    ----------
    raw     : mapping with snake_case or camelCase keys; missing fields
              take the dataclass defaults
    history : HistoricalYearRecord list; calibrated values fill every
              calibratable field the user has not edited
    edited  : names of fields the user set by hand (snake_case)
    """
    edited = frozenset(edited)
    values = {}
    for f in fields(ModelParameters):
        value = _resolve(raw, f.name)
        if value is not None:
            values[f.name] = _coerce(f.name, value)
    if "terminal_method" not in values and raw.get("useMultiple"):
        values["terminal_method"] = "multiple"

    industry = values.get("industry")
    if industry:
        for name, threshold in benchmarks_for_industry(industry).items():
            if name not in edited:
                values[name] = threshold

    if history is not None:
        calibrated = calibrate(history)
        if calibrated is None:
            logger.info("Historical data insufficient; keeping supplied assumptions")
        else:
            overrides = calibrated.as_parameter_overrides()
            for name in CALIBRATED_FIELDS:
                if name not in edited:
                    values[name] = overrides[name]
            for name in FILL_IF_EMPTY_FIELDS:
                if name in edited or overrides.get(name) is None:
                    continue
                if not values.get(name):
                    values[name] = overrides[name]
            logger.debug("Calibrated from %d historical years", calibrated.years_used)

    return ModelParameters(**values)


def load_parameters(path: str | Path) -> dict:
    """Read a raw parameter mapping from a JSON file."""
    try:
        with open(path, encoding="utf-8") as fh:
            raw = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ParameterError(f"{path}: invalid JSON ({exc})") from exc
    if not isinstance(raw, dict):
        raise ParameterError(f"{path}: expected a JSON object")
    return raw


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_custom_intervals(label: str, intervals: tuple[float, ...]) -> list[str]:
    """Problems with a custom amortization list (must sum to 100 ± 0.5)."""
    if not intervals:
        return [f"{label}: custom amortization needs at least one interval"]
    issues = []
    if any(v < 0 for v in intervals):
        issues.append(f"{label}: custom intervals cannot be negative")
    total = sum(intervals)
    if abs(total - 100.0) > CUSTOM_INTERVAL_TOLERANCE:
        issues.append(f"{label}: custom intervals sum to {total:.2f}%, expected 100%")
    return issues


def _validate_facility(label: str, principal: float, rate: float, tenor: int,
                       amort: AmortizationType, io_years: int, balloon_pct: float,
                       intervals: tuple[float, ...]) -> list[str]:
    issues = []
    if principal < 0:
        issues.append(f"{label}: principal cannot be negative")
    if rate < 0:
        issues.append(f"{label}: rate cannot be negative")
    if principal > 0 and tenor < 1:
        issues.append(f"{label}: tenor must be at least 1 year")
    if io_years < 0:
        issues.append(f"{label}: interest-only years cannot be negative")
    elif amort in (AmortizationType.AMORTIZING, AmortizationType.BALLOON, AmortizationType.CUSTOM) \
            and principal > 0 and io_years >= tenor:
        issues.append(f"{label}: interest-only period must be shorter than the tenor")
    if amort == AmortizationType.BALLOON and not 0 <= balloon_pct <= 100:
        issues.append(f"{label}: balloon percentage must be between 0 and 100")
    if amort == AmortizationType.CUSTOM and principal > 0:
        issues.extend(validate_custom_intervals(label, intervals))
    return issues


def validate_parameters(params: ModelParameters) -> list[str]:
    """
    Every reason `params` cannot be projected. Empty list = valid.
    Nothing here raises; callers decide how to surface the messages.
    """
    issues = []

    if not 1 <= params.years <= MAX_PROJECTION_YEARS:
        issues.append(f"years must be between 1 and {MAX_PROJECTION_YEARS}, got {params.years}")
    if params.wacc <= 0:
        issues.append(f"WACC must be positive, got {params.wacc:.4f}")
    if params.terminal_growth >= params.wacc:
        issues.append(
            f"WACC ({params.wacc:.2%}) must exceed terminal growth "
            f"({params.terminal_growth:.2%}) for a Gordon terminal value"
        )
    if not 0 <= params.tax_rate <= 1:
        issues.append(f"tax rate must be between 0 and 1, got {params.tax_rate}")
    if params.base_revenue < 0:
        issues.append("base revenue cannot be negative")
    if params.payment_frequency not in PAYMENT_FREQUENCIES:
        issues.append(f"unknown payment frequency {params.payment_frequency!r}")
    if params.day_count_convention not in DAY_COUNT_CONVENTIONS:
        issues.append(f"unknown day count convention {params.day_count_convention!r}")
    if params.equity_bridge not in EQUITY_BRIDGES:
        issues.append(f"equity bridge must be one of {EQUITY_BRIDGES}")
    if params.terminal_method not in TERMINAL_METHODS:
        issues.append(f"terminal method must be one of {TERMINAL_METHODS}")
    elif params.terminal_method == "multiple" and params.exit_multiple <= 0:
        issues.append(f"exit multiple must be positive, got {params.exit_multiple}")
    if params.shares_outstanding < 0:
        issues.append("shares outstanding cannot be negative")

    if params.multi_tranche:
        seen = set()
        for t in params.tranches:
            if not t.id:
                issues.append("tranche id cannot be empty")
            elif t.id in seen:
                issues.append(f"duplicate tranche id {t.id!r}")
            seen.add(t.id)
            issues.extend(_validate_facility(
                f"tranche {t.name}", t.principal, t.rate, t.tenor_years,
                t.amortization_type, t.interest_only_years, t.balloon_pct, t.custom_intervals,
            ))
    else:
        issues.extend(_validate_facility(
            "existing debt", params.opening_debt, params.interest_rate, params.debt_tenor_years,
            params.existing_amortization_type, 0, 0.0, (),
        ))
        issues.extend(_validate_facility(
            "new facility", params.requested_loan_amount, params.proposed_pricing,
            params.proposed_tenor, params.amortization_type, params.interest_only_years,
            params.balloon_percentage, params.custom_amortization_intervals,
        ))

    return issues
