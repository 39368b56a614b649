"""Core calculation logic for clinical resource demand.

This module defines the assumption/distribution value types and the pure
`compute` function used by the Streamlit app. `compute` turns a set of
assumptions plus a twelve-month seasonal distribution into three independent
headcount estimates, a reconciled recommendation with a safety buffer, and a
month-by-month breakdown.
"""
from dataclasses import dataclass, replace
import math
from typing import Dict, List, Mapping, Optional, Sequence, Tuple


MONTH_LABELS: Tuple[str, ...] = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

DEFAULT_FACTORS: Tuple[float, ...] = (0.8, 0.8, 1.0, 0.8, 0.8, 1.0, 0.8, 1.6, 1.6, 0.8, 1.0, 0.8)

ASSUMPTION_FIELDS: Tuple[str, ...] = (
    "quarterly_project_count",
    "clinical_hours_per_project",
    "availability_factor_percent",
    "max_concurrent_projects_per_resource",
    "working_hours_per_year",
    "safety_buffer_percent",
    "avg_project_duration_weeks",
    "peak_month_multiplier",
    "growth_rate_percent",
)


class InvalidAssumptionError(ValueError):
    """Raised when inputs would drive the model through a non-positive divisor."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


@dataclass(frozen=True)
class Assumptions:
    quarterly_project_count: float         # projects in one representative quarter
    clinical_hours_per_project: float
    availability_factor_percent: float     # 0-100, billable share of nominal hours
    max_concurrent_projects_per_resource: float
    working_hours_per_year: float          # nominal, before availability
    safety_buffer_percent: float
    avg_project_duration_weeks: float
    peak_month_multiplier: float
    growth_rate_percent: float             # flat, may be negative


@dataclass(frozen=True)
class MonthFactor:
    label: str
    factor: float  # multiplier on the average month, not normalized


@dataclass(frozen=True)
class MonthlyRow:
    label: str
    projected_projects: int
    clinical_hours: float
    resources_needed: int
    recommended_staffing: int


@dataclass(frozen=True)
class ResultBundle:
    annual_project_count: float
    total_annual_hours: float
    effective_hours_per_resource: float
    hours_based_resources: int
    concurrency_based_resources: int
    peak_based_resources: int
    base_requirement: int
    safety_buffer: int
    final_recommendation: int
    avg_projects_in_progress: float
    base_monthly_projects: float
    peak_month_projects: int
    monthly_rows: Tuple[MonthlyRow, ...]


@dataclass(frozen=True)
class ParseResult:
    value: Optional[float] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def default_assumptions() -> Assumptions:
    return Assumptions(
        quarterly_project_count=16,
        clinical_hours_per_project=113,
        availability_factor_percent=50,
        max_concurrent_projects_per_resource=3,
        working_hours_per_year=2080,
        safety_buffer_percent=15,
        avg_project_duration_weeks=16,
        peak_month_multiplier=1.6,
        growth_rate_percent=0,
    )


def distribution_from_factors(
    factors: Sequence[float], labels: Sequence[str] = MONTH_LABELS
) -> Tuple[MonthFactor, ...]:
    """Pair bare factors with month labels, in calendar order."""
    if len(factors) != len(labels):
        raise ValueError(f"Expected {len(labels)} factors, got {len(factors)}")
    return tuple(MonthFactor(label=label, factor=float(f)) for label, f in zip(labels, factors))


def default_distribution() -> Tuple[MonthFactor, ...]:
    return distribution_from_factors(DEFAULT_FACTORS)


def validate(assumptions: Assumptions, distribution: Sequence[MonthFactor]) -> None:
    """Raise InvalidAssumptionError if an input is not finite or a divisor is not positive.

    Zero project counts or zero hours per project are valid and simply yield
    zero demand. Values that only overflow once combined are caught by
    `compute` before rounding.
    """
    errors: List[str] = []

    for name in ASSUMPTION_FIELDS:
        if not math.isfinite(getattr(assumptions, name)):
            errors.append(f"{name.replace('_', ' ').capitalize()} must be a finite number")

    effective = assumptions.working_hours_per_year * (assumptions.availability_factor_percent / 100)
    if not effective > 0:
        errors.append(
            "Effective hours per resource (working hours x availability) "
            "is a division base and must be positive"
        )
    if not assumptions.max_concurrent_projects_per_resource > 0:
        errors.append("Max concurrent projects per resource is a division base and must be positive")

    if len(distribution) != len(MONTH_LABELS):
        errors.append(f"Monthly distribution must have {len(MONTH_LABELS)} entries, got {len(distribution)}")
    for month in distribution:
        if not math.isfinite(month.factor):
            errors.append(f"Distribution factor for {month.label} must be a finite number")
        elif month.factor < 0:
            errors.append(f"Distribution factor for {month.label} must not be negative")

    if errors:
        raise InvalidAssumptionError(errors)


def round_half_up(value: float) -> int:
    """Round to nearest with x.5 going up; builtin round() rounds half to even."""
    return int(math.floor(value + 0.5))


def _finite(value: float, what: str) -> float:
    if not math.isfinite(value):
        raise InvalidAssumptionError([f"{what} is too large to compute; reduce the inputs"])
    return value


def compute(assumptions: Assumptions, distribution: Sequence[MonthFactor]) -> ResultBundle:
    """Compute headcount estimates and the monthly breakdown.

    Capacity figures always round up so staffing is never short-counted;
    monthly project counts round to nearest.
    """
    validate(assumptions, distribution)
    a = assumptions

    annual_projects = _finite(
        a.quarterly_project_count * 4 * (1 + a.growth_rate_percent / 100), "Annual project count")
    total_hours = _finite(annual_projects * a.clinical_hours_per_project, "Total annual hours")
    effective_hours = a.working_hours_per_year * (a.availability_factor_percent / 100)
    monthly_capacity = effective_hours / 12

    hours_based = math.ceil(_finite(total_hours / effective_hours, "Hours-based requirement"))

    in_progress = _finite(annual_projects * (a.avg_project_duration_weeks / 52), "Projects in progress")
    concurrency_based = math.ceil(
        _finite(in_progress / a.max_concurrent_projects_per_resource, "Concurrency-based requirement"))

    base_monthly = annual_projects / 12
    peak_month = math.ceil(_finite(base_monthly * a.peak_month_multiplier, "Peak month projects"))
    peak_based = math.ceil(_finite(
        peak_month * a.clinical_hours_per_project / monthly_capacity, "Peak-based requirement"))

    base_requirement = max(hours_based, concurrency_based, peak_based)
    buffer = math.ceil(_finite(base_requirement * (a.safety_buffer_percent / 100), "Safety buffer"))
    final = base_requirement + buffer

    rows = []
    for month in distribution:
        projects = round_half_up(_finite(base_monthly * month.factor, f"{month.label} projects"))
        hours = _finite(projects * a.clinical_hours_per_project, f"{month.label} clinical hours")
        rows.append(MonthlyRow(
            label=month.label,
            projected_projects=projects,
            clinical_hours=hours,
            resources_needed=math.ceil(_finite(hours / monthly_capacity, f"{month.label} resources")),
            recommended_staffing=final,
        ))

    return ResultBundle(
        annual_project_count=annual_projects,
        total_annual_hours=total_hours,
        effective_hours_per_resource=effective_hours,
        hours_based_resources=hours_based,
        concurrency_based_resources=concurrency_based,
        peak_based_resources=peak_based,
        base_requirement=base_requirement,
        safety_buffer=buffer,
        final_recommendation=final,
        avg_projects_in_progress=in_progress,
        base_monthly_projects=base_monthly,
        peak_month_projects=peak_month,
        monthly_rows=tuple(rows),
    )


def utilization_pct(row: MonthlyRow) -> Optional[float]:
    """Resources needed as a percentage of recommended staffing (None if staffing is 0)."""
    if row.recommended_staffing <= 0:
        return None
    return row.resources_needed / row.recommended_staffing * 100


def utilization_band(pct: Optional[float]) -> Optional[str]:
    if pct is None:
        return None
    if pct > 90:
        return "red"
    if pct > 75:
        return "orange"
    return "green"


def parse_number(text: object) -> ParseResult:
    """Parse user-entered text into a finite float, reporting failures instead of defaulting."""
    if isinstance(text, (int, float)) and not isinstance(text, bool):
        value = float(text)
    else:
        raw = str(text if text is not None else "").strip()
        if not raw:
            return ParseResult(error="Value is empty")
        try:
            value = float(raw)
        except ValueError:
            return ParseResult(error=f"'{raw}' is not a number")
    if not math.isfinite(value):
        return ParseResult(error=f"{value} is not a finite number")
    return ParseResult(value=value)


def assumptions_from_mapping(
    raw: Mapping[str, object], base: Optional[Assumptions] = None
) -> Tuple[Assumptions, Dict[str, str]]:
    """Apply textual overrides from `raw` on top of `base`.

    Unknown keys are ignored. Rejected values leave the base value in place and
    are reported in the returned field -> message dict.
    """
    base = base or default_assumptions()
    updates: Dict[str, float] = {}
    errors: Dict[str, str] = {}
    for name in ASSUMPTION_FIELDS:
        if name not in raw:
            continue
        parsed = parse_number(raw[name])
        if parsed.ok:
            updates[name] = parsed.value
        else:
            errors[name] = parsed.error
    return replace(base, **updates), errors


if __name__ == "__main__":
    # Quick self-check
    result = compute(default_assumptions(), default_distribution())
    print(result.final_recommendation, [r.resources_needed for r in result.monthly_rows])
