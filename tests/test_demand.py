import math
import os
import sys
from dataclasses import replace

import pytest

# Ensure project root is on sys.path so tests can import local modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from resource_demand import (
    InvalidAssumptionError,
    MonthFactor,
    MonthlyRow,
    assumptions_from_mapping,
    compute,
    default_assumptions,
    default_distribution,
    distribution_from_factors,
    parse_number,
    round_half_up,
    utilization_band,
    utilization_pct,
)


def test_default_scenario():
    result = compute(default_assumptions(), default_distribution())
    assert math.isclose(result.annual_project_count, 64)
    assert math.isclose(result.total_annual_hours, 7232)
    assert math.isclose(result.effective_hours_per_resource, 1040)
    assert result.hours_based_resources == 7
    assert math.isclose(result.avg_projects_in_progress, 64 * 16 / 52)
    assert result.concurrency_based_resources == 7
    assert result.peak_month_projects == 9
    assert result.peak_based_resources == 12
    assert result.base_requirement == 12
    assert result.safety_buffer == 2
    assert result.final_recommendation == 14


def test_default_monthly_rows():
    result = compute(default_assumptions(), default_distribution())
    rows = result.monthly_rows
    assert [r.label for r in rows] == ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
                                       "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    # 0.8 -> round(4.27) = 4 projects, 452 h / 86.67 h per resource -> 6
    assert rows[0].projected_projects == 4
    assert math.isclose(rows[0].clinical_hours, 452)
    assert rows[0].resources_needed == 6
    # 1.0 -> 5 projects -> 565 h -> 7
    assert rows[2].projected_projects == 5
    assert rows[2].resources_needed == 7
    # 1.6 -> 9 projects -> 1017 h -> 12
    assert rows[7].projected_projects == 9
    assert rows[7].resources_needed == 12
    assert all(r.recommended_staffing == 14 for r in rows)


def test_base_requirement_is_max_and_buffer_formula():
    for buffer_pct in (0, 10, 15, 33.3, 100):
        a = replace(default_assumptions(), safety_buffer_percent=buffer_pct)
        result = compute(a, default_distribution())
        assert result.base_requirement == max(
            result.hours_based_resources,
            result.concurrency_based_resources,
            result.peak_based_resources,
        )
        expected_buffer = math.ceil(result.base_requirement * buffer_pct / 100)
        assert result.final_recommendation == result.base_requirement + expected_buffer


def test_concurrency_can_be_binding():
    a = replace(default_assumptions(), avg_project_duration_weeks=52, max_concurrent_projects_per_resource=1)
    result = compute(a, default_distribution())
    assert result.concurrency_based_resources == 64
    assert result.base_requirement == 64


def test_annual_count_linear_in_growth():
    base = default_assumptions()
    assert compute(base, default_distribution()).annual_project_count == 64
    grown = compute(replace(base, growth_rate_percent=25), default_distribution())
    assert math.isclose(grown.annual_project_count, 16 * 4 * 1.25)
    shrunk = compute(replace(base, growth_rate_percent=-50), default_distribution())
    assert math.isclose(shrunk.annual_project_count, 32)
    doubled = compute(replace(base, quarterly_project_count=32), default_distribution())
    assert math.isclose(doubled.annual_project_count, 128)


def test_factors_are_not_normalized():
    flat = compute(default_assumptions(), distribution_from_factors([1.0] * 12))
    doubled = compute(default_assumptions(), distribution_from_factors([2.0] * 12))
    assert sum(r.projected_projects for r in flat.monthly_rows) == 12 * 5
    # round(10.67) = 11 per month, well above the annual count of 64
    assert sum(r.projected_projects for r in doubled.monthly_rows) == 12 * 11
    # Aggregate estimates do not depend on the distribution
    assert doubled.final_recommendation == flat.final_recommendation


def test_projected_projects_round_half_up():
    a = replace(default_assumptions(), quarterly_project_count=1.5)  # 0.5 projects per month
    result = compute(a, distribution_from_factors([1.0] * 12))
    assert all(r.projected_projects == 1 for r in result.monthly_rows)


def test_compute_is_deterministic():
    a, d = default_assumptions(), default_distribution()
    assert compute(a, d) == compute(a, d)
    assert hash(compute(a, d)) == hash(compute(a, d))


def test_buffer_is_monotonic():
    previous = -1
    for buffer_pct in range(0, 201, 5):
        a = replace(default_assumptions(), safety_buffer_percent=buffer_pct)
        final = compute(a, default_distribution()).final_recommendation
        assert final >= previous
        previous = final


def test_zero_clinical_hours():
    a = replace(default_assumptions(), clinical_hours_per_project=0)
    result = compute(a, default_distribution())
    assert result.total_annual_hours == 0
    assert result.hours_based_resources == 0
    assert result.peak_based_resources == 0
    assert result.concurrency_based_resources == 7
    assert result.final_recommendation == 7 + math.ceil(7 * 0.15)
    assert all(r.resources_needed == 0 for r in result.monthly_rows)


def test_zero_projects_gives_zero_staffing():
    a = replace(default_assumptions(), quarterly_project_count=0)
    result = compute(a, default_distribution())
    assert result.final_recommendation == 0
    assert utilization_pct(result.monthly_rows[0]) is None


@pytest.mark.parametrize("field", ["availability_factor_percent", "working_hours_per_year",
                                   "max_concurrent_projects_per_resource"])
def test_non_positive_divisor_rejected(field):
    a = replace(default_assumptions(), **{field: 0})
    with pytest.raises(InvalidAssumptionError) as exc:
        compute(a, default_distribution())
    assert "must be positive" in str(exc.value)


def test_distribution_shape_rejected():
    with pytest.raises(InvalidAssumptionError):
        compute(default_assumptions(), default_distribution()[:11])
    bad = list(default_distribution())
    bad[3] = MonthFactor(label="Apr", factor=-0.1)
    with pytest.raises(InvalidAssumptionError) as exc:
        compute(default_assumptions(), bad)
    assert exc.value.errors == ["Distribution factor for Apr must not be negative"]


def test_distribution_from_factors_length():
    with pytest.raises(ValueError):
        distribution_from_factors([1.0] * 11)


def test_utilization_bands():
    row = MonthlyRow(label="Aug", projected_projects=9, clinical_hours=1017,
                     resources_needed=12, recommended_staffing=14)
    assert math.isclose(utilization_pct(row), 12 / 14 * 100)
    assert utilization_band(75) == "green"
    assert utilization_band(75.1) == "orange"
    assert utilization_band(90) == "orange"
    assert utilization_band(90.1) == "red"
    assert utilization_band(None) is None


def test_parse_number():
    assert parse_number(" 12.5 ").value == 12.5
    assert parse_number(3).value == 3.0
    assert not parse_number("").ok
    assert not parse_number("abc").ok
    assert not parse_number("nan").ok
    assert not parse_number("inf").ok


def test_assumptions_from_mapping_keeps_base_on_error():
    a, errors = assumptions_from_mapping({
        "quarterly_project_count": "20",
        "availability_factor_percent": "fifty",
        "unknown": "1",
    })
    assert a.quarterly_project_count == 20
    assert a.availability_factor_percent == 50
    assert set(errors) == {"availability_factor_percent"}


def test_nan_factor_rejected():
    months = list(default_distribution())
    months[0] = MonthFactor(label="Jan", factor=float("nan"))
    with pytest.raises(InvalidAssumptionError) as exc:
        compute(default_assumptions(), months)
    assert exc.value.errors == ["Distribution factor for Jan must be a finite number"]


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
def test_non_finite_growth_rate_rejected(value):
    a = replace(default_assumptions(), growth_rate_percent=value)
    with pytest.raises(InvalidAssumptionError) as exc:
        compute(a, default_distribution())
    assert exc.value.errors == ["Growth rate percent must be a finite number"]


def test_overflowing_hours_rejected():
    a = replace(default_assumptions(), clinical_hours_per_project=1e307)
    with pytest.raises(InvalidAssumptionError) as exc:
        compute(a, default_distribution())
    assert "too large to compute" in str(exc.value)


def test_round_half_up():
    assert round_half_up(64.5) == 65
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2
