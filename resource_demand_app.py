"""Streamlit front-end for the Clinical Resource Demand Model.

Collects assumptions and the monthly distribution, runs
`resource_demand.compute` on every change and renders summary tiles, the
three estimation methods, a 12-month chart and the monthly breakdown table.
"""
# Standard library imports first
from dataclasses import dataclass
from datetime import datetime, timezone
from io import StringIO
import csv
import logging
import os
import re
import sys
from typing import Dict, List, Optional, Sequence, Tuple

# Third-party imports
import pandas as pd
import plotly.graph_objects as go
import streamlit as st

# Local imports
from resource_demand import (
    ASSUMPTION_FIELDS,
    Assumptions,
    InvalidAssumptionError,
    MonthFactor,
    ResultBundle,
    assumptions_from_mapping,
    compute,
    default_assumptions,
    default_distribution,
    round_half_up,
    utilization_band,
    utilization_pct,
)

logger = logging.getLogger(__name__)

ASSUMPTION_LABELS: Dict[str, str] = {
    "quarterly_project_count": "Q3 Project Count",
    "clinical_hours_per_project": "Clinical Hours per Project",
    "availability_factor_percent": "Availability Factor (%)",
    "max_concurrent_projects_per_resource": "Max Concurrent Projects per Resource",
    "working_hours_per_year": "Working Hours per Year",
    "safety_buffer_percent": "Safety Buffer (%)",
    "avg_project_duration_weeks": "Avg Project Duration (weeks)",
    "peak_month_multiplier": "Peak Month Multiplier",
    "growth_rate_percent": "Growth Rate (%)",
}

BAND_COLORS = {"green": "#16A34A", "orange": "#EA580C", "red": "#DC2626"}

FRAME_COLUMNS = [
    "Month", "Projects", "Clinical Hours", "Resources Needed",
    "Recommended Staffing", "Utilization %",
]


@dataclass
class AppSettings:
    output_dir: str = "outputs"
    log_level: str = "INFO"


def load_settings() -> AppSettings:
    """Read settings from the environment, falling back to defaults."""
    return AppSettings(
        output_dir=os.environ.get("DEMAND_OUTPUT_DIR", "") or "outputs",
        log_level=(os.environ.get("DEMAND_LOG_LEVEL", "") or "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    # Streamlit reruns the script on every interaction; only install once.
    if not any(getattr(h, "_resource_demand", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        handler._resource_demand = True
        root.addHandler(handler)


def monthly_frame(result: ResultBundle) -> pd.DataFrame:
    """Return the monthly breakdown as a DataFrame, in calendar order.

    Utilization % is derived here (display only) and is NA when the
    recommended staffing is zero.
    """
    records = []
    for row in result.monthly_rows:
        pct = utilization_pct(row)
        records.append({
            "Month": row.label,
            "Projects": row.projected_projects,
            "Clinical Hours": row.clinical_hours,
            "Resources Needed": row.resources_needed,
            "Recommended Staffing": row.recommended_staffing,
            "Utilization %": round(pct, 1) if pct is not None else pd.NA,
        })
    return pd.DataFrame(records, columns=FRAME_COLUMNS)


def utilization_color(value) -> str:
    """CSS for one Utilization % cell (used with Styler.map)."""
    if value is None or pd.isna(value):
        return ""
    band = utilization_band(float(value))
    return f"color: {BAND_COLORS[band]}; font-weight: 600"


def build_demand_chart(frame: pd.DataFrame) -> go.Figure:
    """Bars of monthly projects (left axis) with resource lines (right axis)."""
    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=frame["Month"], y=frame["Projects"], name="Monthly Projects",
        marker_color="#3B82F6", yaxis="y",
    ))
    fig.add_trace(go.Scatter(
        x=frame["Month"], y=frame["Resources Needed"], name="Resources Needed",
        mode="lines+markers", line=dict(color="#EF4444", width=3), yaxis="y2",
    ))
    fig.add_trace(go.Scatter(
        x=frame["Month"], y=frame["Recommended Staffing"], name="Recommended Staffing",
        mode="lines", line=dict(color="#10B981", width=2, dash="dash"), yaxis="y2",
    ))
    fig.update_layout(
        height=400,
        margin=dict(t=20, r=30, l=20, b=5),
        xaxis=dict(categoryorder="array", categoryarray=list(frame["Month"])),
        yaxis=dict(title="Projects"),
        yaxis2=dict(title="Resources", overlaying="y", side="right", rangemode="tozero"),
        legend=dict(orientation="h", y=-0.15),
        hovermode="x unified",
    )
    return fig


def summary_header(result: ResultBundle, assumptions: Assumptions, title: str = "") -> Dict[str, object]:
    """Key/value lines written above the CSV table."""
    summary: Dict[str, object] = {
        "Title": title,
        "GeneratedAtUTC": datetime.now(timezone.utc).isoformat(),
    }
    for name in ASSUMPTION_FIELDS:
        summary[ASSUMPTION_LABELS[name]] = getattr(assumptions, name)
    summary.update({
        "Annual Projects": round_half_up(result.annual_project_count),
        "Total Annual Hours": result.total_annual_hours,
        "Hours-Based Resources": result.hours_based_resources,
        "Concurrency-Based Resources": result.concurrency_based_resources,
        "Peak-Load Based Resources": result.peak_based_resources,
        "Base Requirement": result.base_requirement,
        "Safety Buffer": result.safety_buffer,
        "Final Recommendation": result.final_recommendation,
    })
    return summary


def format_csv(rows: List[dict], summary: Optional[dict] = None) -> str:
    """Return CSV string of rows with optional summary header lines.

    If summary is provided, key,value pairs are written at the top as comment-style lines,
    followed by a blank line and then the regular CSV table.
    """
    if not rows and not summary:
        return ""

    output = StringIO()
    if summary:
        for k, v in summary.items():
            output.write(f"# {k}: {v}\n")
        output.write("\n")

    if rows:
        fieldnames = list(rows[0].keys())
        writer = csv.DictWriter(output, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)

    return output.getvalue()


def frame_to_rows(frame: pd.DataFrame) -> List[dict]:
    """DataFrame records with NA replaced by empty strings for CSV output."""
    return frame.astype(object).where(frame.notna(), "").to_dict("records")


def save_csv_to_disk(csv_content: str, filename: Optional[str] = None, directory: str = "outputs") -> str:
    """Save CSV content under `directory` and return the file path."""
    os.makedirs(directory, exist_ok=True)
    if not filename:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        filename = f"resource_demand_{timestamp}.csv"
    path = os.path.join(directory, filename)
    with open(path, "w", encoding="utf-8", newline="") as fh:
        fh.write(csv_content)
    return path


def slugify(value: str) -> str:
    """Simple filename-safe slugifier: keep alphanum and underscores."""
    value = value.strip().lower()
    value = re.sub(r"[^a-z0-9 _-]", "", value)
    value = re.sub(r"[\s-]+", "_", value)
    return value


def safe_csv_name(raw: str) -> str:
    raw = (raw or "").strip()
    base = raw[:-4] if raw.lower().endswith(".csv") else raw
    base = slugify(base)
    if not base:
        base = f"resource_demand_{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%SZ')}"
    return f"{base}.csv"


def initial_inputs(query: Dict[str, str]) -> Tuple[Assumptions, Dict[str, str]]:
    """Defaults overlaid with any assumption values passed as query parameters."""
    assumptions, errors = assumptions_from_mapping(query, default_assumptions())
    for name, message in errors.items():
        logger.warning("Rejected query parameter %s: %s", name, message)
    return assumptions, errors


def assumption_inputs(base: Assumptions) -> Assumptions:
    st.subheader("Model Assumptions")
    values = {}
    for name in ASSUMPTION_FIELDS:
        values[name] = st.number_input(
            ASSUMPTION_LABELS[name],
            value=float(getattr(base, name)),
            step=0.1 if name == "peak_month_multiplier" else 1.0,
            key=f"assumption_{name}",
        )
    return Assumptions(**{k: float(v) for k, v in values.items()})


def distribution_inputs(base: Sequence[MonthFactor]) -> Tuple[MonthFactor, ...]:
    st.subheader("Monthly Distribution")
    months = []
    cols = st.columns(3)
    for i, month in enumerate(base):
        with cols[i % 3]:
            factor = st.number_input(
                month.label, min_value=0.0, value=float(month.factor), step=0.1,
                format="%.2f", key=f"factor_{i}",
            )
        months.append(MonthFactor(label=month.label, factor=float(factor)))
    return tuple(months)


def render_summary(result: ResultBundle) -> None:
    st.markdown("### Resource Requirement Summary")
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total Resources Needed", result.final_recommendation)
    c2.metric("Annual Projects", round_half_up(result.annual_project_count))
    c3.metric("Total Hours", f"{result.total_annual_hours:,.0f}")
    c4.metric("Avg Concurrent Projects", f"{result.avg_projects_in_progress:.1f}")

    st.markdown("### Calculation Methods")
    m1, m2, m3 = st.columns(3)
    m1.metric("Hours-Based", f"{result.hours_based_resources} resources")
    m2.metric("Concurrency-Based", f"{result.concurrency_based_resources} resources")
    m3.metric("Peak-Load Based", f"{result.peak_based_resources} resources")
    st.caption(
        f"Base requirement {result.base_requirement} (largest of the three) "
        f"+ safety buffer {result.safety_buffer} = {result.final_recommendation}"
    )


def render_export(result: ResultBundle, assumptions: Assumptions, frame: pd.DataFrame,
                  settings: AppSettings) -> None:
    st.markdown("### Export")
    title = st.text_input("Scenario title", value="", key="scenario_title")
    csv_content = format_csv(frame_to_rows(frame), summary=summary_header(result, assumptions, title))

    # Persist the suggested name so the timestamp does not change on every rerun
    if "download_name" not in st.session_state:
        st.session_state["download_name"] = safe_csv_name(title)
    download_name = st.text_input("Download filename", key="download_name",
                                  help="Enter a filename (will be sanitized and saved with .csv)")
    safe_name = safe_csv_name(download_name or title)

    st.download_button("Download breakdown CSV", data=csv_content, file_name=safe_name, mime="text/csv")

    if st.button(f"Save breakdown to server ({settings.output_dir}/)"):
        try:
            saved_path = save_csv_to_disk(csv_content, filename=safe_name, directory=settings.output_dir)
        except OSError as e:
            logger.exception("Failed to save %s", safe_name)
            st.error(f"Error saving CSV: {e}")
        else:
            logger.info("Saved breakdown to %s", saved_path)
            st.success(f"Saved CSV to {saved_path}")


def main():
    st.set_page_config(page_title="Clinical Resource Demand Model", layout="wide")
    settings = load_settings()
    configure_logging(settings.log_level)

    st.title("Clinical Resource Demand Model")

    base_assumptions, query_errors = initial_inputs(dict(st.query_params))
    for name, message in query_errors.items():
        st.warning(f"Ignored {ASSUMPTION_LABELS[name]} from URL: {message}")

    inputs_col, results_col = st.columns([1, 2])
    with inputs_col:
        assumptions = assumption_inputs(base_assumptions)
        distribution = distribution_inputs(default_distribution())

    with results_col:
        try:
            result = compute(assumptions, distribution)
        except InvalidAssumptionError as e:
            logger.warning("Invalid inputs: %s", e)
            for message in e.errors:
                st.error(message)
            return
        logger.debug("Recomputed: final recommendation %s", result.final_recommendation)

        render_summary(result)

        frame = monthly_frame(result)
        st.markdown("### 12-Month Resource Demand")
        st.plotly_chart(build_demand_chart(frame), use_container_width=True)

        st.markdown("### Monthly Breakdown")
        styled = frame.style.map(utilization_color, subset=["Utilization %"]).format(
            {"Clinical Hours": "{:,.0f}", "Utilization %": "{:.1f}%"}, na_rep="n/a")
        st.dataframe(styled, hide_index=True, use_container_width=True)

        render_export(result, assumptions, frame, settings)


if __name__ == "__main__":
    main()
