from typing import Dict, Any, List, Optional, Sequence

import html
import pandas as pd
import streamlit as st
import matplotlib.pyplot as plt

from .engine import summarize_float_paths
from .layout import analyze_schedule_layout
from .models import Activity, Relationship, ScheduleResult
from .network import EPSILON
from .optimizer import apply_layout_candidate, generate_layout_candidates
from .ui_styles import path_color
from .visualizations import create_network_diagram, create_gantt_chart, fig_to_base64


def _is_missing(value: object) -> bool:
    try:
        return value is None or pd.isna(value)
    except (TypeError, ValueError):
        return False


def _safe_str(value: object) -> str:
    if _is_missing(value):
        return ""
    return str(value).strip()


def _safe_float(value: object, default: Optional[float] = None) -> Optional[float]:
    if _is_missing(value):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def activities_to_frame(activities: Sequence[Activity]) -> pd.DataFrame:
    """Editable activity table."""
    return pd.DataFrame(
        [
            {"ID": a.id, "Name": a.name, "Start": a.start, "Finish": a.finish, "Duration": a.duration_days}
            for a in activities
        ],
        columns=["ID", "Name", "Start", "Finish", "Duration"],
    )


def activities_from_frame(df: pd.DataFrame) -> List[Activity]:
    """Read activities back from an edited table; rows without an ID are dropped."""
    activities = []
    for _, row in df.iterrows():
        act_id = _safe_str(row.get("ID"))
        if not act_id:
            continue
        activities.append(
            Activity(
                id=act_id,
                name=_safe_str(row.get("Name")),
                start=_safe_str(row.get("Start")),
                finish=_safe_str(row.get("Finish")),
                duration_days=_safe_float(row.get("Duration")),
            )
        )
    return activities


def analyze_relationship_conflicts(
    result: ScheduleResult, relationships: Sequence[Relationship]
) -> pd.DataFrame:
    """Relationships whose constraint the computed early dates do not satisfy."""
    by_id = result.metrics_by_id()
    rows = []
    for rel in relationships:
        rel = rel.normalized()
        pred = by_id.get(rel.predecessor_id)
        succ = by_id.get(rel.successor_id)
        if pred is None or succ is None:
            continue
        if rel.relation_type == "FS":
            violation = (pred.ef + rel.lag) - succ.es
            constraint = f"ES >= EF({pred.activity_id}) + {rel.lag:g}"
        elif rel.relation_type == "SS":
            violation = (pred.es + rel.lag) - succ.es
            constraint = f"ES >= ES({pred.activity_id}) + {rel.lag:g}"
        elif rel.relation_type == "FF":
            violation = (pred.ef + rel.lag) - succ.ef
            constraint = f"EF >= EF({pred.activity_id}) + {rel.lag:g}"
        else:
            violation = (pred.es + rel.lag) - succ.ef
            constraint = f"EF >= ES({pred.activity_id}) + {rel.lag:g}"

        if violation > EPSILON:
            rows.append({
                "Activity": succ.activity_id, "Predecessor": pred.activity_id, "Type": rel.relation_type,
                "Lag": rel.lag, "Violation": violation, "Constraint": constraint,
            })

    return pd.DataFrame(rows, columns=["Activity", "Predecessor", "Type", "Lag", "Violation", "Constraint"])


def compute_network_health(result: ScheduleResult, relationships: Sequence[Relationship]) -> Dict[str, object]:
    conflicts = analyze_relationship_conflicts(result, relationships)
    known = set(result.metrics_by_id())
    total_relations = sum(
        1 for r in relationships if r.predecessor_id in known and r.successor_id in known
    )
    conflict_count = len(conflicts)

    if total_relations == 0:
        base_score = 100
    else:
        base_score = max(0, int(100 - (conflict_count / total_relations) * 100))

    if not result.converged:
        base_score = max(0, base_score - 30)
    if result.errors:
        base_score = max(0, base_score - min(20, len(result.errors) * 5))
    if total_relations < max(1, len(result.metrics) - 1):
        base_score = max(0, base_score - 10)

    status = "Healthy"
    if base_score < 70: status = "At Risk"
    if base_score < 40: status = "Critical"

    return {
        "score": base_score, "status": status, "total_relations": total_relations,
        "conflicts": conflict_count, "rejected": len(result.errors), "converged": result.converged,
    }


def build_report_html(
    project_name: str,
    activities: Sequence[Activity],
    relationships: Sequence[Relationship],
    result: ScheduleResult,
    theme: Dict[str, Any],
) -> str:
    """
    Build a self-contained HTML report for the schedule.
    """
    activities_data = [a.to_dict() for a in activities]
    relationships_data = [r.to_dict() for r in relationships]
    net_fig = create_network_diagram(activities_data, relationships_data, theme)
    gantt_fig = create_gantt_chart(activities_data, theme)

    net_b64 = fig_to_base64(net_fig)
    gantt_b64 = fig_to_base64(gantt_fig)

    plt.close(net_fig)
    plt.close(gantt_fig)

    rows_html = ""
    for _, row in result.to_dataframe().iterrows():
        style = f"background-color: {theme['critical_soft']}; font-weight: bold;" if row['Critical'] == 'Yes' else ""
        rows_html += f"""
        <tr style="{style}">
            <td>{html.escape(str(row['ID']))}</td>
            <td>{row['Duration']}</td>
            <td>{row['ES']}</td>
            <td>{row['EF']}</td>
            <td>{row['LS']}</td>
            <td>{row['LF']}</td>
            <td>{row['TF']}</td>
            <td>{row['FF']}</td>
            <td>{row['Path']}</td>
        </tr>
        """

    paths_html = ""
    for path in summarize_float_paths(result.metrics):
        color = path_color(theme, path.number)
        ids = " &rarr; ".join(html.escape(a) for a in path.activity_ids)
        paths_html += f'<li><span style="color: {color}; font-weight: bold;">Path {path.number}</span>: {ids}</li>'

    warnings_html = ""
    if not result.converged:
        warnings_html += "<li>Forward/backward passes did not converge; values are partial.</li>"
    if result.cycle:
        warnings_html += f"<li>Circular dependency: {html.escape(' -> '.join(result.cycle))}</li>"
    for error in result.errors:
        warnings_html += f"<li>{html.escape(error.activity_id)}: {html.escape(error.message)}</li>"

    title = html.escape(project_name or "Untitled schedule")
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="UTF-8">
        <title>Float Path Report - {title}</title>
        <style>
            body {{ font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; color: {theme['ink']}; background: {theme['bg']}; line-height: 1.6; }}
            .container {{ max-width: 1000px; margin: 0 auto; padding: 40px; background: white; }}
            h1 {{ color: {theme['accent']}; border-bottom: 2px solid {theme['accent']}; padding-bottom: 10px; }}
            h2 {{ color: {theme['accent2']}; margin-top: 30px; }}
            table {{ width: 100%; border-collapse: collapse; margin: 20px 0; }}
            th, td {{ padding: 8px; border: 1px solid #ddd; text-align: left; }}
            .img-container img {{ max-width: 100%; height: auto; border: 1px solid #ddd; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>Schedule Report: {title}</h1>
            <p>Project finish activity: <b>{html.escape(result.finish_activity_id or '-')}</b>,
               duration {result.project_duration:g} days, {len(result.metrics)} activities.</p>

            <h2>Schedule Table</h2>
            <table>
                <thead>
                    <tr><th>ID</th><th>Dur</th><th>ES</th><th>EF</th><th>LS</th><th>LF</th><th>TF</th><th>FF</th><th>Path</th></tr>
                </thead>
                <tbody>{rows_html}</tbody>
            </table>

            <h2>Float Paths</h2>
            <ul>{paths_html}</ul>

            <h2>Warnings</h2>
            <ul>{warnings_html or '<li>None</li>'}</ul>

            <h2>Gantt Chart</h2>
            <div class="img-container"><img src="data:image/png;base64,{gantt_b64}" alt="Gantt Chart"></div>

            <h2>Network Diagram</h2>
            <div class="img-container"><img src="data:image/png;base64,{net_b64}" alt="Network Diagram"></div>

            <p style="font-size: 12px; color: #888; margin-top: 40px; text-align: center;">
                Generated by Float Path Studio &bull; {pd.Timestamp.now().strftime('%Y-%m-%d %H:%M')}
            </p>
        </div>
    </body>
    </html>
    """


def render_float_path_panel(result: ScheduleResult, theme: Dict[str, Any]) -> None:
    paths = summarize_float_paths(result.metrics)
    if not paths:
        st.info("Calculate the schedule to see float paths.")
        return

    col_a, col_b, col_c = st.columns(3)
    col_a.metric("Float paths", len(paths))
    col_b.metric("Critical activities", sum(1 for m in result.metrics if m.is_critical))
    col_c.metric("Project duration (days)", f"{result.project_duration:g}")

    for path in paths:
        chips = "".join(
            f'<span class="fp-path-chip" style="background: {path_color(theme, path.number)};">{html.escape(a)}</span>'
            for a in path.activity_ids
        )
        label = "critical" if path.is_critical else f"min TF {path.min_total_float:g} d"
        st.markdown(f"**Path {path.number}** ({label})<br>{chips}", unsafe_allow_html=True)


def render_layout_panel(
    activities: Sequence[Activity], relationships: Sequence[Relationship]
) -> Optional[List[Activity]]:
    """Show layout candidates; returns the activities placed by the chosen candidate."""
    analysis = analyze_schedule_layout(activities, relationships)
    baseline = analysis.baseline_metrics
    col_a, col_b, col_c = st.columns(3)
    col_a.metric("Rows", baseline.total_height)
    col_b.metric("White space", f"{baseline.white_space_percentage:.1f}%")
    col_c.metric("Row-sharing opportunities", baseline.potential_savings)

    result = generate_layout_candidates(activities, analysis.optimization_opportunities)
    if not result.candidates:
        st.info("No layout optimization possible for this schedule.")
        return None

    st.dataframe(
        pd.DataFrame(
            [
                {"Candidate": c.name, "Rows saved": c.space_savings, "Moves": len(c.activities), "Score": round(c.score, 2)}
                for c in result.candidates
            ]
        ),
        use_container_width=True,
    )
    names = [c.name for c in result.candidates]
    chosen = st.selectbox("Apply candidate", options=names, index=0)
    candidate = result.candidates[names.index(chosen)]
    return apply_layout_candidate(activities, candidate)
