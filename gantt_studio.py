"""
Float Path Studio
=================
Streamlit front end for the multiple-float-path schedule engine.

Imports a JSON project or an XER dump, computes early/late dates, total and
free float and float paths over FS/SS/FF/SF relationships with lags, and
shows the result as tables, an interactive Gantt timeline, a network diagram
and row-packing layout candidates.

Run with:  streamlit run gantt_studio.py
"""

import streamlit as st

from floatpath.engine import annotate_activities, schedule_network
from floatpath.models import Activity, ProjectData, Relationship
from floatpath.parsers import parse_project_json, parse_xer
from floatpath.ui_components import (
    activities_from_frame,
    activities_to_frame,
    build_report_html,
    compute_network_health,
    analyze_relationship_conflicts,
    render_float_path_panel,
    render_layout_panel,
)
from floatpath.ui_styles import THEMES, get_active_theme, get_theme_css
from floatpath.visualizations import create_network_diagram, create_plotly_gantt


def sample_project() -> ProjectData:
    activities = [
        Activity("A1", "Design", "2024-01-01", "2024-01-10"),
        Activity("A2", "Build", "2024-01-15", "2024-01-25"),
        Activity("A3", "Commission", "2024-01-30", "2024-02-05"),
        Activity("B1", "Procure spares", "2024-01-05", "2024-01-12"),
        Activity("C1", "Permits", "2024-01-01", "2024-01-10"),
    ]
    relationships = [
        Relationship("A1", "A2", "FS", 0),
        Relationship("A2", "A3", "FS", 0),
        Relationship("C1", "A2", "FS", 0),
    ]
    return ProjectData("Sample project", activities, relationships)


def load_upload(uploaded) -> ProjectData:
    text = uploaded.getvalue().decode("utf-8", errors="replace")
    if uploaded.name.lower().endswith(".xer"):
        return parse_xer(text)
    return parse_project_json(text)


def main():
    """Main Streamlit application."""

    st.set_page_config(
        page_title="Float Path Studio",
        page_icon="📊",
        layout="wide",
        initial_sidebar_state="expanded"
    )

    if 'project' not in st.session_state:
        st.session_state.project = sample_project()
    if 'result' not in st.session_state:
        st.session_state.result = None

    with st.sidebar:
        st.header("Project")
        uploaded = st.file_uploader("Import schedule", type=["json", "xer"])
        if uploaded is not None and st.button("Load file", type="primary", use_container_width=True):
            try:
                st.session_state.project = load_upload(uploaded)
                st.session_state.result = None
                st.success(f"Loaded {len(st.session_state.project.activities)} activities.")
            except ValueError as exc:
                st.error(str(exc))

        if st.button("Reset to sample", use_container_width=True):
            st.session_state.project = sample_project()
            st.session_state.result = None

        st.header("Settings")
        theme_name = st.selectbox("Theme", options=list(THEMES.keys()))
        free_float_basis = st.radio("Free float basis", options=["late", "early"], horizontal=True)
        color_by = st.radio("Colour Gantt by", options=["path", "critical"], horizontal=True)

    theme = get_active_theme(theme_name)
    st.markdown(get_theme_css(theme), unsafe_allow_html=True)

    project: ProjectData = st.session_state.project
    st.title("📊 Float Path Studio")
    st.caption(project.project_name or "Untitled schedule")

    tab_schedule, tab_paths, tab_gantt, tab_network, tab_layout, tab_log = st.tabs(
        ["Schedule", "Float Paths", "Gantt", "Network", "Layout", "Calculation Log"]
    )

    with tab_schedule:
        edited = st.data_editor(activities_to_frame(project.activities), num_rows="dynamic", use_container_width=True)
        if st.button("Calculate", type="primary"):
            project.activities = activities_from_frame(edited)
            st.session_state.result = schedule_network(
                project.activities, project.relationships, free_float_basis=free_float_basis
            )

        result = st.session_state.result
        if result is not None:
            health = compute_network_health(result, project.relationships)
            col_a, col_b, col_c = st.columns(3)
            col_a.metric("Network health", f"{health['score']}/100", health["status"])
            col_b.metric("Finish activity", result.finish_activity_id or "-")
            col_c.metric("Converged", "Yes" if result.converged else "No")
            for error in result.errors:
                st.warning(f"{error.activity_id}: {error.message}")
            if result.cycle:
                st.error(f"Circular dependency: {' -> '.join(result.cycle)}")
            st.dataframe(result.to_dataframe(), use_container_width=True)

            conflicts = analyze_relationship_conflicts(result, project.relationships)
            if not conflicts.empty:
                st.subheader("Unsatisfied relationships")
                st.dataframe(conflicts, use_container_width=True)

            report = build_report_html(
                project.project_name, annotate_activities(project.activities, result),
                project.relationships, result, theme,
            )
            st.download_button("Download HTML report", report, file_name="float_path_report.html", mime="text/html")

    result = st.session_state.result
    annotated = (
        annotate_activities(project.activities, result, project.relationships)
        if result is not None else project.activities
    )

    with tab_paths:
        if result is None:
            st.info("Calculate the schedule to see float paths.")
        else:
            render_float_path_panel(result, theme)

    with tab_gantt:
        st.plotly_chart(
            create_plotly_gantt([a.to_dict() for a in annotated], theme, color_by=color_by),
            use_container_width=True,
        )

    with tab_network:
        st.pyplot(create_network_diagram(
            [a.to_dict() for a in annotated], [r.to_dict() for r in project.relationships], theme
        ))

    with tab_layout:
        placed = render_layout_panel(annotated, project.relationships)
        if placed:
            st.dataframe(
                [{"ID": a.id, "Row": a.optimized_row, "Change": a.row_change} for a in placed],
                use_container_width=True,
            )

    with tab_log:
        if result is None:
            st.info("No calculation yet.")
        else:
            st.code("\n".join(result.calculation_log), language="text")


if __name__ == "__main__":
    main()
