import io
import base64
from typing import Dict, Any, List

import matplotlib.pyplot as plt
import matplotlib.patches as mpatches
import networkx as nx
import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

import streamlit as st

from .dates import DAY, parse_date
from .models import Activity, Relationship
from .network import build_graph
from .ui_styles import path_color


def _dated(activities_data: List[Dict[str, Any]]) -> List[tuple]:
    rows = []
    for data in activities_data:
        act = Activity.from_dict(data)
        start = parse_date(act.start)
        finish = parse_date(act.finish)
        if start is None or finish is None:
            continue
        rows.append((act, start, finish))
    return rows


def _empty_figure(message: str) -> plt.Figure:
    fig, ax = plt.subplots(figsize=(10, 6))
    ax.text(0.5, 0.5, message, ha='center', va='center', fontsize=14)
    ax.axis('off')
    return fig


@st.cache_resource(show_spinner="Generating Network Diagram...")
def create_network_diagram(
    activities_data: List[Dict[str, Any]],
    relationships_data: List[Dict[str, Any]],
    theme: Dict[str, Any],
) -> plt.Figure:
    """
    Network diagram of annotated activities using NetworkX and Matplotlib.
    Nodes are placed by start date (x) and float path (y).
    Expects plain dicts from Activity.to_dict()/Relationship.to_dict() for caching compatibility.
    """
    rows = _dated(activities_data)
    if not rows:
        return _empty_figure('No activities to display')

    baseline = min(start for _, start, _ in rows)
    activities = {act.id: act for act, _, _ in rows}
    relationships = [Relationship.from_dict(r).normalized() for r in relationships_data]
    G = build_graph(activities.keys(), relationships)

    pos = {}
    seen_per_path: Dict[int, int] = {}
    for act, start, _ in sorted(rows, key=lambda r: r[1]):
        path = act.float_path_number or 0
        slot = seen_per_path.get(path, 0)
        seen_per_path[path] = slot + 1
        pos[act.id] = ((start - baseline) / DAY, -path - 0.35 * (slot % 2))

    fig, ax = plt.subplots(figsize=(max(14, len(rows) * 0.8), max(8, len(seen_per_path) * 1.5)))

    edge_colors = {
        'FS': theme["edge_fs"],
        'SS': theme["edge_ss"],
        'FF': theme["edge_ff"],
        'SF': theme["edge_sf"],
    }
    edge_styles = {'FS': 'solid', 'SS': 'dashed', 'FF': 'dotted', 'SF': 'dashdot'}

    for u, v, data in G.edges(data=True):
        rel_type = data.get('rel_type', 'FS')
        nx.draw_networkx_edges(G, pos, edgelist=[(u, v)],
                               edge_color=edge_colors.get(rel_type, theme["edge_fs"]),
                               style=edge_styles.get(rel_type, 'solid'),
                               arrows=True, arrowsize=16,
                               connectionstyle="arc3,rad=0.1", ax=ax, width=1.5)

    for node in G.nodes():
        act = activities[node]
        nx.draw_networkx_nodes(G, pos, nodelist=[node],
                               node_color=path_color(theme, act.float_path_number),
                               node_size=2200, node_shape='s', ax=ax,
                               edgecolors=theme["critical"] if act.is_critical else theme["graph_edge"],
                               linewidths=3 if act.is_critical else 1)

    labels = {}
    for node in G.nodes():
        act = activities[node]
        if act.total_float_days is not None:
            labels[node] = f"{node}\nP{act.float_path_number}\nTF:{act.total_float_days:g}"
        else:
            labels[node] = node
    nx.draw_networkx_labels(G, pos, labels, font_size=7, font_color='white', ax=ax)

    legend_elements = [
        mpatches.Patch(color=theme["critical"], label='Float Path 1 (driving)'),
        plt.Line2D([0], [0], color=theme["edge_fs"], linewidth=2, linestyle='solid', label='FS (Finish-to-Start)'),
        plt.Line2D([0], [0], color=theme["edge_ss"], linewidth=2, linestyle='dashed', label='SS (Start-to-Start)'),
        plt.Line2D([0], [0], color=theme["edge_ff"], linewidth=2, linestyle='dotted', label='FF (Finish-to-Finish)'),
        plt.Line2D([0], [0], color=theme["edge_sf"], linewidth=2, linestyle='dashdot', label='SF (Start-to-Finish)'),
    ]
    ax.legend(handles=legend_elements, loc='upper left', bbox_to_anchor=(1.02, 1), fontsize=8)
    ax.set_title('Activity Network by Float Path', fontsize=14, fontweight='bold')
    ax.axis('off')
    plt.tight_layout()
    return fig


@st.cache_resource(show_spinner="Generating Static Gantt...")
def create_gantt_chart(activities_data: List[Dict[str, Any]], theme: Dict[str, Any]) -> plt.Figure:
    """
    Static Gantt chart in days since the earliest start, with total float tails.
    """
    rows = _dated(activities_data)
    if not rows:
        return _empty_figure('No activities to display')

    baseline = min(start for _, start, _ in rows)
    rows = sorted(rows, key=lambda r: (r[1], r[0].id), reverse=True)

    fig, ax = plt.subplots(figsize=(14, max(6, len(rows) * 0.5)))
    max_days = 0.0
    for i, (act, start, finish) in enumerate(rows):
        left = (start - baseline) / DAY
        width = max((finish - start) / DAY, 0.0)
        color = path_color(theme, act.float_path_number)
        ax.barh(i, width, left=left, height=0.6, color=color, edgecolor=color, linewidth=2)
        ax.text(left + width / 2, i, act.id, ha='center', va='center',
                color='white', fontweight='bold', fontsize=9)

        tail = act.total_float_days or 0.0
        if not act.is_critical and tail > 0:
            ax.barh(i, tail, left=left + width, height=0.3,
                    color='lightgray', edgecolor='gray', linewidth=1, alpha=0.7)
        max_days = max(max_days, left + width + tail)

    ax.set_yticks(range(len(rows)))
    ax.set_yticklabels([f"{act.id}: {act.name[:20]}" for act, _, _ in rows])
    ax.set_xlabel(f'Days since {baseline:%Y-%m-%d}', fontsize=12)
    ax.set_title('Project Gantt Chart', fontsize=14, fontweight='bold')

    major_ticks = np.arange(0, max_days + 1, max(1, int(max_days / 20)))
    ax.set_xticks(major_ticks)
    ax.set_xlim(-0.5, max_days + 1)
    ax.grid(axis='x', linestyle='--', alpha=0.7)
    ax.set_axisbelow(True)

    legend_elements = [
        mpatches.Patch(color=theme["critical"], label='Float Path 1'),
        mpatches.Patch(color='lightgray', label='Total Float'),
    ]
    ax.legend(handles=legend_elements, loc='upper right')
    plt.tight_layout()
    return fig


@st.cache_data(show_spinner="Generating Interactive Gantt...")
def create_plotly_gantt(
    activities_data: List[Dict[str, Any]], theme: Dict[str, Any], color_by: str = "path"
) -> go.Figure:
    """
    Interactive Gantt timeline coloured by float path or by criticality.
    """
    data = []
    for act, start, finish in _dated(activities_data):
        data.append(
            {
                "Task": f"{act.id} - {act.name}" if act.name else act.id,
                "Start": start,
                "Finish": finish,
                "Path": f"Path {act.float_path_number}" if act.float_path_number else "Unassigned",
                "Critical": "Yes" if act.is_critical else "No",
                "ID": act.id,
                "TF": act.total_float_days,
                "FF": act.free_float_days,
                "Row": act.optimized_row,
            }
        )

    df = pd.DataFrame(data)
    if df.empty:
        fig = go.Figure()
        fig.add_annotation(text="No activities to display", x=0.5, y=0.5, showarrow=False)
        fig.update_layout(height=400)
        return fig

    if color_by == "critical":
        color = "Critical"
        color_map = {"Yes": theme["critical"], "No": theme["noncritical"]}
    else:
        color = "Path"
        color_map = {"Unassigned": theme["noncritical"]}
        for label in df["Path"].unique():
            if label != "Unassigned":
                color_map[label] = path_color(theme, int(label.split()[-1]))

    fig = px.timeline(
        df,
        x_start="Start",
        x_end="Finish",
        y="Task",
        color=color,
        color_discrete_map=color_map,
        hover_data=["ID", "Path", "TF", "FF", "Critical"],
        custom_data=["ID"],
    )
    fig.update_yaxes(autorange="reversed")
    fig.update_layout(
        height=max(450, len(df) * 32),
        margin=dict(l=10, r=10, t=30, b=10),
        title="Interactive Gantt Timeline",
        xaxis_title="Calendar Timeline",
        yaxis_title="Activities",
        template="plotly_white",
        paper_bgcolor=theme["surface"],
        plot_bgcolor=theme["surface"],
        font=dict(color=theme["ink"]),
    )
    fig.update_xaxes(gridcolor=theme["border"])
    fig.update_yaxes(gridcolor=theme["border"])
    return fig


def fig_to_base64(fig: plt.Figure) -> str:
    buffer = io.BytesIO()
    fig.savefig(buffer, format="png", dpi=150, bbox_inches="tight")
    buffer.seek(0)
    encoded = base64.b64encode(buffer.read()).decode("utf-8")
    buffer.close()
    return encoded
