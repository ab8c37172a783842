from __future__ import annotations

import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .dates import DAY, parse_date
from .engine import schedule_network, summarize_float_paths
from .models import (
    Activity,
    ActivityCompatibility,
    BaselineMetrics,
    DependencyNode,
    LayoutAnalysis,
    OptimizationOpportunity,
    Relationship,
    TimeGap,
)
from .network import compute_activity_relationships, dependency_depths

TIME_WINDOW_DAYS = 30
MAX_COMPATIBILITY_PAIRS = 10000
MAX_ROW_SHARING_OPPORTUNITIES = 1000
MAX_GAP_FILLING_OPPORTUNITIES = 500

ProgressCallback = Callable[[str, int], None]


def _spans(activities: Sequence[Activity]) -> List[Tuple[Activity, pd.Timestamp, pd.Timestamp]]:
    """Activities paired with their parsed dates; unparseable ones are left out."""
    spans = []
    for act in activities:
        start = parse_date(act.start)
        finish = parse_date(act.finish)
        if start is None or finish is None:
            continue
        spans.append((act, start, finish))
    return spans


def analyze_time_gaps(activities: Sequence[Activity]) -> List[TimeGap]:
    """Report every gap between consecutive activities in start order."""
    gaps: List[TimeGap] = []
    ordered = sorted(_spans(activities), key=lambda span: span[1])

    for (current, _, current_end), (following, next_start, _) in zip(ordered, ordered[1:]):
        if current_end < next_start:
            gaps.append(
                TimeGap(
                    start=current_end,
                    end=next_start,
                    duration=(next_start - current_end) / DAY,
                    available_rows=1,
                    activities_in_gap=[current.id, following.id],
                )
            )
    return gaps


def analyze_activity_compatibility(
    activities: Sequence[Activity],
    time_window_days: float = TIME_WINDOW_DAYS,
    max_pairs: int = MAX_COMPATIBILITY_PAIRS,
) -> List[ActivityCompatibility]:
    """
    Decide which activity pairs could share a row.

    Only pairs whose second activity starts within ``time_window_days`` of the
    first activity's span are compared, and at most ``max_pairs`` of them.
    """
    compatibility: List[ActivityCompatibility] = []
    spans = _spans(activities)
    window = pd.Timedelta(days=time_window_days)
    pairs_analyzed = 0

    for i, (act1, start1, end1) in enumerate(spans):
        if pairs_analyzed >= max_pairs:
            break
        window_start = start1 - window
        window_end = end1 + window

        for act2, start2, end2 in spans[i + 1:]:
            if pairs_analyzed >= max_pairs:
                break
            if start2 < window_start or start2 > window_end:
                continue
            pairs_analyzed += 1

            time_overlap = not (end1 <= start2 or end2 <= start1)
            if time_overlap:
                gap_duration = 0.0
            else:
                gap_duration = min(abs(start2 - end1), abs(start1 - end2)) / DAY
            can_share_row = not time_overlap and gap_duration > 0

            constraints = []
            if time_overlap:
                constraints.append("time_overlap")
            if act1.is_critical and act2.is_critical:
                constraints.append("both_critical")

            compatibility.append(
                ActivityCompatibility(
                    activity1=act1.id,
                    activity2=act2.id,
                    can_share_row=can_share_row,
                    time_overlap=time_overlap,
                    gap_duration=gap_duration,
                    space_savings=1 if can_share_row else 0,
                    constraints=constraints,
                )
            )
    return compatibility


def identify_optimization_opportunities(
    time_gaps: Sequence[TimeGap], compatibility: Sequence[ActivityCompatibility]
) -> List[OptimizationOpportunity]:
    opportunities: List[OptimizationOpportunity] = []

    shareable = [c for c in compatibility if c.can_share_row][:MAX_ROW_SHARING_OPPORTUNITIES]
    for index, c in enumerate(shareable):
        opportunities.append(
            OptimizationOpportunity(
                id=f"row_sharing_{index}",
                type="row_sharing",
                activities=[c.activity1, c.activity2],
                space_savings=c.space_savings,
                constraints=list(c.constraints),
                priority=1 if c.gap_duration > 30 else 2,
                description=(
                    f"Activities {c.activity1} and {c.activity2} can share a row "
                    f"({c.gap_duration:.1f} day gap)"
                ),
                gap_duration=c.gap_duration,
            )
        )

    fillable = [gap for gap in time_gaps if gap.duration > 1][:MAX_GAP_FILLING_OPPORTUNITIES]
    for index, gap in enumerate(fillable):
        opportunities.append(
            OptimizationOpportunity(
                id=f"gap_filling_{index}",
                type="gap_filling",
                activities=list(gap.activities_in_gap),
                space_savings=0,
                constraints=[],
                priority=1 if gap.duration > 7 else 3,
                description=(
                    f"Gap between activities: {gap.duration:.1f} days "
                    f"({gap.start:%Y-%m-%d} - {gap.end:%Y-%m-%d})"
                ),
                gap_duration=gap.duration,
            )
        )

    return opportunities


def calculate_baseline_metrics(activities: Sequence[Activity]) -> BaselineMetrics:
    """Row usage of the unoptimized layout: one activity per row."""
    total_activities = len(activities)
    spans = _spans(activities)

    utilization = 1.0
    if spans:
        project_span = (max(s[2] for s in spans) - min(s[1] for s in spans)) / DAY
        busy = sum((finish - start) / DAY for _, start, finish in spans)
        if project_span > 0:
            utilization = busy / (project_span * len(spans))

    return BaselineMetrics(
        total_height=total_activities,
        white_space_percentage=round((1.0 - utilization) * 100, 2),
        average_row_utilization=utilization,
        critical_path_length=sum(1 for a in activities if a.is_critical),
        total_activities=total_activities,
    )


def build_dependency_graph(
    activities: Sequence[Activity], relationships: Sequence[Relationship]
) -> Dict[str, DependencyNode]:
    linked = compute_activity_relationships(activities, relationships)
    depths = dependency_depths([a.id for a in linked], relationships)
    return {
        act.id: DependencyNode(
            activity_id=act.id,
            depth=depths.get(act.id, 1),
            predecessors=list(act.predecessors),
            successors=list(act.successors),
        )
        for act in linked
    }


def group_activities_by_structure(activities: Sequence[Activity]) -> Dict[str, List[Activity]]:
    """Group by the first character of the id, a stand-in for WBS placement."""
    groups: Dict[str, List[Activity]] = {}
    for act in activities:
        groups.setdefault(act.id[:1], []).append(act)
    return groups


def analyze_schedule_layout(
    activities: Sequence[Activity],
    relationships: Optional[Sequence[Relationship]] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> LayoutAnalysis:
    """
    Main analysis entry point.

    ``relationships`` is optional; when given, the dependency graph and the
    float path partition are included in the analysis.
    """
    started = time.perf_counter()

    def progress(step: str, percent: int) -> None:
        if on_progress:
            on_progress(step, percent)

    progress("Initializing analysis...", 0)

    progress("Analyzing time gaps...", 10)
    time_gaps = analyze_time_gaps(activities)

    progress("Analyzing activity compatibility...", 30)
    compatibility = analyze_activity_compatibility(activities)

    progress("Identifying optimization opportunities...", 60)
    opportunities = identify_optimization_opportunities(time_gaps, compatibility)

    progress("Calculating baseline metrics...", 80)
    baseline = calculate_baseline_metrics(activities)
    baseline.total_gaps = len(time_gaps)
    baseline.potential_savings = sum(opp.space_savings for opp in opportunities)

    relationships = list(relationships or [])
    dependency_graph = build_dependency_graph(activities, relationships)
    float_paths = []
    if relationships:
        progress("Tracing float paths...", 90)
        float_paths = summarize_float_paths(schedule_network(activities, relationships).metrics)

    grouping_info = {
        key: [a.id for a in members]
        for key, members in group_activities_by_structure(activities).items()
    }

    progress("Analysis complete!", 100)

    return LayoutAnalysis(
        time_gaps=time_gaps,
        compatibility_matrix=compatibility,
        optimization_opportunities=opportunities,
        baseline_metrics=baseline,
        dependency_graph=dependency_graph,
        float_paths=float_paths,
        grouping_info=grouping_info,
        processing_time=(time.perf_counter() - started) * 1000,
    )
