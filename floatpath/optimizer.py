from __future__ import annotations

import time
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from .dates import parse_date
from .layout import analyze_schedule_layout, group_activities_by_structure
from .models import (
    Activity,
    LayoutCandidate,
    OptimizationConstraints,
    OptimizationOpportunity,
    OptimizationResult,
    RowChange,
)

BALANCED_CHANGE_LIMIT = 50
GROUP_CHANGE_LIMIT = 10
CRITICAL_FOCUS_LIMIT = 30

Change = Tuple[str, int]  # (activity id, new row)


class _RowPlanner:
    """
    Applies row-sharing opportunities for one candidate.

    Two activities are merged onto the lower of their original rows when their
    spans do not overlap and neither has been moved yet in this pass.
    """

    def __init__(self, activities: Sequence[Activity]):
        self.rows: Dict[str, int] = {}
        self.spans = {}
        for index, act in enumerate(activities):
            self.rows.setdefault(act.id, index)
            self.spans.setdefault(act.id, (parse_date(act.start), parse_date(act.finish)))
        self.changes: List[Change] = []
        self.moved: set = set()
        self.space_savings = 0

    def can_share(self, activity1: str, activity2: str) -> bool:
        if activity1 == activity2:
            return False
        if activity1 in self.moved or activity2 in self.moved:
            return False
        if activity1 not in self.spans or activity2 not in self.spans:
            return False
        start1, end1 = self.spans[activity1]
        start2, end2 = self.spans[activity2]
        if None in (start1, end1, start2, end2):
            return False
        return end1 <= start2 or end2 <= start1

    def apply(self, opportunity: OptimizationOpportunity) -> bool:
        activity1, activity2 = opportunity.activities[:2]
        if not self.can_share(activity1, activity2):
            return False
        target_row = min(self.rows[activity1], self.rows[activity2])
        self.changes.append((activity1, target_row))
        self.changes.append((activity2, target_row))
        self.moved.update((activity1, activity2))
        self.space_savings += opportunity.space_savings
        return True

    def row_changes(self) -> List[RowChange]:
        return [
            RowChange(
                id=act_id,
                original_row=self.rows[act_id],
                optimized_row=new_row,
                row_change=new_row - self.rows[act_id],
            )
            for act_id, new_row in self.changes
        ]


def calculate_score(space_savings: int, change_count: int, algorithm: str) -> float:
    base_score = space_savings * 10
    change_penalty = change_count * 0.1
    algorithm_bonus = 5 if algorithm == "balanced" else 0
    return max(0.0, base_score - change_penalty + algorithm_bonus)


def _row_sharing(opportunities: Sequence[OptimizationOpportunity]) -> List[OptimizationOpportunity]:
    return [opp for opp in opportunities if opp.type == "row_sharing" and len(opp.activities) >= 2]


def _critical_ids(activities: Sequence[Activity]) -> set:
    return {a.id for a in activities if a.is_critical}


def _build_candidate(
    planner: _RowPlanner,
    candidate_id: str,
    name: str,
    description: str,
    constraints: List[str],
    algorithm: str,
) -> Optional[LayoutCandidate]:
    if not planner.changes:
        return None
    return LayoutCandidate(
        id=candidate_id,
        name=name,
        description=description,
        space_savings=planner.space_savings,
        activities=planner.row_changes(),
        constraints=constraints,
        score=calculate_score(planner.space_savings, len(planner.changes), algorithm),
        algorithm=algorithm,
    )


def generate_maximum_compression_layout(
    activities: Sequence[Activity],
    opportunities: Sequence[OptimizationOpportunity],
    constraints: OptimizationConstraints,
) -> Optional[LayoutCandidate]:
    """Highest savings first, no protection for critical activities."""
    planner = _RowPlanner(activities)
    ordered = sorted(_row_sharing(opportunities), key=lambda o: -o.space_savings)
    for opportunity in ordered[: constraints.max_row_changes]:
        planner.apply(opportunity)
    return _build_candidate(
        planner,
        "max_compression",
        "Maximum Compression",
        "Aggressive space optimization with maximum row sharing",
        ["time_overlap_prevention"],
        "maximum_compression",
    )


def generate_balanced_layout(
    activities: Sequence[Activity],
    opportunities: Sequence[OptimizationOpportunity],
    constraints: OptimizationConstraints,
) -> Optional[LayoutCandidate]:
    """Like maximum compression, but critical activities stay where they are."""
    planner = _RowPlanner(activities)
    critical = _critical_ids(activities)
    known = set(planner.rows)
    filtered = [
        opp
        for opp in _row_sharing(opportunities)
        if all(act_id in known and act_id not in critical for act_id in opp.activities)
    ]
    filtered.sort(key=lambda o: -o.space_savings)
    for opportunity in filtered[: min(BALANCED_CHANGE_LIMIT, constraints.max_row_changes)]:
        planner.apply(opportunity)
    return _build_candidate(
        planner,
        "balanced",
        "Balanced Optimization",
        "Balanced approach optimizing space while maintaining readability",
        ["critical_path_preservation", "readability_maintenance"],
        "balanced",
    )


def generate_structure_preserving_layout(
    activities: Sequence[Activity],
    opportunities: Sequence[OptimizationOpportunity],
    constraints: OptimizationConstraints,
) -> Optional[LayoutCandidate]:
    """Row sharing only inside a structural group."""
    planner = _RowPlanner(activities)
    row_sharing = _row_sharing(opportunities)
    for members in group_activities_by_structure(activities).values():
        member_ids = {a.id for a in members}
        group_opportunities = [
            opp for opp in row_sharing if all(act_id in member_ids for act_id in opp.activities)
        ]
        for opportunity in group_opportunities[:GROUP_CHANGE_LIMIT]:
            planner.apply(opportunity)
    return _build_candidate(
        planner,
        "structure_preserving",
        "Structure Preserving",
        "Maintains WBS grouping while optimizing space",
        ["wbs_grouping_preservation"],
        "structure_preserving",
    )


def generate_critical_path_focus_layout(
    activities: Sequence[Activity],
    opportunities: Sequence[OptimizationOpportunity],
    constraints: OptimizationConstraints,
) -> Optional[LayoutCandidate]:
    """Only pairs of non-critical activities are touched."""
    planner = _RowPlanner(activities)
    critical = _critical_ids(activities)
    non_critical = [
        opp
        for opp in _row_sharing(opportunities)
        if not any(act_id in critical for act_id in opp.activities)
    ]
    for opportunity in non_critical[:CRITICAL_FOCUS_LIMIT]:
        planner.apply(opportunity)
    return _build_candidate(
        planner,
        "critical_path_focus",
        "Critical Path Focus",
        "Optimizes non-critical activities while preserving critical path",
        ["critical_path_preservation"],
        "critical_path_focus",
    )


def score_candidates(candidates: Sequence[LayoutCandidate]) -> List[LayoutCandidate]:
    """Sort by score and add the ranking bonus."""
    ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
    return [
        replace(candidate, score=candidate.score + (len(ranked) - index) * 0.5)
        for index, candidate in enumerate(ranked)
    ]


def generate_layout_candidates(
    activities: Sequence[Activity],
    opportunities: Sequence[OptimizationOpportunity],
    constraints: Optional[OptimizationConstraints] = None,
) -> OptimizationResult:
    """Run the four heuristics over the same opportunities and rank the results."""
    started = time.perf_counter()
    constraints = constraints or OptimizationConstraints()

    generators = (
        generate_maximum_compression_layout,
        generate_balanced_layout,
        generate_structure_preserving_layout,
        generate_critical_path_focus_layout,
    )
    candidates = []
    for generate in generators:
        candidate = generate(activities, opportunities, constraints)
        if candidate is not None:
            candidates.append(candidate)

    scored = score_candidates(candidates)
    best = scored[0] if scored else None

    return OptimizationResult(
        candidates=scored,
        best_candidate=best,
        total_space_savings=best.space_savings if best else 0,
        processing_time=(time.perf_counter() - started) * 1000,
        algorithm="multi_algorithm",
    )


def apply_layout_candidate(
    activities: Sequence[Activity], candidate: Optional[LayoutCandidate]
) -> List[Activity]:
    """Copies of ``activities`` with ``optimized_row``/``row_change`` filled in."""
    moves = {change.id: change for change in candidate.activities} if candidate else {}
    placed = []
    for index, act in enumerate(activities):
        change = moves.get(act.id)
        if change is None:
            placed.append(replace(act, optimized_row=index, row_change=0))
        else:
            placed.append(replace(act, optimized_row=change.optimized_row, row_change=change.row_change))
    return placed


def optimize_layout(
    activities: Sequence[Activity], constraints: Optional[OptimizationConstraints] = None
) -> OptimizationResult:
    analysis = analyze_schedule_layout(activities)
    return generate_layout_candidates(activities, analysis.optimization_opportunities, constraints)
