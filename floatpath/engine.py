from __future__ import annotations

import math
from collections import deque
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .dates import day_offset, days_between, parse_date, project_baseline
from .models import (
    Activity,
    ActivityError,
    ActivityMetrics,
    ActivityTimes,
    FloatPath,
    Relationship,
    ScheduleResult,
)
from .network import (
    EPSILON,
    MAX_ITERATIONS,
    build_adjacency,
    compute_activity_relationships,
    detect_cycle,
    normalize_relationships,
    topological_order,
)


def constraint_start(pred: ActivityTimes, succ: ActivityTimes, rel_type: str, lag: float) -> float:
    """Earliest start the relationship allows for the successor."""
    if rel_type == "SS":
        return pred.es + lag
    if rel_type == "FF":
        return pred.ef + lag - succ.duration
    if rel_type == "SF":
        return pred.es + lag - succ.duration
    return pred.ef + lag


def late_finish_bound(pred: ActivityTimes, succ: ActivityTimes, rel_type: str, lag: float) -> float:
    """Latest finish the relationship allows for the predecessor."""
    if rel_type == "SS":
        return succ.ls - lag + pred.duration
    if rel_type == "FF":
        return succ.lf - lag
    if rel_type == "SF":
        return succ.lf - lag + pred.duration
    return succ.ls - lag


def early_slack(pred: ActivityTimes, succ: ActivityTimes, rel_type: str, lag: float) -> float:
    """Slack between the predecessor's early dates and the successor's early dates."""
    if rel_type == "SS":
        return succ.es - pred.es - lag
    if rel_type == "FF":
        return succ.ef - pred.ef - lag
    if rel_type == "SF":
        return succ.ef - pred.es - lag
    return succ.es - pred.ef - lag


def is_driving(
    pred: ActivityTimes, succ: ActivityTimes, rel_type: str, lag: float, epsilon: float = EPSILON
) -> bool:
    if rel_type == "SS":
        return abs(succ.es - (pred.es + lag)) < epsilon
    if rel_type == "FF":
        return abs(succ.ef - (pred.ef + lag)) < epsilon
    if rel_type == "SF":
        return abs(succ.ef - (pred.es + lag)) < epsilon
    return abs(succ.es - (pred.ef + lag)) < epsilon


def _fmt(value: float) -> str:
    return f"{value:g}"


class FloatPathScheduler:
    """
    Multiple Float Path scheduler.

    Runs CPM forward and backward passes over an activity-on-node network with
    all four relationship types and positive/negative lags, derives total and
    free float, and partitions the network into float paths by walking driving
    predecessors back from the project finish.

    An instance belongs to a single computation: it copies what it needs from
    the caller's activities and relationships and never writes to them.
    """

    FREE_FLOAT_BASES = {"late", "early"}

    def __init__(
        self,
        activities: Iterable[Activity],
        relationships: Optional[Iterable[Relationship]] = None,
        max_iterations: int = MAX_ITERATIONS,
        epsilon: float = EPSILON,
        free_float_basis: str = "late",
    ):
        if free_float_basis not in self.FREE_FLOAT_BASES:
            raise ValueError(
                f"Unknown free float basis '{free_float_basis}'. Use one of: late, early."
            )
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1.")

        self.activities: List[Activity] = list(activities)
        self.relationships: List[Relationship] = list(relationships or [])
        self.max_iterations = max_iterations
        self.epsilon = epsilon
        self.free_float_basis = free_float_basis

        self.times: Dict[str, ActivityTimes] = {}
        self.calculation_log: List[str] = []

    def _log(self, message: str) -> None:
        self.calculation_log.append(message)

    def calculate(self) -> ScheduleResult:
        """Perform the full network calculation from scratch."""
        self.times = {}
        self.calculation_log = []
        result = ScheduleResult(calculation_log=self.calculation_log)

        self._log("=" * 70)
        self._log("MULTIPLE FLOAT PATH CALCULATION")
        self._log("Critical Path Method (Activity-on-Node)")
        self._log("=" * 70)

        if not self.activities:
            self._log("No activities defined.")
            return result

        valid, errors, parsed = self._validate_activities()
        result.errors = errors
        if not valid:
            self._log("No activities with valid dates; nothing to calculate.")
            return result

        ids = [act.id for act in valid]
        relationships = normalize_relationships(self.relationships, ids)
        ignored = len(self.relationships) - len(relationships)
        if ignored:
            self._log(f"Ignored {ignored} relationship(s) referencing unknown activities.")

        in_edges, out_edges = build_adjacency(relationships)
        order, complete = topological_order(ids, relationships)
        result.topological_order_complete = complete
        if not complete:
            result.cycle = detect_cycle(ids, relationships)
            cycle_str = " -> ".join(result.cycle) if result.cycle else "(unknown)"
            self._log(f"WARNING: Circular dependency detected: {cycle_str}")
            self._log("Falling back to input order for the passes.")

        result.baseline = project_baseline(start for start, _ in parsed.values())
        self._initialize_times(valid, parsed, result.baseline)

        result.forward_iterations, result.forward_converged = self._forward_pass(order, in_edges)
        finish_id, project_ef = self._find_project_finish(ids)
        result.backward_iterations, result.backward_converged = self._backward_pass(
            order, out_edges, project_ef
        )

        # Anchor project finish to zero float
        finish = self.times[finish_id]
        finish.lf = finish.ef
        finish.ls = finish.es

        driving = self._driving_predecessors(ids, in_edges)
        assignment = self._assign_float_paths(ids, finish_id, driving)
        result.metrics = [self._compose_metrics(act_id, out_edges, assignment) for act_id in ids]

        result.finish_activity_id = finish_id
        result.project_duration = project_ef - min(t.es for t in self.times.values())

        self._log("")
        self._log("=" * 70)
        self._log("CALCULATION COMPLETE")
        self._log(f"Project Finish Activity: {finish_id}")
        self._log(f"Project Duration: {_fmt(result.project_duration)} days")
        if not result.converged:
            self._log("WARNING: results are partial, passes did not converge.")
        self._log("=" * 70)
        return result

    def _validate_activities(
        self,
    ) -> Tuple[List[Activity], List[ActivityError], Dict[str, Tuple[pd.Timestamp, pd.Timestamp]]]:
        valid: List[Activity] = []
        errors: List[ActivityError] = []
        parsed: Dict[str, Tuple[pd.Timestamp, pd.Timestamp]] = {}

        seen = set()
        for act in self.activities:
            if act.id in seen:
                errors.append(ActivityError(act.id, "id", f"Duplicate activity id '{act.id}'."))
                continue
            seen.add(act.id)

            start = parse_date(act.start)
            finish = parse_date(act.finish)
            if start is None:
                errors.append(ActivityError(act.id, "start", f"Unparseable start date '{act.start}'."))
            if finish is None:
                errors.append(ActivityError(act.id, "finish", f"Unparseable finish date '{act.finish}'."))
            if act.duration_days is not None:
                try:
                    duration_ok = math.isfinite(float(act.duration_days))
                except (TypeError, ValueError):
                    duration_ok = False
                if not duration_ok:
                    errors.append(
                        ActivityError(act.id, "durationDays", f"Invalid duration '{act.duration_days}'.")
                    )
                    continue
            if start is None or finish is None:
                continue

            parsed[act.id] = (start, finish)
            valid.append(act)

        for error in errors:
            self._log(f"Rejected {error.activity_id}: {error.message}")
        return valid, errors, parsed

    def _initialize_times(
        self,
        activities: Sequence[Activity],
        parsed: Dict[str, Tuple[pd.Timestamp, pd.Timestamp]],
        baseline: pd.Timestamp,
    ) -> None:
        for act in activities:
            start, finish = parsed[act.id]
            if act.duration_days is not None:
                duration = float(act.duration_days)
            else:
                duration = days_between(start, finish)
            self.times[act.id] = ActivityTimes(
                es=day_offset(start, baseline),
                ef=day_offset(finish, baseline),
                ls=day_offset(start, baseline),
                lf=day_offset(finish, baseline),
                duration=duration,
            )

    def _forward_pass(self, order: List[str], in_edges: Dict[str, List[Relationship]]) -> Tuple[int, bool]:
        """
        Forward pass calculation to determine Early Start (ES) and Early Finish (EF).
        """
        self._log("")
        self._log("FORWARD PASS (Calculating ES and EF)")
        self._log("-" * 50)

        converged = False
        iterations = 0
        for iterations in range(1, self.max_iterations + 1):
            changed = False
            for act_id in order:
                t = self.times[act_id]
                preds = in_edges.get(act_id, [])
                if not preds:
                    es = t.es
                else:
                    es = max(
                        constraint_start(self.times[r.predecessor_id], t, r.relation_type, r.lag)
                        for r in preds
                    )
                ef = es + t.duration
                if abs(es - t.es) > self.epsilon or abs(ef - t.ef) > self.epsilon:
                    t.es = es
                    t.ef = ef
                    changed = True
            if not changed:
                converged = True
                break

        for act_id in order:
            t = self.times[act_id]
            self._log(f"{act_id}: ES = {_fmt(t.es)}, EF = ES + Duration = {_fmt(t.es)} + {_fmt(t.duration)} = {_fmt(t.ef)}")
        if converged:
            self._log(f"Forward pass converged after {iterations} sweep(s).")
        else:
            self._log(f"WARNING: Forward pass did not converge within {self.max_iterations} sweeps.")
        return iterations, converged

    def _find_project_finish(self, ids: List[str]) -> Tuple[str, float]:
        finish_id = ids[0]
        project_ef = -math.inf
        for act_id in ids:
            ef = self.times[act_id].ef
            if ef > project_ef:
                project_ef = ef
                finish_id = act_id
        self._log(f"\nProject Finish = max(all EF values) = {_fmt(project_ef)} ({finish_id})")
        return finish_id, project_ef

    def _backward_pass(
        self, order: List[str], out_edges: Dict[str, List[Relationship]], project_ef: float
    ) -> Tuple[int, bool]:
        """
        Backward pass calculation to determine Late Start (LS) and Late Finish (LF).
        """
        self._log("")
        self._log("BACKWARD PASS (Calculating LS and LF)")
        self._log("-" * 50)

        reverse = list(reversed(order))
        converged = False
        iterations = 0
        for iterations in range(1, self.max_iterations + 1):
            changed = False
            for act_id in reverse:
                t = self.times[act_id]
                lf = project_ef
                for r in out_edges.get(act_id, []):
                    lf = min(lf, late_finish_bound(t, self.times[r.successor_id], r.relation_type, r.lag))
                ls = lf - t.duration
                if abs(lf - t.lf) > self.epsilon or abs(ls - t.ls) > self.epsilon:
                    t.lf = lf
                    t.ls = ls
                    changed = True
            if not changed:
                converged = True
                break

        for act_id in reverse:
            t = self.times[act_id]
            self._log(f"{act_id}: LF = {_fmt(t.lf)}, LS = LF - Duration = {_fmt(t.lf)} - {_fmt(t.duration)} = {_fmt(t.ls)}")
        if converged:
            self._log(f"Backward pass converged after {iterations} sweep(s).")
        else:
            self._log(f"WARNING: Backward pass did not converge within {self.max_iterations} sweeps.")
        return iterations, converged

    def _driving_predecessors(
        self, ids: List[str], in_edges: Dict[str, List[Relationship]]
    ) -> Dict[str, List[str]]:
        driving: Dict[str, List[str]] = {}
        for act_id in ids:
            succ = self.times[act_id]
            for r in in_edges.get(act_id, []):
                pred = self.times[r.predecessor_id]
                if not is_driving(pred, succ, r.relation_type, r.lag, self.epsilon):
                    continue
                drivers = driving.setdefault(act_id, [])
                if r.predecessor_id not in drivers:
                    drivers.append(r.predecessor_id)
        return driving

    def _assign_float_paths(
        self, ids: List[str], finish_id: str, driving: Dict[str, List[str]]
    ) -> Dict[str, int]:
        """
        Walk driving predecessors back from the finish activity.

        The first driver of an activity stays on its path; every further
        driver opens the next unused path number.
        """
        self._log("")
        self._log("FLOAT PATH ASSIGNMENT")
        self._log("-" * 50)

        assignment: Dict[str, int] = {finish_id: 1}
        next_path = 2
        queue = deque([(finish_id, 1)])

        while queue:
            act_id, path = queue.popleft()
            for index, pred_id in enumerate(driving.get(act_id, [])):
                if pred_id in assignment:
                    continue
                if index == 0:
                    pred_path = path
                else:
                    pred_path = next_path
                    next_path += 1
                    self._log(f"{act_id}: additional driver {pred_id} starts path {pred_path}")
                assignment[pred_id] = pred_path
                queue.append((pred_id, pred_path))

        unreached = [act_id for act_id in ids if act_id not in assignment]
        for act_id in unreached:
            assignment[act_id] = next_path
        if unreached:
            self._log(f"Not driving the finish (path {next_path}): {', '.join(unreached)}")
        return assignment

    def _compose_metrics(
        self, act_id: str, out_edges: Dict[str, List[Relationship]], assignment: Dict[str, int]
    ) -> ActivityMetrics:
        t = self.times[act_id]
        total_float = min(t.ls - t.es, t.lf - t.ef)
        if abs(total_float) < self.epsilon:
            total_float = 0.0

        succs = out_edges.get(act_id, [])
        if not succs:
            free_float = total_float
        else:
            slacks = []
            for r in succs:
                succ = self.times[r.successor_id]
                if self.free_float_basis == "early":
                    slacks.append(early_slack(t, succ, r.relation_type, r.lag))
                else:
                    slacks.append(late_finish_bound(t, succ, r.relation_type, r.lag) - t.ef)
            free_float = min(max(0.0, min(slacks)), max(0.0, total_float))
            if free_float < self.epsilon:
                free_float = 0.0

        self._log(
            f"{act_id}: TF = {_fmt(total_float)}, FF = {_fmt(free_float)}, path {assignment[act_id]}"
            + (" -> CRITICAL" if total_float == 0 else "")
        )
        return ActivityMetrics(
            activity_id=act_id,
            duration_days=t.duration,
            total_float_days=total_float,
            free_float_days=free_float,
            float_path_number=assignment[act_id],
            es=t.es,
            ef=t.ef,
            ls=t.ls,
            lf=t.lf,
        )


def schedule_network(
    activities: Iterable[Activity],
    relationships: Optional[Iterable[Relationship]] = None,
    **options,
) -> ScheduleResult:
    """Compute schedule metrics with convergence, error and log reporting."""
    return FloatPathScheduler(activities, relationships, **options).calculate()


def compute_metrics(
    activities: Iterable[Activity],
    relationships: Optional[Iterable[Relationship]] = None,
    **options,
) -> List[ActivityMetrics]:
    """One metrics record per computable activity; empty for empty input."""
    return schedule_network(activities, relationships, **options).metrics


def annotate_activities(
    activities: Sequence[Activity],
    result: ScheduleResult,
    relationships: Optional[Iterable[Relationship]] = None,
) -> List[Activity]:
    """
    Overlay computed metrics onto copies of ``activities``.

    Activities without metrics (rejected before computation, including every
    repeat of an already seen id) are copied unchanged. When ``relationships``
    is given the predecessor/successor id lists of the computed activities are
    rebuilt as well.
    """
    activities = list(activities)
    linked = activities
    if relationships is not None:
        linked = compute_activity_relationships(activities, relationships)

    by_id = result.metrics_by_id()
    seen = set()
    annotated: List[Activity] = []
    for original, act in zip(activities, linked):
        m = by_id.get(act.id)
        if m is None or act.id in seen:
            annotated.append(replace(original))
            continue
        seen.add(act.id)
        annotated.append(
            replace(
                act,
                duration_days=m.duration_days,
                total_float_days=m.total_float_days,
                free_float_days=m.free_float_days,
                is_critical=m.is_critical,
                float_path_number=m.float_path_number,
            )
        )
    return annotated


def summarize_float_paths(metrics: Iterable[ActivityMetrics]) -> List[FloatPath]:
    """Group metrics by float path number; activities ordered by early start."""
    grouped: Dict[int, List[ActivityMetrics]] = {}
    for m in metrics:
        grouped.setdefault(m.float_path_number, []).append(m)

    paths: List[FloatPath] = []
    for number in sorted(grouped):
        members = sorted(grouped[number], key=lambda m: (m.es, m.activity_id))
        paths.append(
            FloatPath(
                number=number,
                activity_ids=[m.activity_id for m in members],
                is_critical=all(m.is_critical for m in members),
                min_total_float=min(m.total_float_days for m in members),
            )
        )
    return paths
