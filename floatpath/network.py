from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import networkx as nx

from .models import Activity, Relationship

EPSILON = 1e-6
MAX_ITERATIONS = 100


def normalize_relationships(
    relationships: Iterable[Relationship], activity_ids: Iterable[str]
) -> List[Relationship]:
    """
    Give every relationship an explicit type and lag.

    Relationships whose endpoints are not in ``activity_ids`` are dropped.
    """
    known = set(activity_ids)
    normalized: List[Relationship] = []
    for rel in relationships:
        if rel.predecessor_id not in known or rel.successor_id not in known:
            continue
        normalized.append(rel.normalized())
    return normalized


def build_adjacency(
    relationships: Iterable[Relationship],
) -> Tuple[Dict[str, List[Relationship]], Dict[str, List[Relationship]]]:
    """Return (in_edges keyed by successor, out_edges keyed by predecessor)."""
    in_edges: Dict[str, List[Relationship]] = defaultdict(list)
    out_edges: Dict[str, List[Relationship]] = defaultdict(list)
    for rel in relationships:
        in_edges[rel.successor_id].append(rel)
        out_edges[rel.predecessor_id].append(rel)
    return in_edges, out_edges


def topological_order(
    activity_ids: Sequence[str], relationships: Iterable[Relationship]
) -> Tuple[List[str], bool]:
    """
    Order activities so predecessors come before successors (Kahn's algorithm).

    If a cycle leaves nodes unordered, the input order is returned instead and
    the second element of the tuple is False.
    """
    successors: Dict[str, List[str]] = defaultdict(list)
    in_degree = {act_id: 0 for act_id in activity_ids}

    for rel in relationships:
        if rel.predecessor_id not in in_degree or rel.successor_id not in in_degree:
            continue
        successors[rel.predecessor_id].append(rel.successor_id)
        in_degree[rel.successor_id] += 1

    queue = deque([act_id for act_id, degree in in_degree.items() if degree == 0])
    order: List[str] = []

    while queue:
        node = queue.popleft()
        order.append(node)
        for succ in successors[node]:
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                queue.append(succ)

    if len(order) != len(in_degree):
        return list(in_degree), False
    return order, True


def build_graph(activity_ids: Iterable[str], relationships: Iterable[Relationship]) -> nx.DiGraph:
    G = nx.DiGraph()
    G.add_nodes_from(activity_ids)
    for rel in relationships:
        if rel.predecessor_id in G and rel.successor_id in G:
            G.add_edge(
                rel.predecessor_id,
                rel.successor_id,
                rel_type=rel.relation_type or "FS",
                lag=rel.lag or 0.0,
            )
    return G


def detect_cycle(
    activity_ids: Iterable[str], relationships: Iterable[Relationship]
) -> Optional[List[str]]:
    """Return the activity ids of one dependency cycle, or None."""
    G = build_graph(activity_ids, relationships)
    try:
        edges = nx.find_cycle(G)
    except nx.NetworkXNoCycle:
        return None
    return [u for u, _ in edges] + [edges[0][0]]


def dependency_depths(
    activity_ids: Sequence[str], relationships: Iterable[Relationship]
) -> Dict[str, int]:
    """Longest predecessor chain length per activity; activities without predecessors are depth 1."""
    relationships = list(relationships)
    order, _ = topological_order(activity_ids, relationships)
    in_edges, _ = build_adjacency(relationships)
    depths: Dict[str, int] = {}
    for act_id in order:
        pred_depths = [depths[r.predecessor_id] for r in in_edges.get(act_id, []) if r.predecessor_id in depths]
        depths[act_id] = 1 + max(pred_depths) if pred_depths else 1
    return depths


def compute_activity_relationships(
    activities: Iterable[Activity], relationships: Iterable[Relationship]
) -> List[Activity]:
    """
    Return copies of ``activities`` with predecessor/successor id lists filled in.

    One copy per input activity, in input order; activities sharing an id get
    the same lists.
    """
    activities = list(activities)
    predecessors: Dict[str, List[str]] = {act.id: [] for act in activities}
    successors: Dict[str, List[str]] = {act.id: [] for act in activities}

    for rel in relationships:
        if rel.predecessor_id not in successors or rel.successor_id not in predecessors:
            continue
        if rel.successor_id not in successors[rel.predecessor_id]:
            successors[rel.predecessor_id].append(rel.successor_id)
        if rel.predecessor_id not in predecessors[rel.successor_id]:
            predecessors[rel.successor_id].append(rel.predecessor_id)

    return [
        replace(act, predecessors=list(predecessors[act.id]), successors=list(successors[act.id]))
        for act in activities
    ]


def get_predecessors(activity_id: str, activities: Sequence[Activity]) -> List[Activity]:
    activity = next((a for a in activities if a.id == activity_id), None)
    if activity is None or not activity.predecessors:
        return []
    return [a for a in activities if a.id in activity.predecessors]


def get_successors(activity_id: str, activities: Sequence[Activity]) -> List[Activity]:
    activity = next((a for a in activities if a.id == activity_id), None)
    if activity is None or not activity.successors:
        return []
    return [a for a in activities if a.id in activity.successors]


def get_relationship(
    predecessor_id: str, successor_id: str, relationships: Iterable[Relationship]
) -> Optional[Relationship]:
    for rel in relationships:
        if rel.predecessor_id == predecessor_id and rel.successor_id == successor_id:
            return rel
    return None
