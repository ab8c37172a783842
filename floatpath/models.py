from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd

VALID_RELATIONS = ("FS", "SS", "FF", "SF")


@dataclass
class Relationship:
    """Represents a precedence relationship between two activities."""

    predecessor_id: str
    successor_id: str
    relation_type: Optional[str] = "FS"  # FS, SS, FF, SF
    lag: Optional[float] = 0.0  # Days, can be positive or negative

    def normalized(self) -> "Relationship":
        """Copy with an explicit relation type and lag."""
        rel_type = (self.relation_type or "FS").strip().upper()
        if rel_type not in VALID_RELATIONS:
            rel_type = "FS"
        lag = float(self.lag) if self.lag is not None else 0.0
        return Relationship(self.predecessor_id, self.successor_id, rel_type, lag)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Relationship":
        return cls(
            predecessor_id=str(data["predecessorId"]),
            successor_id=str(data["successorId"]),
            relation_type=data.get("type"),
            lag=data.get("lagDays"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predecessorId": self.predecessor_id,
            "successorId": self.successor_id,
            "type": self.relation_type or "FS",
            "lagDays": self.lag if self.lag is not None else 0,
        }

    def __str__(self) -> str:
        lag = self.lag or 0
        lag_str = f"+{lag:g}" if lag >= 0 else f"{lag:g}"
        return f"{self.predecessor_id}->{self.successor_id}:{self.relation_type or 'FS'}:{lag_str}"


@dataclass
class Activity:
    """Represents a schedule activity and the values computed for it."""

    id: str
    name: str = ""
    start: str = ""
    finish: str = ""
    duration_days: Optional[float] = None

    # Schedule metrics
    is_critical: Optional[bool] = None
    total_float_days: Optional[float] = None
    free_float_days: Optional[float] = None
    float_path_number: Optional[int] = None

    # Derived view of the relationship list
    predecessors: List[str] = field(default_factory=list)
    successors: List[str] = field(default_factory=list)

    # Layout optimizer results
    optimized_row: Optional[int] = None
    row_change: Optional[int] = None

    _FIELD_KEYS = {
        "duration_days": "durationDays",
        "is_critical": "isCritical",
        "total_float_days": "totalFloatDays",
        "free_float_days": "freeFloatDays",
        "float_path_number": "floatPathNumber",
        "optimized_row": "optimizedRow",
        "row_change": "rowChange",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Activity":
        kwargs: Dict[str, Any] = {
            "id": str(data["id"]),
            "name": str(data.get("name") or ""),
            "start": str(data.get("start") or ""),
            "finish": str(data.get("finish") or ""),
            "predecessors": list(data.get("predecessors") or []),
            "successors": list(data.get("successors") or []),
        }
        for attr, key in cls._FIELD_KEYS.items():
            if data.get(key) is not None:
                kwargs[attr] = data[key]
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "start": self.start,
            "finish": self.finish,
        }
        for attr, key in self._FIELD_KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        if self.predecessors:
            data["predecessors"] = list(self.predecessors)
        if self.successors:
            data["successors"] = list(self.successors)
        return data


@dataclass
class ActivityTimes:
    """Early/late times of one activity in days since the project baseline."""

    es: float
    ef: float
    ls: float
    lf: float
    duration: float


@dataclass
class ActivityMetrics:
    """Computed schedule metrics for one activity."""

    activity_id: str
    duration_days: float
    total_float_days: float
    free_float_days: float
    float_path_number: int
    es: float
    ef: float
    ls: float
    lf: float

    @property
    def is_critical(self) -> bool:
        return abs(self.total_float_days) < 1e-6

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activityId": self.activity_id,
            "durationDays": self.duration_days,
            "totalFloatDays": self.total_float_days,
            "freeFloatDays": self.free_float_days,
            "floatPathNumber": self.float_path_number,
            "es": self.es,
            "ef": self.ef,
            "ls": self.ls,
            "lf": self.lf,
        }


@dataclass
class ActivityError:
    """An activity rejected before computation."""

    activity_id: str
    field: str
    message: str


@dataclass
class FloatPath:
    number: int
    activity_ids: List[str]
    is_critical: bool
    min_total_float: float


@dataclass
class ScheduleResult:
    """Outcome of one schedule network computation."""

    metrics: List[ActivityMetrics] = field(default_factory=list)
    errors: List[ActivityError] = field(default_factory=list)
    finish_activity_id: Optional[str] = None
    project_duration: float = 0.0
    baseline: Optional[pd.Timestamp] = None
    forward_converged: bool = True
    backward_converged: bool = True
    forward_iterations: int = 0
    backward_iterations: int = 0
    topological_order_complete: bool = True
    cycle: Optional[List[str]] = None
    calculation_log: List[str] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.forward_converged and self.backward_converged

    def metrics_by_id(self) -> Dict[str, ActivityMetrics]:
        return {m.activity_id: m for m in self.metrics}

    def float_paths(self) -> Dict[int, List[str]]:
        """Activity ids grouped by float path number."""
        paths: Dict[int, List[str]] = {}
        for m in self.metrics:
            paths.setdefault(m.float_path_number, []).append(m.activity_id)
        return dict(sorted(paths.items()))

    def to_dataframe(self) -> pd.DataFrame:
        """Get calculation results as a pandas DataFrame."""
        data = []
        for m in self.metrics:
            data.append(
                {
                    "ID": m.activity_id,
                    "Duration": round(m.duration_days, 3),
                    "ES": round(m.es, 3),
                    "EF": round(m.ef, 3),
                    "LS": round(m.ls, 3),
                    "LF": round(m.lf, 3),
                    "TF": round(m.total_float_days, 3),
                    "FF": round(m.free_float_days, 3),
                    "Path": m.float_path_number,
                    "Critical": "Yes" if m.is_critical else "No",
                }
            )
        return pd.DataFrame(
            data, columns=["ID", "Duration", "ES", "EF", "LS", "LF", "TF", "FF", "Path", "Critical"]
        )


@dataclass
class ProjectData:
    project_name: Optional[str] = None
    activities: List[Activity] = field(default_factory=list)
    relationships: List[Relationship] = field(default_factory=list)


# =============================================================================
# LAYOUT ANALYSIS / OPTIMIZATION
# =============================================================================

@dataclass
class TimeGap:
    start: pd.Timestamp
    end: pd.Timestamp
    duration: float  # days
    available_rows: int
    activities_in_gap: List[str]


@dataclass
class ActivityCompatibility:
    activity1: str
    activity2: str
    can_share_row: bool
    time_overlap: bool
    gap_duration: float
    space_savings: int
    constraints: List[str] = field(default_factory=list)


@dataclass
class OptimizationOpportunity:
    id: str
    type: str  # row_sharing, gap_filling
    activities: List[str]
    space_savings: int
    constraints: List[str]
    priority: int
    description: str
    gap_duration: Optional[float] = None  # days, when known


@dataclass
class BaselineMetrics:
    total_height: int
    white_space_percentage: float
    average_row_utilization: float
    critical_path_length: int
    total_activities: int
    total_gaps: int = 0
    potential_savings: int = 0


@dataclass
class DependencyNode:
    activity_id: str
    depth: int
    predecessors: List[str] = field(default_factory=list)
    successors: List[str] = field(default_factory=list)


@dataclass
class LayoutAnalysis:
    time_gaps: List[TimeGap]
    compatibility_matrix: List[ActivityCompatibility]
    optimization_opportunities: List[OptimizationOpportunity]
    baseline_metrics: BaselineMetrics
    dependency_graph: Dict[str, DependencyNode] = field(default_factory=dict)
    float_paths: List[FloatPath] = field(default_factory=list)
    grouping_info: Dict[str, List[str]] = field(default_factory=dict)
    processing_time: float = 0.0  # milliseconds


@dataclass
class RowChange:
    id: str
    original_row: int
    optimized_row: int
    row_change: int


@dataclass
class LayoutCandidate:
    id: str
    name: str
    description: str
    space_savings: int
    activities: List[RowChange]
    constraints: List[str]
    score: float
    algorithm: str  # maximum_compression, balanced, structure_preserving, critical_path_focus

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class OptimizationConstraints:
    max_row_changes: int = 100
    preserve_wbs_grouping: bool = True
    preserve_critical_path: bool = True
    min_gap_duration: float = 1.0  # days, informational only
    max_concurrent_activities: int = 3


@dataclass
class OptimizationResult:
    candidates: List[LayoutCandidate]
    best_candidate: Optional[LayoutCandidate]
    total_space_savings: int
    processing_time: float  # milliseconds
    algorithm: str = "multi_algorithm"
