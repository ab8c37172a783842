from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from .models import Activity, ProjectData, Relationship
from .network import compute_activity_relationships

XER_RELATION_TYPES = {"PR_FS": "FS", "PR_SS": "SS", "PR_FF": "FF", "PR_SF": "SF"}

_ID_COLUMNS = ["task_id", "act_id", "task_code"]
_NAME_COLUMNS = ["task_name", "act_name"]
_START_COLUMNS = ["early_start_date", "target_start_date", "start_date", "act_start_date"]
_FINISH_COLUMNS = ["early_end_date", "target_end_date", "finish_date", "act_end_date"]


def _read_records(items: list, record_type, label: str) -> list:
    records = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValueError(f"Invalid {label} #{index + 1}: expected an object.")
        try:
            records.append(record_type.from_dict(item))
        except KeyError as exc:
            raise ValueError(f"Invalid {label} #{index + 1}: missing {exc}.") from exc
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid {label} #{index + 1}: {exc}") from exc
    return records


def parse_project_json(text: str) -> ProjectData:
    """
    Parse a JSON project export.

    Accepts a bare list of activities, an object with ``activities`` (and
    optionally ``relationships``/``projectName``), or a full export whose
    layout and visual settings keys are ignored here.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON project file: {exc}") from exc

    if isinstance(data, list):
        return ProjectData(project_name=None, activities=_read_records(data, Activity, "activity"))
    if not isinstance(data, dict):
        raise ValueError("JSON project file must contain an object or a list of activities.")

    activities = _read_records(data.get("activities") or [], Activity, "activity")
    relationships = _read_records(data.get("relationships") or [], Relationship, "relationship")
    if relationships:
        activities = compute_activity_relationships(activities, relationships)

    return ProjectData(
        project_name=data.get("projectName"),
        activities=activities,
        relationships=relationships,
    )


def read_xer_tables(text: str) -> Dict[str, pd.DataFrame]:
    """Split an XER dump into one DataFrame per ``%T`` table."""
    tables: Dict[str, pd.DataFrame] = {}
    name: Optional[str] = None
    headers: Optional[List[str]] = None
    rows: List[List[str]] = []

    def flush() -> None:
        if name is not None and headers is not None:
            tables[name] = pd.DataFrame(rows, columns=headers, dtype=str)

    for line in text.splitlines():
        if line.startswith("%T"):
            flush()
            name = line[2:].strip()
            headers = None
            rows = []
        elif line.startswith("%F") and name is not None:
            headers = [h.strip() for h in line[3:].split("\t")]
        elif line.startswith("%R") and headers is not None:
            values = line[3:].split("\t")
            values = (values + [""] * len(headers))[: len(headers)]
            rows.append(values)
    flush()
    return tables


def _first_value(row: pd.Series, columns: List[str]) -> str:
    for column in columns:
        value = row.get(column)
        if value is not None and not pd.isna(value) and str(value).strip():
            return str(value).strip()
    return ""


def parse_xer(text: str, hours_per_day: float = 8.0) -> ProjectData:
    """
    Parse the TASK and TASKPRED tables of an XER dump.

    TASK rows without an id or without both dates are skipped. TASKPRED lags
    are stored in hours and converted to days with ``hours_per_day``.
    """
    tables = read_xer_tables(text)

    activities: List[Activity] = []
    task = tables.get("TASK")
    if task is not None:
        for _, row in task.iterrows():
            act_id = _first_value(row, _ID_COLUMNS)
            start = _first_value(row, _START_COLUMNS)
            finish = _first_value(row, _FINISH_COLUMNS)
            if not act_id or not start or not finish:
                continue
            activities.append(
                Activity(
                    id=act_id,
                    name=_first_value(row, _NAME_COLUMNS) or "Activity",
                    start=start,
                    finish=finish,
                )
            )

    relationships: List[Relationship] = []
    taskpred = tables.get("TASKPRED")
    if taskpred is not None:
        for _, row in taskpred.iterrows():
            succ_id = _first_value(row, ["task_id"])
            pred_id = _first_value(row, ["pred_task_id"])
            if not succ_id or not pred_id:
                continue
            rel_type = XER_RELATION_TYPES.get(_first_value(row, ["pred_type"]).upper(), "FS")
            lag_hours = pd.to_numeric(_first_value(row, ["lag_hr_cnt"]) or 0, errors="coerce")
            lag = 0.0 if pd.isna(lag_hours) else float(lag_hours) / hours_per_day
            relationships.append(Relationship(pred_id, succ_id, rel_type, lag))

    if relationships:
        activities = compute_activity_relationships(activities, relationships)

    project_name = None
    project = tables.get("PROJECT")
    if project is not None and not project.empty:
        project_name = _first_value(project.iloc[0], ["proj_short_name", "proj_name"]) or None

    return ProjectData(project_name=project_name, activities=activities, relationships=relationships)


def load_project(path: Union[str, Path]) -> ProjectData:
    path = Path(path)
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8", errors="replace")
    if suffix == ".json":
        return parse_project_json(text)
    if suffix == ".xer":
        return parse_xer(text)
    raise ValueError(f"Unsupported project file type '{suffix}'. Use .json or .xer.")
