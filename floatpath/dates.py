from __future__ import annotations

from typing import Iterable, Optional

import pandas as pd

DAY = pd.Timedelta(days=1)


def parse_date(value: object) -> Optional[pd.Timestamp]:
    """Parse an ISO date/datetime; None when the value is missing or malformed."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        ts = pd.to_datetime(value, errors="coerce")
    except (TypeError, ValueError):
        return None
    if ts is None or pd.isna(ts):
        return None
    ts = pd.Timestamp(ts)
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def days_between(start: pd.Timestamp, finish: pd.Timestamp) -> float:
    return max(0.0, (finish - start) / DAY)


def day_offset(ts: pd.Timestamp, baseline: pd.Timestamp) -> float:
    return (ts - baseline) / DAY


def project_baseline(timestamps: Iterable[pd.Timestamp]) -> Optional[pd.Timestamp]:
    values = [ts for ts in timestamps if ts is not None]
    return min(values) if values else None
