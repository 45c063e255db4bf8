"""Forward-looking windowed sums over an hourly series.

Windows are counted in samples, not wall-clock hours: a 24-hour window is
the next 24 samples at or after the start instant, even if the series has
gaps. Missing values count as 0. Sums are rounded half up to one decimal.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone

import numpy as np
import pandas as pd

from snowstatus.cache.models import HourlySeries


@dataclass(frozen=True)
class Bucket:
    """One bucket of a bucketed summary; ``time`` is its first sample's time."""

    time: datetime
    sum: float

    def to_dict(self) -> dict:
        return {"time": self.time.isoformat(), "sum": self.sum}


def round_half_up(value: float, digits: int = 1) -> float:
    """Round half toward +inf (2.25 -> 2.3, -2.25 -> -2.2)."""
    factor = 10 ** digits
    # round() first so 0.15 * 10 = 1.4999999999999998 still rounds up
    return math.floor(round(value * factor, 9) + 0.5) / factor


def _frame(hourly: HourlySeries, field: str) -> pd.DataFrame:
    values = pd.to_numeric(pd.Series(hourly.values(field), dtype="object"), errors="coerce")
    return pd.DataFrame(
        {
            "time": pd.to_datetime(list(hourly.time), utc=True),
            "value": values.fillna(0.0).astype(float),
        }
    )


def _start(start: datetime) -> pd.Timestamp:
    ts = pd.Timestamp(start)
    if ts.tzinfo is None:
        ts = ts.tz_localize(timezone.utc)
    return ts


def _forward_positions(frame: pd.DataFrame, start: datetime, limit: int) -> np.ndarray:
    mask = (frame["time"] >= _start(start)).to_numpy()
    return np.flatnonzero(mask)[: max(0, limit)]


def rolling_sum(
    hourly: HourlySeries,
    start: datetime,
    window_hours: int,
    field: str = "snowfall_cm",
) -> float:
    """Sum ``field`` over the first ``window_hours`` samples at or after ``start``.

    Args:
        hourly: Hourly series of one band
        start: Window start instant (timezone-aware)
        window_hours: Number of samples to include
        field: Hourly field to sum

    Returns:
        Sum rounded half up to one decimal; 0.0 for an empty window
    """
    if len(hourly) == 0:
        return 0.0
    frame = _frame(hourly, field)
    positions = _forward_positions(frame, start, window_hours)
    if positions.size == 0:
        return 0.0
    return round_half_up(float(frame["value"].iloc[positions].sum()), 1)


def bucket(
    hourly: HourlySeries,
    start: datetime,
    bucket_hours: int,
    max_total_hours: int,
    field: str = "snowfall_cm",
) -> list[Bucket]:
    """Partition the forward series into consecutive ``bucket_hours``-sample buckets.

    Stops after ``max_total_hours`` samples; a trailing partial bucket is
    included.
    """
    if bucket_hours <= 0:
        raise ValueError(f"bucket_hours must be positive, got {bucket_hours}")
    if len(hourly) == 0:
        return []

    frame = _frame(hourly, field)
    positions = _forward_positions(frame, start, max_total_hours)
    if positions.size == 0:
        return []

    window = frame.iloc[positions].reset_index(drop=True)
    groups = window.groupby(np.arange(len(window)) // bucket_hours)

    buckets = []
    for group_index, group in groups:
        first = positions[group_index * bucket_hours]
        buckets.append(
            Bucket(
                time=hourly.time[first],
                sum=round_half_up(float(group["value"].sum()), 1),
            )
        )
    return buckets
