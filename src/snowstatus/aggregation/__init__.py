"""Pure functions over normalized payloads."""

from snowstatus.aggregation.derived import (
    SnowLine,
    SnowLineKind,
    SnowLinePolicy,
    classify_snow_condition,
    wind_chill,
)
from snowstatus.aggregation.rolling import Bucket, bucket, rolling_sum, round_half_up
from snowstatus.aggregation.summary import build_forecast, summarize

__all__ = [
    "Bucket",
    "SnowLine",
    "SnowLineKind",
    "SnowLinePolicy",
    "bucket",
    "build_forecast",
    "classify_snow_condition",
    "rolling_sum",
    "round_half_up",
    "summarize",
    "wind_chill",
]
