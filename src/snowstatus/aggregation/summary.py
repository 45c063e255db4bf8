"""Summaries stored with each Reading, and the forecast view.

``summarize`` runs once per successful fetch; its result is persisted with
the Reading. ``build_forecast`` runs at request time so its windows start
at the caller's "now".
"""

import logging
from datetime import datetime
from typing import Optional

from snowstatus.aggregation.derived import (
    DEFAULT_POLICY,
    SnowLinePolicy,
    classify_snow_condition,
    wind_chill,
)
from snowstatus.aggregation.rolling import bucket, rolling_sum
from snowstatus.cache.models import (
    CurrentConditions,
    LiftStatusPayload,
    Payload,
    WeatherPayload,
)

logger = logging.getLogger(__name__)

FORECAST_WINDOWS_HOURS = (24, 48, 72)
BUCKET_HOURS = 6
BUCKET_MAX_HOURS = 72


def feels_like(current: CurrentConditions) -> Optional[float]:
    """Provider apparent temperature, else wind chill from temperature and wind."""
    if current.apparent_temperature_c is not None:
        return current.apparent_temperature_c
    if current.temperature_c is None:
        return None
    return wind_chill(current.temperature_c, current.wind_speed_kmh or 0.0)


def summarize_weather(
    payload: WeatherPayload,
    now: datetime,
    policy: SnowLinePolicy = DEFAULT_POLICY,
) -> dict:
    snow_line = classify_snow_condition(
        payload.village,
        payload.summit,
        policy,
        freeze_level_m=payload.freeze_level_m,
        chance_of_snow=payload.chance_of_snow,
    )
    return {
        "snow_line": snow_line.to_dict(),
        "chance_of_snow": payload.chance_of_snow,
        "freeze_level_m": payload.freeze_level_m,
        "bands": [
            {
                "name": band.name,
                "altitude_m": band.altitude_m,
                "temperature_c": band.current.temperature_c,
                "feels_like_c": feels_like(band.current),
                "condition": band.current.condition,
                "next_24h_snowfall_cm": rolling_sum(band.hourly, now, 24),
            }
            for band in payload.bands
        ],
    }


def summarize_lifts(payload: LiftStatusPayload) -> dict:
    total = len(payload.lifts)
    open_count = payload.open_count
    return {
        "total": total,
        "open_count": open_count,
        "closed_count": total - open_count,
        "off_season": payload.off_season,
    }


def summarize(payload: Payload, now: datetime, policy: SnowLinePolicy = DEFAULT_POLICY) -> dict:
    """Summary for any payload kind."""
    if isinstance(payload, WeatherPayload):
        return summarize_weather(payload, now, policy)
    if isinstance(payload, LiftStatusPayload):
        return summarize_lifts(payload)
    raise TypeError(f"Cannot summarize {type(payload).__name__}")


def build_forecast(payload: WeatherPayload, now: datetime) -> list[dict]:
    """Per-band forecast view: rolling snowfall totals, 6-hourly buckets, daily list.

    Args:
        payload: Weather payload of a Reading
        now: Start of the forward-looking windows

    Returns:
        One dict per band, lowest band first
    """
    forecast = []
    for band in payload.bands:
        daily = band.daily
        forecast.append(
            {
                "name": band.name,
                "altitude_m": band.altitude_m,
                **{
                    f"next_{hours}h_snowfall_cm": rolling_sum(band.hourly, now, hours)
                    for hours in FORECAST_WINDOWS_HOURS
                },
                "six_hourly_snowfall": [
                    {"time": b.time.isoformat(), "snowfall_cm": b.sum}
                    for b in bucket(band.hourly, now, BUCKET_HOURS, BUCKET_MAX_HOURS)
                ],
                "daily": [
                    {
                        "date": daily.date[i].isoformat(),
                        "temperature_max_c": daily.temperature_max_c[i],
                        "temperature_min_c": daily.temperature_min_c[i],
                        "precipitation_sum_mm": daily.precipitation_sum_mm[i],
                        "snowfall_sum_cm": daily.snowfall_sum_cm[i],
                        "precipitation_probability_max": daily.precipitation_probability_max[i],
                    }
                    for i in range(len(daily))
                ],
            }
        )
    logger.debug(f"Built forecast for {len(forecast)} bands from {now.isoformat()}")
    return forecast
