"""Runtime configuration from environment variables (and a ``.env`` file).

Usage:
    from snowstatus.config import load_settings

    settings = load_settings()
    settings.cache_ttl_minutes  # 10.0 unless CACHE_TTL_MINUTES is set
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from snowstatus.cache.database import DEFAULT_DB_PATH

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")


@dataclass
class Settings:
    """Service settings. Every field has a working default."""

    cache_ttl_minutes: float = 10.0
    min_refresh_interval_minutes: float = 5.0
    season_start: tuple[int, int] = (12, 10)
    season_end: tuple[int, int] = (4, 30)
    refresh_tick_seconds: float = 30.0
    provider_timeout_seconds: float = 10.0
    wwo_api_key: Optional[str] = None
    enable_wwo: bool = True
    enable_open_meteo: bool = True
    enable_lift_icon_fallback: bool = True
    enable_persistent_write: bool = True
    snapshot_db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    lift_status_url: Optional[str] = None
    snow_line_cold_c: float = 0.0
    snow_line_warm_c: float = 2.0
    fetch_log_keep_days: float = 7.0
    log_level: str = "INFO"


def _float(env: Mapping[str, str], name: str, default: float, minimum: float = 0.0) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    lowered = raw.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got {raw!r}")


def parse_month_day(name: str, raw: str) -> tuple[int, int]:
    """Parse "MM-DD" into (month, day); Feb 29 is allowed."""
    try:
        month_text, day_text = raw.strip().split("-")
        month, day = int(month_text), int(day_text)
    except ValueError:
        raise ValueError(f"{name} must be MM-DD, got {raw!r}")
    days_in_month = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)
    if not 1 <= month <= 12 or not 1 <= day <= days_in_month[month - 1]:
        raise ValueError(f"{name} is not a valid month-day: {raw!r}")
    return month, day


def load_settings(env: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> Settings:
    """Build Settings from the environment.

    Args:
        env: Mapping to read instead of ``os.environ`` (tests)
        dotenv: Load a ``.env`` file into ``os.environ`` first

    Raises:
        ValueError: A variable is set to an invalid value
    """
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    defaults = Settings()
    ttl_name = "CACHE_TTL_MINUTES" if env.get("CACHE_TTL_MINUTES") else "WEATHER_CACHE_MINUTES"

    settings = Settings(
        cache_ttl_minutes=_float(env, ttl_name, defaults.cache_ttl_minutes, minimum=0.1),
        min_refresh_interval_minutes=_float(
            env, "MIN_REFRESH_INTERVAL_MINUTES", defaults.min_refresh_interval_minutes
        ),
        season_start=(
            parse_month_day("SEASON_START", env["SEASON_START"])
            if env.get("SEASON_START") else defaults.season_start
        ),
        season_end=(
            parse_month_day("SEASON_END", env["SEASON_END"])
            if env.get("SEASON_END") else defaults.season_end
        ),
        refresh_tick_seconds=_float(
            env, "REFRESH_TICK_SECONDS", defaults.refresh_tick_seconds, minimum=1.0
        ),
        provider_timeout_seconds=_float(
            env, "PROVIDER_TIMEOUT_SECONDS", defaults.provider_timeout_seconds, minimum=0.1
        ),
        wwo_api_key=env.get("WWO_API_KEY") or None,
        enable_wwo=_bool(env, "ENABLE_WWO", defaults.enable_wwo),
        enable_open_meteo=_bool(env, "ENABLE_OPEN_METEO", defaults.enable_open_meteo),
        enable_lift_icon_fallback=_bool(
            env, "ENABLE_LIFT_ICON_FALLBACK", defaults.enable_lift_icon_fallback
        ),
        enable_persistent_write=_bool(
            env, "ENABLE_PERSISTENT_WRITE", defaults.enable_persistent_write
        ),
        snapshot_db_path=Path(env["SNAPSHOT_DB_PATH"]) if env.get("SNAPSHOT_DB_PATH")
        else defaults.snapshot_db_path,
        lift_status_url=env.get("LIFT_STATUS_URL") or None,
        snow_line_cold_c=_float(env, "SNOW_LINE_COLD_C", defaults.snow_line_cold_c, minimum=-50.0),
        snow_line_warm_c=_float(env, "SNOW_LINE_WARM_C", defaults.snow_line_warm_c, minimum=-50.0),
        fetch_log_keep_days=_float(
            env, "FETCH_LOG_KEEP_DAYS", defaults.fetch_log_keep_days, minimum=1.0
        ),
        log_level=(env.get("LOG_LEVEL") or defaults.log_level).upper(),
    )

    if settings.snow_line_warm_c < settings.snow_line_cold_c:
        raise ValueError("SNOW_LINE_WARM_C must not be below SNOW_LINE_COLD_C")
    return settings
