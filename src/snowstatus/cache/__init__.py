"""Caching layer for snowstatus.

Three tiers per subject: process memory, a DuckDB snapshot store, and the
provider chain. Readings degrade to stale data rather than failing.

The coordinator and scheduler live in ``snowstatus.cache.coordinator``
and ``snowstatus.cache.refresh`` (they depend on the providers package,
which depends on the models here).

Background refresh can be run via:
    python -m snowstatus.cache.refresh --run

Or a one-off guarded refresh (e.g. from cron):
    */15 6-16 * * * python -m snowstatus.cache.refresh
"""

from snowstatus.cache.database import DEFAULT_DB_PATH, SnapshotDatabase
from snowstatus.cache.models import (
    NOZAWA_ONSEN,
    CacheStatus,
    CacheTier,
    ElevationBand,
    LiftEntry,
    LiftState,
    LiftStatusPayload,
    Origin,
    Reading,
    Resort,
    Subject,
    WeatherPayload,
    lifts_subject,
    weather_subject,
)

__all__ = [
    "CacheStatus",
    "CacheTier",
    "DEFAULT_DB_PATH",
    "ElevationBand",
    "LiftEntry",
    "LiftState",
    "LiftStatusPayload",
    "NOZAWA_ONSEN",
    "Origin",
    "Reading",
    "Resort",
    "SnapshotDatabase",
    "Subject",
    "WeatherPayload",
    "lifts_subject",
    "weather_subject",
]
