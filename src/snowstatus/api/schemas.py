"""Pydantic schemas for the snowstatus API responses."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from snowstatus.cache.models import Reading


class ReadingMeta(BaseModel):
    """Provenance of the Reading behind a response.

    Attributes:
        subject_id: Subject the Reading describes
        fetched_at: When the provider data was fetched
        expires_at: End of the freshness window
        origin: provider-primary, provider-secondary, persistent-store or memory
        provider_id: Provider that produced the data
        stale: True when served past expiry because every provider failed
        fallback: True when the secondary provider served the data
        age_seconds: Age of the data when served
    """

    subject_id: str
    fetched_at: datetime
    expires_at: datetime
    origin: str
    provider_id: str
    stale: bool = False
    fallback: bool = False
    fallback_reason: Optional[str] = None
    degradation_reason: Optional[str] = None
    age_seconds: int = Field(default=0, ge=0)

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingMeta":
        return cls(
            subject_id=reading.subject_id,
            fetched_at=reading.fetched_at,
            expires_at=reading.expires_at,
            origin=reading.origin.value,
            provider_id=reading.provider_id,
            stale=reading.stale,
            fallback=reading.fallback,
            fallback_reason=reading.fallback_reason,
            degradation_reason=reading.degradation_reason,
            age_seconds=reading.age_seconds,
        )


class BandCurrent(BaseModel):
    """Current conditions at one elevation band."""

    name: str
    altitude_m: float
    time: datetime
    temperature_c: Optional[float] = None
    feels_like_c: Optional[float] = None
    humidity_pct: Optional[int] = None
    precipitation_mm: float = 0.0
    snowfall_cm: float = 0.0
    wind_speed_kmh: Optional[float] = None
    wind_direction_deg: Optional[int] = None
    condition: str
    description: Optional[str] = None
    next_24h_snowfall_cm: Optional[float] = None


class SnowLineInfo(BaseModel):
    kind: str
    label: str
    altitude_m: Optional[int] = None


class WeatherCurrentResponse(BaseModel):
    """Current weather for all bands, lowest first."""

    meta: ReadingMeta
    snow_line: Optional[SnowLineInfo] = None
    chance_of_snow: Optional[int] = None
    freeze_level_m: Optional[int] = None
    bands: list[BandCurrent]


class WeatherForecastResponse(BaseModel):
    """Rolling snowfall totals, 6-hourly buckets and daily values per band."""

    meta: ReadingMeta
    generated_at: datetime
    bands: list[dict[str, Any]]


class LiftInfo(BaseModel):
    lift_id: int
    name: str
    status: str = Field(..., description="open or closed")
    hours: Optional[str] = None
    priority: int
    scraped_at: datetime


class LiftStatusResponse(BaseModel):
    """Status of every known lift."""

    meta: ReadingMeta
    off_season: bool = False
    total: int
    open_count: int
    lifts: list[LiftInfo]


class CacheStatusEntry(BaseModel):
    """Memory-slot status of one subject."""

    subject_id: str
    has_memory_data: bool
    memory_age_seconds: Optional[int] = None
    is_fresh: bool
    configured_ttl_minutes: float


class CacheStatusResponse(BaseModel):
    subjects: list[CacheStatusEntry]
    schedulers: list[dict[str, Any]] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response.

    Attributes:
        status: Service status ('healthy' or 'degraded')
        has_weather: Whether any weather Reading is in memory
        has_lifts: Whether any lift Reading is in memory
        version: API version
    """

    status: str = Field(default="healthy", description="Service status")
    has_weather: bool = False
    has_lifts: bool = False
    version: str = Field(default="1.0.0", description="API version")


class ErrorResponse(BaseModel):
    """Error response schema.

    Attributes:
        error: Error type/code
        message: Human-readable error message
        detail: Additional error details
    """

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    detail: Optional[str] = Field(default=None, description="Additional details")
