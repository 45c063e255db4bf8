"""Data models for the cache layer.

A Reading is one normalized snapshot for a subject (a resort's weather or
its lift set). Readings are immutable; tagging a Reading for a caller
(origin, staleness, age) produces a new object via ``dataclasses.replace``.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Union


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Origin(Enum):
    """Where the Reading handed to a caller came from."""

    PROVIDER_PRIMARY = "provider-primary"
    PROVIDER_SECONDARY = "provider-secondary"
    PERSISTENT_STORE = "persistent-store"
    MEMORY = "memory"


class CacheTier(Enum):
    """Freshness of a cached Reading relative to its expiry."""

    FRESH = "fresh"
    EXPIRED_BUT_PRESENT = "expired-but-present"
    ABSENT = "absent"

    @classmethod
    def of(cls, reading: Optional["Reading"], now: datetime) -> "CacheTier":
        if reading is None:
            return cls.ABSENT
        if now < reading.expires_at:
            return cls.FRESH
        return cls.EXPIRED_BUT_PRESENT


class LiftState(Enum):
    OPEN = "open"
    CLOSED = "closed"


# ---------------------------------------------------------------------------
# Weather payload
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CurrentConditions:
    """Current conditions at one elevation band.

    Attributes:
        time: Observation/model time (timezone-aware)
        temperature_c: Air temperature in Celsius
        apparent_temperature_c: Provider feels-like temperature, if reported
        humidity_pct: Relative humidity in percent
        precipitation_mm: Precipitation in mm (0 when missing)
        snowfall_cm: Snowfall in cm (0 when missing)
        wind_speed_kmh: Wind speed in km/h
        wind_direction_deg: Wind direction in degrees
        condition: Shared condition taxonomy value
        description: Provider text description, if any
    """

    time: datetime
    temperature_c: Optional[float]
    apparent_temperature_c: Optional[float] = None
    humidity_pct: Optional[int] = None
    precipitation_mm: float = 0.0
    snowfall_cm: float = 0.0
    wind_speed_kmh: Optional[float] = None
    wind_direction_deg: Optional[int] = None
    condition: str = "clear"
    description: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "time": _iso(self.time),
            "temperature_c": self.temperature_c,
            "apparent_temperature_c": self.apparent_temperature_c,
            "humidity_pct": self.humidity_pct,
            "precipitation_mm": self.precipitation_mm,
            "snowfall_cm": self.snowfall_cm,
            "wind_speed_kmh": self.wind_speed_kmh,
            "wind_direction_deg": self.wind_direction_deg,
            "condition": self.condition,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "CurrentConditions":
        return cls(**{**d, "time": _parse_dt(d["time"])})


@dataclass(frozen=True)
class HourlySeries:
    """Hourly (or sub-daily slot) series; all lists are index-aligned with ``time``."""

    time: list[datetime]
    temperature_c: list[Optional[float]]
    precipitation_mm: list[float]
    snowfall_cm: list[float]
    wind_speed_kmh: list[Optional[float]]
    wind_direction_deg: list[Optional[int]]
    condition: list[str]

    FIELDS = (
        "temperature_c",
        "precipitation_mm",
        "snowfall_cm",
        "wind_speed_kmh",
        "wind_direction_deg",
        "condition",
    )

    def __len__(self) -> int:
        return len(self.time)

    def values(self, name: str) -> list:
        """Return the value list for a field name."""
        if name not in self.FIELDS:
            raise KeyError(f"Unknown hourly field: {name}")
        return getattr(self, name)

    def to_dict(self) -> dict:
        d = {name: list(getattr(self, name)) for name in self.FIELDS}
        d["time"] = [_iso(t) for t in self.time]
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "HourlySeries":
        return cls(
            time=[_parse_dt(t) for t in d["time"]],
            **{name: list(d[name]) for name in cls.FIELDS},
        )


@dataclass(frozen=True)
class DailySeries:
    """Daily series; all lists are index-aligned with ``date``."""

    date: list[date]
    temperature_max_c: list[Optional[float]]
    temperature_min_c: list[Optional[float]]
    precipitation_sum_mm: list[float]
    snowfall_sum_cm: list[float]
    precipitation_probability_max: list[Optional[int]]

    FIELDS = (
        "temperature_max_c",
        "temperature_min_c",
        "precipitation_sum_mm",
        "snowfall_sum_cm",
        "precipitation_probability_max",
    )

    def __len__(self) -> int:
        return len(self.date)

    def to_dict(self) -> dict:
        d = {name: list(getattr(self, name)) for name in self.FIELDS}
        d["date"] = [day.isoformat() for day in self.date]
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "DailySeries":
        return cls(
            date=[date.fromisoformat(day) for day in d["date"]],
            **{name: list(d[name]) for name in cls.FIELDS},
        )


@dataclass(frozen=True)
class ElevationBand:
    """Weather at one named elevation of the resort.

    Attributes:
        name: Band name (Village, Mid-Mountain, Summit)
        altitude_m: Band altitude in meters
        current: Current conditions
        hourly: Forward-looking hourly series
        daily: Daily series
    """

    name: str
    altitude_m: float
    current: CurrentConditions
    hourly: HourlySeries
    daily: DailySeries

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "altitude_m": self.altitude_m,
            "current": self.current.to_dict(),
            "hourly": self.hourly.to_dict(),
            "daily": self.daily.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ElevationBand":
        return cls(
            name=d["name"],
            altitude_m=d["altitude_m"],
            current=CurrentConditions.from_dict(d["current"]),
            hourly=HourlySeries.from_dict(d["hourly"]),
            daily=DailySeries.from_dict(d["daily"]),
        )


@dataclass(frozen=True)
class WeatherPayload:
    """Provider-agnostic weather for all bands, lowest band first.

    Attributes:
        bands: One entry per elevation band, ordered by altitude
        chance_of_snow: Today's chance of snow in percent (WWO only)
        freeze_level_m: Current freezing level in meters (WWO only)
    """

    bands: list[ElevationBand]
    chance_of_snow: Optional[int] = None
    freeze_level_m: Optional[int] = None

    kind = "weather"

    @property
    def village(self) -> ElevationBand:
        return self.bands[0]

    @property
    def summit(self) -> ElevationBand:
        return self.bands[-1]

    def band(self, name: str) -> Optional[ElevationBand]:
        for band in self.bands:
            if band.name == name:
                return band
        return None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "bands": [band.to_dict() for band in self.bands],
            "chance_of_snow": self.chance_of_snow,
            "freeze_level_m": self.freeze_level_m,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "WeatherPayload":
        return cls(
            bands=[ElevationBand.from_dict(b) for b in d["bands"]],
            chance_of_snow=d.get("chance_of_snow"),
            freeze_level_m=d.get("freeze_level_m"),
        )


# ---------------------------------------------------------------------------
# Lift payload
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LiftEntry:
    """One lift. Identity is ``lift_id``; names may change upstream."""

    lift_id: int
    name: str
    status: LiftState
    scraped_at: datetime
    hours: Optional[str] = None
    priority: int = 99

    @property
    def is_open(self) -> bool:
        return self.status is LiftState.OPEN

    def to_dict(self) -> dict:
        return {
            "lift_id": self.lift_id,
            "name": self.name,
            "status": self.status.value,
            "scraped_at": _iso(self.scraped_at),
            "hours": self.hours,
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "LiftEntry":
        return cls(
            lift_id=d["lift_id"],
            name=d["name"],
            status=LiftState(d["status"]),
            scraped_at=_parse_dt(d["scraped_at"]),
            hours=d.get("hours"),
            priority=d.get("priority", 99),
        )


@dataclass(frozen=True)
class LiftStatusPayload:
    """Status of every known lift at scrape time."""

    lifts: list[LiftEntry]
    scraped_at: datetime
    off_season: bool = False

    kind = "lifts"

    @property
    def open_count(self) -> int:
        return sum(1 for lift in self.lifts if lift.is_open)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "lifts": [lift.to_dict() for lift in self.lifts],
            "scraped_at": _iso(self.scraped_at),
            "off_season": self.off_season,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "LiftStatusPayload":
        return cls(
            lifts=[LiftEntry.from_dict(item) for item in d["lifts"]],
            scraped_at=_parse_dt(d["scraped_at"]),
            off_season=d.get("off_season", False),
        )


Payload = Union[WeatherPayload, LiftStatusPayload]

_PAYLOAD_TYPES = {
    WeatherPayload.kind: WeatherPayload,
    LiftStatusPayload.kind: LiftStatusPayload,
}


def payload_from_dict(d: dict) -> Payload:
    """Rebuild a payload from its ``to_dict`` form."""
    try:
        payload_type = _PAYLOAD_TYPES[d["kind"]]
    except KeyError:
        raise ValueError(f"Unknown payload kind: {d.get('kind')!r}")
    return payload_type.from_dict(d)


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Reading:
    """Canonical snapshot for one subject at a point in time.

    Attributes:
        subject_id: Subject this Reading describes
        fetched_at: When the provider data was fetched (UTC)
        expires_at: End of the freshness window (UTC)
        origin: Source of this copy of the Reading
        payload: Normalized provider-agnostic data
        provider_id: Provider that produced the payload
        stale: True when returned past expiry because no live source succeeded
        fallback: True when a secondary provider served after the primary failed
        fallback_reason: Primary provider error message when ``fallback``
        degradation_reason: Why a stale Reading was returned
        summary: Derived values computed at fetch time
        age_seconds: Age at the moment it was handed to the caller
    """

    subject_id: str
    fetched_at: datetime
    expires_at: datetime
    origin: Origin
    payload: Payload
    provider_id: str
    stale: bool = False
    fallback: bool = False
    fallback_reason: Optional[str] = None
    degradation_reason: Optional[str] = None
    summary: dict[str, Any] = field(default_factory=dict)
    age_seconds: int = 0

    def age_at(self, now: datetime) -> int:
        """Whole seconds between ``fetched_at`` and ``now``."""
        return max(0, round((now - self.fetched_at).total_seconds()))

    def is_fresh(self, now: datetime) -> bool:
        return now < self.expires_at

    def tagged(self, origin: Origin, now: datetime, **changes) -> "Reading":
        """Copy of this Reading tagged for delivery to a caller."""
        return replace(self, origin=origin, age_seconds=self.age_at(now), **changes)

    def to_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "fetched_at": _iso(self.fetched_at),
            "expires_at": _iso(self.expires_at),
            "origin": self.origin.value,
            "provider_id": self.provider_id,
            "stale": self.stale,
            "fallback": self.fallback,
            "fallback_reason": self.fallback_reason,
            "degradation_reason": self.degradation_reason,
            "summary": self.summary,
            "age_seconds": self.age_seconds,
            "payload": self.payload.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Reading":
        return cls(
            subject_id=d["subject_id"],
            fetched_at=_parse_dt(d["fetched_at"]),
            expires_at=_parse_dt(d["expires_at"]),
            origin=Origin(d["origin"]),
            payload=payload_from_dict(d["payload"]),
            provider_id=d["provider_id"],
            stale=d.get("stale", False),
            fallback=d.get("fallback", False),
            fallback_reason=d.get("fallback_reason"),
            degradation_reason=d.get("degradation_reason"),
            summary=d.get("summary") or {},
            age_seconds=d.get("age_seconds", 0),
        )


@dataclass
class CacheStatus:
    """Operational view of one subject's memory slot."""

    subject_id: str
    has_memory_data: bool
    memory_age_seconds: Optional[int]
    is_fresh: bool
    configured_ttl_minutes: float

    def to_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "has_memory_data": self.has_memory_data,
            "memory_age_seconds": self.memory_age_seconds,
            "is_fresh": self.is_fresh,
            "configured_ttl_minutes": self.configured_ttl_minutes,
        }


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BandSite:
    """Where a band's weather is sampled."""

    name: str
    altitude_m: float
    lat: float
    lon: float


@dataclass(frozen=True)
class Resort:
    """Resort reference data.

    ``utc_offset`` is the resort's fixed local offset; providers that report
    local wall-clock times without an offset are interpreted in it.
    """

    resort_id: str
    name: str
    lat: float
    lon: float
    utc_offset: timedelta
    timezone_name: str
    bands: tuple[BandSite, ...]
    lift_status_url: str

    @property
    def tz(self) -> timezone:
        return timezone(self.utc_offset)

    @property
    def weather_subject_id(self) -> str:
        return f"{self.resort_id}:weather"

    @property
    def lifts_subject_id(self) -> str:
        return f"{self.resort_id}:lifts"


@dataclass(frozen=True)
class Subject:
    """An entity a Reading describes: one kind of data for one resort."""

    subject_id: str
    kind: str  # 'weather' or 'lifts'
    resort: Resort


NOZAWA_ONSEN = Resort(
    resort_id="nozawa-onsen",
    name="Nozawa Onsen",
    lat=36.9205,
    lon=138.4331,
    utc_offset=timedelta(hours=9),
    timezone_name="Asia/Tokyo",
    bands=(
        BandSite("Village", 570, 36.9205, 138.4331),
        BandSite("Mid-Mountain", 1200, 36.9305, 138.4331),
        BandSite("Summit", 1650, 36.9405, 138.4331),
    ),
    lift_status_url="https://en.nozawaski.com/the-mountain/moutain-info/slopes-lifts/",
)

RESORTS = {NOZAWA_ONSEN.resort_id: NOZAWA_ONSEN}


def weather_subject(resort: Resort) -> Subject:
    return Subject(resort.weather_subject_id, "weather", resort)


def lifts_subject(resort: Resort) -> Subject:
    return Subject(resort.lifts_subject_id, "lifts", resort)
