"""Weather adapters: provider raw payload -> WeatherPayload.

Guarantees for every returned payload:

* every band's hourly lists are index-aligned with ``hourly.time``,
  strictly increasing, and start at the same instant as every other band;
* every timestamp carries an explicit UTC offset (from the provider, or the
  resort's fixed offset for providers that report local wall-clock time);
* missing precipitation/snowfall values are 0, other numeric values are
  None when missing, never NaN.
"""

import logging
import math
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Optional

from snowstatus.cache.models import (
    CurrentConditions,
    DailySeries,
    ElevationBand,
    HourlySeries,
    Subject,
    WeatherPayload,
)
from snowstatus.errors import MalformedPayload
from snowstatus.normalize.conditions import wmo_condition, wwo_condition

logger = logging.getLogger(__name__)

# WWO slot times are HHMM without leading zeros: "0", "300", ..., "2100"
WWO_SLOT_HOURS = 3

# Lowest band first; WWO names its levels bottom/mid/top
WWO_LEVELS = ("bottom", "mid", "top")


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def _num(value: Any) -> Optional[float]:
    """Parse a provider number; None/blank/garbage/NaN become None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(parsed) or math.isinf(parsed):
        return None
    return parsed


def _zero(value: Any) -> float:
    parsed = _num(value)
    return 0.0 if parsed is None else parsed


def _int(value: Any) -> Optional[int]:
    parsed = _num(value)
    return None if parsed is None else int(round(parsed))


def _local_time(text: str, tz: tzinfo) -> datetime:
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def _check_increasing(times: list[datetime], label: str) -> None:
    for earlier, later in zip(times, times[1:]):
        if later <= earlier:
            raise MalformedPayload(f"{label} times are not increasing at {later.isoformat()}")


def _column(block: dict, name: str, length: int, label: str) -> list:
    values = block.get(name)
    if values is None:
        return [None] * length
    if len(values) != length:
        raise MalformedPayload(
            f"{label}.{name} has {len(values)} values for {length} timestamps"
        )
    return list(values)


def align_bands(bands: list[ElevationBand]) -> list[ElevationBand]:
    """Trim bands to a common hourly start/length and common daily start/length."""
    if not bands:
        raise MalformedPayload("Weather payload has no elevation bands")

    hourly_starts = [b.hourly.time[0] for b in bands if len(b.hourly)]
    if len(hourly_starts) not in (0, len(bands)):
        raise MalformedPayload("Some bands have an empty hourly series")
    daily_starts = [b.daily.date[0] for b in bands if len(b.daily)]

    common_start = max(hourly_starts) if hourly_starts else None
    common_day = max(daily_starts) if daily_starts else None

    trimmed = []
    for band in bands:
        hourly = band.hourly
        if common_start is not None:
            skip = sum(1 for t in hourly.time if t < common_start)
            hourly = HourlySeries(
                time=hourly.time[skip:],
                **{name: hourly.values(name)[skip:] for name in HourlySeries.FIELDS},
            )
        daily = band.daily
        if common_day is not None:
            skip = sum(1 for d in daily.date if d < common_day)
            daily = DailySeries(
                date=daily.date[skip:],
                **{name: getattr(daily, name)[skip:] for name in DailySeries.FIELDS},
            )
        trimmed.append((band, hourly, daily))

    hourly_len = min(len(h) for _, h, _ in trimmed)
    daily_len = min(len(d) for _, _, d in trimmed)

    aligned = []
    for band, hourly, daily in trimmed:
        if len(hourly) != hourly_len or len(daily) != daily_len:
            logger.debug(
                f"Truncating band {band.name} to {hourly_len} hourly / {daily_len} daily samples"
            )
        aligned.append(
            ElevationBand(
                name=band.name,
                altitude_m=band.altitude_m,
                current=band.current,
                hourly=HourlySeries(
                    time=hourly.time[:hourly_len],
                    **{n: hourly.values(n)[:hourly_len] for n in HourlySeries.FIELDS},
                ),
                daily=DailySeries(
                    date=daily.date[:daily_len],
                    **{n: getattr(daily, n)[:daily_len] for n in DailySeries.FIELDS},
                ),
            )
        )
    return aligned


# ---------------------------------------------------------------------------
# Open-Meteo
# ---------------------------------------------------------------------------


def _open_meteo_band(entry: dict, subject: Subject) -> ElevationBand:
    response = entry["response"]
    offset = response.get("utc_offset_seconds")
    if offset is None:
        tz = subject.resort.tz
    else:
        tz = timezone(timedelta(seconds=int(offset)))

    label = f"open-meteo[{entry['name']}]"

    current = response.get("current") or {}
    if not current.get("time"):
        raise MalformedPayload(f"{label} has no current block")

    hourly = response.get("hourly") or {}
    times = [_local_time(t, tz) for t in hourly.get("time") or []]
    _check_increasing(times, f"{label}.hourly")
    n = len(times)

    daily = response.get("daily") or {}
    days = [date.fromisoformat(d) for d in daily.get("time") or []]
    m = len(days)

    return ElevationBand(
        name=entry["name"],
        altitude_m=float(entry["altitude_m"]),
        current=CurrentConditions(
            time=_local_time(current["time"], tz),
            temperature_c=_num(current.get("temperature_2m")),
            apparent_temperature_c=_num(current.get("apparent_temperature")),
            humidity_pct=_int(current.get("relative_humidity_2m")),
            precipitation_mm=_zero(current.get("precipitation")),
            snowfall_cm=_zero(current.get("snowfall")),
            wind_speed_kmh=_num(current.get("wind_speed_10m")),
            wind_direction_deg=_int(current.get("wind_direction_10m")),
            condition=wmo_condition(current.get("weather_code")).value,
        ),
        hourly=HourlySeries(
            time=times,
            temperature_c=[_num(v) for v in _column(hourly, "temperature_2m", n, label)],
            precipitation_mm=[_zero(v) for v in _column(hourly, "precipitation", n, label)],
            snowfall_cm=[_zero(v) for v in _column(hourly, "snowfall", n, label)],
            wind_speed_kmh=[_num(v) for v in _column(hourly, "wind_speed_10m", n, label)],
            wind_direction_deg=[_int(v) for v in _column(hourly, "wind_direction_10m", n, label)],
            condition=[wmo_condition(v).value for v in _column(hourly, "weather_code", n, label)],
        ),
        daily=DailySeries(
            date=days,
            temperature_max_c=[_num(v) for v in _column(daily, "temperature_2m_max", m, label)],
            temperature_min_c=[_num(v) for v in _column(daily, "temperature_2m_min", m, label)],
            precipitation_sum_mm=[_zero(v) for v in _column(daily, "precipitation_sum", m, label)],
            snowfall_sum_cm=[_zero(v) for v in _column(daily, "snowfall_sum", m, label)],
            precipitation_probability_max=[
                _int(v) for v in _column(daily, "precipitation_probability_max", m, label)
            ],
        ),
    )


def normalize_open_meteo(raw: dict, subject: Subject, now: datetime) -> WeatherPayload:
    """Normalize the Open-Meteo per-band responses."""
    entries = raw.get("bands")
    if not entries:
        raise MalformedPayload("open-meteo payload has no bands")
    bands = [_open_meteo_band(entry, subject) for entry in entries]
    bands.sort(key=lambda b: b.altitude_m)
    return WeatherPayload(bands=align_bands(bands))


# ---------------------------------------------------------------------------
# World Weather Online
# ---------------------------------------------------------------------------


def _wwo_slot_time(day: str, slot: Any, tz: tzinfo) -> datetime:
    """Convert a WWO day + "HHMM" slot ("0", "300", "2100") to an aware datetime."""
    text = str(slot).zfill(4)
    return datetime.fromisoformat(f"{day}T{text[:2]}:{text[2:]}:00").replace(tzinfo=tz)


def merge_wwo_days(weather: list[dict]) -> list[dict]:
    """Merge WWO per-slot records into one record per date.

    WWO may emit several ``weather`` entries for the same date, each
    carrying a subset of the 3-hourly slots. Daily fields are taken from
    the first entry of a date; slots are concatenated and sorted by time.
    """
    by_date: dict[str, dict] = {}
    for entry in weather:
        day = entry["date"]
        if day not in by_date:
            by_date[day] = {**entry, "hourly": list(entry.get("hourly") or [])}
        else:
            by_date[day]["hourly"].extend(entry.get("hourly") or [])

    days = sorted(by_date.values(), key=lambda d: d["date"])
    for day in days:
        day["hourly"].sort(key=lambda slot: int(slot.get("time", 0)))
    return days


def _level(record: dict, level: str) -> dict:
    values = record.get(level) or [{}]
    return values[0] if isinstance(values[0], dict) else {}


def _current_slot(days: list[dict], local_now: datetime) -> tuple[dict, dict]:
    today = next((d for d in days if d["date"] == local_now.date().isoformat()), days[0])
    slots = today["hourly"]
    if not slots:
        raise MalformedPayload(f"WWO day {today['date']} has no hourly slots")
    index = local_now.hour // WWO_SLOT_HOURS
    return today, slots[index] if index < len(slots) else slots[0]


def _wwo_band(name: str, altitude_m: float, level: str, days: list[dict],
              today: dict, slot: dict, tz: tzinfo) -> ElevationBand:
    slot_level = _level(slot, level)
    description = (slot_level.get("weatherDesc") or [{}])[0].get("value")

    times, temps, precip, snow, wind, wind_dir, conditions = [], [], [], [], [], [], []
    for day in days:
        for hour in day["hourly"]:
            hour_level = _level(hour, level)
            times.append(_wwo_slot_time(day["date"], hour.get("time", 0), tz))
            temps.append(_num(hour_level.get("tempC")))
            precip.append(_zero(hour.get("precipMM")))
            snow.append(_zero(hour.get("snowfall_cm")))
            wind.append(_num(hour_level.get("windspeedKmph")))
            wind_dir.append(_int(hour_level.get("winddirDegree")))
            conditions.append(wwo_condition(hour_level.get("weatherCode")).value)

    return ElevationBand(
        name=name,
        altitude_m=float(altitude_m),
        current=CurrentConditions(
            time=_wwo_slot_time(today["date"], slot.get("time", 0), tz),
            temperature_c=_num(slot_level.get("tempC")),
            humidity_pct=_int(slot.get("humidity")),
            precipitation_mm=_zero(slot.get("precipMM")),
            snowfall_cm=_zero(slot.get("snowfall_cm")),
            wind_speed_kmh=_num(slot_level.get("windspeedKmph")),
            wind_direction_deg=_int(slot_level.get("winddirDegree")),
            condition=wwo_condition(slot_level.get("weatherCode")).value,
            description=description,
        ),
        hourly=HourlySeries(
            time=times,
            temperature_c=temps,
            precipitation_mm=precip,
            snowfall_cm=snow,
            wind_speed_kmh=wind,
            wind_direction_deg=wind_dir,
            condition=conditions,
        ),
        daily=DailySeries(
            date=[date.fromisoformat(d["date"]) for d in days],
            temperature_max_c=[_num(_level(d, level).get("maxtempC")) for d in days],
            temperature_min_c=[_num(_level(d, level).get("mintempC")) for d in days],
            precipitation_sum_mm=[
                round(sum(_zero(h.get("precipMM")) for h in d["hourly"]), 1) for d in days
            ],
            snowfall_sum_cm=[_zero(d.get("totalSnowfall_cm")) for d in days],
            precipitation_probability_max=[_int(d.get("chanceofsnow")) for d in days],
        ),
    )


def _wwo_levels(count: int) -> list[str]:
    """Map resort bands (lowest first) onto WWO levels."""
    if count == 1:
        return ["mid"]
    if count == 2:
        return ["bottom", "top"]
    return ["bottom"] + ["mid"] * (count - 2) + ["top"]


def normalize_wwo(raw: dict, subject: Subject, now: datetime) -> WeatherPayload:
    """Normalize a WWO ski forecast.

    WWO reports wall-clock times in the resort's local time without an
    offset, so every slot gets the resort's fixed offset attached.
    """
    weather = (raw.get("data") or {}).get("weather")
    if not weather:
        raise MalformedPayload("WWO payload has no weather days", "wwo")

    tz = subject.resort.tz
    days = merge_wwo_days(weather)
    today, slot = _current_slot(days, now.astimezone(tz))

    sites = sorted(subject.resort.bands, key=lambda b: b.altitude_m)
    bands = [
        _wwo_band(site.name, site.altitude_m, level, days, today, slot, tz)
        for site, level in zip(sites, _wwo_levels(len(sites)))
    ]
    for band in bands:
        _check_increasing(band.hourly.time, f"wwo[{band.name}].hourly")

    return WeatherPayload(
        bands=align_bands(bands),
        chance_of_snow=_int(today.get("chanceofsnow")),
        freeze_level_m=_int(slot.get("freezeLevel")),
    )
