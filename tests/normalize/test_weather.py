"""Tests for weather normalization (Open-Meteo and WWO)."""

from datetime import date, datetime, timedelta, timezone

import pytest

from snowstatus.cache.models import WeatherPayload
from snowstatus.errors import MalformedPayload
from snowstatus.normalize import normalize
from snowstatus.normalize.weather import merge_wwo_days

JST = timezone(timedelta(hours=9))
NOW = datetime(2025, 1, 15, 8, 0, tzinfo=JST)


class TestOpenMeteo:
    """Tests for the Open-Meteo adapter."""

    def test_normalizes_all_bands(self, open_meteo_raw_factory, weather_subject_nozawa):
        payload = normalize("open-meteo", open_meteo_raw_factory(), weather_subject_nozawa, NOW)

        assert isinstance(payload, WeatherPayload)
        assert [b.name for b in payload.bands] == ["Village", "Mid-Mountain", "Summit"]
        assert payload.village.current.temperature_c == -1.0
        assert payload.summit.current.temperature_c == -7.0
        assert payload.village.current.condition == "snow"
        assert payload.village.current.humidity_pct == 85
        assert payload.chance_of_snow is None

    def test_times_carry_offset(self, open_meteo_raw_factory, weather_subject_nozawa):
        payload = normalize("open-meteo", open_meteo_raw_factory(), weather_subject_nozawa, NOW)

        hourly = payload.village.hourly
        assert hourly.time[0] == datetime(2025, 1, 15, 0, 0, tzinfo=JST)
        assert hourly.time[0].utcoffset() == timedelta(hours=9)
        assert len(hourly) == 48
        assert payload.village.daily.date == [date(2025, 1, 15), date(2025, 1, 16)]

    def test_missing_offset_uses_resort_timezone(
        self, open_meteo_raw_factory, weather_subject_nozawa
    ):
        raw = open_meteo_raw_factory(utc_offset_seconds=None)

        payload = normalize("open-meteo", raw, weather_subject_nozawa, NOW)

        assert payload.village.current.time.utcoffset() == timedelta(hours=9)

    def test_bands_sorted_by_altitude(self, open_meteo_raw_factory, weather_subject_nozawa):
        raw = open_meteo_raw_factory()
        raw["bands"].reverse()

        payload = normalize("open-meteo", raw, weather_subject_nozawa, NOW)

        assert [b.altitude_m for b in payload.bands] == [570, 1200, 1650]

    def test_bands_aligned_to_common_start(
        self, open_meteo_raw_factory, open_meteo_response_factory, weather_subject_nozawa
    ):
        """A band starting an hour later trims the others to the same start and length."""
        raw = open_meteo_raw_factory()
        raw["bands"][2]["response"] = open_meteo_response_factory(start="2025-01-15T01:00")

        payload = normalize("open-meteo", raw, weather_subject_nozawa, NOW)

        lengths = {len(b.hourly) for b in payload.bands}
        starts = {b.hourly.time[0] for b in payload.bands}
        assert lengths == {47}
        assert starts == {datetime(2025, 1, 15, 1, 0, tzinfo=JST)}
        for band in payload.bands:
            for name in ("temperature_c", "snowfall_cm", "condition"):
                assert len(band.hourly.values(name)) == 47

    def test_missing_values(self, open_meteo_raw_factory, weather_subject_nozawa):
        raw = open_meteo_raw_factory()
        hourly = raw["bands"][0]["response"]["hourly"]
        hourly["snowfall"][0] = None
        hourly["temperature_2m"][0] = float("nan")
        hourly["wind_speed_10m"][1] = None

        payload = normalize("open-meteo", raw, weather_subject_nozawa, NOW)

        village = payload.village.hourly
        assert village.snowfall_cm[0] == 0.0
        assert village.temperature_c[0] is None
        assert village.wind_speed_kmh[1] is None

    def test_missing_column_is_none(self, open_meteo_raw_factory, weather_subject_nozawa):
        raw = open_meteo_raw_factory()
        del raw["bands"][0]["response"]["hourly"]["wind_direction_10m"]

        payload = normalize("open-meteo", raw, weather_subject_nozawa, NOW)

        assert set(payload.village.hourly.wind_direction_deg) == {None}

    def test_column_length_mismatch(self, open_meteo_raw_factory, weather_subject_nozawa):
        raw = open_meteo_raw_factory()
        raw["bands"][0]["response"]["hourly"]["snowfall"].pop()

        with pytest.raises(MalformedPayload) as exc_info:
            normalize("open-meteo", raw, weather_subject_nozawa, NOW)
        assert exc_info.value.provider_id == "open-meteo"

    def test_times_not_increasing(self, open_meteo_raw_factory, weather_subject_nozawa):
        raw = open_meteo_raw_factory()
        times = raw["bands"][0]["response"]["hourly"]["time"]
        times[1], times[2] = times[2], times[1]

        with pytest.raises(MalformedPayload):
            normalize("open-meteo", raw, weather_subject_nozawa, NOW)

    def test_missing_current(self, open_meteo_raw_factory, weather_subject_nozawa):
        raw = open_meteo_raw_factory()
        del raw["bands"][1]["response"]["current"]

        with pytest.raises(MalformedPayload):
            normalize("open-meteo", raw, weather_subject_nozawa, NOW)

    def test_no_bands(self, weather_subject_nozawa):
        with pytest.raises(MalformedPayload):
            normalize("open-meteo", {"provider": "open-meteo"}, weather_subject_nozawa, NOW)

    def test_garbage_body_becomes_malformed(self, weather_subject_nozawa):
        with pytest.raises(MalformedPayload):
            normalize("open-meteo", {"bands": [{"oops": 1}]}, weather_subject_nozawa, NOW)


class TestWorldWeatherOnline:
    """Tests for the WWO adapter."""

    def test_normalizes_levels_to_bands(self, wwo_raw_factory, weather_subject_nozawa):
        payload = normalize("wwo", wwo_raw_factory(), weather_subject_nozawa, NOW)

        assert [b.name for b in payload.bands] == ["Village", "Mid-Mountain", "Summit"]
        assert payload.village.current.temperature_c == -2.0
        assert payload.bands[1].current.temperature_c == -6.0
        assert payload.summit.current.temperature_c == -9.0
        assert payload.village.current.description == "Light snow"
        assert payload.village.current.condition == "snow"

    def test_current_slot_follows_local_time(self, wwo_raw_factory, weather_subject_nozawa):
        payload = normalize("wwo", wwo_raw_factory(), weather_subject_nozawa, NOW)

        # 08:00 local falls in the 06:00 slot
        assert payload.village.current.time == datetime(2025, 1, 15, 6, 0, tzinfo=JST)

    def test_split_days_merged_and_sorted(self, wwo_raw_factory, weather_subject_nozawa):
        payload = normalize("wwo", wwo_raw_factory(), weather_subject_nozawa, NOW)

        hourly = payload.village.hourly
        assert len(hourly) == 16
        assert hourly.time[0] == datetime(2025, 1, 15, 0, 0, tzinfo=JST)
        assert hourly.time[1] == datetime(2025, 1, 15, 3, 0, tzinfo=JST)
        assert all(a < b for a, b in zip(hourly.time, hourly.time[1:]))
        assert payload.village.daily.date == [date(2025, 1, 15), date(2025, 1, 16)]

    def test_bands_share_length_and_start(self, wwo_raw_factory, weather_subject_nozawa):
        payload = normalize("wwo", wwo_raw_factory(), weather_subject_nozawa, NOW)

        assert {len(b.hourly) for b in payload.bands} == {16}
        assert len({b.hourly.time[0] for b in payload.bands}) == 1

    def test_daily_values(self, wwo_raw_factory, weather_subject_nozawa):
        payload = normalize("wwo", wwo_raw_factory(), weather_subject_nozawa, NOW)

        daily = payload.village.daily
        assert daily.precipitation_sum_mm[0] == 4.8
        assert daily.snowfall_sum_cm[0] == 3.2
        assert daily.temperature_max_c[0] == 1.0
        assert payload.summit.daily.temperature_max_c[0] == -6.0

    def test_ski_extras(self, wwo_raw_factory, weather_subject_nozawa):
        payload = normalize("wwo", wwo_raw_factory(), weather_subject_nozawa, NOW)

        assert payload.chance_of_snow == 80
        assert payload.freeze_level_m == 800

    def test_unknown_date_uses_first_day(self, wwo_raw_factory, weather_subject_nozawa):
        later = datetime(2025, 2, 1, 8, 0, tzinfo=JST)

        payload = normalize("wwo", wwo_raw_factory(), weather_subject_nozawa, later)

        assert payload.village.current.time.date() == date(2025, 1, 15)

    def test_no_weather_days(self, weather_subject_nozawa):
        with pytest.raises(MalformedPayload) as exc_info:
            normalize("wwo", {"data": {"weather": []}}, weather_subject_nozawa, NOW)
        assert exc_info.value.provider_id == "wwo"

    def test_merge_wwo_days(self):
        weather = [
            {"date": "2025-01-16", "hourly": [{"time": "0"}]},
            {"date": "2025-01-15", "hourly": [{"time": "1200"}, {"time": "300"}]},
            {"date": "2025-01-15", "hourly": [{"time": "0"}]},
        ]

        days = merge_wwo_days(weather)

        assert [d["date"] for d in days] == ["2025-01-15", "2025-01-16"]
        assert [s["time"] for s in days[0]["hourly"]] == ["0", "300", "1200"]


class TestNormalizeDispatch:
    """Tests for the normalize entry point."""

    def test_unknown_provider(self, weather_subject_nozawa):
        with pytest.raises(MalformedPayload):
            normalize("nope", {}, weather_subject_nozawa, NOW)
