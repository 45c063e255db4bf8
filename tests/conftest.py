"""Shared pytest fixtures for snowstatus tests.

Test Tiers:
- unit: Fast tests with fixtures, no network (default)
- live: Real provider tests, slow, requires network and may need credentials

Run live tests with: pytest -m live --run-live
"""

import subprocess
import sys
import tempfile
import threading
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest

from snowstatus.cache.database import SnapshotDatabase
from snowstatus.cache.models import (
    NOZAWA_ONSEN,
    CurrentConditions,
    DailySeries,
    ElevationBand,
    HourlySeries,
    Origin,
    Reading,
    WeatherPayload,
    lifts_subject,
    weather_subject,
)
from snowstatus.errors import ProviderError
from snowstatus.providers.base import Provider

JST = timezone(timedelta(hours=9))


def pytest_addoption(parser):
    """Add command line options for test configuration."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run live API tests (slow, requires network)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests using fixtures")
    config.addinivalue_line("markers", "live: real API tests (slow, requires network)")


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is specified."""
    if config.getoption("--run-live"):
        # --run-live given: don't skip live tests
        return

    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# -----------------------------------------------------------------------------
# Clock and stub providers
# -----------------------------------------------------------------------------


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class StubProvider(Provider):
    """In-process provider returning a canned raw payload or raising an error.

    ``gate`` (a threading.Event), when given, blocks fetch until it is set.
    """

    def __init__(
        self,
        provider_id: str,
        raw: Optional[dict] = None,
        error: Optional[ProviderError] = None,
        configured: bool = True,
        gate: Optional[threading.Event] = None,
    ):
        self.provider_id = provider_id
        self.raw = raw if raw is not None else {}
        self.error = error
        self.configured = configured
        self.gate = gate
        self.calls = 0
        self._lock = threading.Lock()

    def is_configured(self) -> bool:
        return self.configured

    def fetch(self, subject):
        with self._lock:
            self.calls += 1
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return self.raw


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 2025-01-15 08:00 JST (in season, inside the timetable)."""
    return FakeClock(datetime(2025, 1, 15, 8, 0, tzinfo=JST).astimezone(timezone.utc))


@pytest.fixture
def stub_provider():
    """Factory for StubProvider instances."""
    return StubProvider


# -----------------------------------------------------------------------------
# Canonical model builders
# -----------------------------------------------------------------------------


def make_hourly(start: datetime, values: list, field: str = "snowfall_cm") -> HourlySeries:
    """Hourly series with ``values`` in ``field`` and defaults elsewhere."""
    n = len(values)
    columns = {
        "temperature_c": [0.0] * n,
        "precipitation_mm": [0.0] * n,
        "snowfall_cm": [0.0] * n,
        "wind_speed_kmh": [None] * n,
        "wind_direction_deg": [None] * n,
        "condition": ["clear"] * n,
    }
    columns[field] = list(values)
    return HourlySeries(time=[start + timedelta(hours=i) for i in range(n)], **columns)


def make_band(
    name: str,
    altitude_m: float,
    temperature_c: Optional[float],
    start: datetime,
    snowfall: Optional[list] = None,
    wind_speed_kmh: Optional[float] = None,
) -> ElevationBand:
    snowfall = snowfall if snowfall is not None else [0.5] * 24
    return ElevationBand(
        name=name,
        altitude_m=altitude_m,
        current=CurrentConditions(
            time=start,
            temperature_c=temperature_c,
            wind_speed_kmh=wind_speed_kmh,
            condition="snow",
        ),
        hourly=make_hourly(start, snowfall),
        daily=DailySeries(
            date=[date(2025, 1, 15)],
            temperature_max_c=[temperature_c],
            temperature_min_c=[temperature_c],
            precipitation_sum_mm=[1.0],
            snowfall_sum_cm=[sum(snowfall)],
            precipitation_probability_max=[80],
        ),
    )


def make_weather_payload(
    start: datetime,
    village_c: Optional[float] = -2.0,
    mid_c: Optional[float] = -5.0,
    summit_c: Optional[float] = -8.0,
) -> WeatherPayload:
    return WeatherPayload(
        bands=[
            make_band("Village", 570, village_c, start),
            make_band("Mid-Mountain", 1200, mid_c, start),
            make_band("Summit", 1650, summit_c, start),
        ]
    )


def make_reading(
    subject_id: str,
    fetched_at: datetime,
    ttl_minutes: float = 10,
    origin: Origin = Origin.PROVIDER_PRIMARY,
    provider_id: str = "open-meteo",
    payload=None,
) -> Reading:
    return Reading(
        subject_id=subject_id,
        fetched_at=fetched_at,
        expires_at=fetched_at + timedelta(minutes=ttl_minutes),
        origin=origin,
        payload=payload or make_weather_payload(fetched_at),
        provider_id=provider_id,
    )


@pytest.fixture
def weather_payload_factory():
    return make_weather_payload


@pytest.fixture
def hourly_factory():
    return make_hourly


@pytest.fixture
def band_factory():
    return make_band


@pytest.fixture
def reading_factory():
    return make_reading


@pytest.fixture
def weather_subject_nozawa():
    return weather_subject(NOZAWA_ONSEN)


@pytest.fixture
def lifts_subject_nozawa():
    return lifts_subject(NOZAWA_ONSEN)


# -----------------------------------------------------------------------------
# Snapshot store
# -----------------------------------------------------------------------------


@pytest.fixture
def temp_db():
    """Create a temporary snapshot database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db = SnapshotDatabase(Path(tmpdir) / "test.duckdb")
        yield db
        db.close()


HOLD_LOCK_SCRIPT = """
import sys
import duckdb

conn = duckdb.connect(sys.argv[1])
conn.execute("CREATE TABLE IF NOT EXISTS held (x INTEGER)")
print("locked", flush=True)
sys.stdin.read()
"""


@pytest.fixture
def locked_db_path(tmp_path):
    """Path to a DuckDB file held open read-write by another process."""
    path = tmp_path / "locked.duckdb"
    holder = subprocess.Popen(
        [sys.executable, "-c", HOLD_LOCK_SCRIPT, str(path)],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        text=True,
    )
    try:
        assert holder.stdout.readline().strip() == "locked"
        yield path
    finally:
        holder.stdin.close()
        holder.wait(timeout=10)
        holder.stdout.close()


@pytest.fixture
def unreachable_db_path(tmp_path):
    """Path whose parent is a regular file, so the store can never be created."""
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("")
    return blocker / "snapshots.duckdb"


# -----------------------------------------------------------------------------
# Provider raw payloads
# -----------------------------------------------------------------------------


def open_meteo_response(
    start: str = "2025-01-15T00:00",
    hours: int = 48,
    temperature: float = -3.0,
    snowfall: float = 0.2,
    days: int = 2,
    utc_offset_seconds: Optional[int] = 32400,
) -> dict:
    """Open-Meteo JSON for one band, local times in the resort's timezone."""
    first = datetime.fromisoformat(start)
    times = [(first + timedelta(hours=i)).strftime("%Y-%m-%dT%H:%M") for i in range(hours)]
    first_day = first.date()
    response = {
        "latitude": 36.92,
        "longitude": 138.43,
        "timezone": "Asia/Tokyo",
        "current": {
            "time": start,
            "temperature_2m": temperature,
            "relative_humidity_2m": 85,
            "apparent_temperature": temperature - 4,
            "precipitation": 0.3,
            "snowfall": snowfall,
            "weather_code": 73,
            "wind_speed_10m": 12.0,
            "wind_direction_10m": 300,
        },
        "hourly": {
            "time": times,
            "temperature_2m": [temperature] * hours,
            "precipitation": [0.3] * hours,
            "snowfall": [snowfall] * hours,
            "weather_code": [73] * hours,
            "wind_speed_10m": [12.0] * hours,
            "wind_direction_10m": [300] * hours,
        },
        "daily": {
            "time": [(first_day + timedelta(days=d)).isoformat() for d in range(days)],
            "temperature_2m_max": [temperature + 2] * days,
            "temperature_2m_min": [temperature - 2] * days,
            "precipitation_sum": [7.2] * days,
            "snowfall_sum": [snowfall * 24] * days,
            "precipitation_probability_max": [90] * days,
        },
    }
    if utc_offset_seconds is not None:
        response["utc_offset_seconds"] = utc_offset_seconds
    return response


def open_meteo_raw(**kwargs) -> dict:
    temps = {"Village": -1.0, "Mid-Mountain": -4.0, "Summit": -7.0}
    return {
        "provider": "open-meteo",
        "bands": [
            {
                "name": site.name,
                "altitude_m": site.altitude_m,
                "response": open_meteo_response(temperature=temps[site.name], **kwargs),
            }
            for site in NOZAWA_ONSEN.bands
        ],
    }


def wwo_slot(time: str, temp_bottom: float, freeze_level: int = 800, snowfall: float = 0.4) -> dict:
    def level(temp):
        return [{
            "tempC": str(temp),
            "windspeedKmph": "20",
            "winddirDegree": "290",
            "weatherCode": "326",
            "weatherDesc": [{"value": "Light snow"}],
        }]

    return {
        "time": time,
        "precipMM": "0.6",
        "snowfall_cm": str(snowfall),
        "humidity": "90",
        "freezeLevel": str(freeze_level),
        "chanceofsnow": "80",
        "bottom": level(temp_bottom),
        "mid": level(temp_bottom - 4),
        "top": level(temp_bottom - 7),
    }


def wwo_raw(days: tuple = ("2025-01-15", "2025-01-16"), split: bool = True) -> dict:
    """WWO ski JSON; with ``split`` each date is emitted as several records."""
    slot_times = ["0", "300", "600", "900", "1200", "1500", "1800", "2100"]
    weather = []
    for day in days:
        daily = {
            "date": day,
            "chanceofsnow": "80",
            "totalSnowfall_cm": "3.2",
            "bottom": [{"maxtempC": "1", "mintempC": "-4"}],
            "mid": [{"maxtempC": "-3", "mintempC": "-8"}],
            "top": [{"maxtempC": "-6", "mintempC": "-11"}],
        }
        slots = [wwo_slot(t, -2.0) for t in slot_times]
        if split:
            # Out of order and spread over two records for the same date
            weather.append({**daily, "hourly": slots[4:]})
            weather.append({**daily, "hourly": slots[:4]})
        else:
            weather.append({**daily, "hourly": slots})
    return {"data": {"request": [{"type": "LatLon"}], "weather": weather}}


LIFT_TABLE_HTML = """
<html><body>
<table>
  <tr><th>No</th><th>Lift</th><th>Hours</th><th>Status</th></tr>
  <tr><td>1</td><td>Nagasaka Gondola</td><td>8:30-16:30</td><td>○</td></tr>
  <tr><td>2</td><td>Hikage Gondola</td><td>8:30-16:00</td><td>×</td></tr>
  <tr><td>3</td><td>Yamabiko Quad</td><td>8:30-16:00</td><td>○</td></tr>
  <tr><td>4</td><td>Yamabiko No 2 Quad</td><td>8:30-16:00</td><td>?</td></tr>
  <tr><td>5</td><td>Nagasaka Gondola</td><td>8:30-16:30</td><td>×</td></tr>
  <tr><td>6</td><td>Unknown Lift</td><td>8:30-16:30</td><td>○</td></tr>
</table>
</body></html>
"""

LIFT_ICONS_HTML = """
<html><body>
<div class="lifts">
  <img src="/images/lift/new_nagasaka_g_on.gif">
  <img src="/images/lift/3_hikageG_off.gif">
  <img src="/images/lift/16_paradise_on.gif">
  <img src="/images/lift/16_paradise_off.gif">
  <img src="/images/logo.png">
</div>
</body></html>
"""

OFF_SEASON_HTML = """
<html><body><p>今シーズン 営業終了 - Season finished. See you next winter!</p></body></html>
"""


@pytest.fixture
def open_meteo_raw_factory():
    return open_meteo_raw


@pytest.fixture
def open_meteo_response_factory():
    return open_meteo_response


@pytest.fixture
def wwo_raw_factory():
    return wwo_raw


@pytest.fixture
def lift_table_html() -> str:
    return LIFT_TABLE_HTML


@pytest.fixture
def lift_icons_html() -> str:
    return LIFT_ICONS_HTML


@pytest.fixture
def off_season_html() -> str:
    return OFF_SEASON_HTML
