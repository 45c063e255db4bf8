"""Open-Meteo weather provider.

Free, keyless forecast API. One request per elevation band, each with the
band's coordinates and an explicit ``elevation`` so the model applies its
own altitude correction.
"""

import logging
from typing import Any, Optional

import requests

from snowstatus.cache.models import Subject
from snowstatus.errors import MalformedPayload
from snowstatus.providers.base import HTTPProvider, RequestConfig

logger = logging.getLogger(__name__)

OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"

CURRENT_FIELDS = (
    "temperature_2m",
    "relative_humidity_2m",
    "apparent_temperature",
    "precipitation",
    "snowfall",
    "weather_code",
    "wind_speed_10m",
    "wind_direction_10m",
)
HOURLY_FIELDS = (
    "temperature_2m",
    "precipitation",
    "snowfall",
    "weather_code",
    "wind_speed_10m",
    "wind_direction_10m",
)
DAILY_FIELDS = (
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
    "snowfall_sum",
    "precipitation_probability_max",
)


class OpenMeteoProvider(HTTPProvider):
    """Fetches current/hourly/daily weather for every band of a resort.

    Raw payload shape::

        {"provider": "open-meteo",
         "bands": [{"name": ..., "altitude_m": ..., "response": {...}}, ...]}

    where ``response`` is the untouched Open-Meteo JSON. Times in the
    response are local wall-clock times in the requested timezone; the
    offset is given separately in ``utc_offset_seconds``.
    """

    provider_id = "open-meteo"

    def __init__(
        self,
        base_url: str = OPEN_METEO_URL,
        forecast_days: int = 7,
        enabled: bool = True,
        session: Optional[requests.Session] = None,
        request_config: Optional[RequestConfig] = None,
    ) -> None:
        super().__init__(session=session, request_config=request_config)
        self.base_url = base_url
        self.forecast_days = forecast_days
        self.enabled = enabled

    def is_configured(self) -> bool:
        return self.enabled

    def fetch(self, subject: Subject) -> dict[str, Any]:
        resort = subject.resort
        bands = []
        for site in resort.bands:
            params = {
                "latitude": site.lat,
                "longitude": site.lon,
                "elevation": site.altitude_m,
                "current": ",".join(CURRENT_FIELDS),
                "hourly": ",".join(HOURLY_FIELDS),
                "daily": ",".join(DAILY_FIELDS),
                "timezone": resort.timezone_name,
                "forecast_days": self.forecast_days,
            }
            data = self._get_json(self.base_url, params=params)
            if not isinstance(data, dict):
                raise MalformedPayload("Open-Meteo response is not an object", self.provider_id)
            if data.get("error"):
                raise MalformedPayload(
                    f"Open-Meteo error: {data.get('reason', 'unknown')}", self.provider_id
                )
            bands.append({"name": site.name, "altitude_m": site.altitude_m, "response": data})

        logger.debug(f"Open-Meteo returned {len(bands)} bands for {subject.subject_id}")
        return {"provider": self.provider_id, "bands": bands}
