"""Shared weather condition taxonomy.

Each provider has its own integer code space. Both are mapped onto one
``Condition`` taxonomy through explicit per-code tables. The mapping is
total: a code missing from a table maps to ``Condition.CLEAR``.

Open-Meteo uses WMO 4677 codes:
https://open-meteo.com/en/docs (section "WMO Weather interpretation codes")

World Weather Online uses its own codes:
https://www.worldweatheronline.com/weather-api/api/docs/weather-icons.aspx
"""

from enum import Enum
from typing import Optional


class Condition(Enum):
    CLEAR = "clear"
    PARTLY_CLOUDY = "partly-cloudy"
    CLOUDY = "cloudy"
    FOG = "fog"
    LIGHT_RAIN = "light-rain"
    RAIN = "rain"
    HEAVY_RAIN = "heavy-rain"
    SNOW = "snow"
    HEAVY_SNOW = "heavy-snow"
    THUNDER = "thunder"


DEFAULT_CONDITION = Condition.CLEAR

WMO_CONDITIONS: dict[int, Condition] = {
    0: Condition.CLEAR,
    1: Condition.PARTLY_CLOUDY,  # mainly clear
    2: Condition.PARTLY_CLOUDY,
    3: Condition.CLOUDY,  # overcast
    45: Condition.FOG,
    48: Condition.FOG,  # depositing rime fog
    51: Condition.LIGHT_RAIN,  # drizzle
    53: Condition.LIGHT_RAIN,
    55: Condition.LIGHT_RAIN,
    56: Condition.LIGHT_RAIN,  # freezing drizzle
    57: Condition.LIGHT_RAIN,
    61: Condition.LIGHT_RAIN,
    63: Condition.RAIN,
    65: Condition.HEAVY_RAIN,
    66: Condition.RAIN,  # freezing rain
    67: Condition.HEAVY_RAIN,
    71: Condition.SNOW,
    73: Condition.SNOW,
    75: Condition.HEAVY_SNOW,
    77: Condition.SNOW,  # snow grains
    80: Condition.LIGHT_RAIN,  # showers
    81: Condition.RAIN,
    82: Condition.HEAVY_RAIN,
    85: Condition.SNOW,  # snow showers
    86: Condition.HEAVY_SNOW,
    95: Condition.THUNDER,
    96: Condition.THUNDER,  # with hail
    99: Condition.THUNDER,
}

WWO_CONDITIONS: dict[int, Condition] = {
    113: Condition.CLEAR,  # sunny / clear
    116: Condition.PARTLY_CLOUDY,
    119: Condition.CLOUDY,
    122: Condition.CLOUDY,  # overcast
    143: Condition.FOG,  # mist
    176: Condition.LIGHT_RAIN,  # patchy rain possible
    179: Condition.SNOW,  # patchy snow possible
    182: Condition.LIGHT_RAIN,  # patchy sleet possible
    185: Condition.LIGHT_RAIN,  # patchy freezing drizzle
    200: Condition.THUNDER,  # thundery outbreaks
    227: Condition.SNOW,  # blowing snow
    230: Condition.HEAVY_SNOW,  # blizzard
    248: Condition.FOG,
    260: Condition.FOG,  # freezing fog
    263: Condition.LIGHT_RAIN,  # patchy light drizzle
    266: Condition.LIGHT_RAIN,  # light drizzle
    281: Condition.LIGHT_RAIN,  # freezing drizzle
    284: Condition.RAIN,  # heavy freezing drizzle
    293: Condition.LIGHT_RAIN,  # patchy light rain
    296: Condition.LIGHT_RAIN,
    299: Condition.RAIN,  # moderate rain at times
    302: Condition.RAIN,
    305: Condition.HEAVY_RAIN,  # heavy rain at times
    308: Condition.HEAVY_RAIN,
    311: Condition.LIGHT_RAIN,  # light freezing rain
    314: Condition.RAIN,  # moderate or heavy freezing rain
    317: Condition.LIGHT_RAIN,  # light sleet
    320: Condition.RAIN,  # moderate or heavy sleet
    323: Condition.SNOW,  # patchy light snow
    326: Condition.SNOW,
    329: Condition.SNOW,  # patchy moderate snow
    332: Condition.SNOW,
    335: Condition.HEAVY_SNOW,  # patchy heavy snow
    338: Condition.HEAVY_SNOW,
    350: Condition.RAIN,  # ice pellets
    353: Condition.LIGHT_RAIN,  # light rain shower
    356: Condition.RAIN,
    359: Condition.HEAVY_RAIN,  # torrential rain shower
    362: Condition.LIGHT_RAIN,  # light sleet showers
    365: Condition.RAIN,
    368: Condition.SNOW,  # light snow showers
    371: Condition.HEAVY_SNOW,
    374: Condition.RAIN,  # light showers of ice pellets
    377: Condition.RAIN,
    386: Condition.THUNDER,
    389: Condition.THUNDER,
    392: Condition.THUNDER,  # patchy light snow with thunder
    395: Condition.THUNDER,
}

PROVIDER_TABLES: dict[str, dict[int, Condition]] = {
    "open-meteo": WMO_CONDITIONS,
    "wwo": WWO_CONDITIONS,
}


def _as_code(code) -> Optional[int]:
    if code is None or isinstance(code, bool):
        return None
    try:
        return int(code)
    except (TypeError, ValueError):
        return None


def map_condition(table: dict[int, Condition], code) -> Condition:
    """Look up a provider code; anything unknown or unparseable is CLEAR."""
    parsed = _as_code(code)
    if parsed is None:
        return DEFAULT_CONDITION
    return table.get(parsed, DEFAULT_CONDITION)


def wmo_condition(code) -> Condition:
    return map_condition(WMO_CONDITIONS, code)


def wwo_condition(code) -> Condition:
    return map_condition(WWO_CONDITIONS, code)
