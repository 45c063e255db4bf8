"""Derived weather classifications: snow line and wind chill."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from snowstatus.cache.models import ElevationBand


class SnowLineKind(Enum):
    VILLAGE = "snow-to-village"
    ABOVE = "snow-above"
    MIXED = "mixed"
    NONE = "no-snow"


@dataclass(frozen=True)
class SnowLinePolicy:
    """Thresholds for the snow line classification.

    Temperature branch (village/summit current temperature):

    * village <= ``cold_c``                      -> snow to village level
    * village > ``warm_c`` and summit <= ``cold_c`` -> snow above ~<altitude>m
    * summit > ``warm_c``                        -> no snow (too warm)
    * anything else, or a missing temperature    -> mixed conditions

    The "snow above" altitude is where the village-summit temperature
    profile crosses ``cold_c``, rounded to ``rounding_m``.

    Freeze-level branch (used when the provider reports a freezing level):

    * freeze level <= village altitude -> snow to village level
    * freeze level <= summit altitude  -> snow above ~<freeze level>m
    * chance of snow > 0               -> mixed conditions
    * otherwise                        -> no snow (too warm)
    """

    cold_c: float = 0.0
    warm_c: float = 2.0
    rounding_m: int = 100


DEFAULT_POLICY = SnowLinePolicy()


@dataclass(frozen=True)
class SnowLine:
    kind: SnowLineKind
    label: str
    altitude_m: Optional[int] = None

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "label": self.label, "altitude_m": self.altitude_m}


def _village(band: ElevationBand) -> SnowLine:
    return SnowLine(SnowLineKind.VILLAGE, "Snow to village level", int(band.altitude_m))


def _above(altitude_m: int) -> SnowLine:
    return SnowLine(SnowLineKind.ABOVE, f"Snow above ~{altitude_m}m", altitude_m)


MIXED = SnowLine(SnowLineKind.MIXED, "Mixed conditions")
NO_SNOW = SnowLine(SnowLineKind.NONE, "No snow (too warm)")


def interpolate_snow_line(
    base_temp_c: float,
    base_elev_m: float,
    top_temp_c: float,
    top_elev_m: float,
    threshold_c: float = 0.0,
) -> float:
    """Elevation where the temperature profile crosses ``threshold_c``.

    Linear between the two observations, clamped to [base, top].
    """
    if base_temp_c <= threshold_c:
        return base_elev_m
    if top_temp_c >= base_temp_c:
        return top_elev_m

    fraction = (base_temp_c - threshold_c) / (base_temp_c - top_temp_c)
    snow_line = base_elev_m + fraction * (top_elev_m - base_elev_m)
    return max(base_elev_m, min(top_elev_m, snow_line))


def classify_snow_condition(
    current_band: ElevationBand,
    summit_band: ElevationBand,
    policy: SnowLinePolicy = DEFAULT_POLICY,
    freeze_level_m: Optional[float] = None,
    chance_of_snow: Optional[int] = None,
) -> SnowLine:
    """Four-way snow line classification; see SnowLinePolicy for the rules."""
    if freeze_level_m is not None:
        if freeze_level_m <= current_band.altitude_m:
            return _village(current_band)
        if freeze_level_m <= summit_band.altitude_m:
            return _above(int(freeze_level_m))
        if chance_of_snow:
            return MIXED
        return NO_SNOW

    village_temp = current_band.current.temperature_c
    summit_temp = summit_band.current.temperature_c
    if village_temp is None or summit_temp is None:
        return MIXED

    if village_temp > policy.warm_c and summit_temp <= policy.cold_c:
        altitude = interpolate_snow_line(
            village_temp,
            current_band.altitude_m,
            summit_temp,
            summit_band.altitude_m,
            policy.cold_c,
        )
        rounded = int(policy.rounding_m * math.floor(altitude / policy.rounding_m + 0.5))
        return _above(rounded)
    if village_temp <= policy.cold_c:
        return _village(current_band)
    if summit_temp > policy.warm_c:
        return NO_SNOW
    return MIXED


def wind_chill(temp_c: float, wind_kmh: float) -> float:
    """Environment Canada wind chill.

    Only applies at ``temp_c <= 10`` and ``wind_kmh >= 4.8``; otherwise the
    temperature is returned unchanged. The result is rounded half up to an
    integer.
    """
    if temp_c > 10 or wind_kmh < 4.8:
        return temp_c

    v = wind_kmh ** 0.16
    chill = 13.12 + 0.6215 * temp_c - 11.37 * v + 0.3965 * temp_c * v
    return math.floor(chill + 0.5)
