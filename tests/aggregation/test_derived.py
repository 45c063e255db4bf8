"""Tests for snow line classification and wind chill."""

from datetime import datetime, timedelta, timezone

import pytest

from snowstatus.aggregation.derived import (
    SnowLineKind,
    SnowLinePolicy,
    classify_snow_condition,
    interpolate_snow_line,
    wind_chill,
)

JST = timezone(timedelta(hours=9))
START = datetime(2025, 1, 15, 8, 0, tzinfo=JST)


@pytest.fixture
def bands(band_factory):
    """Factory for (village, summit) bands at 570 m and 1650 m."""

    def make(village_c, summit_c):
        return (
            band_factory("Village", 570, village_c, START),
            band_factory("Summit", 1650, summit_c, START),
        )

    return make


class TestWindChill:
    """Tests for wind_chill."""

    def test_cold_and_windy_is_colder(self):
        assert wind_chill(0, 30) < 0

    def test_known_value(self):
        # Environment Canada table: -10C at 30 km/h -> -20
        assert wind_chill(-10, 30) == -20

    def test_warm_returns_temperature(self):
        assert wind_chill(15, 30) == 15

    def test_calm_returns_temperature(self):
        assert wind_chill(-5, 3) == -5

    def test_threshold_boundaries_apply(self):
        assert wind_chill(10, 4.8) <= 10


class TestInterpolateSnowLine:
    """Tests for interpolate_snow_line."""

    def test_midpoint(self):
        assert interpolate_snow_line(2.0, 500, -2.0, 1500) == pytest.approx(1000)

    def test_base_already_freezing(self):
        assert interpolate_snow_line(-1.0, 500, -5.0, 1500) == 500

    def test_inverted_profile_clamps_to_top(self):
        assert interpolate_snow_line(3.0, 500, 4.0, 1500) == 1500


class TestClassifySnowCondition:
    """Tests for classify_snow_condition."""

    def test_snow_to_village(self, bands):
        village, summit = bands(-2.0, -8.0)

        result = classify_snow_condition(village, summit)

        assert result.kind is SnowLineKind.VILLAGE
        assert result.label == "Snow to village level"
        assert result.altitude_m == 570

    def test_snow_above_interpolated_and_rounded(self, bands):
        village, summit = bands(4.0, -2.0)

        result = classify_snow_condition(village, summit)

        # 570 + (4/6) * 1080 = 1290 -> 1300
        assert result.kind is SnowLineKind.ABOVE
        assert result.altitude_m == 1300
        assert result.label == "Snow above ~1300m"

    def test_no_snow(self, bands):
        village, summit = bands(8.0, 3.0)
        assert classify_snow_condition(village, summit).kind is SnowLineKind.NONE

    def test_mixed_between_thresholds(self, bands):
        village, summit = bands(1.0, -3.0)

        result = classify_snow_condition(village, summit)

        assert result.kind is SnowLineKind.MIXED
        assert result.label == "Mixed conditions"
        assert result.altitude_m is None

    def test_missing_temperature_is_mixed(self, bands):
        village, summit = bands(None, -3.0)
        assert classify_snow_condition(village, summit).kind is SnowLineKind.MIXED

    def test_policy_thresholds(self, bands):
        village, summit = bands(1.0, -3.0)
        policy = SnowLinePolicy(cold_c=1.0, warm_c=3.0)
        assert classify_snow_condition(village, summit, policy).kind is SnowLineKind.VILLAGE

    def test_freeze_level_below_village(self, bands):
        village, summit = bands(5.0, 5.0)

        result = classify_snow_condition(village, summit, freeze_level_m=400)

        assert result.kind is SnowLineKind.VILLAGE

    def test_freeze_level_on_mountain(self, bands):
        village, summit = bands(-5.0, -10.0)

        result = classify_snow_condition(village, summit, freeze_level_m=1100)

        assert result.kind is SnowLineKind.ABOVE
        assert result.label == "Snow above ~1100m"

    def test_freeze_level_above_summit(self, bands):
        village, summit = bands(-5.0, -10.0)

        assert classify_snow_condition(
            village, summit, freeze_level_m=2500, chance_of_snow=40
        ).kind is SnowLineKind.MIXED
        assert classify_snow_condition(
            village, summit, freeze_level_m=2500, chance_of_snow=0
        ).kind is SnowLineKind.NONE

    def test_to_dict(self, bands):
        village, summit = bands(-2.0, -8.0)
        assert classify_snow_condition(village, summit).to_dict() == {
            "kind": "snow-to-village",
            "label": "Snow to village level",
            "altitude_m": 570,
        }
