"""Tests for the shared condition taxonomy."""

import pytest

from snowstatus.normalize.conditions import (
    PROVIDER_TABLES,
    Condition,
    map_condition,
    wmo_condition,
    wwo_condition,
)


class TestConditionMapping:
    """Tests for provider code -> Condition lookup."""

    @pytest.mark.parametrize(
        "code,expected",
        [
            (0, Condition.CLEAR),
            (3, Condition.CLOUDY),
            (45, Condition.FOG),
            (63, Condition.RAIN),
            (73, Condition.SNOW),
            (75, Condition.HEAVY_SNOW),
            (95, Condition.THUNDER),
        ],
    )
    def test_wmo_codes(self, code, expected):
        assert wmo_condition(code) is expected

    @pytest.mark.parametrize(
        "code,expected",
        [
            ("113", Condition.CLEAR),
            ("116", Condition.PARTLY_CLOUDY),
            ("326", Condition.SNOW),
            ("338", Condition.HEAVY_SNOW),
            ("308", Condition.HEAVY_RAIN),
        ],
    )
    def test_wwo_codes_as_strings(self, code, expected):
        assert wwo_condition(code) is expected

    @pytest.mark.parametrize("code", [None, "", "abc", 1234, True])
    def test_unknown_codes_are_clear(self, code):
        assert wmo_condition(code) is Condition.CLEAR
        assert wwo_condition(code) is Condition.CLEAR

    def test_tables_map_into_taxonomy(self):
        for table in PROVIDER_TABLES.values():
            for code in table:
                assert isinstance(map_condition(table, code), Condition)
