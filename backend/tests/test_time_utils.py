"""
Timestamp parsing and serialization for shift filters and payloads.
"""

from datetime import datetime

import pytest

from fuelshift.time_utils import parse_iso_datetime, to_utc_z


class TestParseIsoDatetime:

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank_is_none(self, value):
        assert parse_iso_datetime(value) is None

    def test_bare_date_bounds(self):
        assert parse_iso_datetime("2026-03-01") == datetime(2026, 3, 1)
        assert parse_iso_datetime("2026-03-01", end_of_day=True) == datetime(2026, 3, 1, 23, 59, 59, 999999)

    def test_offset_normalized_to_utc(self):
        assert parse_iso_datetime("2026-03-01T05:30:00+05:30") == datetime(2026, 3, 1, 0, 0)
        assert parse_iso_datetime("2026-03-01T08:15:00Z") == datetime(2026, 3, 1, 8, 15)

    @pytest.mark.parametrize("value", ["yesterday", "2026-13-01", "01/03/2026"])
    def test_garbage_raises(self, value):
        with pytest.raises(ValueError):
            parse_iso_datetime(value)


def test_to_utc_z():
    assert to_utc_z(None) is None
    assert to_utc_z(datetime(2026, 3, 1, 8, 15, 30, 123456)) == "2026-03-01T08:15:30Z"
