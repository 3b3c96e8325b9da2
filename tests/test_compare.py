from datetime import date, datetime, timezone

import pytest

from ipo_sync.core.compare import (
    is_absent,
    is_date_string,
    parse_to_ist_date,
    to_ist_date,
    values_equal,
)


@pytest.mark.parametrize("value", [None, "", "   ", "N/A", "n/a"])
def test_absent_values(value):
    assert is_absent(value)


def test_absent_values_are_equal_to_each_other():
    assert values_equal(None, "")
    assert values_equal("N/A", None)
    assert not values_equal(None, "4.2")
    assert not values_equal("0", None)


def test_numeric_tier():
    assert values_equal("12", 12)
    assert values_equal("12.0", "12")
    assert values_equal(" 4.20 ", 4.2)
    assert not values_equal("12", "13")


def test_date_tier_compares_ist_calendar_days():
    assert values_equal("2025-06-01", date(2025, 6, 1))
    assert values_equal("Jun 01, 2025", "2025-06-01")
    # 20:00 UTC is already the next day in IST
    assert values_equal("2025-06-01T20:00:00Z", "2025-06-02")
    assert not values_equal("2025-06-01T20:00:00Z", "2025-06-01")


def test_text_tier_trims():
    assert values_equal(" OPEN ", "OPEN")
    assert not values_equal("OPEN", "CLOSED")


def test_parse_to_ist_date():
    assert parse_to_ist_date("2025-06-01T18:29:00Z") == "2025-06-01"
    assert parse_to_ist_date("2025-06-01T18:30:00Z") == "2025-06-02"
    assert parse_to_ist_date(datetime(2025, 6, 1, 23, 0, tzinfo=timezone.utc)) == "2025-06-02"
    assert parse_to_ist_date(date(2025, 6, 1)) == "2025-06-01"
    assert parse_to_ist_date("05/06/2025") == "2025-06-05"
    assert parse_to_ist_date("not a date") is None
    assert parse_to_ist_date(None) is None


def test_is_date_string():
    assert is_date_string("2025-06-01")
    assert is_date_string("Jun 1, 2025")
    assert not is_date_string("12.5")
    assert not is_date_string("TBA")
    assert not is_date_string(None)


def test_to_ist_date():
    assert to_ist_date("2025-06-01") == date(2025, 6, 1)
    assert to_ist_date("TBA") is None
    assert to_ist_date("12") is None
