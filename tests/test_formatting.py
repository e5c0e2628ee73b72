"""Dashboard display formatting."""

from datetime import date, datetime

from tikd.formatting import (
    clamp_int,
    format_currency,
    format_datetime_label,
    format_event_date_label,
    format_month_year,
)


def test_clamp_int():
    assert clamp_int("7.9", 1, 20) == 7
    assert clamp_int(100, 1, 20) == 20
    assert clamp_int("-3", 1, 20) == 1
    assert clamp_int("abc", 1, 20) == 1
    assert clamp_int(None, 4, 20) == 4
    assert clamp_int(float("nan"), 1, 20) == 1


def test_format_currency():
    assert format_currency(1234.4) == "$1,234"
    assert format_currency(1234567) == "$1,234,567"
    assert format_currency(-50) == "-$50"
    assert format_currency(-0.4) == "$0"
    assert format_currency("abc") == "$0"
    assert format_currency(float("inf")) == "$0"


def test_datetime_labels():
    assert format_datetime_label(datetime(2025, 5, 21, 18, 0)) == "May 21, 2025 6:00 PM"
    assert format_datetime_label(datetime(2025, 1, 5, 0, 7)) == "Jan 05, 2025 12:07 AM"
    assert format_datetime_label(datetime(2025, 7, 4, 12, 30)) == "Jul 04, 2025 12:30 PM"
    assert format_event_date_label(datetime(2026, 6, 24, 20, 0)) == "24 JUN, 2026"
    assert format_month_year(date(2025, 4, 21)) == "April 2025"
