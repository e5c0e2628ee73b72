"""Display formatting for dashboard rows."""
from __future__ import annotations

import math
from datetime import datetime

MONTHS_SHORT = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
MONTHS_LONG = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def clamp_int(value, lo: int, hi: int) -> int:
    """Truncate to int and clamp; anything non-numeric becomes ``lo``."""
    try:
        n = float(value)
    except (TypeError, ValueError):
        return lo
    if not math.isfinite(n):
        return lo
    return max(lo, min(hi, int(n)))


def format_currency(n) -> str:
    # "$1,234" / "-$50"
    try:
        value = float(n)
    except (TypeError, ValueError):
        value = 0.0
    if not math.isfinite(value):
        value = 0.0
    rounded = int(round(abs(value)))
    sign = "-" if value < 0 and rounded else ""
    return f"{sign}${rounded:,}"


def format_datetime_label(d: datetime) -> str:
    # "May 21, 2025 6:00 PM"
    hour = d.hour % 12 or 12
    meridiem = "AM" if d.hour < 12 else "PM"
    return f"{MONTHS_SHORT[d.month - 1]} {d.day:02d}, {d.year} {hour}:{d.minute:02d} {meridiem}"


def format_event_date_label(d: datetime) -> str:
    # "24 JUN, 2026"
    return f"{d.day:02d} {MONTHS_SHORT[d.month - 1].upper()}, {d.year}"


def format_month_year(d: datetime) -> str:
    return f"{MONTHS_LONG[d.month - 1]} {d.year}"
