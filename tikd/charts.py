"""Chart-series helpers for the revenue chart.

Dates in a range are grouped into display buckets (1, 2 or 3 days per point
depending on range length). Y values are mapped onto a piecewise-linear scale
so that arbitrary tick values ("0, 25K, 50K, 100K, ...") render at equal
spacing.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .formatting import MONTHS_LONG, MONTHS_SHORT, format_month_year


def bucket_step_for_range_days(range_days: int) -> int:
    if range_days <= 31:
        return 1
    if range_days <= 62:
        return 2
    return 3


def diff_days_inclusive(a: date, b: date) -> int:
    return abs((b - a).days) + 1


def build_daily_dates(start: date, end: date) -> List[date]:
    a, b = (start, end) if start <= end else (end, start)
    return [a + timedelta(days=i) for i in range((b - a).days + 1)]


def month_day_label(d: date) -> str:
    return f"{MONTHS_SHORT[d.month - 1]} {d.day}"


def bucket_label(a: date, b: date) -> str:
    if a == b:
        return month_day_label(a)
    if (a.year, a.month) == (b.year, b.month):
        # Jan 1–3
        return f"{MONTHS_SHORT[a.month - 1]} {a.day}–{b.day}"
    # Jan 30–Feb 2
    return f"{month_day_label(a)}–{month_day_label(b)}"


@dataclass
class Bucket:
    start: date
    end: date
    label: str

    @property
    def rep_date(self) -> date:
        # pins and hover use the bucket end
        return self.end


def make_buckets(dates: Sequence[date], step: int) -> List[Bucket]:
    if step <= 1:
        return [Bucket(d, d, month_day_label(d)) for d in dates]
    out = []
    for i in range(0, len(dates), step):
        start = dates[i]
        end = dates[min(i + step - 1, len(dates) - 1)]
        out.append(Bucket(start, end, bucket_label(start, end)))
    return out


def sum_buckets(values: Mapping[date, float], buckets: Iterable[Bucket]) -> List[float]:
    totals = []
    for b in buckets:
        s = 0.0
        d = b.start
        while d <= b.end:
            s += _finite(values.get(d, 0.0))
            d += timedelta(days=1)
        totals.append(s)
    return totals


def _finite(v) -> float:
    try:
        n = float(v)
    except (TypeError, ValueError):
        return 0.0
    return n if math.isfinite(n) else 0.0


def nice_ticks(max_value: float, target_count: int = 6) -> List[float]:
    top_value = max(1.0, _finite(max_value))
    power = 10 ** math.floor(math.log10(top_value))
    norm = top_value / power

    if norm <= 1.2:
        step_norm = 0.2
    elif norm <= 2.5:
        step_norm = 0.5
    elif norm <= 6:
        step_norm = 1
    else:
        step_norm = 2

    step = step_norm * power
    # float noise only; the top stays a multiple of step
    top = round(math.ceil(round(top_value / step, 9)) * step, 9)
    if top == int(top):
        top = int(top)

    count = max(2, min(8, target_count))
    actual_step = top / (count - 1)
    ticks = [_round_half_up(i * actual_step) for i in range(count)]
    ticks[0] = 0
    ticks[-1] = top

    uniq: List[float] = []
    for t in ticks:
        if not uniq or uniq[-1] != t:
            uniq.append(t)
    return uniq


def format_axis_k(v: float) -> str:
    if abs(v) >= 1000:
        return f"{_round_half_up(v / 1000)}K"
    return f"{_round_half_up(v)}"


def format_tooltip_k(v: float) -> str:
    if not math.isfinite(v):
        return "0"
    n = v if abs(v) < 1000 else v / 1000
    s = f"{n:.1f}"
    return s[:-2] if s.endswith(".0") else s


def _round_half_up(v: float) -> int:
    return math.floor(v + 0.5)


class PiecewiseScaler:
    """Maps values onto tick-index space so ticks are equally spaced."""

    def __init__(self, breakpoints: Iterable[float]):
        finite = sorted(b for b in breakpoints if isinstance(b, (int, float)) and math.isfinite(b))
        uniq: List[float] = []
        for v in finite:
            if not uniq or uniq[-1] != v:
                uniq.append(v)
        self.breakpoints = uniq
        self.max_idx = max(0, len(uniq) - 1)

    @property
    def ticks_scaled(self) -> List[int]:
        return list(range(len(self.breakpoints)))

    def to_scaled(self, value: float) -> float:
        b = self.breakpoints
        if len(b) <= 1:
            return 0.0
        if not math.isfinite(value) or value <= b[0]:
            return 0.0

        last = self.max_idx
        if value >= b[last]:
            denom = (b[last] - b[last - 1]) or 1
            return last + (value - b[last]) / denom

        for i in range(last):
            lo, hi = b[i], b[i + 1]
            if lo <= value <= hi:
                return i + (value - lo) / ((hi - lo) or 1)
        return 0.0

    def tick_label(self, scaled: float) -> str:
        idx = _round_half_up(scaled)
        if 0 <= idx < len(self.breakpoints):
            v = self.breakpoints[idx]
        else:
            v = self.breakpoints[0] if self.breakpoints else 0
        return format_axis_k(v)


def delta_from_previous(values: Sequence[float], idx: int) -> Optional[Dict[str, object]]:
    if idx <= 0 or idx >= len(values):
        return None
    prev, cur = values[idx - 1], values[idx]
    if prev == 0:
        return None
    pct = (cur - prev) / prev * 100
    return {"text": f"{abs(pct):.1f}%", "positive": pct >= 0}


def month_points(year: int) -> List[date]:
    # stable mid-month day for monthly points
    return [date(year, m, 21) for m in range(1, 13)]


def revenue_series(
    daily: Mapping[date, float],
    start: Optional[date],
    end: Optional[date],
    today: date,
    tick_count: int = 6,
) -> Dict[str, object]:
    """Chart payload for a daily revenue map.

    Without a range the current year is shown as twelve monthly points;
    with a range, days are grouped into buckets.
    """
    if start is None or end is None:
        year = today.year
        dates = month_points(year)
        labels = [MONTHS_SHORT[d.month - 1] for d in dates]
        values = [0.0] * 12
        for d, v in daily.items():
            if d.year == year:
                values[d.month - 1] += _finite(v)
        pinned = today.month - 1
        tooltip_labels = [format_month_year(d) for d in dates]
        mode = "monthly"
    else:
        days = build_daily_dates(start, end)
        step = bucket_step_for_range_days(len(days))
        buckets = make_buckets(days, step)
        dates = [b.rep_date for b in buckets]
        labels = [b.label for b in buckets]
        values = sum_buckets(daily, buckets)
        pinned = len(values) - 1
        tooltip_labels = [f"{MONTHS_LONG[d.month - 1]} {d.day}, {d.year}" for d in dates]
        mode = "daily" if step == 1 else f"{step}-day"

    ticks = nice_ticks(max([0.0, *values]), tick_count)
    scaler = PiecewiseScaler([0, *ticks])
    return {
        "mode": mode,
        "labels": labels,
        "dates": [d.isoformat() for d in dates],
        "values": [round(v, 2) for v in values],
        "scaled": [round(scaler.to_scaled(v), 6) for v in values],
        "ticks": ticks,
        "tick_labels": [scaler.tick_label(i) for i in scaler.ticks_scaled],
        "pinned_index": pinned,
        "tooltip": {
            "index": pinned,
            "value_label": f"${format_tooltip_k(values[pinned])}{'K' if abs(values[pinned]) >= 1000 else ''}",
            "sub_label": tooltip_labels[pinned],
            "delta": delta_from_previous(values, pinned),
        },
    }
