"""Organizer dashboard widgets: upcoming events and the revenue chart."""
from __future__ import annotations

from datetime import datetime, time, timezone

from flask import Blueprint, request
from flask_login import login_required
from pymongo import ASCENDING

from ..auth import current_user_oid
from ..charts import diff_days_inclusive, revenue_series
from ..db import EVENTS, get_db
from ..errors import ApiError, ok
from ..formatting import clamp_int, format_currency, format_datetime_label, format_event_date_label
from ..metrics import daily_revenue, page_views, ticket_metrics_by_event_ids
from ..validation import as_utc, now_utc, parse_datetime

bp = Blueprint("dashboard", __name__)

UPCOMING_CACHE_CONTROL = "private, max-age=15, stale-while-revalidate=60"
MAX_CHART_RANGE_DAYS = 731


@bp.get("/api/dashboard/upcoming-events")
@login_required
def upcoming_events():
    db = get_db()
    limit = clamp_int(request.args.get("limit") or 4, 1, 20)
    now = now_utc()

    events = list(
        db[EVENTS]
        .find(
            {
                "created_by_user_id": current_user_oid(),
                "$or": [
                    {"end_date": {"$gte": now}},
                    {"end_date": {"$exists": False}, "date": {"$gte": now}},
                    {"end_date": None, "date": {"$gte": now}},
                ],
            },
            {"title": 1, "date": 1, "end_date": 1, "image": 1, "page_views": 1, "views": 1},
        )
        .sort("date", ASCENDING)
        .limit(limit)
    )
    metrics = ticket_metrics_by_event_ids(db, [e["_id"] for e in events])

    rows = []
    for e in events:
        m = metrics.get(str(e["_id"]))
        when = as_utc(e["date"])
        rows.append(
            {
                "id": str(e["_id"]),
                "title": e.get("title", ""),
                "date_label": format_datetime_label(when),
                "page_views": page_views(e),
                "tickets": m.tickets_sold if m else 0,
                "revenue": format_currency(m.revenue if m else 0),
                "event_date_label": format_event_date_label(when),
                "event_date_ms": int(when.timestamp() * 1000),
                "img": e.get("image") or None,
            }
        )

    resp, status = ok({"rows": rows})
    resp.headers["Cache-Control"] = UPCOMING_CACHE_CONTROL
    return resp, status


@bp.get("/api/dashboard/revenue-chart")
@login_required
def revenue_chart():
    start_raw = (request.args.get("start") or "").strip()
    end_raw = (request.args.get("end") or "").strip()
    if bool(start_raw) != bool(end_raw):
        raise ApiError("Provide both start and end, or neither.", 400, "validation_error", {"field": "start"})

    today = now_utc().date()
    if start_raw:
        start = parse_datetime(start_raw, "start").date()
        end = parse_datetime(end_raw, "end").date()
        if start > end:
            start, end = end, start
        if diff_days_inclusive(start, end) > MAX_CHART_RANGE_DAYS:
            raise ApiError("Date range is too long.", 400, "validation_error", {"field": "end"})
        window = (start, end)
    else:
        start, end = None, None
        window = (today.replace(month=1, day=1), today.replace(month=12, day=31))

    db = get_db()
    event_ids = [e["_id"] for e in db[EVENTS].find({"created_by_user_id": current_user_oid()}, {"_id": 1})]
    daily = daily_revenue(
        db,
        event_ids,
        datetime.combine(window[0], time.min, tzinfo=timezone.utc),
        datetime.combine(window[1], time.max, tzinfo=timezone.utc),
    )
    return ok({"chart": revenue_series(daily, start, end, today)})
