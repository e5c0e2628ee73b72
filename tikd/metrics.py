"""Ticket sales metrics computed with single aggregation pipelines."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from bson import Decimal128, ObjectId
from pymongo.database import Database

from .db import ORG_TEAM, TICKETS
from .validation import as_utc

# Field names a ticket's paid amount has been stored under, most preferred first.
AMOUNT_FIELDS = ("amount", "total", "price", "paid_amount", "total_amount")


@dataclass
class TicketMetrics:
    tickets_sold: int = 0
    revenue: float = 0.0


def amount_expression(fields=AMOUNT_FIELDS) -> Any:
    """Nested ``$ifNull`` picking the first non-null amount field, else 0."""
    expr: Any = 0
    for name in reversed(fields):
        expr = {"$ifNull": [f"${name}", expr]}
    return expr


def to_amount(value: Any) -> float:
    """Coerce a stored amount to float the way Mongo's $convert to double does.

    Booleans become 1/0; anything unconvertible is 0.
    """
    if value is None:
        return 0.0
    if isinstance(value, Decimal128):
        value = value.to_decimal()
    if isinstance(value, Decimal):
        value = float(value)
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    return n if math.isfinite(n) else 0.0


def paid_tickets_pipeline(event_ids: List[ObjectId]) -> List[Dict[str, Any]]:
    # One row per (event, amount); amounts are coerced to numbers client-side.
    return [
        {"$match": {"event_id": {"$in": event_ids}, "status": "paid"}},
        {"$project": {"event_id": 1, "amt": amount_expression()}},
        {
            "$group": {
                "_id": {"event_id": "$event_id", "amt": "$amt"},
                "count": {"$sum": 1},
            }
        },
    ]


def ticket_metrics_by_event_ids(db: Database, event_ids: Iterable[ObjectId]) -> Dict[str, TicketMetrics]:
    ids = list(event_ids)
    out: Dict[str, TicketMetrics] = {}
    if not ids:
        return out

    for row in db[TICKETS].aggregate(paid_tickets_pipeline(ids)):
        key = str(row["_id"]["event_id"])
        count = int(row.get("count") or 0)
        m = out.setdefault(key, TicketMetrics())
        m.tickets_sold += count
        m.revenue += to_amount(row["_id"].get("amt")) * count

    for m in out.values():
        if not math.isfinite(m.revenue):
            m.revenue = 0.0
    return out


def daily_revenue(db: Database, event_ids: Iterable[ObjectId], start: datetime, end: datetime) -> Dict[date, float]:
    """Paid revenue per calendar day (UTC) of ticket creation, within [start, end]."""
    ids = list(event_ids)
    out: Dict[date, float] = {}
    if not ids:
        return out

    cursor = db[TICKETS].find(
        {"event_id": {"$in": ids}, "status": "paid", "created_at": {"$gte": start, "$lte": end}},
        {"created_at": 1, **{name: 1 for name in AMOUNT_FIELDS}},
    )
    for t in cursor:
        amount = 0.0
        for name in AMOUNT_FIELDS:
            if t.get(name) is not None:
                amount = to_amount(t[name])
                break
        day = as_utc(t["created_at"]).date()
        out[day] = out.get(day, 0.0) + amount
    return out


def organization_member_totals(db: Database, org_ids: Iterable[ObjectId]) -> Dict[str, int]:
    ids = list(org_ids)
    if not ids:
        return {}
    rows = db[ORG_TEAM].aggregate(
        [
            {"$match": {"organization_id": {"$in": ids}, "status": "active"}},
            {"$group": {"_id": "$organization_id", "total": {"$sum": 1}}},
        ]
    )
    return {str(r["_id"]): int(r["total"]) for r in rows}


def page_views(event: Dict[str, Any]) -> int:
    """``page_views``, falling back to the older ``views`` counter, else 0."""
    for name in ("page_views", "views"):
        v = event.get(name)
        if isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v):
            return int(v)
    return 0
