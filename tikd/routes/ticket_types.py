"""Ticket types of an event. Only the event's editors may read or change them."""
from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint
from flask_login import login_required
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from ..auth import current_user_oid
from ..db import TICKET_TYPES, get_db
from ..errors import ApiError, not_found, ok, require_json
from ..permissions import require_event_editor
from ..serialize import serialize
from ..ticket_type_schema import parse_ticket_type
from ..validation import as_utc, now_utc, to_oid

bp = Blueprint("ticket_types", __name__)


def public_ticket_type(t: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize(t)
    total = t.get("total_quantity")
    out["remaining"] = None if total is None else max(total - int(t.get("sold_count") or 0), 0)
    out["has_password"] = bool(t.get("password"))
    return out


def _load(db, event: Dict[str, Any], ticket_type_id: str) -> Dict[str, Any]:
    t = db[TICKET_TYPES].find_one(
        {"_id": to_oid(ticket_type_id, "ticket_type_id"), "event_id": event["_id"]}
    )
    if not t:
        raise not_found("Ticket type")
    return t


@bp.get("/api/events/<event_id>/ticket-types")
@login_required
def list_ticket_types(event_id: str):
    db = get_db()
    event = require_event_editor(db, to_oid(event_id, "event_id"), current_user_oid())
    rows = db[TICKET_TYPES].find({"event_id": event["_id"]}).sort(
        [("sort_order", ASCENDING), ("created_at", ASCENDING)]
    )
    return ok({"ticket_types": [public_ticket_type(t) for t in rows]})


@bp.post("/api/events/<event_id>/ticket-types")
@login_required
def create_ticket_type(event_id: str):
    data = require_json()
    db = get_db()
    uid = current_user_oid()
    event = require_event_editor(db, to_oid(event_id, "event_id"), uid)
    fields = parse_ticket_type(data)

    if "sort_order" not in fields:
        last = db[TICKET_TYPES].find_one(
            {"event_id": event["_id"]}, {"sort_order": 1}, sort=[("sort_order", DESCENDING)]
        )
        fields["sort_order"] = int(last.get("sort_order") or 0) + 1 if last else 0

    now = now_utc()
    doc = {
        **fields,
        "organization_id": event.get("organization_id"),
        "event_id": event["_id"],
        "created_by_user_id": uid,
        "sold_count": 0,
        "created_at": now,
        "updated_at": now,
    }
    try:
        res = db[TICKET_TYPES].insert_one(doc)
    except PyMongoError as e:
        raise ApiError("Database error while creating ticket type.", 500, "db_error", {"detail": str(e)})

    created = db[TICKET_TYPES].find_one({"_id": res.inserted_id})
    return ok({"ticket_type": public_ticket_type(created)}, 201)


@bp.get("/api/events/<event_id>/ticket-types/<ticket_type_id>")
@login_required
def get_ticket_type(event_id: str, ticket_type_id: str):
    db = get_db()
    event = require_event_editor(db, to_oid(event_id, "event_id"), current_user_oid())
    return ok({"ticket_type": public_ticket_type(_load(db, event, ticket_type_id))})


@bp.patch("/api/events/<event_id>/ticket-types/<ticket_type_id>")
@login_required
def update_ticket_type(event_id: str, ticket_type_id: str):
    data = require_json()
    db = get_db()
    event = require_event_editor(db, to_oid(event_id, "event_id"), current_user_oid())
    t = _load(db, event, ticket_type_id)

    updates = parse_ticket_type(data, partial=True)

    # Cross-field rules against the merged document.
    merged = {**t, **updates}
    lo, hi = merged.get("min_per_order"), merged.get("max_per_order")
    if lo is not None and hi is not None and lo > hi:
        raise ApiError("min_per_order cannot exceed max_per_order.", 400, "validation_error", {"field": "min_per_order"})
    start, end = as_utc(merged.get("sales_start_at")), as_utc(merged.get("sales_end_at"))
    if start is not None and end is not None and start > end:
        raise ApiError("sales_start_at must be before sales_end_at.", 400, "validation_error", {"field": "sales_end_at"})
    if merged.get("access_mode") == "password" and not merged.get("password"):
        raise ApiError("A password is required for password access.", 400, "validation_error", {"field": "password"})
    total = merged.get("total_quantity")
    if total is not None and total < int(t.get("sold_count") or 0):
        raise ApiError("total_quantity cannot be below tickets already sold.", 400, "validation_error", {"field": "total_quantity"})

    if updates:
        updates["updated_at"] = now_utc()
        db[TICKET_TYPES].update_one({"_id": t["_id"]}, {"$set": updates})

    updated = db[TICKET_TYPES].find_one({"_id": t["_id"]})
    return ok({"ticket_type": public_ticket_type(updated)})


@bp.delete("/api/events/<event_id>/ticket-types/<ticket_type_id>")
@login_required
def delete_ticket_type(event_id: str, ticket_type_id: str):
    db = get_db()
    event = require_event_editor(db, to_oid(event_id, "event_id"), current_user_oid())
    t = _load(db, event, ticket_type_id)
    db[TICKET_TYPES].delete_one({"_id": t["_id"]})
    return ok({})
