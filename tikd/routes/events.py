"""Events: browsing, the organizer's own list, CRUD and per-user pins."""
from __future__ import annotations

import re
from typing import Any, Dict, List

from flask import Blueprint, request
from flask_login import login_required
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from .. import listing
from ..auth import current_user_oid
from ..db import EVENTS, TICKET_TYPES, TICKETS, get_db
from ..errors import ApiError, forbidden, not_found, ok, require_json
from ..formatting import format_currency, format_datetime_label
from ..metrics import page_views, ticket_metrics_by_event_ids
from ..permissions import can_manage_org, load_org, require_event_editor
from ..serialize import serialize
from ..validation import (
    as_utc,
    boolean,
    choice,
    invalid,
    now_utc,
    optional_datetime,
    optional_int,
    parse_datetime,
    reject_unknown,
    text,
    to_oid,
    url,
)

bp = Blueprint("events", __name__)

EVENT_STATUSES = ("published", "draft")
EDITABLE_FIELDS = (
    "title", "description", "date", "end_date", "min_age", "location",
    "image", "categories", "message", "status",
)
SORTABLE = {
    "title": None,
    "date": None,
    "status": None,
    "tickets_sold": None,
    "revenue": None,
    "page_views": None,
}
NUMERIC_SORT_FIELDS = ("tickets_sold", "revenue", "page_views")


def public_event(e: Dict[str, Any], viewer=None) -> Dict[str, Any]:
    out = serialize(e)
    pins = e.get("pinned_by_user_ids") or []
    out["pinned"] = viewer is not None and (viewer in pins or str(viewer) in pins)
    return out


def _categories(value: Any) -> List[str]:
    if not isinstance(value, list):
        raise invalid("categories", "categories must be a list of strings.")
    out: List[str] = []
    for c in value:
        c = text(c, "categories", max_len=40)
        if c and c not in out:
            out.append(c)
    return out


def _duration_minutes(start, end):
    if start is None or end is None:
        return None
    minutes = round((end - start).total_seconds() / 60)
    return minutes if minutes > 0 else None


def parse_event_fields(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if "title" in data or not partial:
        out["title"] = text(data.get("title"), "title", min_len=1, max_len=200)
    if "description" in data or not partial:
        out["description"] = text(data.get("description"), "description")
    if "date" in data or not partial:
        out["date"] = parse_datetime(data.get("date"), "date")
    if "end_date" in data or not partial:
        out["end_date"] = optional_datetime(data.get("end_date"), "end_date")
    if "min_age" in data:
        out["min_age"] = optional_int(data.get("min_age"), "min_age", min_value=0)
        if out["min_age"] is not None and out["min_age"] > 99:
            raise invalid("min_age", "min_age must be <= 99.")
    if "location" in data or not partial:
        out["location"] = text(data.get("location"), "location", min_len=1, max_len=200)
    if "image" in data or not partial:
        out["image"] = url(data.get("image"), "image")
    if "categories" in data or not partial:
        out["categories"] = _categories(data.get("categories", []))
    if "message" in data or not partial:
        out["message"] = text(data.get("message"), "message")
    if "status" in data or not partial:
        out["status"] = choice(data.get("status", "published"), "status", EVENT_STATUSES)
    return out


# -------------------------
# Listing
# -------------------------
@bp.get("/api/events")
@login_required
def list_events():
    db = get_db()
    uid = current_user_oid()

    if request.args.get("owned") == "1":
        return _owned_events(db, uid)

    query: Dict[str, Any] = {"status": {"$ne": "draft"}, "date": {"$gte": now_utc()}}
    q = (request.args.get("q") or "").strip()
    if q:
        query["$or"] = [
            {"title": {"$regex": re.escape(q), "$options": "i"}},
            {"location": {"$regex": re.escape(q), "$options": "i"}},
        ]
    events = list(db[EVENTS].find(query).sort("date", ASCENDING).limit(200))
    return ok({"events": [public_event(e, uid) for e in events]})


def _owned_events(db, uid):
    events = list(db[EVENTS].find({"created_by_user_id": uid}))
    metrics = ticket_metrics_by_event_ids(db, [e["_id"] for e in events])

    rows = []
    pinned_ids = []
    for e in events:
        row = public_event(e, uid)
        m = metrics.get(row["id"])
        row["tickets_sold"] = m.tickets_sold if m else 0
        row["revenue"] = m.revenue if m else 0.0
        row["revenue_label"] = format_currency(row["revenue"])
        row["page_views"] = page_views(e)
        row["date_label"] = format_datetime_label(e["date"]) if e.get("date") else ""
        if row["pinned"]:
            pinned_ids.append(row["id"])
        rows.append(row)

    args = listing.parse_list_args(
        request.args,
        SORTABLE,
        default_sort=("date",),
        numeric_fields=NUMERIC_SORT_FIELDS,
        tie_breakers=("title",),
    )
    found = listing.search(rows, args.q, ("title", "location", "status"))
    ordered = listing.pinned_first(listing.sort_items(found, args.sort), pinned_ids)
    page = listing.paginate(ordered, args.page, args.page_size)
    return ok(page.to_dict())


# -------------------------
# CRUD
# -------------------------
@bp.post("/api/events")
@login_required
def create_event():
    data = require_json()
    reject_unknown(data, EDITABLE_FIELDS + ("organization_id",))
    fields = parse_event_fields(data)

    db = get_db()
    uid = current_user_oid()
    org = load_org(db, to_oid(data.get("organization_id"), "organization_id"))
    if not can_manage_org(db, org, uid):
        raise forbidden("Organization not found or not yours.")

    start, end = fields["date"], fields["end_date"]
    if end is not None and end < start:
        raise invalid("end_date", "end_date must be after date.")

    now = now_utc()
    doc = {
        **fields,
        "duration_minutes": _duration_minutes(start, end),
        "organization_id": org["_id"],
        "created_by_user_id": uid,
        "page_views": 0,
        "pinned_by_user_ids": [],
        "created_at": now,
        "updated_at": now,
    }
    try:
        res = db[EVENTS].insert_one(doc)
    except PyMongoError as e:
        raise ApiError("Database error while creating event.", 500, "db_error", {"detail": str(e)})

    created = db[EVENTS].find_one({"_id": res.inserted_id})
    return ok({"event": public_event(created, uid)}, 201)


@bp.get("/api/events/<event_id>")
@login_required
def get_event(event_id: str):
    db = get_db()
    eid = to_oid(event_id, "event_id")
    e = db[EVENTS].find_one({"_id": eid})
    if not e:
        raise not_found("Event")

    ticket_types = list(db[TICKET_TYPES].find({"event_id": eid}).sort("sort_order", ASCENDING))
    attending = db[TICKETS].count_documents({"event_id": eid, "status": "paid"})
    return ok(
        {
            "event": public_event(e, current_user_oid()),
            "ticket_types": [serialize(t) for t in ticket_types],
            "attending_count": attending,
        }
    )


@bp.patch("/api/events/<event_id>")
@login_required
def update_event(event_id: str):
    data = require_json()
    reject_unknown(data, EDITABLE_FIELDS)
    db = get_db()
    uid = current_user_oid()
    e = require_event_editor(db, to_oid(event_id, "event_id"), uid)

    updates = parse_event_fields(data, partial=True)
    start = as_utc(updates.get("date", e.get("date")))
    end = as_utc(updates.get("end_date", e.get("end_date")))
    if start is not None and end is not None and end < start:
        raise invalid("end_date", "end_date must be after date.")
    updates["duration_minutes"] = _duration_minutes(start, end)
    updates["updated_at"] = now_utc()

    try:
        db[EVENTS].update_one({"_id": e["_id"]}, {"$set": updates})
    except PyMongoError as ex:
        raise ApiError("Database error while updating event.", 500, "db_error", {"detail": str(ex)})

    updated = db[EVENTS].find_one({"_id": e["_id"]})
    return ok({"event": public_event(updated, uid)})


@bp.delete("/api/events/<event_id>")
@login_required
def delete_event(event_id: str):
    db = get_db()
    e = require_event_editor(db, to_oid(event_id, "event_id"), current_user_oid())

    db[TICKET_TYPES].delete_many({"event_id": e["_id"]})
    db[TICKETS].delete_many({"event_id": e["_id"]})
    db[EVENTS].delete_one({"_id": e["_id"]})
    return ok({})


# -------------------------
# Pins
# -------------------------
@bp.get("/api/events/pins")
@login_required
def list_pins():
    uid = current_user_oid()
    # Older rows may hold the id as a string.
    rows = get_db()[EVENTS].find(
        {"$or": [{"pinned_by_user_ids": uid}, {"pinned_by_user_ids": str(uid)}]},
        {"_id": 1},
    )
    return ok({"ids": [str(r["_id"]) for r in rows]})


@bp.put("/api/events/<event_id>/pin")
@login_required
def set_pin(event_id: str):
    data = require_json()
    reject_unknown(data, ("pinned",))
    pinned = boolean(data.get("pinned"), "pinned")

    db = get_db()
    uid = current_user_oid()
    e = require_event_editor(db, to_oid(event_id, "event_id"), uid)

    # $pull and $addToSet on the same path cannot share one update.
    if pinned:
        db[EVENTS].update_one({"_id": e["_id"]}, {"$pull": {"pinned_by_user_ids": str(uid)}})
        db[EVENTS].update_one({"_id": e["_id"]}, {"$addToSet": {"pinned_by_user_ids": uid}})
    else:
        db[EVENTS].update_one({"_id": e["_id"]}, {"$pullAll": {"pinned_by_user_ids": [uid, str(uid)]}})
    return ok({"pinned": pinned})
