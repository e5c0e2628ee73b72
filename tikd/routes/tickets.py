"""Ticket purchase and the caller's own tickets."""
from __future__ import annotations

import logging
from typing import Any, Dict

from bson import ObjectId
from flask import Blueprint, request
from flask_login import login_required
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from ..auth import current_user_oid
from ..db import EVENTS, TICKET_TYPES, TICKETS, get_db
from ..errors import ApiError, forbidden, not_found, ok, require_json
from ..pricing import CartItem, calc_prices, round2
from ..validation import as_utc, choice, now_utc, reject_unknown, safe_int, to_oid

logger = logging.getLogger(__name__)

bp = Blueprint("tickets", __name__)

TICKET_STATUSES = ("reserved", "paid", "scanned", "cancelled")
MAX_TICKETS_PER_ORDER = 50


def _check_purchasable(t: Dict[str, Any], qty: int, password: Any) -> None:
    if t.get("availability_status") != "on_sale":
        raise ApiError("This ticket type is not on sale.", 409, "not_on_sale")

    now = now_utc()
    start, end = as_utc(t.get("sales_start_at")), as_utc(t.get("sales_end_at"))
    if start is not None and now < start:
        raise ApiError("Sales have not started yet.", 409, "not_on_sale")
    if end is not None and now > end:
        raise ApiError("Sales have ended.", 409, "not_on_sale")

    mode = t.get("access_mode", "public")
    if mode == "restricted":
        raise forbidden("This ticket type is restricted.")
    if mode == "password" and password != t.get("password"):
        raise forbidden("Invalid ticket password.")

    lo, hi = t.get("min_per_order"), t.get("max_per_order")
    if lo and qty < lo:
        raise ApiError(f"Minimum {lo} tickets per order.", 400, "validation_error", {"field": "quantity"})
    if hi and qty > hi:
        raise ApiError(f"Maximum {hi} tickets per order.", 400, "validation_error", {"field": "quantity"})


def _reserve(db, t: Dict[str, Any], qty: int) -> Dict[str, Any]:
    """Atomically add ``qty`` to ``sold_count`` unless it would oversell."""
    query: Dict[str, Any] = {"_id": t["_id"], "availability_status": "on_sale"}
    total = t.get("total_quantity")
    if total is not None:
        query["total_quantity"] = total
        query["sold_count"] = {"$lte": total - qty}

    updated = db[TICKET_TYPES].find_one_and_update(
        query,
        {"$inc": {"sold_count": qty}, "$set": {"updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ApiError("Not enough tickets available (sold out / insufficient stock).", 409, "conflict")
    return updated


@bp.post("/api/tickets/purchase")
@login_required
def purchase():
    data = require_json()
    reject_unknown(data, ("ticket_type_id", "quantity", "password"))
    tid = to_oid(data.get("ticket_type_id"), "ticket_type_id")
    qty = safe_int(data.get("quantity", 1), "quantity", min_value=1, max_value=MAX_TICKETS_PER_ORDER)

    db = get_db()
    uid = current_user_oid()

    t = db[TICKET_TYPES].find_one({"_id": tid})
    if not t:
        raise not_found("Ticket type")
    e = db[EVENTS].find_one({"_id": t["event_id"]})
    if not e:
        raise not_found("Event")
    if e.get("status") == "draft":
        raise ApiError("This event is not published.", 409, "not_on_sale")

    _check_purchasable(t, qty, data.get("password"))
    updated = _reserve(db, t, qty)

    unit_price = 0.0 if t.get("is_free") else float(t.get("price") or 0)
    currency = t.get("currency") or "USD"
    breakdown = calc_prices([CartItem(unit_price, qty, currency)])
    if t.get("is_free") or t.get("fee_mode") == "absorb":
        breakdown.total = round2(breakdown.total - breakdown.fees)
        breakdown.fees = 0.0

    order_id = ObjectId()
    now = now_utc()
    docs = [
        {
            "order_id": order_id,
            "event_id": t["event_id"],
            "ticket_type_id": tid,
            "owner_id": uid,
            "price": unit_price,
            "currency": currency,
            "status": "paid",
            "created_at": now,
            "updated_at": now,
        }
        for _ in range(qty)
    ]

    try:
        res = db[TICKETS].insert_many(docs)
    except PyMongoError as ex:
        # Best-effort rollback if recording the tickets fails
        logger.exception("Failed to record tickets; rolling back sold count")
        db[TICKETS].delete_many({"order_id": order_id})
        db[TICKET_TYPES].update_one({"_id": tid}, {"$inc": {"sold_count": -qty}, "$set": {"updated_at": now_utc()}})
        raise ApiError("Purchase could not be recorded. Please try again.", 500, "db_error", {"detail": str(ex)})

    logger.info("order %s: %d x %s for user %s", order_id, qty, tid, uid)
    total = updated.get("total_quantity")
    return ok(
        {
            "message": "Purchase successful.",
            "order": {
                "id": str(order_id),
                "event_id": str(t["event_id"]),
                "ticket_type_id": str(tid),
                "quantity": qty,
                "ticket_ids": [str(i) for i in res.inserted_ids],
                "price": breakdown.to_dict(),
            },
            "remaining": None if total is None else max(total - int(updated.get("sold_count") or 0), 0),
        },
        201,
    )


@bp.get("/api/tickets")
@login_required
def my_tickets():
    scope = request.args.get("scope") or "self"
    if scope != "self":
        raise ApiError("Unsupported scope. Only scope=self is implemented.", 400, "validation_error", {"field": "scope"})

    query: Dict[str, Any] = {"owner_id": current_user_oid()}
    status = request.args.get("status")
    if status:
        query["status"] = choice(status, "status", TICKET_STATUSES)

    db = get_db()
    tickets = list(db[TICKETS].find(query).sort("created_at", DESCENDING))
    event_ids = list({t["event_id"] for t in tickets})
    events = {e["_id"]: e for e in db[EVENTS].find({"_id": {"$in": event_ids}})}

    rows = []
    for t in tickets:
        e = events.get(t["event_id"]) or {}
        date = e.get("date")
        rows.append(
            {
                "id": str(t["_id"]),
                "event_id": str(t["event_id"]),
                "event_title": e.get("title"),
                "event_date": as_utc(date).isoformat() if date else None,
                "event_img": e.get("image"),
                "ticket_img": t.get("qr_code"),
                "price": t.get("price"),
                "currency": t.get("currency"),
                "quantity": 1,
                "status": t.get("status"),
                "seat": t.get("seat"),
            }
        )
    return ok({"tickets": rows})
