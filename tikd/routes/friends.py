"""Friends: requests, accept/decline, removal and candidate search."""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from bson import ObjectId
from flask import Blueprint, request
from flask_login import login_required
from pymongo import DESCENDING

from .. import listing
from ..auth import current_user_oid
from ..db import FRIENDSHIPS, USERS, get_db
from ..errors import ApiError, forbidden, not_found, ok, require_json
from ..serialize import display_name
from ..validation import is_object_id, now_utc, reject_unknown, to_oid, validate_email

bp = Blueprint("friends", __name__)

CANDIDATE_LIMIT = 25
SORTABLE = {"name": None, "email": None, "created_at": None}
USER_CARD_FIELDS = {"first_name": 1, "last_name": 1, "username": 1, "email": 1, "phone": 1, "image": 1}


def _pair(a: ObjectId, b: ObjectId) -> Dict[str, Any]:
    return {"$or": [{"requester_id": a, "recipient_id": b}, {"requester_id": b, "recipient_id": a}]}


def _iso(dt) -> Optional[str]:
    return dt.isoformat() if dt else None


@bp.get("/api/friends")
@login_required
def list_friends():
    db = get_db()
    me = current_user_oid()
    friendships = list(
        db[FRIENDSHIPS].find({"status": "accepted", "$or": [{"requester_id": me}, {"recipient_id": me}]})
    )
    other_ids = [f["recipient_id"] if f["requester_id"] == me else f["requester_id"] for f in friendships]
    users = {u["_id"]: u for u in db[USERS].find({"_id": {"$in": other_ids}}, USER_CARD_FIELDS)}

    friends = []
    for f, other_id in zip(friendships, other_ids):
        other = users.get(other_id)
        if not other:
            continue
        friends.append(
            {
                "id": str(other_id),
                "friendship_id": str(f["_id"]),
                "name": display_name(other),
                "email": other.get("email", ""),
                "phone": other.get("phone", ""),
                "avatar_url": other.get("image", ""),
                "created_at": _iso(f.get("created_at")),
            }
        )
    args = listing.parse_list_args(request.args, SORTABLE, default_sort=("name",), tie_breakers=("email",))
    return ok(listing.apply(friends, args, ("name", "email", "phone")).to_dict())


@bp.delete("/api/friends/<user_id>")
@login_required
def remove_friend(user_id: str):
    other = to_oid(user_id, "user_id")
    # Removing a non-friend is a no-op.
    get_db()[FRIENDSHIPS].delete_one({"status": "accepted", **_pair(current_user_oid(), other)})
    return ok({})


@bp.get("/api/friends/requests")
@login_required
def incoming_requests():
    db = get_db()
    incoming = list(
        db[FRIENDSHIPS].find({"recipient_id": current_user_oid(), "status": "pending"}).sort("created_at", DESCENDING)
    )
    senders = {
        u["_id"]: u
        for u in db[USERS].find({"_id": {"$in": [r["requester_id"] for r in incoming]}}, USER_CARD_FIELDS)
    }
    rows = []
    for r in incoming:
        sender = senders.get(r["requester_id"]) or {}
        rows.append(
            {
                "id": str(r["_id"]),
                "from_user_id": str(r["requester_id"]),
                "name": display_name(sender),
                "avatar_url": sender.get("image", ""),
                "created_at": _iso(r.get("created_at")),
            }
        )
    return ok({"requests": rows})


def _recipients(db, me: ObjectId, data: Dict[str, Any]) -> List[ObjectId]:
    if "to_user_ids" in data:
        raw = data["to_user_ids"]
        if not isinstance(raw, list) or not raw:
            raise ApiError("to_user_ids must be a non-empty list.", 400, "validation_error", {"field": "to_user_ids"})
        wanted = []
        for v in raw:
            if is_object_id(v) and v != str(me) and ObjectId(v) not in wanted:
                wanted.append(ObjectId(v))
        known = {u["_id"] for u in db[USERS].find({"_id": {"$in": wanted}}, {"_id": 1})}
        ids = [i for i in wanted if i in known]
        if not ids:
            raise ApiError("No valid recipients provided.", 400, "validation_error", {"field": "to_user_ids"})
        return ids

    if "to_email" in data:
        email = validate_email(data["to_email"], "to_email")
        user = db[USERS].find_one({"email": email}, {"_id": 1})
        if not user:
            raise ApiError("No user found with that email.", 404, "not_found", {"field": "to_email"})
        if user["_id"] == me:
            raise ApiError("You cannot send a request to yourself.", 400, "validation_error", {"field": "to_email"})
        return [user["_id"]]

    raise ApiError("Provide to_user_ids or to_email.", 400, "validation_error")


@bp.post("/api/friends/requests")
@login_required
def send_requests():
    data = require_json()
    reject_unknown(data, ("to_user_ids", "to_email"))
    if "to_user_ids" in data and "to_email" in data:
        raise ApiError("Provide either to_user_ids or to_email, not both.", 400, "validation_error")

    db = get_db()
    me = current_user_oid()
    to_email = data.get("to_email")

    created: List[str] = []
    skipped: List[Dict[str, Any]] = []
    for to_id in _recipients(db, me, data):
        existing = db[FRIENDSHIPS].find_one(_pair(me, to_id))
        now = now_utc()
        if existing is None:
            res = db[FRIENDSHIPS].insert_one(
                {"requester_id": me, "recipient_id": to_id, "status": "pending", "created_at": now, "updated_at": now}
            )
            created.append(str(res.inserted_id))
            continue

        if existing["status"] in ("accepted", "pending"):
            reason = "already_friends" if existing["status"] == "accepted" else "already_pending"
            entry = {"to_user_id": str(to_id), "reason": reason}
            if to_email:
                entry["to_email"] = to_email
            skipped.append(entry)
            continue

        # Declined earlier: re-open it as a request from the caller.
        db[FRIENDSHIPS].update_one(
            {"_id": existing["_id"]},
            {"$set": {"requester_id": me, "recipient_id": to_id, "status": "pending", "updated_at": now}},
        )
        created.append(str(existing["_id"]))

    return ok({"created": created, "skipped": skipped}, 201)


def _respond(request_id: str, status: str):
    db = get_db()
    doc = db[FRIENDSHIPS].find_one({"_id": to_oid(request_id, "request_id")})
    if not doc:
        raise not_found("Request")
    if doc["recipient_id"] != current_user_oid():
        raise forbidden()
    if doc["status"] != "pending":
        return ok({"status": doc["status"]})

    db[FRIENDSHIPS].update_one({"_id": doc["_id"]}, {"$set": {"status": status, "updated_at": now_utc()}})
    return ok({"status": status})


@bp.post("/api/friends/requests/<request_id>/accept")
@login_required
def accept_request(request_id: str):
    return _respond(request_id, "accepted")


@bp.post("/api/friends/requests/<request_id>/decline")
@login_required
def decline_request(request_id: str):
    return _respond(request_id, "declined")


@bp.get("/api/friends/candidates")
@login_required
def candidates():
    db = get_db()
    me = current_user_oid()
    excluded = {me}
    for r in db[FRIENDSHIPS].find(
        {"status": {"$in": ["pending", "accepted"]}, "$or": [{"requester_id": me}, {"recipient_id": me}]},
        {"requester_id": 1, "recipient_id": 1},
    ):
        excluded.add(r["requester_id"])
        excluded.add(r["recipient_id"])

    query: Dict[str, Any] = {"_id": {"$nin": list(excluded)}}
    q = (request.args.get("q") or "").strip()
    if q:
        rx = {"$regex": re.escape(q), "$options": "i"}
        query["$or"] = [{f: rx} for f in ("email", "username", "first_name", "last_name", "phone")]

    users = db[USERS].find(query, USER_CARD_FIELDS).limit(CANDIDATE_LIMIT)
    return ok(
        {
            "candidates": [
                {
                    "id": str(u["_id"]),
                    "name": display_name(u),
                    "email": u.get("email", ""),
                    "phone": u.get("phone", ""),
                    "avatar_url": u.get("image", ""),
                }
                for u in users
            ]
        }
    )
