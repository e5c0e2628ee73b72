"""Organizations: the caller's list, create, detail/update, events and finances."""
from __future__ import annotations

from typing import Any, Dict, Optional

from bson import ObjectId
from flask import Blueprint, request
from flask_login import current_user, login_required
from pymongo import ASCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .. import listing
from ..auth import current_user_oid
from ..db import EVENTS, ORG_ROLES, ORG_TEAM, ORGANIZATIONS, get_db
from ..errors import ApiError, forbidden, ok, require_json
from ..formatting import clamp_int
from ..metrics import organization_member_totals
from ..permissions import is_org_owner, load_org, require_org_viewer
from ..serialize import display_name, serialize
from ..validation import choice, hex_color, invalid, now_utc, reject_unknown, text, to_oid, url

bp = Blueprint("organizations", __name__)

BUSINESS_TYPES = ("brand", "venue", "community", "artist", "fraternity", "charity")
ORG_FIELDS = ("name", "description", "banner", "logo", "website", "business_type", "location", "accent_color")
EVENT_STATUS_FILTERS = ("upcoming", "past", "all")

OWNER_ROLE_META = {"key": "owner", "name": "Owner", "color": "#F7C948", "icon_key": "owner"}

SORTABLE = {
    "name": None,
    "business_type": None,
    "location": None,
    "created_at": None,
    "total_members": None,
}


def parse_org_fields(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    reject_unknown(data, ORG_FIELDS)
    out: Dict[str, Any] = {}
    if "name" in data or not partial:
        out["name"] = text(data.get("name"), "name", min_len=1, max_len=120)
    if "description" in data or not partial:
        out["description"] = text(data.get("description"), "description")
    for k in ("banner", "logo", "website"):
        if k in data or not partial:
            out[k] = url(data.get(k), k)
    if "business_type" in data or not partial:
        out["business_type"] = choice(data.get("business_type"), "business_type", BUSINESS_TYPES)
    if "location" in data or not partial:
        location = text(data.get("location"), "location", max_len=200)
        if location and len(location) < 2:
            raise invalid("location", "location must be at least 2 characters.")
        out["location"] = location
    if "accent_color" in data or not partial:
        out["accent_color"] = hex_color(data.get("accent_color"), "accent_color")
    return out


def ensure_owner_admin(db: Database, org_id: ObjectId, owner: Dict[str, Any]) -> None:
    """Upsert the owner's roster row as an active, permanent admin."""
    email = (owner.get("email") or "").lower()
    if not email:
        return
    now = now_utc()
    db[ORG_TEAM].update_one(
        {"organization_id": org_id, "email": email},
        {
            "$set": {
                "user_id": owner["_id"],
                "name": display_name(owner),
                "role": "admin",
                "role_id": None,
                "status": "active",
                "temporary_access": False,
                "expires_at": None,
                "invited_by": owner["_id"],
                "updated_at": now,
            },
            "$unset": {"invite_token": ""},
            "$setOnInsert": {"created_at": now},
        },
        upsert=True,
    )


def _role_meta(role: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "key": role["key"],
        "name": role["name"],
        "color": role.get("color") or "",
        "icon_key": role.get("icon_key"),
    }


def my_role_meta(
    org_id: str,
    my_role: str,
    my_role_id: Optional[str],
    roles_by_id: Dict[str, Dict[str, Any]],
    roles_by_key: Dict[str, Dict[str, Any]],
) -> Dict[str, Any]:
    if my_role == "owner":
        return dict(OWNER_ROLE_META)
    if my_role_id and my_role_id in roles_by_id:
        return _role_meta(roles_by_id[my_role_id])
    role = roles_by_key.get(f"{org_id}:{my_role}")
    if role:
        return _role_meta(role)
    return {"key": my_role, "name": my_role.capitalize(), "color": "", "icon_key": "users"}


@bp.get("/api/organizations")
@login_required
def list_organizations():
    db = get_db()
    uid = current_user_oid()
    me = current_user.doc

    owned = list(db[ORGANIZATIONS].find({"owner_id": uid}))
    for o in owned:
        ensure_owner_admin(db, o["_id"], me)

    memberships = list(
        db[ORG_TEAM].find(
            {"status": "active", "$or": [{"user_id": uid}, {"email": (me.get("email") or "").lower()}]},
            {"organization_id": 1, "role": 1, "role_id": 1},
        )
    )
    membership_by_org = {str(m["organization_id"]): m for m in memberships}

    owned_ids = {o["_id"] for o in owned}
    extra_ids = [m["organization_id"] for m in memberships if m["organization_id"] not in owned_ids]
    orgs = owned + (list(db[ORGANIZATIONS].find({"_id": {"$in": extra_ids}})) if extra_ids else [])

    org_ids = [o["_id"] for o in orgs]
    totals = organization_member_totals(db, org_ids)
    roles = list(db[ORG_ROLES].find({"organization_id": {"$in": org_ids}})) if org_ids else []
    roles_by_id = {str(r["_id"]): r for r in roles}
    roles_by_key = {f"{r['organization_id']}:{r['key']}": r for r in roles}

    rows = []
    for o in orgs:
        row = serialize(o)
        m = membership_by_org.get(row["id"])
        if is_org_owner(o, uid):
            role, role_id = "owner", None
        else:
            role = (m or {}).get("role") or "member"
            role_id = str(m["role_id"]) if m and m.get("role_id") else None
        row["total_members"] = totals.get(row["id"], 0)
        row["my_role"] = role
        row["my_role_id"] = role_id
        row["my_role_meta"] = my_role_meta(row["id"], role, role_id, roles_by_id, roles_by_key)
        rows.append(row)

    args = listing.parse_list_args(
        request.args,
        SORTABLE,
        default_sort=("name",),
        numeric_fields=("total_members",),
        tie_breakers=("created_at",),
    )
    page = listing.apply(rows, args, ("name", "description", "location", "business_type"))
    return ok(page.to_dict())


@bp.post("/api/organizations")
@login_required
def create_organization():
    data = require_json()
    fields = parse_org_fields(data)
    db = get_db()
    uid = current_user_oid()

    now = now_utc()
    doc = {**fields, "owner_id": uid, "created_at": now, "updated_at": now}
    try:
        res = db[ORGANIZATIONS].insert_one(doc)
        ensure_owner_admin(db, res.inserted_id, current_user.doc)
    except PyMongoError as e:
        raise ApiError("Database error while creating organization.", 500, "db_error", {"detail": str(e)})

    created = db[ORGANIZATIONS].find_one({"_id": res.inserted_id})
    return ok({"organization": serialize(created)}, 201)


def _event_filter(org_id: ObjectId, status: Optional[str]) -> Dict[str, Any]:
    query: Dict[str, Any] = {"organization_id": org_id}
    if status == "past":
        query["date"] = {"$lte": now_utc()}
    elif status == "upcoming":
        query["date"] = {"$gt": now_utc()}
    return query


@bp.get("/api/organizations/<org_id>")
@login_required
def get_organization(org_id: str):
    db = get_db()
    org = require_org_viewer(db, to_oid(org_id, "organization_id"), current_user_oid())
    out = serialize(org)

    include = [s.strip() for s in (request.args.get("include") or "").split(",") if s.strip()]
    if "events" in include:
        status = choice(request.args.get("status") or "upcoming", "status", EVENT_STATUS_FILTERS)
        events = db[EVENTS].find(_event_filter(org["_id"], status)).sort("date", ASCENDING)
        out["events"] = [serialize(e) for e in events]
    return ok({"organization": out})


@bp.patch("/api/organizations/<org_id>")
@login_required
def update_organization(org_id: str):
    data = require_json()
    db = get_db()
    org = load_org(db, to_oid(org_id, "organization_id"))
    if not is_org_owner(org, current_user_oid()):
        raise forbidden("Forbidden: not your organization.")

    updates = parse_org_fields(data, partial=True)
    if updates:
        updates["updated_at"] = now_utc()
        db[ORGANIZATIONS].update_one({"_id": org["_id"]}, {"$set": updates})

    updated = db[ORGANIZATIONS].find_one({"_id": org["_id"]})
    return ok({"organization": serialize(updated)})


@bp.get("/api/organizations/<org_id>/events")
@login_required
def organization_events(org_id: str):
    db = get_db()
    org = require_org_viewer(db, to_oid(org_id, "organization_id"), current_user_oid())

    page = clamp_int(request.args.get("page") or 1, 1, 1_000_000)
    limit = clamp_int(request.args.get("limit") or 10, 1, 50)
    status = request.args.get("status")
    if status:
        status = choice(status, "status", EVENT_STATUS_FILTERS)

    query = _event_filter(org["_id"], status)
    total = db[EVENTS].count_documents(query)
    events = db[EVENTS].find(query).sort("date", ASCENDING).skip((page - 1) * limit).limit(limit)
    return ok(
        {
            "page": page,
            "total": total,
            "pages": -(-total // limit),
            "items": [serialize(e) for e in events],
        }
    )


@bp.get("/api/organizations/<org_id>/finances")
@login_required
def organization_finances(org_id: str):
    db = get_db()
    org = require_org_viewer(db, to_oid(org_id, "organization_id"), current_user_oid())
    # No payment provider is wired in, so balances are always empty.
    return ok(
        {
            "organization_id": str(org["_id"]),
            "summary": {"available": 0, "pending": 0, "currency": "USD"},
            "payouts": [],
            "disputes": [],
        }
    )
