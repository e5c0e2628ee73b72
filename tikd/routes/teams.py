"""Teams: lightweight groups owned by a user."""
from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, request
from flask_login import login_required
from pymongo.errors import PyMongoError

from .. import listing
from ..auth import current_user_oid
from ..db import TEAM_MEMBERS, TEAMS, get_db
from ..errors import ApiError, forbidden, ok, require_json
from ..permissions import load_team, require_team_manager, require_team_viewer
from ..serialize import serialize
from ..validation import hex_color, now_utc, reject_unknown, text, to_oid, url

bp = Blueprint("teams", __name__)

TEAM_FIELDS = ("name", "description", "banner", "logo", "website", "location", "accent_color")
SORTABLE = {"name": None, "location": None, "created_at": None}


def parse_team_fields(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    reject_unknown(data, TEAM_FIELDS)
    out: Dict[str, Any] = {}
    if "name" in data or not partial:
        out["name"] = text(data.get("name"), "name", min_len=1, max_len=120)
    if "description" in data or not partial:
        out["description"] = text(data.get("description"), "description")
    for k in ("banner", "logo", "website"):
        if k in data or not partial:
            out[k] = url(data.get(k), k)
    if "location" in data or not partial:
        out["location"] = text(data.get("location"), "location", min_len=2, max_len=200)
    if "accent_color" in data or not partial:
        out["accent_color"] = hex_color(data.get("accent_color"), "accent_color")
    return out


@bp.get("/api/teams")
@login_required
def list_teams():
    db = get_db()
    uid = current_user_oid()
    member_of = [
        m["team_id"] for m in db[TEAM_MEMBERS].find({"user_id": uid, "status": "active"}, {"team_id": 1})
    ]
    teams = db[TEAMS].find({"$or": [{"owner_id": uid}, {"_id": {"$in": member_of}}]})
    rows = []
    for t in teams:
        row = serialize(t)
        row["is_owner"] = t.get("owner_id") == uid
        rows.append(row)

    args = listing.parse_list_args(request.args, SORTABLE, default_sort=("name",), tie_breakers=("created_at",))
    return ok(listing.apply(rows, args, ("name", "description", "location")).to_dict())


@bp.post("/api/teams")
@login_required
def create_team():
    data = require_json()
    fields = parse_team_fields(data)
    db = get_db()

    now = now_utc()
    doc = {**fields, "owner_id": current_user_oid(), "created_at": now, "updated_at": now}
    try:
        res = db[TEAMS].insert_one(doc)
    except PyMongoError as e:
        raise ApiError("Database error while creating team.", 500, "db_error", {"detail": str(e)})

    created = db[TEAMS].find_one({"_id": res.inserted_id})
    return ok({"team": serialize(created)}, 201)


@bp.get("/api/teams/<team_id>")
@login_required
def get_team(team_id: str):
    team = require_team_viewer(get_db(), to_oid(team_id, "team_id"), current_user_oid())
    return ok({"team": serialize(team)})


@bp.patch("/api/teams/<team_id>")
@login_required
def update_team(team_id: str):
    data = require_json()
    db = get_db()
    team = require_team_manager(db, to_oid(team_id, "team_id"), current_user_oid())

    updates = parse_team_fields(data, partial=True)
    if updates:
        updates["updated_at"] = now_utc()
        db[TEAMS].update_one({"_id": team["_id"]}, {"$set": updates})

    updated = db[TEAMS].find_one({"_id": team["_id"]})
    return ok({"team": serialize(updated)})


@bp.delete("/api/teams/<team_id>")
@login_required
def delete_team(team_id: str):
    db = get_db()
    team = load_team(db, to_oid(team_id, "team_id"))
    if team.get("owner_id") != current_user_oid():
        raise forbidden("Only the team owner can delete it.")

    db[TEAM_MEMBERS].delete_many({"team_id": team["_id"]})
    db[TEAMS].delete_one({"_id": team["_id"]})
    return ok({})
