"""Organization roles: seeded system roles plus custom ones, with ordering."""
from __future__ import annotations

import re
import unicodedata
from collections import Counter
from typing import Any, Dict, List

from bson import ObjectId
from flask import Blueprint
from flask_login import login_required
from pymongo import ASCENDING, DESCENDING, ReturnDocument, UpdateOne
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..auth import current_user_oid
from ..db import ORG_ROLES, ORG_TEAM, get_db
from ..errors import ApiError, not_found, ok, require_json
from ..permissions import require_org_manager, require_org_viewer, system_role_defaults, validate_permissions
from ..validation import hex_color, invalid, now_utc, reject_unknown, safe_int, text, to_oid

bp = Blueprint("org_roles", __name__)

ROLE_ICON_KEYS = (
    "user", "users", "shield", "badge", "ticket", "megaphone", "scanner",
    "crown", "gem", "wrench", "settings", "owner", "star", "sparkles", "bolt",
    "rocket", "lock", "key", "wallet", "eye", "globe", "flag", "camera", "mic",
    "clipboard",
)

# key, name, color, icon
SYSTEM_ROLE_DEFS = (
    ("admin", "Admin", "#8B5CF6", "shield"),
    ("promoter", "Promoter", "#A855F7", "megaphone"),
    ("scanner", "Scanner", "#7C3AED", "scanner"),
    ("collaborator", "Collaborator", "#6D28D9", "users"),
    ("member", "Member", "#94A3B8", "user"),
)

ROLE_KEY_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")
MAX_KEY_ATTEMPTS = 50


def slugify(value: str) -> str:
    value = unicodedata.normalize("NFKD", value or "")
    value = "".join(c for c in value if not unicodedata.combining(c))
    value = re.sub(r"[^a-z0-9]+", "-", value.lower().strip())
    return value.strip("-")[:48]


def ensure_system_roles(db: Database, org_id: ObjectId, actor_id: ObjectId) -> None:
    have = {r["key"] for r in db[ORG_ROLES].find({"organization_id": org_id, "is_system": True}, {"key": 1})}
    defaults = system_role_defaults()
    now = now_utc()
    docs = [
        {
            "organization_id": org_id,
            "key": key,
            "name": name,
            "color": color,
            "icon_key": icon,
            "is_system": True,
            "order": order,
            "permissions": defaults[key],
            "created_by": actor_id,
            "created_at": now,
            "updated_at": now,
        }
        for order, (key, name, color, icon) in enumerate(SYSTEM_ROLE_DEFS, start=1)
        if key not in have
    ]
    for doc in docs:
        # A concurrent request may have seeded the same key.
        try:
            db[ORG_ROLES].insert_one(doc)
        except DuplicateKeyError:
            continue


def member_counts(db: Database, org_id: ObjectId) -> Counter:
    """Active roster rows per role: ``system:<key>`` or ``custom:<role id>``."""
    counts: Counter = Counter()
    for m in db[ORG_TEAM].find({"organization_id": org_id, "status": "active"}, {"role": 1, "role_id": 1}):
        if m.get("role_id"):
            counts[f"custom:{m['role_id']}"] += 1
        else:
            counts[f"system:{m.get('role')}"] += 1
    return counts


def public_role(r: Dict[str, Any], counts: Counter) -> Dict[str, Any]:
    count_key = f"system:{r['key']}" if r.get("is_system") else f"custom:{r['_id']}"
    return {
        "id": str(r["_id"]),
        "key": r["key"],
        "name": r["name"],
        "color": r.get("color") or "",
        "icon_key": r.get("icon_key"),
        "is_system": bool(r.get("is_system")),
        "order": r.get("order", 0),
        "permissions": r.get("permissions") or {},
        "members_count": counts.get(count_key, 0),
    }


def _icon_key(value: Any):
    if value is None:
        return None
    if value not in ROLE_ICON_KEYS:
        raise invalid("icon_key", f"icon_key must be one of: {', '.join(ROLE_ICON_KEYS)}.")
    return value


@bp.get("/api/organizations/<org_id>/roles")
@login_required
def list_roles(org_id: str):
    db = get_db()
    uid = current_user_oid()
    org = require_org_viewer(db, to_oid(org_id, "organization_id"), uid)
    ensure_system_roles(db, org["_id"], uid)

    roles = db[ORG_ROLES].find({"organization_id": org["_id"]}).sort(
        [("order", ASCENDING), ("created_at", ASCENDING)]
    )
    counts = member_counts(db, org["_id"])
    return ok({"roles": [public_role(r, counts) for r in roles]})


@bp.post("/api/organizations/<org_id>/roles")
@login_required
def create_role(org_id: str):
    data = require_json()
    reject_unknown(data, ("name", "key", "color", "icon_key", "permissions"))
    db = get_db()
    uid = current_user_oid()
    org = require_org_manager(db, to_oid(org_id, "organization_id"), uid)
    ensure_system_roles(db, org["_id"], uid)

    name = text(data.get("name"), "name", min_len=2, max_len=64)
    if data.get("key") is not None:
        key = text(data["key"], "key", min_len=2, max_len=48)
        if not ROLE_KEY_RE.match(key):
            raise invalid("key", "Invalid role key.")
        base_key = slugify(key)
    else:
        base_key = slugify(name)
    base_key = base_key or "new-role"

    last = db[ORG_ROLES].find_one({"organization_id": org["_id"]}, {"order": 1}, sort=[("order", DESCENDING)])
    now = now_utc()
    doc = {
        "organization_id": org["_id"],
        "name": name,
        "color": hex_color(data.get("color"), "color"),
        "icon_key": _icon_key(data.get("icon_key")),
        "is_system": False,
        "order": (last.get("order", 5) if last else 5) + 1,
        "permissions": validate_permissions(data.get("permissions", {})),
        "created_by": uid,
        "created_at": now,
        "updated_at": now,
    }

    for i in range(MAX_KEY_ATTEMPTS):
        doc.pop("_id", None)
        doc["key"] = base_key if i == 0 else f"{base_key}-{i + 1}"
        try:
            res = db[ORG_ROLES].insert_one(doc)
            break
        except DuplicateKeyError:
            continue
        except PyMongoError as e:
            raise ApiError("Failed to create role.", 500, "db_error", {"detail": str(e)})
    else:
        raise ApiError("Could not generate a unique role key.", 409, "conflict")

    created = db[ORG_ROLES].find_one({"_id": res.inserted_id})
    return ok({"role": public_role(created, Counter())}, 201)


@bp.patch("/api/organizations/<org_id>/roles/reorder")
@login_required
def reorder_roles(org_id: str):
    data = require_json()
    reject_unknown(data, ("role_ids",))
    db = get_db()
    org = require_org_manager(db, to_oid(org_id, "organization_id"), current_user_oid())

    raw = data.get("role_ids")
    if not isinstance(raw, list) or not raw:
        raise invalid("role_ids", "role_ids must be a non-empty list.")
    ids: List[ObjectId] = [to_oid(x, "role_ids") for x in raw]
    if len(set(ids)) != len(ids):
        raise invalid("role_ids", "role_ids must not contain duplicates.")

    found = db[ORG_ROLES].count_documents({"_id": {"$in": ids}, "organization_id": org["_id"]})
    if found != len(ids):
        raise ApiError("One or more roles not found.", 404, "not_found")

    now = now_utc()
    db[ORG_ROLES].bulk_write(
        [
            UpdateOne({"_id": rid, "organization_id": org["_id"]}, {"$set": {"order": i, "updated_at": now}})
            for i, rid in enumerate(ids, start=1)
        ],
        ordered=True,
    )
    return ok({})


def _load_role(db, org: Dict[str, Any], role_id: str) -> Dict[str, Any]:
    r = db[ORG_ROLES].find_one({"_id": to_oid(role_id, "role_id"), "organization_id": org["_id"]})
    if not r:
        raise not_found("Role")
    return r


@bp.patch("/api/organizations/<org_id>/roles/<role_id>")
@login_required
def update_role(org_id: str, role_id: str):
    data = require_json()
    reject_unknown(data, ("name", "color", "icon_key", "order", "permissions"))
    db = get_db()
    org = require_org_manager(db, to_oid(org_id, "organization_id"), current_user_oid())
    role = _load_role(db, org, role_id)

    updates: Dict[str, Any] = {}
    if "name" in data:
        updates["name"] = text(data["name"], "name", min_len=2, max_len=64)
    if "color" in data:
        updates["color"] = hex_color(data["color"], "color")
    if "icon_key" in data:
        updates["icon_key"] = _icon_key(data["icon_key"])
    if "order" in data:
        updates["order"] = safe_int(data["order"], "order", min_value=0)
    if "permissions" in data:
        updates["permissions"] = validate_permissions(data["permissions"])

    updates["updated_at"] = now_utc()
    updated = db[ORG_ROLES].find_one_and_update(
        {"_id": role["_id"]}, {"$set": updates}, return_document=ReturnDocument.AFTER
    )
    return ok({"role": public_role(updated, member_counts(db, org["_id"]))})


@bp.delete("/api/organizations/<org_id>/roles/<role_id>")
@login_required
def delete_role(org_id: str, role_id: str):
    db = get_db()
    org = require_org_manager(db, to_oid(org_id, "organization_id"), current_user_oid())
    role = _load_role(db, org, role_id)
    if role.get("is_system"):
        raise ApiError("System roles cannot be deleted.", 400, "validation_error")

    # Members holding the role fall back to the plain member role.
    db[ORG_TEAM].update_many(
        {"organization_id": org["_id"], "role_id": role["_id"]},
        {"$set": {"role": "member", "role_id": None, "updated_at": now_utc()}},
    )
    db[ORG_ROLES].delete_one({"_id": role["_id"], "is_system": False})
    return ok({})
