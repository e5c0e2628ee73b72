"""Organization roster: list, invite, update/resend and remove members."""
from __future__ import annotations

import secrets
from typing import Any, Dict

from flask import Blueprint
from flask_login import login_required
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from ..auth import current_user_oid
from ..db import ORG_ROLES, ORG_TEAM, USERS, get_db
from ..errors import ApiError, not_found, ok, require_json
from ..permissions import SYSTEM_ROLES, expire_temporary_members, require_org_manager
from ..serialize import display_name, serialize
from ..validation import (
    boolean,
    choice,
    invalid,
    now_utc,
    optional_datetime,
    reject_unknown,
    to_oid,
    validate_email,
)

bp = Blueprint("org_team", __name__)

# "expired" is only ever set by the sweep.
SETTABLE_STATUSES = ("invited", "active", "revoked")
ASSIGNABLE_ROLES = ("admin", "promoter", "scanner", "collaborator")


def new_invite_token() -> str:
    return secrets.token_hex(20)


def public_member(m: Dict[str, Any], org: Dict[str, Any]) -> Dict[str, Any]:
    out = serialize(m)
    if m.get("user_id") is not None and m.get("user_id") == org.get("owner_id"):
        out["role"] = "owner"
    return out


@bp.get("/api/organizations/<org_id>/team")
@login_required
def list_team(org_id: str):
    db = get_db()
    org = require_org_manager(db, to_oid(org_id, "organization_id"), current_user_oid())
    expire_temporary_members(db, ORG_TEAM, {"organization_id": org["_id"]})

    members = db[ORG_TEAM].find({"organization_id": org["_id"]}).sort("created_at", ASCENDING)
    return ok({"members": [public_member(m, org) for m in members]})


@bp.post("/api/organizations/<org_id>/team")
@login_required
def invite_member(org_id: str):
    data = require_json()
    reject_unknown(data, ("email", "role", "role_id", "temporary_access", "expires_at"))
    db = get_db()
    uid = current_user_oid()
    org = require_org_manager(db, to_oid(org_id, "organization_id"), uid)

    email = validate_email(data.get("email"))
    role = data.get("role")
    role_id = data.get("role_id")
    if role is None and role_id is None:
        raise invalid("role", "Either role or role_id is required.")
    if role is not None and role_id is not None:
        raise invalid("role_id", "Provide either role or role_id, not both.")

    if role_id is not None:
        role_oid = to_oid(role_id, "role_id")
        if not db[ORG_ROLES].find_one({"_id": role_oid, "organization_id": org["_id"]}, {"_id": 1}):
            raise not_found("Role")
        role = "member"
    else:
        role = choice(role, "role", SYSTEM_ROLES)
        role_oid = None

    temporary = boolean(data.get("temporary_access", False), "temporary_access")
    expires_at = optional_datetime(data.get("expires_at"), "expires_at")
    if temporary and expires_at is None:
        raise invalid("expires_at", "expires_at is required for temporary access.")

    if org.get("owner_id"):
        owner = db[USERS].find_one({"_id": org["owner_id"]}, {"email": 1})
        if owner and owner.get("email") == email:
            raise ApiError("The owner is already a member.", 409, "conflict", {"field": "email"})

    existing_user = db[USERS].find_one({"email": email})
    now = now_utc()
    try:
        member = db[ORG_TEAM].find_one_and_update(
            {"organization_id": org["_id"], "email": email},
            {
                "$set": {
                    "role": role,
                    "role_id": role_oid,
                    "temporary_access": temporary,
                    "expires_at": expires_at if temporary else None,
                    "invited_by": uid,
                    "invite_token": new_invite_token(),
                    "user_id": existing_user["_id"] if existing_user else None,
                    "name": display_name(existing_user) if existing_user else "",
                    "status": "invited",
                    "updated_at": now,
                },
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError as e:
        raise ApiError("Database error while inviting member.", 500, "db_error", {"detail": str(e)})

    return ok({"member": public_member(member, org)}, 201)


def _load_member(db, org: Dict[str, Any], member_id: str) -> Dict[str, Any]:
    m = db[ORG_TEAM].find_one({"_id": to_oid(member_id, "member_id"), "organization_id": org["_id"]})
    if not m:
        raise not_found("Member")
    return m


def _is_owner_row(m: Dict[str, Any], org: Dict[str, Any]) -> bool:
    return m.get("user_id") is not None and m.get("user_id") == org.get("owner_id")


@bp.patch("/api/organizations/<org_id>/team/<member_id>")
@login_required
def update_member(org_id: str, member_id: str):
    data = require_json()
    reject_unknown(data, ("role", "role_id", "status", "temporary_access", "expires_at", "action"))
    db = get_db()
    org = require_org_manager(db, to_oid(org_id, "organization_id"), current_user_oid())
    m = _load_member(db, org, member_id)
    if _is_owner_row(m, org):
        raise ApiError("The owner's membership cannot be changed.", 400, "validation_error")

    if data.get("action") is not None:
        choice(data["action"], "action", ("resend",))
        updated = db[ORG_TEAM].find_one_and_update(
            {"_id": m["_id"]},
            {"$set": {"invite_token": new_invite_token(), "status": "invited", "updated_at": now_utc()}},
            return_document=ReturnDocument.AFTER,
        )
        return ok({"member": public_member(updated, org)})

    updates: Dict[str, Any] = {}
    if "role" in data:
        updates["role"] = choice(data["role"], "role", ASSIGNABLE_ROLES)
        updates["role_id"] = None
    if "role_id" in data:
        role_oid = to_oid(data["role_id"], "role_id")
        if not db[ORG_ROLES].find_one({"_id": role_oid, "organization_id": org["_id"]}, {"_id": 1}):
            raise not_found("Role")
        updates["role"] = "member"
        updates["role_id"] = role_oid
    if "status" in data:
        updates["status"] = choice(data["status"], "status", SETTABLE_STATUSES)
    if "temporary_access" in data:
        updates["temporary_access"] = boolean(data["temporary_access"], "temporary_access")
    if "expires_at" in data:
        updates["expires_at"] = optional_datetime(data["expires_at"], "expires_at")

    if updates.get("temporary_access") and not updates.get("expires_at", m.get("expires_at")):
        raise invalid("expires_at", "expires_at is required for temporary access.")

    updates["updated_at"] = now_utc()
    updated = db[ORG_TEAM].find_one_and_update(
        {"_id": m["_id"]}, {"$set": updates}, return_document=ReturnDocument.AFTER
    )
    return ok({"member": public_member(updated, org)})


@bp.delete("/api/organizations/<org_id>/team/<member_id>")
@login_required
def remove_member(org_id: str, member_id: str):
    db = get_db()
    org = require_org_manager(db, to_oid(org_id, "organization_id"), current_user_oid())
    m = _load_member(db, org, member_id)
    if _is_owner_row(m, org):
        raise ApiError("The owner cannot be removed.", 400, "validation_error")

    db[ORG_TEAM].delete_one({"_id": m["_id"]})
    return ok({})
