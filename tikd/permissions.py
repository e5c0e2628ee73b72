"""Organization/team role permissions and access guards."""
from __future__ import annotations

from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo.database import Database

from .db import EVENTS, ORG_TEAM, ORGANIZATIONS, TEAM_MEMBERS, TEAMS
from .errors import ApiError, forbidden, not_found
from .validation import now_utc

ORG_PERMISSION_KEYS = (
    "members.view",
    "members.invite",
    "members.remove",
    "members.assignRoles",
    "events.create",
    "events.edit",
    "events.publish",
    "events.delete",
    "links.createTrackingLinks",
)

SYSTEM_ROLES = ("admin", "promoter", "scanner", "collaborator", "member")


def empty_permissions() -> Dict[str, bool]:
    return {k: False for k in ORG_PERMISSION_KEYS}


def system_role_defaults() -> Dict[str, Dict[str, bool]]:
    admin = {k: True for k in ORG_PERMISSION_KEYS}

    promoter = empty_permissions()
    promoter["members.view"] = True
    promoter["events.edit"] = True
    promoter["events.publish"] = True

    scanner = empty_permissions()
    scanner["members.view"] = True

    collaborator = empty_permissions()
    collaborator["members.view"] = True
    collaborator["events.edit"] = True

    member = empty_permissions()
    member["members.view"] = True

    return {
        "admin": admin,
        "promoter": promoter,
        "scanner": scanner,
        "collaborator": collaborator,
        "member": member,
    }


def validate_permissions(value: Any) -> Dict[str, bool]:
    if not isinstance(value, dict):
        raise ApiError("permissions must be an object.", 400, "validation_error", {"field": "permissions"})
    out = empty_permissions()
    for k, v in value.items():
        if k not in ORG_PERMISSION_KEYS:
            raise ApiError(f"Unknown permission key: {k}", 400, "validation_error", {"field": "permissions"})
        if not isinstance(v, bool):
            raise ApiError(f"Permission {k} must be a boolean.", 400, "validation_error", {"field": "permissions"})
        out[k] = v
    return out


# -------------------------
# Organization guards
# -------------------------
def load_org(db: Database, org_id: ObjectId) -> Dict[str, Any]:
    org = db[ORGANIZATIONS].find_one({"_id": org_id})
    if not org:
        raise not_found("Organization")
    return org


def is_org_owner(org: Dict[str, Any], user_id: ObjectId) -> bool:
    return org.get("owner_id") == user_id


def can_manage_org(db: Database, org: Dict[str, Any], user_id: ObjectId) -> bool:
    """Owner or an active admin on the roster."""
    if is_org_owner(org, user_id):
        return True
    admin = db[ORG_TEAM].find_one(
        {"organization_id": org["_id"], "user_id": user_id, "role": "admin", "status": "active"},
        {"_id": 1},
    )
    return admin is not None


def can_view_org(db: Database, org: Dict[str, Any], user_id: ObjectId) -> bool:
    if is_org_owner(org, user_id):
        return True
    member = db[ORG_TEAM].find_one(
        {"organization_id": org["_id"], "user_id": user_id, "status": "active"},
        {"_id": 1},
    )
    return member is not None


def require_org_manager(db: Database, org_id: ObjectId, user_id: ObjectId) -> Dict[str, Any]:
    org = load_org(db, org_id)
    if not can_manage_org(db, org, user_id):
        raise forbidden()
    return org


def require_org_viewer(db: Database, org_id: ObjectId, user_id: ObjectId) -> Dict[str, Any]:
    org = load_org(db, org_id)
    if not can_view_org(db, org, user_id):
        raise forbidden()
    return org


def expire_temporary_members(db: Database, collection: str, scope: Dict[str, Any]) -> int:
    """Flip lapsed temporary-access rows to ``expired``; ``revoked`` rows are left alone."""
    res = db[collection].update_many(
        {
            **scope,
            "temporary_access": True,
            "expires_at": {"$lt": now_utc()},
            "status": {"$nin": ["revoked", "expired"]},
        },
        {"$set": {"status": "expired", "updated_at": now_utc()}},
    )
    return res.modified_count


# -------------------------
# Team guards
# -------------------------
def load_team(db: Database, team_id: ObjectId) -> Dict[str, Any]:
    team = db[TEAMS].find_one({"_id": team_id})
    if not team:
        raise not_found("Team")
    return team


def _team_member(db: Database, team_id: ObjectId, user_id: ObjectId, role: Optional[str] = None):
    query: Dict[str, Any] = {"team_id": team_id, "user_id": user_id, "status": "active"}
    if role:
        query["role"] = role
    return db[TEAM_MEMBERS].find_one(query, {"_id": 1})


def require_team_viewer(db: Database, team_id: ObjectId, user_id: ObjectId) -> Dict[str, Any]:
    team = load_team(db, team_id)
    if team.get("owner_id") == user_id or _team_member(db, team_id, user_id):
        return team
    raise forbidden()


def require_team_manager(db: Database, team_id: ObjectId, user_id: ObjectId) -> Dict[str, Any]:
    team = load_team(db, team_id)
    if team.get("owner_id") == user_id or _team_member(db, team_id, user_id, "admin"):
        return team
    raise forbidden()


# -------------------------
# Event guards
# -------------------------
def can_edit_event(db: Database, event: Dict[str, Any], user_id: ObjectId) -> bool:
    """Event creator or the owner of the event's organization."""
    if event.get("created_by_user_id") == user_id:
        return True
    org_id = event.get("organization_id")
    if not org_id:
        return False
    org = db[ORGANIZATIONS].find_one({"_id": org_id}, {"owner_id": 1})
    return bool(org) and is_org_owner(org, user_id)


def require_event_editor(db: Database, event_id: ObjectId, user_id: ObjectId) -> Dict[str, Any]:
    event = db[EVENTS].find_one({"_id": event_id})
    if not event:
        raise not_found("Event")
    if not can_edit_event(db, event, user_id):
        raise forbidden()
    return event
