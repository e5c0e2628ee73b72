"""Role permission maps and organization/team access guards."""

from datetime import timedelta

import pytest
from bson import ObjectId

from tikd.db import ORG_TEAM, ORGANIZATIONS
from tikd.errors import ApiError
from tikd.permissions import (
    ORG_PERMISSION_KEYS,
    can_manage_org,
    can_view_org,
    expire_temporary_members,
    require_org_manager,
    system_role_defaults,
    validate_permissions,
)
from tikd.validation import now_utc


def test_system_role_defaults():
    defaults = system_role_defaults()
    assert set(defaults) == {"admin", "promoter", "scanner", "collaborator", "member"}
    assert all(defaults["admin"].values())
    assert [k for k, v in defaults["member"].items() if v] == ["members.view"]
    assert defaults["promoter"]["events.publish"] is True
    assert defaults["collaborator"]["events.publish"] is False
    for perms in defaults.values():
        assert set(perms) == set(ORG_PERMISSION_KEYS)


def test_validate_permissions_fills_missing_keys():
    perms = validate_permissions({"events.create": True})
    assert perms["events.create"] is True
    assert perms["members.view"] is False
    assert len(perms) == len(ORG_PERMISSION_KEYS)


@pytest.mark.parametrize(
    "value",
    [
        {"events.fly": True},
        {"events.create": "yes"},
        ["events.create"],
    ],
)
def test_validate_permissions_rejects(value):
    with pytest.raises(ApiError) as exc:
        validate_permissions(value)
    assert exc.value.status == 400
    assert exc.value.details == {"field": "permissions"}


def _org(db, owner_id):
    org_id = db[ORGANIZATIONS].insert_one({"name": "Org", "owner_id": owner_id}).inserted_id
    return db[ORGANIZATIONS].find_one({"_id": org_id})


def test_org_guards(db):
    owner, admin, member, pending = ObjectId(), ObjectId(), ObjectId(), ObjectId()
    org = _org(db, owner)
    db[ORG_TEAM].insert_many(
        [
            {"organization_id": org["_id"], "user_id": admin, "role": "admin", "status": "active"},
            {"organization_id": org["_id"], "user_id": member, "role": "scanner", "status": "active"},
            {"organization_id": org["_id"], "user_id": pending, "role": "admin", "status": "invited"},
        ]
    )

    assert can_manage_org(db, org, owner)
    assert can_manage_org(db, org, admin)
    assert not can_manage_org(db, org, member)
    assert not can_manage_org(db, org, pending)

    assert can_view_org(db, org, member)
    assert not can_view_org(db, org, pending)
    assert not can_view_org(db, org, ObjectId())

    with pytest.raises(ApiError) as exc:
        require_org_manager(db, org["_id"], member)
    assert exc.value.status == 403

    with pytest.raises(ApiError) as exc:
        require_org_manager(db, ObjectId(), owner)
    assert exc.value.status == 404


def test_expire_temporary_members(db):
    org_id = ObjectId()
    past = now_utc() - timedelta(days=1)
    future = now_utc() + timedelta(days=1)
    db[ORG_TEAM].insert_many(
        [
            {"organization_id": org_id, "email": "a@x.io", "status": "active", "temporary_access": True, "expires_at": past},
            {"organization_id": org_id, "email": "b@x.io", "status": "revoked", "temporary_access": True, "expires_at": past},
            {"organization_id": org_id, "email": "c@x.io", "status": "active", "temporary_access": True, "expires_at": future},
            {"organization_id": org_id, "email": "d@x.io", "status": "active", "temporary_access": False},
            {"organization_id": ObjectId(), "email": "e@x.io", "status": "active", "temporary_access": True, "expires_at": past},
        ]
    )

    assert expire_temporary_members(db, ORG_TEAM, {"organization_id": org_id}) == 1
    statuses = {r["email"]: r["status"] for r in db[ORG_TEAM].find({})}
    assert statuses == {
        "a@x.io": "expired",
        "b@x.io": "revoked",
        "c@x.io": "active",
        "d@x.io": "active",
        "e@x.io": "active",
    }
