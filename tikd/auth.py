"""Session authentication (Flask-Login) and the account endpoints."""
from __future__ import annotations

from typing import Any, Dict, Optional

from bson import ObjectId
from flask import Blueprint, jsonify
from flask_login import LoginManager, UserMixin, current_user, login_required, login_user, logout_user
from pymongo.errors import DuplicateKeyError, PyMongoError
from werkzeug.security import check_password_hash, generate_password_hash

from .db import ORG_TEAM, USERS, get_db
from .errors import ApiError, ok, require_json
from .serialize import public_user
from .validation import is_object_id, now_utc, text, validate_email, validate_password

login_manager = LoginManager()
login_manager.session_protection = "strong"

bp = Blueprint("auth", __name__)


class User(UserMixin):
    def __init__(self, doc: Dict[str, Any]):
        self.doc = doc
        self.id = str(doc["_id"])
        self.oid: ObjectId = doc["_id"]
        self.email = doc.get("email", "")
        self.role = doc.get("role", "user")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@login_manager.user_loader
def load_user(user_id: str) -> Optional[User]:
    if not is_object_id(user_id):
        return None
    doc = get_db()[USERS].find_one({"_id": ObjectId(user_id)})
    return User(doc) if doc else None


@login_manager.unauthorized_handler
def unauthorized():
    # JSON only
    return jsonify({"ok": False, "error": "Authentication required.", "code": "unauthorized"}), 401


def current_user_oid() -> ObjectId:
    return current_user.oid


# -------------------------
# Routes
# -------------------------
@bp.get("/api/health")
def health():
    return ok({"status": "up"})


@bp.get("/api/me")
def me():
    if not current_user.is_authenticated:
        return ok({"user": None})
    # Load from db to avoid stale role/email in session
    u = get_db()[USERS].find_one({"_id": current_user.oid})
    return ok({"user": public_user(u) if u else None})


@bp.post("/api/auth/register")
def register():
    data = require_json()
    email = validate_email(data.get("email", ""))
    password = validate_password(data.get("password", ""))
    username = text(data.get("username"), "username", max_len=32).lower()

    now = now_utc()
    doc = {
        "email": email,
        "password_hash": generate_password_hash(password),
        "first_name": text(data.get("first_name"), "first_name", max_len=64),
        "last_name": text(data.get("last_name"), "last_name", max_len=64),
        "phone": text(data.get("phone"), "phone", max_len=32),
        "image": "",
        "role": "user",
        "created_at": now,
        "updated_at": now,
    }
    # sparse unique index: leave the field out rather than storing ""
    if username:
        doc["username"] = username

    db = get_db()
    try:
        res = db[USERS].insert_one(doc)
        # roster rows invited before the account existed only carry the email
        db[ORG_TEAM].update_many(
            {"email": email, "user_id": None},
            {"$set": {"user_id": res.inserted_id, "updated_at": now}},
        )
    except DuplicateKeyError:
        raise ApiError("Email or username already registered.", 409, "conflict", {"field": "email"})
    except PyMongoError as e:
        raise ApiError("Database error during registration.", 500, "db_error", {"detail": str(e)})

    u = db[USERS].find_one({"_id": res.inserted_id})
    login_user(User(u))
    return ok({"user": public_user(u)}, 201)


@bp.post("/api/auth/login")
def login():
    data = require_json()
    email = validate_email(data.get("email", ""))
    password = data.get("password")
    if not isinstance(password, str):
        password = ""

    u = get_db()[USERS].find_one({"email": email})
    if not u or not check_password_hash(u.get("password_hash", ""), password):
        raise ApiError("Invalid credentials.", 401, "unauthorized")

    login_user(User(u))
    return ok({"user": public_user(u)})


@bp.post("/api/auth/logout")
@login_required
def logout():
    logout_user()
    return ok({})
