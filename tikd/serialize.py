"""Turn Mongo documents into public JSON-ready dicts."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable

from bson import ObjectId

from .validation import as_utc

PRIVATE_FIELDS = frozenset({"password_hash", "password", "invite_token", "pinned_by_user_ids"})


def plain(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, dict):
        return {k: plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [plain(v) for v in value]
    return value


def serialize(doc: Dict[str, Any], hide: Iterable[str] = PRIVATE_FIELDS) -> Dict[str, Any]:
    """Public copy of a document: ``_id`` becomes ``id``, ids and dates become strings."""
    hidden = set(hide)
    out: Dict[str, Any] = {}
    for key, value in doc.items():
        if key in hidden:
            continue
        out["id" if key == "_id" else key] = plain(value)
    return out


def display_name(u: Dict[str, Any]) -> str:
    full = f"{u.get('first_name') or ''} {u.get('last_name') or ''}".strip()
    return full or u.get("username") or u.get("email") or "User"


def public_user(u: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(u["_id"]),
        "email": u.get("email", ""),
        "username": u.get("username", ""),
        "name": display_name(u),
        "image": u.get("image", ""),
        "role": u.get("role", "user"),
    }
