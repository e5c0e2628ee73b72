"""Request field validation helpers.

Every helper raises :class:`ApiError` (400, ``validation_error``) naming the
offending field, so route handlers can read a body top to bottom without
branching on errors.
"""
from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

from bson import ObjectId
from bson.errors import InvalidId

from .errors import ApiError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
HEX_COLOR_RE = re.compile(r"^#([0-9A-Fa-f]{3}|[0-9A-Fa-f]{6})$")
OBJECT_ID_RE = re.compile(r"^[a-f\d]{24}$", re.IGNORECASE)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes coming back from the driver."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def invalid(field: str, message: str) -> ApiError:
    return ApiError(message, 400, "validation_error", {"field": field})


def is_object_id(value: Any) -> bool:
    return isinstance(value, str) and bool(OBJECT_ID_RE.match(value))


def to_oid(value: Any, field: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not is_object_id(value):
        raise invalid(field, f"Invalid {field}.")
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise invalid(field, f"Invalid {field}.")


def reject_unknown(data: dict, allowed: Iterable[str]) -> None:
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ApiError(
            f"Unknown field(s): {', '.join(unknown)}.", 400, "validation_error", {"fields": unknown}
        )


def safe_int(value: Any, field: str, min_value: Optional[int] = None, max_value: Optional[int] = None) -> int:
    if isinstance(value, bool) or isinstance(value, float) and not value.is_integer():
        raise invalid(field, f"{field} must be an integer.")
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise invalid(field, f"{field} must be an integer.")
    if min_value is not None and n < min_value:
        raise invalid(field, f"{field} must be >= {min_value}.")
    if max_value is not None and n > max_value:
        raise invalid(field, f"{field} must be <= {max_value}.")
    return n


def optional_int(value: Any, field: str, min_value: Optional[int] = None) -> Optional[int]:
    if value is None:
        return None
    return safe_int(value, field, min_value=min_value)


def safe_float(value: Any, field: str, min_value: Optional[float] = None) -> float:
    if isinstance(value, bool):
        raise invalid(field, f"{field} must be a number.")
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise invalid(field, f"{field} must be a number.")
    if not math.isfinite(n):
        raise invalid(field, f"{field} must be a number.")
    if min_value is not None and n < min_value:
        raise invalid(field, f"{field} must be >= {min_value}.")
    return n


def boolean(value: Any, field: str) -> bool:
    if not isinstance(value, bool):
        raise invalid(field, f"{field} must be a boolean.")
    return value


def text(value: Any, field: str, min_len: int = 0, max_len: Optional[int] = None) -> str:
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise invalid(field, f"{field} must be a string.")
    value = value.strip()
    if len(value) < min_len:
        if min_len == 1:
            raise invalid(field, f"{field} is required.")
        raise invalid(field, f"{field} must be at least {min_len} characters.")
    if max_len is not None and len(value) > max_len:
        raise invalid(field, f"{field} must be at most {max_len} characters.")
    return value


def choice(value: Any, field: str, allowed: Iterable[str]) -> str:
    allowed = tuple(allowed)
    if value not in allowed:
        raise invalid(field, f"{field} must be one of: {', '.join(allowed)}.")
    return value


def url(value: Any, field: str, allow_empty: bool = True) -> str:
    value = text(value, field)
    if not value:
        if allow_empty:
            return ""
        raise invalid(field, f"{field} is required.")
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise invalid(field, "Must be a valid URL (e.g., https://example.com)")
    return value


def hex_color(value: Any, field: str) -> str:
    value = text(value, field)
    if value and not HEX_COLOR_RE.match(value):
        raise invalid(field, "Use a valid hex color (e.g., #6366F1)")
    return value


def validate_email(email: Any, field: str = "email") -> str:
    email = (email or "").strip().lower() if isinstance(email, str) else ""
    if not EMAIL_RE.match(email):
        raise invalid(field, "A valid email is required.")
    return email


def validate_password(pw: Any) -> str:
    pw = pw if isinstance(pw, str) else ""
    if len(pw) < 6:
        raise invalid("password", "Password must be at least 6 characters.")
    return pw


def parse_datetime(value: Any, field: str) -> datetime:
    """Accept ISO 8601 date or datetime strings; naive values are taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        raise invalid(field, f"{field} must be ISO format (e.g., 2026-01-01T10:00:00+00:00).")
    s = value.strip()
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        raise invalid(field, f"{field} must be ISO format (e.g., 2026-01-01T10:00:00+00:00).")
    return as_utc(dt)


def optional_datetime(value: Any, field: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    return parse_datetime(value, field)
