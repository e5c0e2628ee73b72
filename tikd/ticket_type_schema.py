"""Ticket-type body parsing: full bodies for create, partial bodies for PATCH."""
from __future__ import annotations

from typing import Any, Dict

from .errors import ApiError
from .validation import (
    boolean,
    choice,
    hex_color,
    invalid,
    optional_datetime,
    optional_int,
    reject_unknown,
    safe_float,
    safe_int,
    text,
)

FEE_MODES = ("pass_on", "absorb")
AVAILABILITY_STATUSES = ("scheduled", "on_sale", "paused", "sale_ended")
ACCESS_MODES = ("public", "restricted", "password")
DESIGN_LAYOUTS = ("horizontal", "vertical", "down", "up")

CHECKOUT_DEFAULTS = {
    "require_full_name": True,
    "require_email": True,
    "require_phone": False,
    "require_facebook": False,
    "require_instagram": False,
    "require_gender": False,
    "require_dob": False,
    "require_age": False,
    "subject_to_approval": False,
    "add_buyer_details_to_order": True,
    "add_purchased_tickets_to_attendees_count": True,
    "enable_email_attachments": True,
}

DESIGN_DEFAULTS = {
    "layout": "horizontal",
    "brand_color": "#9a46ff",
    "logo_url": "",
    "background_url": "",
    "footer_text": "",
    "watermark_enabled": True,
    "event_info_enabled": True,
    "logo_enabled": False,
    "qr_size": 0,
    "qr_border_radius": 0,
}

FIELDS = (
    "name", "description", "price", "currency", "fee_mode", "is_free",
    "total_quantity", "min_per_order", "max_per_order",
    "availability_status", "sales_start_at", "sales_end_at",
    "access_mode", "password", "checkout", "design", "sort_order",
)


def _checkout(value: Any) -> Dict[str, bool]:
    if not isinstance(value, dict):
        raise invalid("checkout", "checkout must be an object.")
    reject_unknown(value, CHECKOUT_DEFAULTS)
    out = dict(CHECKOUT_DEFAULTS)
    for k, v in value.items():
        out[k] = boolean(v, f"checkout.{k}")
    return out


def _design(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise invalid("design", "design must be an object.")
    reject_unknown(value, DESIGN_DEFAULTS)
    out = dict(DESIGN_DEFAULTS)
    if "layout" in value:
        out["layout"] = choice(value["layout"], "design.layout", DESIGN_LAYOUTS)
    if "brand_color" in value:
        out["brand_color"] = hex_color(value["brand_color"], "design.brand_color")
    for k in ("logo_url", "background_url", "footer_text"):
        if k in value:
            out[k] = text(value[k], f"design.{k}")
    for k in ("watermark_enabled", "event_info_enabled", "logo_enabled"):
        if k in value:
            out[k] = boolean(value[k], f"design.{k}")
    for k in ("qr_size", "qr_border_radius"):
        if k in value:
            out[k] = safe_float(value[k], f"design.{k}", min_value=0)
    return out


def parse_ticket_type(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate a ticket-type body.

    With ``partial`` only the keys present are validated and returned and no
    defaults are filled in. Otherwise ``name`` and ``price`` are required and
    every other field gets its default.
    """
    reject_unknown(data, FIELDS)
    out: Dict[str, Any] = {}

    def has(key: str) -> bool:
        return key in data

    if has("name") or not partial:
        out["name"] = text(data.get("name"), "name", min_len=1, max_len=120)
    if has("description") or not partial:
        out["description"] = text(data.get("description"), "description")
    if has("price") or not partial:
        out["price"] = safe_float(data.get("price"), "price", min_value=0)
    if has("currency") or not partial:
        currency = text(data.get("currency") or "USD", "currency").upper()
        if len(currency) != 3:
            raise invalid("currency", "currency must be a 3-letter ISO code.")
        out["currency"] = currency
    if has("fee_mode") or not partial:
        out["fee_mode"] = choice(data.get("fee_mode", "pass_on"), "fee_mode", FEE_MODES)
    if has("is_free") or not partial:
        out["is_free"] = boolean(data.get("is_free", False), "is_free")

    for k in ("total_quantity", "min_per_order", "max_per_order"):
        if has(k) or not partial:
            out[k] = optional_int(data.get(k), k, min_value=0)

    if has("availability_status") or not partial:
        out["availability_status"] = choice(
            data.get("availability_status", "on_sale"), "availability_status", AVAILABILITY_STATUSES
        )
    for k in ("sales_start_at", "sales_end_at"):
        if has(k) or not partial:
            out[k] = optional_datetime(data.get(k), k)

    if has("access_mode") or not partial:
        out["access_mode"] = choice(data.get("access_mode", "public"), "access_mode", ACCESS_MODES)
    if has("password") or not partial:
        out["password"] = text(data.get("password"), "password")

    if has("checkout") or not partial:
        out["checkout"] = _checkout(data.get("checkout", {}))
    if has("design") or not partial:
        out["design"] = _design(data.get("design", {}))

    if has("sort_order"):
        out["sort_order"] = safe_int(data["sort_order"], "sort_order", min_value=0)

    _check_consistency(out)
    return out


def _check_consistency(out: Dict[str, Any]) -> None:
    lo, hi = out.get("min_per_order"), out.get("max_per_order")
    if lo is not None and hi is not None and lo > hi:
        raise ApiError("min_per_order cannot exceed max_per_order.", 400, "validation_error", {"field": "min_per_order"})

    start, end = out.get("sales_start_at"), out.get("sales_end_at")
    if start is not None and end is not None and start > end:
        raise ApiError("sales_start_at must be before sales_end_at.", 400, "validation_error", {"field": "sales_end_at"})

    if out.get("access_mode") == "password" and "password" in out and not out["password"]:
        raise ApiError("A password is required for password access.", 400, "validation_error", {"field": "password"})
