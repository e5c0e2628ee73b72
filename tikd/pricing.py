"""Order price breakdown: subtotal, service fees, coupon discount."""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

SERVICE_FEE_PER_TICKET = 1.99


def round2(n: float) -> float:
    # halves round up, not to even
    return math.floor(n * 100 + 0.5) / 100


@dataclass
class CartItem:
    unit_price: float
    qty: int
    currency: str = "USD"


@dataclass
class Coupon:
    kind: str  # "flat" | "percent"
    value: float


@dataclass
class PriceBreakdown:
    currency: str
    subtotal: float
    fees: float
    discount: float
    total: float
    ticket_count: int
    lines: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def calc_prices(items: Sequence[CartItem], coupon: Optional[Coupon] = None) -> PriceBreakdown:
    if not items:
        return PriceBreakdown("USD", 0, 0, 0, 0, 0, [])

    currency = items[0].currency
    subtotal = round2(sum(it.unit_price * it.qty for it in items))
    ticket_count = sum(it.qty for it in items)
    fees = round2(ticket_count * SERVICE_FEE_PER_TICKET)

    discount = 0.0
    if coupon:
        discount = coupon.value if coupon.kind == "flat" else subtotal * coupon.value / 100
    discount = min(round2(discount), subtotal)  # never exceeds subtotal

    total = round2(max(subtotal + fees - discount, 0))
    lines = [{"label": f"{ticket_count} Ticket{'' if ticket_count == 1 else 's'}", "amount": subtotal}]
    return PriceBreakdown(currency, subtotal, fees, discount, total, ticket_count, lines)
