"""
Order pricing and stock rules shared by website checkout and the POS.
"""
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

from schemas import OrderStatus

WEBSITE_DELIVERY_FEE = float(os.getenv("WEBSITE_DELIVERY_FEE", "600"))

OUT_OF_STOCK = "out_of_stock"
INSUFFICIENT_STOCK = "insufficient_stock"

TERMINAL_STATUSES = frozenset({OrderStatus.delivered, OrderStatus.refunded})


def _line_value(item: Any, *names: str) -> Any:
    for name in names:
        if isinstance(item, Mapping):
            value = item.get(name)
        else:
            value = getattr(item, name, None)
        if value is not None:
            return value
    return 0


# ---------- Totals ----------

@dataclass(frozen=True)
class OrderTotals:
    subtotal: float
    delivery_fee: float
    discount_amount: float
    total: float


def compute_totals(items: Iterable[Any], delivery_fee: float = 0, discount_amount: float = 0) -> OrderTotals:
    """Subtotal, delivery, discount and grand total for a set of line items.

    Line items may be models or mappings carrying ``unit_price`` (or ``price``)
    and ``quantity`` (or ``qty``). The discount is clamped so the total never
    goes below zero; values are rounded to cents only at the end.
    """
    subtotal = 0.0
    for item in items:
        unit_price = float(_line_value(item, "unit_price", "price"))
        quantity = int(_line_value(item, "quantity", "qty"))
        subtotal += unit_price * quantity

    delivery_fee = float(delivery_fee or 0)
    ceiling = subtotal + delivery_fee
    discount = min(max(0.0, float(discount_amount or 0)), ceiling)
    total = subtotal + delivery_fee - discount

    return OrderTotals(
        subtotal=round(subtotal, 2),
        delivery_fee=round(delivery_fee, 2),
        discount_amount=round(discount, 2),
        total=round(total, 2),
    )


def website_delivery_fee(subtotal: float, flat_fee: Optional[float] = None) -> float:
    """Flat shipping for website orders; nothing to ship means no fee."""
    fee = WEBSITE_DELIVERY_FEE if flat_fee is None else flat_fee
    return fee if subtotal > 0 else 0.0


# ---------- Stock guard ----------

@dataclass(frozen=True)
class StockCheck:
    allowed: bool
    reason: Optional[str] = None
    available: int = 0

    @property
    def message(self) -> str:
        if self.reason == OUT_OF_STOCK:
            return "Product is currently out of stock"
        if self.reason == INSUFFICIENT_STOCK:
            return f"Only {self.available} units available"
        return "OK"


def can_add(current_quantity: int, requested_delta: int, available_stock: int) -> StockCheck:
    """Advise whether a cart line may grow by ``requested_delta`` units.

    Only quantity increases go through here; removals and decrements are
    always allowed by the callers.
    """
    available = max(0, int(available_stock or 0))
    if available <= 0:
        return StockCheck(False, OUT_OF_STOCK, 0)
    if int(current_quantity) + int(requested_delta) > available:
        return StockCheck(False, INSUFFICIENT_STOCK, available)
    return StockCheck(True, None, available)


# ---------- Order status ----------

class InvalidStatusTransition(ValueError):
    def __init__(self, current: OrderStatus, target: OrderStatus):
        super().__init__(f"Cannot change order status from '{current.value}' to '{target.value}'")
        self.current = current
        self.target = target


def check_transition(current: Union[OrderStatus, str], target: Union[OrderStatus, str]) -> OrderStatus:
    """Validate an admin status change and return the target status.

    Admins may pick any status, except that delivered and refunded orders
    can no longer be cancelled.
    """
    current = OrderStatus(current)
    target = OrderStatus(target)
    if current == target:
        return target
    if target == OrderStatus.cancelled and current in TERMINAL_STATUSES:
        raise InvalidStatusTransition(current, target)
    return target
