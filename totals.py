"""
Cart totals.

Reduces priced line items to subtotal, tax, delivery fee and total. Used by
the cart on every mutation and again by checkout, so both sides round the
same way.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable

from pricing import round_money


TAX_RATE = 0.08
DELIVERY_FEE = 4.99


@dataclass(frozen=True)
class CartTotals:
    subtotal: float = 0.0
    tax: float = 0.0
    delivery_fee: float = 0.0
    total: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "deliveryFee": self.delivery_fee,
            "total": self.total,
        }


EMPTY_TOTALS = CartTotals()


def aggregate(
    items: Iterable[Any],
    tax_rate: float = TAX_RATE,
    delivery_fee: float = DELIVERY_FEE
) -> CartTotals:
    """
    Compute order totals from line items.

    Items need `total_price` (one unit) and `quantity`. Intermediate values
    keep full precision; each output is rounded once with round_money.
    No delivery fee is charged on an empty (zero subtotal) cart.
    """
    subtotal = sum(item.total_price * item.quantity for item in items)
    tax = subtotal * tax_rate
    fee = delivery_fee if subtotal > 0 else 0.0
    total = subtotal + tax + fee

    return CartTotals(
        subtotal=round_money(subtotal),
        tax=round_money(tax),
        delivery_fee=round_money(fee),
        total=round_money(total),
    )


def item_count(items: Iterable[Any]) -> int:
    """Total number of units across all lines."""
    return sum(item.quantity for item in items)
