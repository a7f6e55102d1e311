"""
Pricing Module
==============
Deterministic unit-price rules for cart line items.

Two variants:
- Simple: flat topping list, extras charged against the pizza's defaults
- Custom: per-placement toppings (full / left / right) and crust surcharge

Pure functions. Unknown topping or crust ids price at zero; the miss is
reported on the returned PriceQuote and logged, never raised.
"""

import logging
import random
import string
import time
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from menu import MenuCatalog, get_catalog


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


# ============================================================================
# TYPES
# ============================================================================

class ToppingPlacement(Enum):
    """Where a topping goes on the pizza."""
    FULL = "full"
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class ToppingWithPlacement:
    """One topping instance on one half (or the whole) of a pizza."""
    topping_id: str
    placement: ToppingPlacement = ToppingPlacement.FULL

    def to_dict(self) -> Dict[str, str]:
        return {"toppingId": self.topping_id, "placement": self.placement.value}

    @classmethod
    def from_dict(cls, raw: Dict[str, str]) -> "ToppingWithPlacement":
        """
        Raises:
            KeyError: toppingId missing
            ValueError: placement is not full/left/right
        """
        return cls(
            topping_id=str(raw["toppingId"]),
            placement=ToppingPlacement(raw.get("placement", "full")),
        )


@dataclass(frozen=True)
class PriceQuote:
    """Unit price plus the references that could not be resolved."""
    unit_price: float
    missing_toppings: Tuple[str, ...] = field(default_factory=tuple)
    missing_crust: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return not self.missing_toppings and self.missing_crust is None


# ============================================================================
# SIMPLE ITEMS
# ============================================================================

def quote_simple_item(
    base_price: float,
    size,
    size_multiplier: float,
    selected_toppings: Iterable[str],
    default_toppings: Iterable[str],
    catalog: Optional[MenuCatalog] = None
) -> PriceQuote:
    """
    Price a pizza with a flat topping selection.

    unit = base_price * size_multiplier + sum(price of selected - defaults)

    Selected toppings are a set: order and repeats do not matter.
    """
    catalog = catalog or get_catalog()
    defaults = set(default_toppings)

    toppings_price = 0.0
    missing: List[str] = []

    for topping_id in dict.fromkeys(selected_toppings):
        if topping_id in defaults:
            continue
        topping = catalog.get_topping_by_id(topping_id)
        if topping is None:
            missing.append(topping_id)
            continue
        toppings_price += topping.price

    return PriceQuote(
        unit_price=base_price * size_multiplier + toppings_price,
        missing_toppings=tuple(missing),
    )


def price_simple_item(
    base_price: float,
    size,
    size_multiplier: float,
    selected_toppings: Iterable[str],
    default_toppings: Iterable[str],
    catalog: Optional[MenuCatalog] = None
) -> float:
    """Unit price of a simple item (not rounded)."""
    quote = quote_simple_item(
        base_price, size, size_multiplier, selected_toppings, default_toppings, catalog
    )
    _log_misses(quote, size)
    return quote.unit_price


# ============================================================================
# CUSTOM ITEMS
# ============================================================================

def quote_custom_item(
    base_price: float,
    size,
    size_multiplier: float,
    custom_toppings: Iterable[ToppingWithPlacement],
    default_toppings: Iterable[str],
    crust_id: Optional[str] = None,
    catalog: Optional[MenuCatalog] = None
) -> PriceQuote:
    """
    Price a customized pizza.

    Per non-default topping id:
        full_count * price + (half_count // 2) * price + (half_count % 2) * price / 2

    Left and right halves are pooled, so a left + right pair costs the same
    as one full placement. Repeated full placements are each charged.
    """
    catalog = catalog or get_catalog()
    defaults = set(default_toppings)

    counts: Dict[str, Dict[str, int]] = defaultdict(lambda: {"full": 0, "half": 0})
    for entry in custom_toppings:
        if entry.topping_id in defaults:
            continue
        if entry.placement == ToppingPlacement.FULL:
            counts[entry.topping_id]["full"] += 1
        else:
            counts[entry.topping_id]["half"] += 1

    toppings_price = 0.0
    missing: List[str] = []

    for topping_id, count in counts.items():
        topping = catalog.get_topping_by_id(topping_id)
        if topping is None:
            missing.append(topping_id)
            continue

        full_from_halves, remaining_half = divmod(count["half"], 2)
        toppings_price += count["full"] * topping.price
        toppings_price += full_from_halves * topping.price
        toppings_price += remaining_half * (topping.price / 2)

    crust_price = 0.0
    missing_crust = None
    if crust_id:
        crust = catalog.get_crust_by_id(crust_id)
        if crust is None:
            missing_crust = crust_id
        else:
            crust_price = crust.price

    return PriceQuote(
        unit_price=base_price * size_multiplier + toppings_price + crust_price,
        missing_toppings=tuple(missing),
        missing_crust=missing_crust,
    )


def price_custom_item(
    base_price: float,
    size,
    size_multiplier: float,
    custom_toppings: Iterable[ToppingWithPlacement],
    default_toppings: Iterable[str],
    crust_id: Optional[str] = None,
    catalog: Optional[MenuCatalog] = None
) -> float:
    """Unit price of a customized item (not rounded)."""
    quote = quote_custom_item(
        base_price, size, size_multiplier, custom_toppings, default_toppings, crust_id, catalog
    )
    _log_misses(quote, size)
    return quote.unit_price


def _log_misses(quote: PriceQuote, size):
    if quote.missing_toppings:
        logger.warning(
            f"Unknown toppings priced at zero: {', '.join(quote.missing_toppings)} "
            f"(size={getattr(size, 'value', size)})"
        )
    if quote.missing_crust:
        logger.warning(f"Unknown crust priced at zero: {quote.missing_crust}")


# ============================================================================
# MONEY HELPERS
# ============================================================================

def round_money(value: float) -> float:
    """
    Round a currency amount to cents, half-up.

    Works on the shortest decimal form of the float, so 0.125 -> 0.13 and
    15.790000000000001 -> 15.79.
    """
    return float(Decimal(repr(float(value))).quantize(CENT, rounding=ROUND_HALF_UP))


def format_price(value: float) -> str:
    """Format for display: '$10.00'. Negatives keep the sign after '$' ('$-10.50')."""
    amount = Decimal(repr(float(value))).quantize(CENT, rounding=ROUND_HALF_UP)
    return f"${amount:.2f}"


_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_order_number() -> str:
    """Human-facing order number: ORD-<timestamp>-<random>."""
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=4))
    return f"ORD-{timestamp}-{suffix}"
