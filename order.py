"""
Order Module
============
Checkout boundary: turns a client submission into a persisted order.

✅ Customer info validated and sanitized
✅ Items re-resolved against the menu (unknown pizza / size rejected)
✅ Client prices discarded; every unit price recomputed server-side
✅ Totals aggregated server-side with the same rounding as the cart
✅ Structured validation errors (kind + user-facing message)
✅ Immutable Order records

Nothing the client sends about money is trusted.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Any, Optional, Tuple

from prometheus_client import Counter, Histogram

from cart import CartLineItem
from config import get_config
from menu import MenuCatalog, get_catalog
from order_status import OrderStatus
from performance import PERFORMANCE_THRESHOLDS, observe
from pricing import (
    ToppingWithPlacement,
    generate_order_number,
    price_custom_item,
    price_simple_item,
    round_money,
)
from totals import CartTotals, aggregate


logger = logging.getLogger(__name__)


# ============================================================================
# METRICS
# ============================================================================

orders_created_total = Counter(
    'orders_created_total',
    'Orders accepted at checkout'
)
order_validation_failures = Counter(
    'order_validation_failures_total',
    'Rejected order submissions',
    ['reason']
)
order_value = Histogram(
    'order_value_dollars',
    'Order total distribution',
    buckets=[10, 20, 30, 50, 75, 100, 150, 250, 500]
)


# ============================================================================
# VALIDATION ERRORS
# ============================================================================

class ValidationKind(Enum):
    """Why a submission was rejected."""
    MISSING_FIELD = "missing_field"
    FIELD_TOO_LONG = "field_too_long"
    INVALID_EMAIL = "invalid_email"
    INVALID_PHONE = "invalid_phone"
    EMPTY_CART = "empty_cart"
    TOO_MANY_ITEMS = "too_many_items"
    UNKNOWN_PIZZA = "unknown_pizza"
    UNKNOWN_SIZE = "unknown_size"
    INVALID_QUANTITY = "invalid_quantity"
    INVALID_ITEM = "invalid_item"


class OrderValidationError(Exception):
    """User-facing checkout rejection."""

    def __init__(self, kind: ValidationKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message, "kind": self.kind.value}


def _fail(kind: ValidationKind, message: str):
    order_validation_failures.labels(reason=kind.value).inc()
    logger.warning(f"Order rejected ({kind.value}): {message}")
    raise OrderValidationError(kind, message)


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[\d\s\-\(\)\+]+$")

REQUIRED_CUSTOMER_FIELDS = ("name", "email", "phone", "address", "city", "zipCode")


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: str
    phone: str
    address: str
    city: str
    zip_code: str
    delivery_instructions: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "zipCode": self.zip_code,
        }
        if self.delivery_instructions is not None:
            data["deliveryInstructions"] = self.delivery_instructions
        return data

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CustomerInfo":
        return cls(
            name=raw["name"],
            email=raw["email"],
            phone=raw["phone"],
            address=raw["address"],
            city=raw["city"],
            zip_code=raw["zipCode"],
            delivery_instructions=raw.get("deliveryInstructions"),
        )


@dataclass(frozen=True)
class Order:
    """
    A placed order.

    Totals are always derived from items on the server; only status may
    change afterwards (see order_status.advance_status).
    """
    id: str
    order_number: str
    customer_info: CustomerInfo
    items: Tuple[CartLineItem, ...]
    totals: CartTotals
    status: OrderStatus = OrderStatus.PENDING
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    user_id: Optional[str] = None

    @property
    def total(self) -> float:
        return self.totals.total

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "orderNumber": self.order_number,
            "customerInfo": self.customer_info.to_dict(),
            "items": [item.to_dict() for item in self.items],
            **self.totals.to_dict(),
            "status": self.status.value,
            "createdAt": self.created_at,
        }
        if self.user_id is not None:
            data["userId"] = self.user_id
        return data

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Order":
        """
        Rebuild an order from its stored form.

        Raises:
            KeyError, TypeError, ValueError: malformed data
        """
        return cls(
            id=raw["id"],
            order_number=raw["orderNumber"],
            customer_info=CustomerInfo.from_dict(raw["customerInfo"]),
            items=tuple(CartLineItem.from_dict(item) for item in raw["items"]),
            totals=CartTotals(
                subtotal=float(raw["subtotal"]),
                tax=float(raw["tax"]),
                delivery_fee=float(raw["deliveryFee"]),
                total=float(raw["total"]),
            ),
            status=OrderStatus(raw.get("status", OrderStatus.PENDING.value)),
            created_at=raw["createdAt"],
            user_id=raw.get("userId"),
        )


# ============================================================================
# CUSTOMER VALIDATION
# ============================================================================

def _sanitize(value: str) -> str:
    return value.strip().replace("<", "").replace(">", "")


@observe("validate_customer_info", PERFORMANCE_THRESHOLDS["calculation"])
def validate_customer_info(raw: Any, max_length: Optional[int] = None) -> CustomerInfo:
    """
    Validate and sanitize submitted customer details.

    Raises:
        OrderValidationError: first rule that fails
    """
    if max_length is None:
        max_length = get_config().checkout.max_string_length

    if not isinstance(raw, dict):
        _fail(ValidationKind.MISSING_FIELD, "Customer information is required")

    for key in REQUIRED_CUSTOMER_FIELDS:
        value = raw.get(key)
        if not isinstance(value, str) or not value.strip():
            _fail(ValidationKind.MISSING_FIELD, "All required fields must be filled")

    if len(raw["name"]) > max_length or len(raw["address"]) > max_length:
        _fail(ValidationKind.FIELD_TOO_LONG, "Input fields are too long")

    if not EMAIL_PATTERN.match(raw["email"]):
        _fail(ValidationKind.INVALID_EMAIL, "Invalid email format")

    if not PHONE_PATTERN.match(raw["phone"]):
        _fail(ValidationKind.INVALID_PHONE, "Invalid phone format")

    instructions = raw.get("deliveryInstructions")
    if isinstance(instructions, str) and instructions:
        instructions = _sanitize(instructions)[:max_length]
    else:
        instructions = None

    return CustomerInfo(
        name=_sanitize(raw["name"]),
        email=_sanitize(raw["email"].lower()),
        phone=_sanitize(raw["phone"]),
        address=_sanitize(raw["address"]),
        city=_sanitize(raw["city"]),
        zip_code=_sanitize(raw["zipCode"]),
        delivery_instructions=instructions,
    )


# ============================================================================
# ITEM VALIDATION & RECOMPUTATION
# ============================================================================

def _parse_quantity(value: Any, max_quantity: int) -> Optional[int]:
    """Whole number in 1..max_quantity, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        return None
    if value < 1 or value > max_quantity:
        return None
    return value


def _parse_custom_toppings(raw: Any) -> Tuple[ToppingWithPlacement, ...]:
    if not isinstance(raw, list):
        _fail(ValidationKind.INVALID_ITEM, "Invalid cart item data")
    try:
        return tuple(ToppingWithPlacement.from_dict(entry) for entry in raw)
    except (KeyError, TypeError, ValueError, AttributeError):
        _fail(ValidationKind.INVALID_ITEM, "Invalid cart item data")


@observe("validate_and_recalculate_items", PERFORMANCE_THRESHOLDS["calculation"])
def validate_and_recalculate_items(
    raw_items: Any,
    catalog: Optional[MenuCatalog] = None,
    max_items: Optional[int] = None,
    max_quantity: Optional[int] = None
) -> List[CartLineItem]:
    """
    Resolve submitted items against the menu and reprice them.

    Accepts {pizzaId, size, selectedToppings, quantity} entries, optionally
    with customToppings / customCrust / customSauce. Any price fields in
    the submission are ignored. Unit prices are rounded to cents.

    Raises:
        OrderValidationError: first item that fails, naming the offending id
    """
    limits = get_config().checkout
    max_items = max_items if max_items is not None else limits.max_order_items
    max_quantity = max_quantity if max_quantity is not None else limits.max_item_quantity
    catalog = catalog or get_catalog()

    if not isinstance(raw_items, list) or not raw_items:
        _fail(ValidationKind.EMPTY_CART, "Cart is empty")

    if len(raw_items) > max_items:
        _fail(ValidationKind.TOO_MANY_ITEMS, f"Maximum {max_items} items allowed per order")

    recalculated = []

    for raw in raw_items:
        if not isinstance(raw, dict) or not raw.get("pizzaId") or not raw.get("size"):
            _fail(ValidationKind.INVALID_ITEM, "Invalid cart item data")

        pizza_id = raw["pizzaId"]
        size_value = raw["size"]

        # Ids are used as lookup keys, so only strings get past here
        if not isinstance(pizza_id, str) or not isinstance(size_value, str):
            _fail(ValidationKind.INVALID_ITEM, "Invalid cart item data")

        quantity = _parse_quantity(raw.get("quantity"), max_quantity)
        if quantity is None:
            _fail(
                ValidationKind.INVALID_QUANTITY,
                f"Quantity for {pizza_id} must be between 1 and {max_quantity}"
            )

        selected = raw.get("selectedToppings") or []
        if not isinstance(selected, list) or not all(isinstance(t, str) for t in selected):
            _fail(ValidationKind.INVALID_ITEM, "Invalid cart item data")

        pizza = catalog.get_pizza_by_id(pizza_id)
        if pizza is None:
            _fail(ValidationKind.UNKNOWN_PIZZA, f"Pizza {pizza_id} not found in menu")

        size_option = pizza.get_size_option(size_value)
        if size_option is None:
            _fail(ValidationKind.UNKNOWN_SIZE, f"Invalid size {size_value} for pizza {pizza_id}")

        size = size_option.size
        selected = tuple(dict.fromkeys(selected))

        if "customToppings" in raw:
            custom_toppings = _parse_custom_toppings(raw["customToppings"])
            crust_id = raw.get("customCrust")
            sauce_id = raw.get("customSauce")
            if not isinstance(crust_id, (str, type(None))) or not isinstance(sauce_id, (str, type(None))):
                _fail(ValidationKind.INVALID_ITEM, f"Invalid customization for {pizza_id}")
            unit_price = price_custom_item(
                pizza.base_price,
                size,
                size_option.price_multiplier,
                custom_toppings,
                pizza.default_toppings,
                crust_id=crust_id,
                catalog=catalog,
            )
            item = CartLineItem(
                id=str(uuid.uuid4()),
                pizza_id=pizza.id,
                pizza_name=f"Custom {pizza.name}",
                size=size,
                base_price=pizza.base_price,
                quantity=quantity,
                total_price=round_money(unit_price),
                selected_toppings=tuple(dict.fromkeys(t.topping_id for t in custom_toppings)),
                is_custom=True,
                custom_toppings=custom_toppings,
                custom_crust=crust_id,
                custom_sauce=sauce_id,
            )
        else:
            unit_price = price_simple_item(
                pizza.base_price,
                size,
                size_option.price_multiplier,
                selected,
                pizza.default_toppings,
                catalog=catalog,
            )
            item = CartLineItem(
                id=str(uuid.uuid4()),
                pizza_id=pizza.id,
                pizza_name=pizza.name,
                size=size,
                base_price=pizza.base_price,
                quantity=quantity,
                total_price=round_money(unit_price),
                selected_toppings=selected,
            )

        recalculated.append(item)

    return recalculated


# ============================================================================
# ORDER CREATION
# ============================================================================

def create_order(
    payload: Any,
    store=None,
    catalog: Optional[MenuCatalog] = None,
    user_id: Optional[str] = None
) -> Order:
    """
    Validate a submission and place the order.

    Args:
        payload: {customerInfo, items, userId?}
        store: OrderStore to persist into (None skips persistence)
        catalog: Menu to resolve against (defaults to the shared catalog)
        user_id: Owner of the order; overrides payload userId

    Returns:
        The created Order (status pending)

    Raises:
        OrderValidationError: Submission rejected
        StorageError: Order could not be written
    """
    if not isinstance(payload, dict):
        _fail(ValidationKind.INVALID_ITEM, "Invalid request format")

    customer_info = validate_customer_info(payload.get("customerInfo"))
    items = validate_and_recalculate_items(payload.get("items"), catalog=catalog)

    pricing = get_config().pricing
    totals = aggregate(items, tax_rate=pricing.tax_rate, delivery_fee=pricing.delivery_fee)

    owner = user_id if user_id is not None else payload.get("userId")

    order = Order(
        id=f"order-{uuid.uuid4()}",
        order_number=generate_order_number(),
        customer_info=customer_info,
        items=tuple(items),
        totals=totals,
        user_id=str(owner) if owner else None,
    )

    if store is not None:
        store.save(order)

    orders_created_total.inc()
    order_value.observe(order.total)

    logger.info(
        f"Order created: {order.order_number} ({order.id}) "
        f"items={len(order.items)} total=${order.total:.2f}"
    )

    return order
