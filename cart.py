"""
Cart Module
===========
Shopping cart state for one browsing session.

State machine:
    every command -> new CartState (items + totals recomputed from scratch)

Guarantees:
- Identical simple items merge into one line (quantity += 1)
- Customized items always get their own line
- Totals are derived from items on every mutation, never adjusted in place
- Quantities in a cart are always >= 1
- Unknown pizza / size commands are dropped (logged), never raised
"""

import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, List, Any, Optional, Tuple, Union

import structlog

from config import get_config
from menu import MenuCatalog, PizzaSize, get_catalog
from pricing import ToppingWithPlacement, price_custom_item, price_simple_item, round_money
from totals import CartTotals, EMPTY_TOTALS, aggregate, item_count
from performance import PERFORMANCE_THRESHOLDS, observe


logger = structlog.get_logger(__name__)


class StorageError(Exception):
    """Cart or order storage could not be read or written."""
    pass


# ============================================================================
# LINE ITEMS
# ============================================================================

@dataclass(frozen=True)
class CartLineItem:
    """
    One distinct pizza configuration and how many of it.

    total_price is the price of ONE unit, surcharges included, rounded to
    cents the same way checkout rounds it.
    """
    id: str
    pizza_id: str
    pizza_name: str
    size: PizzaSize
    base_price: float
    quantity: int
    total_price: float
    selected_toppings: Tuple[str, ...] = field(default_factory=tuple)
    is_custom: bool = False
    custom_toppings: Tuple[ToppingWithPlacement, ...] = field(default_factory=tuple)
    custom_crust: Optional[str] = None
    custom_sauce: Optional[str] = None

    def with_quantity(self, new_quantity: int) -> "CartLineItem":
        """Create a copy with a different quantity (items are immutable)."""
        return replace(self, quantity=new_quantity)

    def matches(self, pizza_id: str, size: PizzaSize, selected_toppings) -> bool:
        """True if this is the same simple configuration (topping order ignored)."""
        return (
            not self.is_custom
            and self.pizza_id == pizza_id
            and self.size == size
            and frozenset(self.selected_toppings) == frozenset(selected_toppings)
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "pizzaId": self.pizza_id,
            "pizzaName": self.pizza_name,
            "size": self.size.value,
            "basePrice": self.base_price,
            "selectedToppings": list(self.selected_toppings),
            "quantity": self.quantity,
            "totalPrice": self.total_price,
        }
        if self.is_custom:
            data.update({
                "isCustom": True,
                "customToppings": [t.to_dict() for t in self.custom_toppings],
                "customCrust": self.custom_crust,
                "customSauce": self.custom_sauce,
            })
        return data

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CartLineItem":
        """
        Rebuild a line item from its stored form.

        Raises:
            KeyError, TypeError, ValueError: malformed data
        """
        return cls(
            id=str(raw["id"]),
            pizza_id=str(raw["pizzaId"]),
            pizza_name=str(raw["pizzaName"]),
            size=PizzaSize(raw["size"]),
            base_price=float(raw["basePrice"]),
            quantity=int(raw["quantity"]),
            total_price=float(raw["totalPrice"]),
            selected_toppings=tuple(raw.get("selectedToppings") or ()),
            is_custom=bool(raw.get("isCustom", False)),
            custom_toppings=tuple(
                ToppingWithPlacement.from_dict(t) for t in raw.get("customToppings") or ()
            ),
            custom_crust=raw.get("customCrust"),
            custom_sauce=raw.get("customSauce"),
        )


def _new_line_id(pizza_id: str, size: PizzaSize) -> str:
    return f"{pizza_id}-{size.value}-{uuid.uuid4().hex[:8]}"


def _topping_ids(toppings) -> Tuple[str, ...]:
    # a bare id means one topping, not one per character
    if isinstance(toppings, str):
        return (toppings,)
    return tuple(toppings)


def _parse_size(size: Union[PizzaSize, str]) -> Optional[PizzaSize]:
    if isinstance(size, PizzaSize):
        return size
    try:
        return PizzaSize(size)
    except ValueError:
        return None


# ============================================================================
# CART STATE
# ============================================================================

@dataclass(frozen=True)
class CartState:
    """Snapshot of a cart. Aggregates always match items."""
    items: Tuple[CartLineItem, ...] = field(default_factory=tuple)
    totals: CartTotals = EMPTY_TOTALS
    item_count: int = 0

    @property
    def subtotal(self) -> float:
        return self.totals.subtotal

    @property
    def tax(self) -> float:
        return self.totals.tax

    @property
    def delivery_fee(self) -> float:
        return self.totals.delivery_fee

    @property
    def total(self) -> float:
        return self.totals.total

    def get_item(self, line_id: str) -> Optional[CartLineItem]:
        for item in self.items:
            if item.id == line_id:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            **self.totals.to_dict(),
            "itemCount": self.item_count,
        }


EMPTY_CART = CartState()


# ============================================================================
# ACTIONS
# ============================================================================

@dataclass(frozen=True)
class AddItem:
    pizza_id: str
    size: Union[PizzaSize, str]
    selected_toppings: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AddCustomItem:
    """
    Add a customized pizza.

    custom_toppings should already include the chosen sauce as a full
    placement; sauce_id is kept for display.
    """
    pizza_id: str
    size: Union[PizzaSize, str]
    custom_toppings: Tuple[ToppingWithPlacement, ...] = ()
    crust_id: Optional[str] = None
    sauce_id: Optional[str] = None
    pizza_name: Optional[str] = None


@dataclass(frozen=True)
class RemoveItem:
    line_id: str


@dataclass(frozen=True)
class UpdateQuantity:
    line_id: str
    quantity: int


@dataclass(frozen=True)
class ClearCart:
    pass


@dataclass(frozen=True)
class LoadCart:
    items: Tuple[CartLineItem, ...] = ()


CartAction = Union[AddItem, AddCustomItem, RemoveItem, UpdateQuantity, ClearCart, LoadCart]


# ============================================================================
# REDUCER
# ============================================================================

def _rebuild(items: List[CartLineItem], tax_rate: float, delivery_fee: float) -> CartState:
    """Derive a full state from an item list."""
    return CartState(
        items=tuple(items),
        totals=aggregate(items, tax_rate=tax_rate, delivery_fee=delivery_fee),
        item_count=item_count(items),
    )


def _resolve_pricing(
    tax_rate: Optional[float],
    delivery_fee: Optional[float]
) -> Tuple[float, float]:
    if tax_rate is None or delivery_fee is None:
        pricing = get_config().pricing
        if tax_rate is None:
            tax_rate = pricing.tax_rate
        if delivery_fee is None:
            delivery_fee = pricing.delivery_fee
    return tax_rate, delivery_fee


def cart_reducer(
    state: CartState,
    action: CartAction,
    catalog: Optional[MenuCatalog] = None,
    tax_rate: Optional[float] = None,
    delivery_fee: Optional[float] = None
) -> CartState:
    """
    Apply one command to a cart and return the new state.

    The input state is never modified. Tax rate and delivery fee default to
    the configured pricing, the same values checkout uses.
    """
    tax_rate, delivery_fee = _resolve_pricing(tax_rate, delivery_fee)

    if isinstance(action, AddItem):
        return _add_item(state, action, catalog or get_catalog(), tax_rate, delivery_fee)

    if isinstance(action, AddCustomItem):
        return _add_custom_item(state, action, catalog or get_catalog(), tax_rate, delivery_fee)

    if isinstance(action, RemoveItem):
        items = [item for item in state.items if item.id != action.line_id]
        return _rebuild(items, tax_rate, delivery_fee)

    if isinstance(action, UpdateQuantity):
        if action.quantity <= 0:
            return cart_reducer(state, RemoveItem(action.line_id), catalog, tax_rate, delivery_fee)
        items = [
            item.with_quantity(action.quantity) if item.id == action.line_id else item
            for item in state.items
        ]
        return _rebuild(items, tax_rate, delivery_fee)

    if isinstance(action, ClearCart):
        return EMPTY_CART

    if isinstance(action, LoadCart):
        items = []
        for item in action.items:
            if item.quantity <= 0:
                logger.warning("cart_load_dropped_line", line_id=item.id, quantity=item.quantity)
                continue
            items.append(item)
        return _rebuild(items, tax_rate, delivery_fee)

    logger.warning("cart_unknown_action", action=type(action).__name__)
    return state


def _add_item(
    state: CartState,
    action: AddItem,
    catalog: MenuCatalog,
    tax_rate: float,
    delivery_fee: float
) -> CartState:
    pizza = catalog.get_pizza_by_id(action.pizza_id)
    if pizza is None:
        logger.warning("cart_add_unknown_pizza", pizza_id=action.pizza_id)
        return state

    size = _parse_size(action.size)
    size_option = pizza.get_size_option(size) if size else None
    if size_option is None:
        logger.warning("cart_add_unknown_size", pizza_id=action.pizza_id, size=str(action.size))
        return state

    selected = tuple(dict.fromkeys(_topping_ids(action.selected_toppings)))

    existing = next(
        (item for item in state.items if item.matches(pizza.id, size, selected)),
        None
    )

    if existing is not None:
        items = [
            item.with_quantity(item.quantity + 1) if item.id == existing.id else item
            for item in state.items
        ]
    else:
        unit_price = price_simple_item(
            pizza.base_price,
            size,
            size_option.price_multiplier,
            selected,
            pizza.default_toppings,
            catalog=catalog,
        )
        new_item = CartLineItem(
            id=_new_line_id(pizza.id, size),
            pizza_id=pizza.id,
            pizza_name=pizza.name,
            size=size,
            base_price=pizza.base_price,
            quantity=1,
            total_price=round_money(unit_price),
            selected_toppings=selected,
        )
        items = [*state.items, new_item]

    return _rebuild(items, tax_rate, delivery_fee)


def _add_custom_item(
    state: CartState,
    action: AddCustomItem,
    catalog: MenuCatalog,
    tax_rate: float,
    delivery_fee: float
) -> CartState:
    pizza = catalog.get_pizza_by_id(action.pizza_id)
    if pizza is None:
        logger.warning("cart_add_unknown_pizza", pizza_id=action.pizza_id, custom=True)
        return state

    size = _parse_size(action.size)
    size_option = pizza.get_size_option(size) if size else None
    if size_option is None:
        logger.warning(
            "cart_add_unknown_size", pizza_id=action.pizza_id, size=str(action.size), custom=True
        )
        return state

    custom_toppings = tuple(action.custom_toppings)
    unit_price = price_custom_item(
        pizza.base_price,
        size,
        size_option.price_multiplier,
        custom_toppings,
        pizza.default_toppings,
        crust_id=action.crust_id,
        catalog=catalog,
    )

    new_item = CartLineItem(
        id=_new_line_id(pizza.id, size),
        pizza_id=pizza.id,
        pizza_name=action.pizza_name or f"Custom {pizza.name}",
        size=size,
        base_price=pizza.base_price,
        quantity=1,
        total_price=round_money(unit_price),
        selected_toppings=tuple(dict.fromkeys(t.topping_id for t in custom_toppings)),
        is_custom=True,
        custom_toppings=custom_toppings,
        custom_crust=action.crust_id,
        custom_sauce=action.sauce_id,
    )

    return _rebuild([*state.items, new_item], tax_rate, delivery_fee)


# ============================================================================
# CART SESSION
# ============================================================================

class CartSession:
    """
    Owns the cart of a single client.

    This class:
    - Serializes every command through cart_reducer
    - Hydrates from storage once, at construction
    - Persists items after every mutation (last write wins)

    Storage problems never break the cart: a failed load starts empty,
    a failed save is logged.
    """

    def __init__(
        self,
        client_id: str,
        store=None,
        catalog: Optional[MenuCatalog] = None,
        tax_rate: Optional[float] = None,
        delivery_fee: Optional[float] = None
    ):
        self.client_id = client_id
        self.store = store
        self.catalog = catalog
        self.tax_rate, self.delivery_fee = _resolve_pricing(tax_rate, delivery_fee)
        self.mutation_count = 0

        self.state = self._reduce(EMPTY_CART, LoadCart(tuple(self._hydrate())))

        logger.info(
            "cart_session_created",
            client_id=client_id,
            items=len(self.state.items),
            total=self.state.total
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @observe("cart_dispatch", PERFORMANCE_THRESHOLDS["calculation"])
    def dispatch(self, action: CartAction) -> CartState:
        """Apply a command, persist the result and return the new state."""
        previous = self.state
        self.state = self._reduce(previous, action)

        if self.state is previous:
            return self.state

        self.mutation_count += 1
        self._persist()

        logger.debug(
            "cart_updated",
            client_id=self.client_id,
            action=type(action).__name__,
            item_count=self.state.item_count,
            total=self.state.total
        )
        return self.state

    def add_item(self, pizza_id: str, size, selected_toppings=()) -> CartState:
        return self.dispatch(AddItem(pizza_id, size, _topping_ids(selected_toppings)))

    def add_custom_item(
        self,
        pizza_id: str,
        size,
        custom_toppings=(),
        crust_id: Optional[str] = None,
        sauce_id: Optional[str] = None,
        pizza_name: Optional[str] = None
    ) -> CartState:
        return self.dispatch(AddCustomItem(
            pizza_id=pizza_id,
            size=size,
            custom_toppings=tuple(custom_toppings),
            crust_id=crust_id,
            sauce_id=sauce_id,
            pizza_name=pizza_name,
        ))

    def remove_item(self, line_id: str) -> CartState:
        return self.dispatch(RemoveItem(line_id))

    def update_quantity(self, line_id: str, quantity: int) -> CartState:
        return self.dispatch(UpdateQuantity(line_id, quantity))

    def clear(self) -> CartState:
        return self.dispatch(ClearCart())

    # ------------------------------------------------------------------
    # Checkout payload
    # ------------------------------------------------------------------

    def to_order_items(self) -> List[Dict[str, Any]]:
        """
        Build the item list sent to checkout.

        Prices are deliberately left out; the server recomputes them.
        """
        payload = []
        for item in self.state.items:
            entry = {
                "pizzaId": item.pizza_id,
                "size": item.size.value,
                "selectedToppings": list(item.selected_toppings),
                "quantity": item.quantity,
            }
            if item.is_custom:
                entry["customToppings"] = [t.to_dict() for t in item.custom_toppings]
                entry["customCrust"] = item.custom_crust
                entry["customSauce"] = item.custom_sauce
            payload.append(entry)
        return payload

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reduce(self, state: CartState, action: CartAction) -> CartState:
        return cart_reducer(
            state,
            action,
            catalog=self.catalog,
            tax_rate=self.tax_rate,
            delivery_fee=self.delivery_fee
        )

    def _hydrate(self) -> List[CartLineItem]:
        if self.store is None:
            return []
        try:
            return self.store.load(self.client_id)
        except StorageError as e:
            logger.warning("cart_hydrate_failed", client_id=self.client_id, error=str(e))
            return []

    def _persist(self):
        if self.store is None:
            return
        try:
            self.store.save(self.client_id, list(self.state.items))
        except StorageError as e:
            logger.error("cart_persist_failed", client_id=self.client_id, error=str(e))
