import pytest

from cart import CartSession
from config import reload_config
from db import OrderStore
from order import (
    OrderValidationError,
    ValidationKind,
    create_order,
    validate_and_recalculate_items,
    validate_customer_info,
)
from order_status import OrderStatus
from pricing import ToppingPlacement, ToppingWithPlacement


DEFAULTS = ["mozzarella", "tomato-sauce", "basil"]


def item(pizza_id="margherita", size="medium", toppings=None, quantity=1, **extra):
    entry = {
        "pizzaId": pizza_id,
        "size": size,
        "selectedToppings": DEFAULTS if toppings is None else toppings,
        "quantity": quantity,
    }
    entry.update(extra)
    return entry


def rejected(fn, *args, **kwargs) -> OrderValidationError:
    with pytest.raises(OrderValidationError) as excinfo:
        fn(*args, **kwargs)
    return excinfo.value


# Customer info

def test_customer_info_sanitized(customer):
    customer.update({
        "name": "  <b>Ann</b> ",
        "email": "Ann@Example.COM",
        "deliveryInstructions": "x" * 600,
    })

    info = validate_customer_info(customer)

    assert info.name == "bAnn/b"
    assert info.email == "ann@example.com"
    assert info.zip_code == "12345"
    assert len(info.delivery_instructions) == 500


def test_customer_info_required(customer):
    assert rejected(validate_customer_info, None).kind == ValidationKind.MISSING_FIELD

    customer["city"] = "   "
    assert rejected(validate_customer_info, customer).kind == ValidationKind.MISSING_FIELD


def test_customer_field_length(customer):
    customer["address"] = "a" * 501
    assert rejected(validate_customer_info, customer).kind == ValidationKind.FIELD_TOO_LONG


@pytest.mark.parametrize("email", ["ann", "ann@example", "ann @example.com", "@example.com"])
def test_invalid_email(customer, email):
    customer["email"] = email
    assert rejected(validate_customer_info, customer).kind == ValidationKind.INVALID_EMAIL


@pytest.mark.parametrize("phone", ["call me", "555-1234 ext. 9"])
def test_invalid_phone(customer, phone):
    customer["phone"] = phone
    assert rejected(validate_customer_info, customer).kind == ValidationKind.INVALID_PHONE


def test_phone_formats_accepted(customer):
    for phone in ["+1 (555) 123-4567", "5551234567", "555 123 4567"]:
        customer["phone"] = phone
        assert validate_customer_info(customer).phone == phone


# Items

def test_client_prices_are_ignored():
    submitted = item(totalPrice=0.01, basePrice=0.01, quantity=2)

    [line] = validate_and_recalculate_items([submitted])

    assert line.total_price == 10.0
    assert line.base_price == 10
    assert line.quantity == 2
    assert line.pizza_name == "Margherita"


def test_recomputed_unit_price_rounded():
    [line] = validate_and_recalculate_items([item("pepperoni", "large", ["mushroom"])])
    assert line.total_price == 18.39


def test_empty_and_oversized_carts():
    assert rejected(validate_and_recalculate_items, []).kind == ValidationKind.EMPTY_CART
    assert rejected(validate_and_recalculate_items, None).kind == ValidationKind.EMPTY_CART

    error = rejected(validate_and_recalculate_items, [item()] * 51)
    assert error.kind == ValidationKind.TOO_MANY_ITEMS
    assert "50" in error.message


def test_unknown_pizza_named_in_error():
    error = rejected(validate_and_recalculate_items, [item(), item("calzone")])
    assert error.kind == ValidationKind.UNKNOWN_PIZZA
    assert "calzone" in error.message


def test_unknown_size_for_pizza():
    error = rejected(validate_and_recalculate_items, [item("pepperoni", "xlarge")])
    assert error.kind == ValidationKind.UNKNOWN_SIZE
    assert "xlarge" in error.message and "pepperoni" in error.message


@pytest.mark.parametrize("quantity", [0, -1, 21, 2.5, "2", None, True])
def test_invalid_quantity(quantity):
    error = rejected(validate_and_recalculate_items, [item(quantity=quantity)])
    assert error.kind == ValidationKind.INVALID_QUANTITY


def test_whole_float_quantity_accepted():
    [line] = validate_and_recalculate_items([item(quantity=3.0)])
    assert line.quantity == 3


@pytest.mark.parametrize("bad", [
    "margherita",
    {"size": "medium", "quantity": 1},
    {"pizzaId": "margherita", "quantity": 1},
    item(toppings="olive"),
    item(customToppings=[{"toppingId": "olive", "placement": "middle"}]),
    item(customToppings="olive"),
    item(pizza_id=["margherita"]),
    item(pizza_id={"id": "x"}),
    item(size=["medium"]),
    item(customToppings=[], customCrust=["stuffed"]),
    item(customToppings=[], customSauce={"id": "bbq-sauce"}),
])
def test_malformed_items(bad):
    assert rejected(validate_and_recalculate_items, [bad]).kind == ValidationKind.INVALID_ITEM


def test_custom_items_repriced():
    submitted = item(
        customToppings=[
            {"toppingId": "pepperoni", "placement": "left"},
            {"toppingId": "pepperoni", "placement": "right"},
            {"toppingId": "tomato-sauce", "placement": "full"},
        ],
        customCrust="stuffed",
        customSauce="tomato-sauce",
        totalPrice=1,
    )

    [line] = validate_and_recalculate_items([submitted])

    assert line.is_custom
    assert line.total_price == 15.0
    assert line.custom_crust == "stuffed"
    assert line.custom_toppings[0] == ToppingWithPlacement("pepperoni", ToppingPlacement.LEFT)


# Order creation

def test_create_order_end_to_end(customer, tmp_path):
    store = OrderStore(tmp_path)
    payload = {"customerInfo": customer, "items": [item(quantity=2)], "total": 1.0}

    order = create_order(payload, store=store, user_id="user-7")

    assert order.id.startswith("order-")
    assert order.order_number.startswith("ORD-")
    assert order.status == OrderStatus.PENDING
    assert order.user_id == "user-7"
    assert order.totals.subtotal == 20.00
    assert order.totals.tax == 1.60
    assert order.totals.delivery_fee == 4.99
    assert order.totals.total == 26.59
    assert store.get(order.id) == order


def test_user_id_from_payload(customer):
    order = create_order({"customerInfo": customer, "items": [item()], "userId": "u-1"})
    assert order.user_id == "u-1"
    assert "userId" in order.to_dict()


def test_cart_and_checkout_totals_match(customer):
    session = CartSession("client-1")
    session.add_item("pepperoni", "large", ["mushroom"])
    session.add_item("pepperoni", "large", ["mushroom"])
    session.add_item("pepperoni", "large", ["mushroom"])
    session.add_item("margherita", "small", DEFAULTS + ["olive"])
    session.add_custom_item(
        "margherita",
        "large",
        [ToppingWithPlacement("olive", ToppingPlacement.RIGHT)],
        crust_id="stuffed",
    )

    order = create_order({"customerInfo": customer, "items": session.to_order_items()})

    assert order.totals == session.state.totals
    assert [i.total_price for i in order.items] == [i.total_price for i in session.state.items]


def test_cart_and_checkout_use_configured_pricing(customer, monkeypatch):
    monkeypatch.setenv("TAX_RATE", "0.10")
    monkeypatch.setenv("DELIVERY_FEE", "3.50")
    reload_config()
    try:
        session = CartSession("client-1")
        session.add_item("margherita", "medium", DEFAULTS)

        order = create_order({"customerInfo": customer, "items": session.to_order_items()})

        assert session.state.tax == 1.0
        assert session.state.delivery_fee == 3.5
        assert order.totals == session.state.totals
    finally:
        monkeypatch.undo()
        reload_config()


def test_invalid_customer_stops_before_items(customer):
    customer["email"] = "nope"
    error = rejected(create_order, {"customerInfo": customer, "items": []})
    assert error.kind == ValidationKind.INVALID_EMAIL


def test_error_payload_shape():
    error = rejected(create_order, "not an object")
    assert error.to_dict() == {
        "success": False,
        "error": "Invalid request format",
        "kind": "invalid_item",
    }
