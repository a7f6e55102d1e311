import pytest

from db import OrderStore
from order import CustomerInfo, Order
from order_status import (
    OrderStatus,
    StatusTransitionError,
    advance_status,
    can_transition,
    is_terminal,
)
from totals import EMPTY_TOTALS


def make_order(status=OrderStatus.PENDING):
    return Order(
        id="order-abc",
        order_number="ORD-1-AAAA",
        customer_info=CustomerInfo("Ann", "ann@example.com", "555", "1 Main St", "Springfield", "12345"),
        items=(),
        totals=EMPTY_TOTALS,
        status=status,
    )


def test_transition_table():
    assert can_transition(OrderStatus.PENDING, OrderStatus.CONFIRMED)
    assert can_transition(OrderStatus.PENDING, OrderStatus.CANCELLED)
    assert can_transition(OrderStatus.CONFIRMED, OrderStatus.CANCELLED)
    assert not can_transition(OrderStatus.PREPARING, OrderStatus.CANCELLED)
    assert not can_transition(OrderStatus.PENDING, OrderStatus.DELIVERING)
    assert is_terminal(OrderStatus.COMPLETED)
    assert is_terminal(OrderStatus.CANCELLED)
    assert not is_terminal(OrderStatus.DELIVERING)


def test_full_lifecycle():
    order = make_order()
    for status in ["confirmed", "preparing", "delivering", "completed"]:
        order = advance_status(order, status)
    assert order.status == OrderStatus.COMPLETED


def test_advance_returns_copy():
    order = make_order()
    confirmed = advance_status(order, OrderStatus.CONFIRMED)

    assert order.status == OrderStatus.PENDING
    assert confirmed.status == OrderStatus.CONFIRMED
    assert confirmed.id == order.id
    assert confirmed.created_at == order.created_at


def test_invalid_transition_raises():
    with pytest.raises(StatusTransitionError):
        advance_status(make_order(), OrderStatus.COMPLETED)

    with pytest.raises(StatusTransitionError):
        advance_status(make_order(OrderStatus.CANCELLED), OrderStatus.PENDING)


def test_unknown_status_raises():
    with pytest.raises(StatusTransitionError):
        advance_status(make_order(), "lost")


def test_store_update_status(tmp_path):
    store = OrderStore(tmp_path)
    store.save(make_order())

    updated = store.update_status("order-abc", "confirmed", reason="kitchen accepted")

    assert updated.status == OrderStatus.CONFIRMED
    assert store.get("order-abc").status == OrderStatus.CONFIRMED
    assert store.update_status("order-missing", "confirmed") is None
