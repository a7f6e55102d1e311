from types import SimpleNamespace

import pytest

from pricing import round_money
from totals import DELIVERY_FEE, EMPTY_TOTALS, TAX_RATE, CartTotals, aggregate, item_count


def line(unit_price, quantity=1):
    return SimpleNamespace(total_price=unit_price, quantity=quantity)


def test_empty_cart_is_all_zero():
    totals = aggregate([])
    assert totals == CartTotals(0.0, 0.0, 0.0, 0.0)
    assert totals == EMPTY_TOTALS


def test_single_margherita():
    totals = aggregate([line(10.0)])
    assert totals.subtotal == 10.00
    assert totals.tax == 0.80
    assert totals.delivery_fee == 4.99
    assert totals.total == 15.79


def test_quantity_two():
    totals = aggregate([line(10.0, quantity=2)])
    assert totals.subtotal == 20.00
    assert totals.tax == 1.60
    assert totals.total == 26.59


@pytest.mark.parametrize("items", [
    [line(12.99, 3), line(1.5)],
    [line(18.39, 2), line(10.75), line(21.99, 5)],
    [line(0.01)],
])
def test_outputs_are_each_rounded_once(items):
    raw_subtotal = sum(i.total_price * i.quantity for i in items)
    raw_tax = raw_subtotal * TAX_RATE

    totals = aggregate(items)

    assert totals.subtotal == round_money(raw_subtotal)
    assert totals.tax == round_money(raw_tax)
    assert totals.delivery_fee == DELIVERY_FEE
    assert totals.total == round_money(raw_subtotal + raw_tax + DELIVERY_FEE)


def test_custom_rate_and_fee():
    totals = aggregate([line(10.0)], tax_rate=0.1, delivery_fee=0)
    assert totals.to_dict() == {"subtotal": 10.0, "tax": 1.0, "deliveryFee": 0.0, "total": 11.0}


def test_item_count_sums_quantities():
    assert item_count([line(10.0, 2), line(5.0, 3)]) == 5
    assert item_count([]) == 0
