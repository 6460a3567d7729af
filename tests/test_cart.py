from types import SimpleNamespace

import pytest

from cart import Cart, StockInsufficient, resolve_unit_price, unit_price_for


def product(pid="p1", name="Kopi", price=100000, stock=5, discount=None):
    return SimpleNamespace(id=pid, name=name, price=price, stock=stock, discount=discount)


def percent(value):
    return SimpleNamespace(type="percent", value=value)


def fixed(value):
    return SimpleNamespace(type="fixed", value=value)


def snapshot(cart):
    return cart.to_dict()


def test_unit_price_without_discount():
    assert resolve_unit_price(25000) == 25000
    assert unit_price_for(product(price=25000)) == 25000


def test_unit_price_percent():
    assert resolve_unit_price(100000, "percent", 10) == 90000
    assert resolve_unit_price(15000, "percent", 100) == 0


def test_unit_price_fixed():
    assert resolve_unit_price(50000, "fixed", 5000) == 45000


def test_fixed_discount_larger_than_price_goes_negative():
    # Tidak di-clamp ke nol
    assert resolve_unit_price(50000, "fixed", 60000) == -10000
    assert unit_price_for(product(price=50000, discount=fixed(60000))) == -10000


def test_add_new_line_uses_discounted_price_and_snapshots_stock():
    cart = Cart()
    line = cart.add(product(price=100000, stock=7, discount=percent(10)))
    assert line.quantity == 1
    assert line.unit_price == 90000
    assert line.subtotal == 90000
    assert line.available_stock == 7


def test_add_existing_line_increments_until_stock():
    cart = Cart()
    p = product(stock=2)
    cart.add(p)
    cart.add(p)
    before = snapshot(cart)
    with pytest.raises(StockInsufficient):
        cart.add(p)
    assert snapshot(cart) == before
    assert cart.lines[0].quantity == 2


def test_add_product_without_stock_is_rejected():
    cart = Cart()
    with pytest.raises(StockInsufficient):
        cart.add(product(stock=0))
    assert cart.is_empty


def test_adjust_quantity_respects_snapshot_stock():
    cart = Cart()
    p = product(stock=3)
    cart.add(p)
    cart.adjust("p1", 2)
    assert cart.lines[0].quantity == 3
    assert cart.lines[0].subtotal == 300000

    before = snapshot(cart)
    with pytest.raises(StockInsufficient):
        cart.adjust("p1", 1)
    assert snapshot(cart) == before


def test_adjust_to_zero_is_ignored_and_line_kept():
    cart = Cart()
    cart.add(product())
    cart.adjust("p1", -1)
    assert len(cart.lines) == 1
    assert cart.lines[0].quantity == 1
    cart.adjust("p1", -5)
    assert cart.lines[0].quantity == 1


def test_adjust_unknown_product_is_noop():
    cart = Cart()
    cart.add(product())
    assert cart.adjust("missing", 1) is None
    assert cart.lines[0].quantity == 1


def test_remove_line():
    cart = Cart()
    cart.add(product(pid="a"))
    cart.add(product(pid="b", name="Teh", price=8000))
    cart.remove("a")
    assert [line.product_id for line in cart.lines] == ["b"]
    assert cart.total == 8000


def test_total_is_sum_of_subtotals_after_mutations():
    cart = Cart()
    a = product(pid="a", price=18000, stock=10, discount=percent(10))
    b = product(pid="b", name="Roti", price=15000, stock=4, discount=fixed(2000))
    cart.add(a)
    cart.add(b)
    cart.add(a)
    cart.adjust("b", 2)
    cart.adjust("a", -1)
    assert cart.total == sum(line.subtotal for line in cart.lines)
    assert cart.total == 16200 + 3 * 13000
    assert all(line.quantity >= 1 for line in cart.lines)


def test_change_is_floored_for_display_only():
    cart = Cart()
    cart.add(product(price=10000))
    cart.payment = 5000
    assert cart.change_amount == -5000
    assert cart.change == 0


def test_example_scenario_percent_discount():
    cart = Cart()
    p = product(price=100000, stock=10, discount=percent(10))
    cart.add(p)
    cart.adjust(p.id, 2)
    cart.payment = 300000
    assert cart.lines[0].unit_price == 90000
    assert cart.lines[0].subtotal == 270000
    assert cart.total == 270000
    assert cart.change == 30000


def test_clear_mints_new_checkout_key():
    cart = Cart()
    cart.add(product())
    cart.payment = 100000
    key = cart.checkout_key
    cart.clear()
    assert cart.is_empty
    assert cart.payment == 0
    assert cart.checkout_key != key


def test_session_round_trip_keeps_lines_and_key():
    cart = Cart()
    cart.add(product(discount=percent(10)))
    cart.payment = 95000
    restored = Cart.from_dict(cart.to_dict())
    assert restored.lines == cart.lines
    assert restored.payment == 95000
    assert restored.checkout_key == cart.checkout_key
    assert Cart.from_dict(None).is_empty
