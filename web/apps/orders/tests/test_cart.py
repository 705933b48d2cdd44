"""Unit tests for cart aggregation.

Covers grouping by product, subtotal, the over-stock flag (preorders
exempt), single-entry removal and the session round trip.
"""
import random

from apps.orders.cart import Cart, CartEntry, ProductSnapshot, SessionCartStore, group_entries

FUNKO_A = ProductSnapshot(product_id=1, name="Funko A", unit_price=10000, stock=5)
FUNKO_B = ProductSnapshot(product_id=2, name="Funko B", unit_price=20000, stock=1)


def _cart(*products):
    cart = Cart()
    for p in products:
        cart.add_entry(p)
    return cart


def test_two_a_one_b_groups_and_totals():
    """Two units of A and one of B: subtotal 40000, no over-stock."""
    summary = _cart(FUNKO_A, FUNKO_A, FUNKO_B).summary()
    assert summary.subtotal == 40000
    assert {l.product_id: l.quantity for l in summary.lines} == {1: 2, 2: 1}
    assert summary.over_stock is False
    assert summary.can_checkout is True


def test_zero_stock_flags_over_stock_and_blocks_checkout():
    b_sold_out = ProductSnapshot(product_id=2, name="Funko B", unit_price=20000, stock=0)
    summary = _cart(FUNKO_A, FUNKO_A, b_sold_out).summary()
    assert summary.over_stock is True
    assert [l.product_id for l in summary.over_stock_lines] == [2]
    assert summary.can_checkout is False


def test_preorder_is_never_over_stock():
    preorder = ProductSnapshot(product_id=3, name="Funko Pre", unit_price=50000, stock=0, is_preorder=True)
    summary = _cart(preorder, preorder, preorder).summary()
    assert summary.lines[0].quantity == 3
    assert summary.over_stock is False


def test_quantity_equal_to_stock_is_allowed():
    summary = _cart(*([FUNKO_A] * 5)).summary()
    assert summary.over_stock is False
    summary = _cart(*([FUNKO_A] * 6)).summary()
    assert summary.over_stock is True


def test_empty_cart_summary():
    summary = Cart().summary()
    assert summary.subtotal == 0
    assert summary.lines == []
    assert summary.over_stock is False
    assert summary.is_empty is True
    assert summary.can_checkout is False


def test_group_quantities_match_entry_counts_and_subtotal():
    """For a random cart, per-product quantity equals entry count and
    sum(quantity * unit_price) equals the subtotal."""
    rng = random.Random(7)
    catalog = [
        ProductSnapshot(product_id=i, name=f"P{i}", unit_price=1000 * i, stock=rng.randint(0, 4))
        for i in range(1, 6)
    ]
    cart = _cart(*(rng.choice(catalog) for _ in range(40)))
    summary = cart.summary()

    counts = {}
    for e in cart.entries:
        counts[e.product_id] = counts.get(e.product_id, 0) + 1
    assert {l.product_id: l.quantity for l in summary.lines} == counts
    assert sum(l.quantity * l.unit_price for l in summary.lines) == summary.subtotal
    assert summary.over_stock == any(l.quantity > l.stock for l in summary.lines)


def test_entry_ids_are_unique():
    cart = _cart(FUNKO_A, FUNKO_A, FUNKO_A)
    assert len({e.entry_id for e in cart.entries}) == 3


def test_remove_entry_removes_exactly_one_unit():
    cart = _cart(FUNKO_A, FUNKO_A, FUNKO_B)
    target = cart.entries[1]
    assert cart.remove_entry(target.entry_id) is True
    assert len(cart) == 2
    assert target.entry_id not in {e.entry_id for e in cart.entries}
    assert {l.product_id: l.quantity for l in cart.summary().lines} == {1: 1, 2: 1}


def test_remove_unknown_entry_is_noop():
    cart = _cart(FUNKO_A)
    assert cart.remove_entry("missing") is False
    assert len(cart) == 1


def test_grouping_keeps_first_seen_order():
    entries = [
        CartEntry(product_id=9, name="Z", unit_price=1, stock=9, is_preorder=False, entry_id="a"),
        CartEntry(product_id=4, name="Y", unit_price=1, stock=9, is_preorder=False, entry_id="b"),
        CartEntry(product_id=9, name="Z", unit_price=1, stock=9, is_preorder=False, entry_id="c"),
    ]
    assert [l.product_id for l in group_entries(entries)] == [9, 4]


def test_session_store_round_trip():
    session = {}
    store = SessionCartStore()
    cart = _cart(FUNKO_A, FUNKO_B)
    store.save(session, cart)

    loaded = store.load(session)
    assert loaded.entries == cart.entries

    store.clear(session)
    assert len(store.load(session)) == 0
