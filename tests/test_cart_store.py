import json
from decimal import Decimal

import pytest

from conftest import create_product, create_user
from models import db
from models.cart import CartItem
from storefront.services.cart_store import GUEST_CART_KEY, GuestCartStore, ServerCartStore
from storefront.services.errors import ValidationError


# -------------------- Guest cart --------------------

def test_guest_add_is_additive(app):
    p = create_product()
    storage = {}
    cart = GuestCartStore(storage)
    cart.add_item(p.id, 1)
    cart.add_item(p.id, 2)
    lines = cart.lines()
    assert len(lines) == 1
    assert lines[0].quantity == 3
    assert json.loads(storage[GUEST_CART_KEY]) == [{"product_id": p.id, "quantity": 3}]


def test_guest_add_rejects_unknown_product_and_bad_quantity(app):
    p = create_product()
    cart = GuestCartStore({})
    with pytest.raises(ValidationError):
        cart.add_item(p.id + 100, 1)
    with pytest.raises(ValidationError):
        cart.add_item(p.id, 0)
    with pytest.raises(ValidationError) as exc:
        cart.add_item(None, 1)
    assert exc.value.missing_fields == ["product_id"]
    assert cart.is_empty()


def test_guest_update_to_zero_removes_line(app):
    p = create_product()
    cart = GuestCartStore({})
    cart.add_item(p.id, 2)
    cart.update_quantity(p.id, 5)
    assert cart.lines()[0].quantity == 5
    cart.update_quantity(p.id, 0)
    assert cart.lines() == []


def test_guest_remove_is_idempotent(app):
    p = create_product()
    cart = GuestCartStore({})
    cart.add_item(p.id, 1)
    cart.remove_item(p.id)
    cart.remove_item(p.id)
    assert cart.is_empty()


def test_guest_malformed_snapshot_reads_empty(app):
    cart = GuestCartStore({GUEST_CART_KEY: "{not json"})
    assert cart.lines() == []


def test_guest_totals_use_live_sell_price(app):
    p = create_product(sell_price="19.99", price="24.99")
    cart = GuestCartStore({})
    cart.add_item(p.id, 2)
    assert cart.totals().total == Decimal("39.98")

    p.sell_price = Decimal("10.00")
    db.session.commit()
    assert cart.totals().total == Decimal("20.00")


def test_guest_items_flag_unavailable_products(app):
    p = create_product()
    gone = create_product(name="Gone")
    cart = GuestCartStore({})
    cart.add_item(p.id, 1)
    cart.add_item(gone.id, 1)
    gone.is_active = False
    db.session.commit()

    items = {i["product_id"]: i for i in cart.items()}
    assert items[p.id]["available"] is True
    assert items[p.id]["name"] == "Widget"
    assert items[gone.id]["available"] is False
    totals, unavailable = cart.priced()
    assert unavailable == [gone.id]
    assert totals.total == Decimal("25.00")


def test_guest_clear_and_discard(app):
    p = create_product()
    storage = {}
    cart = GuestCartStore(storage)
    cart.add_item(p.id, 1)
    cart.clear()
    assert storage[GUEST_CART_KEY] == "[]"
    cart.discard()
    assert GUEST_CART_KEY not in storage


# -------------------- Server cart --------------------

def test_server_add_is_additive_and_counts(app):
    user = create_user()
    p = create_product()
    cart = ServerCartStore(user.id, debounce_seconds=0)
    cart.add_item(p.id, 1)
    items = cart.add_item(p.id, 2)
    assert len(items) == 1
    assert items[0]["quantity"] == 3
    assert cart.count() == 3
    assert CartItem.query.filter_by(user_id=user.id).count() == 1


def test_server_update_remove_clear(app):
    user = create_user()
    p1 = create_product(name="A")
    p2 = create_product(name="B")
    cart = ServerCartStore(user.id, debounce_seconds=0)
    cart.add_item(p1.id, 1)
    cart.add_item(p2.id, 1)

    cart.update_quantity(p1.id, 4)
    assert {i["product_id"]: i["quantity"] for i in cart.items()} == {p1.id: 4, p2.id: 1}

    cart.update_quantity(p2.id, -1)
    assert [i["product_id"] for i in cart.items()] == [p1.id]

    cart.remove_item(p2.id)
    assert cart.count() == 4

    assert cart.clear() == []
    assert cart.is_empty()


def test_server_add_unknown_product_writes_nothing(app):
    user = create_user()
    cart = ServerCartStore(user.id)
    with pytest.raises(ValidationError):
        cart.add_item(999, 1)
    assert CartItem.query.count() == 0


def test_server_refresh_is_debounced(app, monkeypatch):
    user = create_user()
    p = create_product()
    now = [100.0]
    cart = ServerCartStore(user.id, debounce_seconds=2.0, clock=lambda: now[0])
    assert cart.refresh() == []

    calls = []
    from storefront.services import cart_ops
    original = cart_ops.list_items

    def counting(user_id):
        calls.append(user_id)
        return original(user_id)

    monkeypatch.setattr(cart_ops, "list_items", counting)

    db.session.add(CartItem(user_id=user.id, product_id=p.id, quantity=1))
    db.session.commit()

    now[0] = 101.0
    assert cart.refresh() == []
    assert calls == []

    now[0] = 102.5
    assert len(cart.refresh()) == 1
    assert calls == [user.id]

    now[0] = 102.6
    cart.refresh(force=True)
    assert calls == [user.id, user.id]


# -------------------- Shared interface --------------------

def exercise_cart(cart, first, second):
    cart.add_item(first.id, 1)
    cart.add_item(first.id, 1)
    cart.add_item(second.id, 3)
    cart.update_quantity(second.id, 1)
    view = {i["product_id"]: i["quantity"] for i in cart.items()}
    totals = cart.totals()
    cart.remove_item(second.id)
    remaining = [line.product_id for line in cart.lines()]
    cart.clear()
    return view, totals.total, remaining, cart.is_empty()


def test_guest_and_server_carts_behave_alike(app):
    user = create_user()
    first = create_product(name="A", sell_price=Decimal("2.50"))
    second = create_product(name="B", sell_price=Decimal("4.00"))

    guest = exercise_cart(GuestCartStore({}), first, second)
    server = exercise_cart(ServerCartStore(user.id, debounce_seconds=0), first, second)

    assert guest == server
    assert guest == ({first.id: 2, second.id: 1}, Decimal("9.00"), [first.id], True)


def test_cart_store_is_abstract():
    from storefront.services.cart_store import CartStore

    with pytest.raises(TypeError):
        CartStore()


def test_server_debounce_is_per_store_instance(app):
    user = create_user()
    p = create_product()
    ServerCartStore(user.id, debounce_seconds=60).refresh()

    db.session.add(CartItem(user_id=user.id, product_id=p.id, quantity=2))
    db.session.commit()

    fresh = ServerCartStore(user.id, debounce_seconds=60)
    assert [i["quantity"] for i in fresh.refresh()] == [2]
