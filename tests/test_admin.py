from conftest import ADDRESS, auth_header, create_product, create_user, obtain_token
from models.order import PaymentEvent
from models import db
from storefront.services.order_service import OrderDraft, OrderLineDraft, OrderStore
from storefront.version import API_PREFIX


def seed_order(intent_id="pi_admin"):
    user = create_user(email="buyer@example.com")
    p = create_product()
    return OrderStore().create(
        OrderDraft(
            user_id=user.id,
            total_amount=p.sell_price,
            shipping_address=dict(ADDRESS),
            billing_address=dict(ADDRESS),
            items=[OrderLineDraft(p.id, 1, p.sell_price)],
            payment_intent_id=intent_id,
            status="paid",
        )
    )["id"]


def test_admin_lists_all_orders(client, app):
    order_id = seed_order()
    headers = auth_header(obtain_token(client, email="boss@example.com", role="admin"))
    resp = client.get(f"{API_PREFIX}/admin/orders", headers=headers)
    assert resp.status_code == 200
    orders = resp.get_json()["data"]["orders"]
    assert [o["id"] for o in orders] == [order_id]
    assert orders[0]["user_email"] == "buyer@example.com"


def test_customer_cannot_use_admin_routes(client, app):
    headers = auth_header(obtain_token(client))
    assert client.get(f"{API_PREFIX}/admin/orders", headers=headers).status_code == 403
    assert client.get(f"{API_PREFIX}/admin/orders").status_code == 401


def test_admin_updates_order_status(client, app):
    order_id = seed_order()
    headers = auth_header(obtain_token(client, email="boss@example.com", role="admin"))

    resp = client.put(f"{API_PREFIX}/admin/orders/{order_id}/status", json={"status": "shipped"}, headers=headers)
    assert resp.status_code == 200
    assert OrderStore().get(order_id).status == "shipped"

    resp = client.put(f"{API_PREFIX}/admin/orders/{order_id}/status", json={"status": "lost"}, headers=headers)
    assert resp.status_code == 400
    assert "shipped" in resp.get_json()["allowed"]

    resp = client.put(f"{API_PREFIX}/admin/orders/{order_id + 9}/status", json={"status": "paid"}, headers=headers)
    assert resp.status_code == 404


def test_admin_lists_unreconciled_payments(client, app):
    seed_order(intent_id="pi_done")
    db.session.add(PaymentEvent(payment_intent_id="pi_done", user_id=1, event="payment_confirmed"))
    db.session.add(PaymentEvent(payment_intent_id="pi_orphan", user_id=1, event="payment_confirmed"))
    db.session.commit()
    headers = auth_header(obtain_token(client, email="boss@example.com", role="admin"))

    resp = client.get(f"{API_PREFIX}/admin/payments/unreconciled", headers=headers)
    assert [p["payment_intent_id"] for p in resp.get_json()["data"]["payments"]] == ["pi_orphan"]


def test_admin_can_read_any_order_but_other_customers_cannot(client, app):
    order_id = seed_order(intent_id="pi_view")
    admin = auth_header(obtain_token(client, email="boss@example.com", role="admin"))
    stranger = auth_header(obtain_token(client, email="stranger@example.com"))
    assert client.get(f"{API_PREFIX}/orders/{order_id}", headers=admin).status_code == 200
    assert client.get(f"{API_PREFIX}/orders/{order_id}", headers=stranger).status_code == 404


def test_role_scopes():
    from storefront.auth.permissions import role_has_scope

    assert role_has_scope("customer", "checkout")
    assert not role_has_scope("customer", "view_any_order")
    assert role_has_scope("admin", "manage_orders")
    assert not role_has_scope(None, "checkout")
    assert not role_has_scope("unknown", "checkout")
