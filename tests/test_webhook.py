import json

from conftest import ADDRESS, create_product, create_user
from models.order import PaymentEvent
from storefront.services.order_service import OrderDraft, OrderLineDraft, OrderStore
from storefront.version import API_PREFIX

URL = f"{API_PREFIX}/payments/webhook"


def seed_order(intent_id):
    user = create_user()
    p = create_product()
    OrderStore().create(
        OrderDraft(
            user_id=user.id,
            total_amount=p.sell_price,
            shipping_address=dict(ADDRESS),
            billing_address=dict(ADDRESS),
            items=[OrderLineDraft(p.id, 1, p.sell_price)],
            payment_intent_id=intent_id,
            status="paid",
            payment_status="processing",
        )
    )
    return user


def post_event(client, event_type, intent_id, status, user_id=None, signature="valid-signature"):
    payload = {
        "type": event_type,
        "object": {"id": intent_id, "status": status, "metadata": {"user_id": str(user_id or "")}},
    }
    return client.post(
        URL,
        data=json.dumps(payload),
        content_type="application/json",
        headers={"Stripe-Signature": signature},
    )


def test_succeeded_event_updates_order(client, app):
    user = seed_order("pi_hook")
    resp = post_event(client, "payment_intent.succeeded", "pi_hook", "succeeded", user.id)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["received"] is True
    assert OrderStore().find_by_payment_intent("pi_hook").payment_status == "succeeded"
    event = PaymentEvent.query.filter_by(payment_intent_id="pi_hook").one()
    assert event.event == "webhook:payment_intent.succeeded"
    assert event.user_id == user.id


def test_failed_event_marks_payment_failed(client, app):
    seed_order("pi_fail")
    post_event(client, "payment_intent.payment_failed", "pi_fail", "requires_payment_method")
    assert OrderStore().find_by_payment_intent("pi_fail").payment_status == "failed"


def test_event_without_order_is_still_recorded(client, app):
    resp = post_event(client, "payment_intent.succeeded", "pi_orphan", "succeeded")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["order_id"] is None
    assert PaymentEvent.query.filter_by(payment_intent_id="pi_orphan").count() == 1


def test_unhandled_event_type_is_acknowledged(client, app):
    resp = post_event(client, "charge.refunded", "pi_x", "succeeded")
    assert resp.status_code == 200
    assert PaymentEvent.query.count() == 0


def test_bad_signature_is_rejected(client, app):
    resp = post_event(client, "payment_intent.succeeded", "pi_x", "succeeded", signature="forged")
    assert resp.status_code == 400
    assert resp.get_json()["reason"] == "validation_error"
