import logging

from flask import Blueprint, current_app, request

from storefront.services.order_service import OrderStore, record_payment_event
from storefront.services.payments import get_payment_processor
from storefront.utils import ok
from storefront.version import API_PREFIX

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__, url_prefix=f"{API_PREFIX}/payments")

HANDLED_EVENTS = {"payment_intent.succeeded", "payment_intent.payment_failed"}


@payments_bp.route("/webhook", methods=["POST"])
def webhook():
    event = get_payment_processor().parse_webhook(
        request.get_data(),
        request.headers.get("Stripe-Signature"),
        current_app.config.get("STRIPE_WEBHOOK_SECRET"),
    )
    event_type = event["type"]
    if event_type not in HANDLED_EVENTS:
        logger.info("Unhandled payment event type %s", event_type)
        return ok({"received": True})

    intent = event["object"]
    status = "failed" if event_type == "payment_intent.payment_failed" else intent.get("status") or "succeeded"
    order = OrderStore().mark_payment_status(intent["id"], status)
    user_id = intent.get("metadata", {}).get("user_id")
    record_payment_event(intent["id"], int(user_id) if user_id else None, f"webhook:{event_type}", status)
    logger.info("Payment event %s for intent %s (order %s)", event_type, intent["id"], order.id if order else None)
    return ok({"received": True, "order_id": order.id if order else None})
