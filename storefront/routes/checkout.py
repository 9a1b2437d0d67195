import logging

from flask import Blueprint, current_app, g, request
from flask_limiter.util import get_remote_address

from extensions import limiter
from storefront.schemas.checkout import CheckoutRequestBody, ConfirmCheckoutRequest
from storefront.services.checkout import (
    CheckoutAttempt,
    CheckoutOrchestrator,
    Failed,
    request_from_payload,
)
from storefront.services.payments import get_payment_processor
from storefront.tasks.notifications import notify_order_placed
from storefront.utils import auth_required, error, ok, validate_schema
from storefront.version import API_PREFIX

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__, url_prefix=f"{API_PREFIX}/checkout")


@checkout_bp.before_request
@auth_required
def _enforce_authenticated():
    """Checkout is only available to signed-in users."""
    return None


def _failed(result: Failed):
    extra = result.to_dict()
    extra.pop("message", None)
    return error(result.message, status=result.error.status, **extra)


def _attempt():
    return CheckoutAttempt(g.user_id, request_from_payload(request.validated_data))


@checkout_bp.route("/validate", methods=["POST"])
@validate_schema(CheckoutRequestBody)
def validate_checkout():
    result = CheckoutOrchestrator.from_app().validate(_attempt())
    if isinstance(result, Failed):
        return _failed(result)
    return ok(result.to_dict(), message="Checkout details valid")


@checkout_bp.route("/intent", methods=["POST"])
@validate_schema(CheckoutRequestBody)
def create_intent():
    orchestrator = CheckoutOrchestrator.from_app()
    attempt = _attempt()
    for step in (orchestrator.validate, orchestrator.create_intent):
        result = step(attempt)
        if isinstance(result, Failed):
            return _failed(result)
    return ok(result.to_dict(), message="Payment intent created")


@checkout_bp.route("/confirm", methods=["POST"])
@limiter.limit(
    lambda: current_app.config["CHECKOUT_LIMIT_PER_IP"],
    key_func=get_remote_address,
    error_message="Too many checkout attempts from this IP",
)
@validate_schema(ConfirmCheckoutRequest)
def confirm_checkout():
    orchestrator = CheckoutOrchestrator.from_app(notify=notify_order_placed)
    attempt = _attempt()
    # the address was already saved when the intent was created
    attempt.request.save_address = False
    result = orchestrator.validate(attempt)
    if isinstance(result, Failed):
        return _failed(result)
    result = orchestrator.attach_intent(attempt, request.validated_data.payment_intent_id)
    if isinstance(result, Failed):
        return _failed(result)
    result = orchestrator.complete(attempt)
    if isinstance(result, Failed):
        return _failed(result)
    return ok(result.to_dict(), message="Payment confirmed and order created successfully")


@checkout_bp.route("/intents/<intent_id>/status", methods=["GET"])
def payment_status(intent_id):
    intent = get_payment_processor().retrieve_intent(intent_id)
    if intent.metadata.get("user_id") != str(g.user_id):
        return error("Payment intent not found", status=404)
    return ok({"status": intent.status, "amount": intent.amount, "currency": intent.currency})
