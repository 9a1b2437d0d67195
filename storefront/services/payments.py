import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import stripe
from flask import current_app

from storefront.services.errors import NetworkError, PaymentProviderError, ValidationError

logger = logging.getLogger(__name__)

REQUIRES_PAYMENT_METHOD = "requires_payment_method"
SUCCEEDED = "succeeded"

# Stripe caps each metadata value at 500 characters
METADATA_VALUE_LIMIT = 500


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    amount: int
    currency: str
    status: str
    client_secret: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    def with_status(self, status: str) -> "PaymentIntent":
        return PaymentIntent(
            id=self.id,
            amount=self.amount,
            currency=self.currency,
            status=status,
            client_secret=self.client_secret,
            metadata=dict(self.metadata),
        )


def _plain(obj) -> Dict:
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def _from_stripe(intent) -> PaymentIntent:
    return PaymentIntent(
        id=intent.id,
        amount=int(intent.amount),
        currency=intent.currency,
        status=intent.status,
        client_secret=getattr(intent, "client_secret", None),
        metadata={k: str(v) for k, v in _plain(getattr(intent, "metadata", None)).items()},
    )


def clip_metadata(metadata: Dict) -> Dict[str, str]:
    """Stringify metadata values, dropping any that exceed the provider limit."""
    clipped = {}
    for key, value in (metadata or {}).items():
        text = value if isinstance(value, str) else json.dumps(value, default=str)
        if len(text) > METADATA_VALUE_LIMIT:
            logger.debug("Dropping oversized payment metadata key %s", key)
            continue
        clipped[key] = text
    return clipped


def shipping_details(address: Dict) -> Dict:
    return {
        "name": address.get("full_name") or "Customer",
        "address": {
            "line1": address.get("address_line1") or "",
            "line2": address.get("address_line2") or "",
            "city": address.get("city") or "",
            "state": address.get("state") or "",
            "postal_code": address.get("postal_code") or "",
            "country": address.get("country") or "US",
        },
    }


class StripePaymentProcessor:
    """Payment processor backed by Stripe payment intents."""

    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    def create_intent(
        self,
        amount_minor_units: int,
        currency: str,
        metadata: Optional[Dict] = None,
        description: Optional[str] = None,
        shipping: Optional[Dict] = None,
    ) -> PaymentIntent:
        params = {
            "amount": amount_minor_units,
            "currency": currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": clip_metadata(metadata),
            "confirm": False,
        }
        if description:
            params["description"] = description
        if shipping:
            params["shipping"] = shipping
        try:
            intent = stripe.PaymentIntent.create(api_key=self.api_key, **params)
        except stripe.APIConnectionError as e:
            raise NetworkError("Payment provider unreachable") from e
        except stripe.StripeError as e:
            raise PaymentProviderError(e.user_message or "Failed to create payment intent") from e
        logger.info("Payment intent %s created, status %s", intent.id, intent.status)
        return _from_stripe(intent)

    def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self.api_key)
        except stripe.InvalidRequestError as e:
            raise ValidationError("Invalid payment intent ID") from e
        except stripe.APIConnectionError as e:
            raise NetworkError("Payment provider unreachable") from e
        except stripe.StripeError as e:
            raise PaymentProviderError(e.user_message or "Failed to retrieve payment intent") from e
        return _from_stripe(intent)

    def parse_webhook(self, payload: bytes, signature: Optional[str], secret: Optional[str]) -> Dict:
        """Verify a webhook delivery and return ``{"type", "object"}``."""
        if not secret:
            raise ValidationError("Webhook secret not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except ValueError as e:
            raise ValidationError("Invalid webhook payload") from e
        except stripe.SignatureVerificationError as e:
            raise ValidationError("Webhook signature verification failed") from e
        obj = event.data.object
        return {
            "type": event.type,
            "object": {
                "id": obj.id,
                "status": getattr(obj, "status", None),
                "metadata": _plain(getattr(obj, "metadata", None)),
            },
        }


def init_payments(app):
    app.extensions["payment_processor"] = StripePaymentProcessor(
        app.config.get("STRIPE_SECRET_KEY")
    )


def get_payment_processor():
    return current_app.extensions["payment_processor"]
