"""Checkout state machine.

A ``CheckoutAttempt`` moves through::

    idle -> address_validated -> intent_created -> payment_confirmed
         -> order_persisted -> cart_cleared -> done

and can fail from any step. Each step is a method on ``CheckoutOrchestrator``
that requires the attempt to be in the preceding state and returns a tagged
result; checkout errors become a ``Failed`` result instead of propagating.
"""
import enum
import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Union

from flask import current_app

from models import db
from models.user import ShippingAddress
from storefront.metrics import CHECKOUT_STEPS, ORDERS_PLACED
from storefront.services.cart_store import ServerCartStore
from storefront.services.catalog import ProductCatalog
from storefront.services.errors import (
    CheckoutCancelled,
    CheckoutError,
    CheckoutStateError,
    EmptyCartError,
    OrderPersistenceError,
    PaymentNotCompletedError,
    ValidationError,
)
from storefront.services.order_service import (
    OrderDraft,
    OrderLineDraft,
    OrderStore,
    record_payment_event,
)
from storefront.services.payments import (
    REQUIRES_PAYMENT_METHOD,
    SUCCEEDED,
    PaymentIntent,
    get_payment_processor,
    shipping_details,
)
from storefront.services.pricing import CartTotals
from storefront.utils.db import transactional
from storefront.utils.validation import missing_fields

logger = logging.getLogger(__name__)

REQUIRED_ADDRESS_FIELDS = ("address_line1", "city", "state", "postal_code", "country")
ADDRESS_FIELDS = (
    "full_name",
    "mobile_number",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "postal_code",
    "country",
)
REQUIRED_CARD_FIELDS = ("card_number", "expiry_date", "cvv", "cardholder_name")
CARD_PAYMENT_METHODS = {"credit-card"}


class CheckoutState(str, enum.Enum):
    IDLE = "idle"
    ADDRESS_VALIDATED = "address_validated"
    INTENT_CREATED = "intent_created"
    PAYMENT_CONFIRMED = "payment_confirmed"
    ORDER_PERSISTED = "order_persisted"
    CART_CLEARED = "cart_cleared"
    DONE = "done"
    FAILED = "failed"


# ---------------------------------------------------------------- results


@dataclass(frozen=True)
class Validated:
    shipping_address: Dict
    billing_address: Dict
    payment_method: str

    def to_dict(self):
        return {
            "state": CheckoutState.ADDRESS_VALIDATED.value,
            "shipping_address": self.shipping_address,
            "billing_address": self.billing_address,
            "payment_method": self.payment_method,
        }


@dataclass(frozen=True)
class IntentCreated:
    payment_intent_id: str
    client_secret: Optional[str]
    amount: int
    currency: str
    total_amount: Decimal

    def to_dict(self):
        return {
            "state": CheckoutState.INTENT_CREATED.value,
            "payment_intent_id": self.payment_intent_id,
            "client_secret": self.client_secret,
            "amount": self.amount,
            "currency": self.currency,
            "total_amount": float(self.total_amount),
        }


@dataclass(frozen=True)
class PaymentConfirmed:
    payment_intent_id: str
    payment_status: str
    simulated: bool = False


@dataclass(frozen=True)
class OrderPersisted:
    order_id: int
    total_amount: Decimal
    replayed: bool = False


@dataclass(frozen=True)
class CartCleared:
    user_id: int


@dataclass(frozen=True)
class Receipt:
    order_id: int
    payment_intent_id: str
    amount: int
    total_amount: Decimal
    currency: str
    payment_status: str
    shipping_address: Dict

    def to_dict(self):
        return {
            "state": CheckoutState.DONE.value,
            "order_id": self.order_id,
            "payment_intent_id": self.payment_intent_id,
            "transaction_id": self.payment_intent_id,
            "amount": self.amount,
            "total_amount": float(self.total_amount),
            "currency": self.currency,
            "payment_status": self.payment_status,
            "shipping_address": self.shipping_address,
        }


@dataclass(frozen=True)
class Failed:
    step: str
    error: CheckoutError

    @property
    def reason(self) -> str:
        return self.error.reason

    @property
    def message(self) -> str:
        return str(self.error)

    def to_dict(self):
        payload = {"state": CheckoutState.FAILED.value, "step": self.step, "message": self.message}
        payload.update(self.error.to_dict())
        return payload


CheckoutResult = Union[
    Validated, IntentCreated, PaymentConfirmed, OrderPersisted, CartCleared, Receipt, Failed
]


# ---------------------------------------------------------------- attempt


@dataclass
class CheckoutRequest:
    shipping_address_id: Optional[int] = None
    shipping_address: Optional[Dict] = None
    billing_address: Optional[Dict] = None
    payment_method: str = "credit-card"
    card: Optional[Dict] = None
    save_address: bool = False


@dataclass
class CheckoutAttempt:
    user_id: int
    request: CheckoutRequest = field(default_factory=CheckoutRequest)
    state: CheckoutState = CheckoutState.IDLE
    shipping_address: Optional[Dict] = None
    billing_address: Optional[Dict] = None
    intent: Optional[PaymentIntent] = None
    totals: Optional[CartTotals] = None
    order: Optional[Dict] = None
    replayed: bool = False
    failure: Optional[Failed] = None
    cancel_token: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> None:
        self.cancel_token.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_token.is_set()


def _normalize_address(data: Dict) -> Dict:
    return {
        key: (data.get(key).strip() if isinstance(data.get(key), str) else data.get(key))
        for key in ADDRESS_FIELDS
    }


# ---------------------------------------------------------------- orchestrator


class CheckoutOrchestrator:
    def __init__(
        self,
        processor,
        catalog: Optional[ProductCatalog] = None,
        orders: Optional[OrderStore] = None,
        cart_factory: Optional[Callable[[int], ServerCartStore]] = None,
        currency: str = "usd",
        simulate_success: bool = False,
        notify: Optional[Callable[[Dict], None]] = None,
    ):
        self.processor = processor
        self.catalog = catalog or ProductCatalog()
        self.orders = orders or OrderStore()
        self.cart_factory = cart_factory or (
            lambda user_id: ServerCartStore(user_id, catalog=self.catalog)
        )
        self.currency = currency
        self.simulate_success = simulate_success
        self.notify = notify

    @classmethod
    def from_app(cls, notify=None) -> "CheckoutOrchestrator":
        cfg = current_app.config
        catalog = ProductCatalog()
        return cls(
            processor=get_payment_processor(),
            catalog=catalog,
            cart_factory=lambda user_id: ServerCartStore(
                user_id,
                catalog=catalog,
                debounce_seconds=cfg.get("CART_REFRESH_DEBOUNCE_SECONDS", 2.0),
            ),
            currency=cfg.get("PAYMENT_CURRENCY", "usd"),
            simulate_success=bool(cfg.get("PAYMENT_SIMULATE_SUCCESS")),
            notify=notify,
        )

    # -- plumbing

    def _advance(self, attempt: CheckoutAttempt, expected: CheckoutState, step: str, fn):
        if attempt.state != expected:
            raise CheckoutStateError(
                f"Cannot run {step} from state {attempt.state.value}",
                expected=expected.value,
                actual=attempt.state.value,
            )
        try:
            if attempt.cancelled:
                raise CheckoutCancelled()
            result = fn(attempt)
        except CheckoutError as e:
            failed = Failed(step=step, error=e)
            attempt.state = CheckoutState.FAILED
            attempt.failure = failed
            CHECKOUT_STEPS.labels(step, "failed").inc()
            logger.warning(
                "Checkout step %s failed for user %s: %s (%s)",
                step,
                attempt.user_id,
                e,
                e.reason,
            )
            return failed
        CHECKOUT_STEPS.labels(step, "ok").inc()
        return result

    def _intent_id(self, attempt: CheckoutAttempt) -> Optional[str]:
        return attempt.intent.id if attempt.intent else None

    def _priced_cart(self, user_id: int) -> CartTotals:
        cart = self.cart_factory(user_id)
        if cart.is_empty():
            raise EmptyCartError("Cart is empty")
        totals, unavailable = cart.priced()
        if unavailable:
            raise ValidationError(
                "Some cart items are no longer available",
                unavailable_product_ids=unavailable,
            )
        return totals

    # -- step 1

    def validate(self, attempt: CheckoutAttempt) -> Union[Validated, Failed]:
        return self._advance(attempt, CheckoutState.IDLE, "validate", self._validate)

    def _saved_address(self, user_id: int, address_id=None) -> Optional[ShippingAddress]:
        query = ShippingAddress.query.filter_by(user_id=user_id)
        if address_id is not None:
            return query.filter_by(id=address_id).first()
        return query.order_by(
            ShippingAddress.is_default.desc(), ShippingAddress.created_at.desc()
        ).first()

    def _validate(self, attempt: CheckoutAttempt) -> Validated:
        req = attempt.request
        missing: List[str] = []
        shipping = None
        manual = False

        if req.shipping_address_id is not None:
            saved = self._saved_address(attempt.user_id, req.shipping_address_id)
            if saved is None:
                raise ValidationError(
                    "Saved address not found", missing_fields=["shipping_address_id"]
                )
            shipping = saved.to_dict()
        elif req.shipping_address:
            manual = True
            absent = missing_fields(req.shipping_address, REQUIRED_ADDRESS_FIELDS)
            missing.extend(f"shipping_address.{name}" for name in absent)
            shipping = _normalize_address(req.shipping_address)
        else:
            saved = self._saved_address(attempt.user_id)
            if saved is None:
                missing.append("shipping_address")
            else:
                shipping = saved.to_dict()

        billing = None
        if req.billing_address:
            absent = missing_fields(req.billing_address, REQUIRED_ADDRESS_FIELDS)
            missing.extend(f"billing_address.{name}" for name in absent)
            billing = _normalize_address(req.billing_address)

        if req.payment_method in CARD_PAYMENT_METHODS:
            absent = missing_fields(req.card or {}, REQUIRED_CARD_FIELDS)
            missing.extend(f"card.{name}" for name in absent)

        if missing:
            raise ValidationError("Please fill in all required fields", missing_fields=missing)

        if manual and req.save_address:
            self._save_address(attempt.user_id, shipping)

        attempt.shipping_address = shipping
        attempt.billing_address = billing or dict(shipping)
        attempt.state = CheckoutState.ADDRESS_VALIDATED
        return Validated(
            shipping_address=attempt.shipping_address,
            billing_address=attempt.billing_address,
            payment_method=req.payment_method,
        )

    def _save_address(self, user_id: int, address: Dict) -> None:
        has_default = (
            ShippingAddress.query.filter_by(user_id=user_id, is_default=True).first()
            is not None
        )
        with transactional("Failed to save shipping address"):
            db.session.add(
                ShippingAddress(
                    user_id=user_id,
                    full_name=address.get("full_name") or "",
                    mobile_number=address.get("mobile_number"),
                    address_line1=address["address_line1"],
                    address_line2=address.get("address_line2"),
                    city=address["city"],
                    state=address["state"],
                    postal_code=address["postal_code"],
                    country=address["country"],
                    is_default=not has_default,
                )
            )

    # -- step 2

    def create_intent(self, attempt: CheckoutAttempt) -> Union[IntentCreated, Failed]:
        return self._advance(
            attempt, CheckoutState.ADDRESS_VALIDATED, "create_intent", self._create_intent
        )

    def _create_intent(self, attempt: CheckoutAttempt) -> IntentCreated:
        totals = self._priced_cart(attempt.user_id)
        metadata = {
            "user_id": str(attempt.user_id),
            "cart_items": [
                {
                    "product_id": line.product_id,
                    "quantity": line.quantity,
                    "price": str(line.unit_price),
                }
                for line in totals.lines
            ],
        }
        intent = self.processor.create_intent(
            totals.minor_units,
            self.currency,
            metadata=metadata,
            description=f"Order for user {attempt.user_id}",
            shipping=shipping_details(attempt.shipping_address),
        )
        attempt.intent = intent
        attempt.totals = totals
        attempt.state = CheckoutState.INTENT_CREATED
        record_payment_event(intent.id, attempt.user_id, "intent_created", f"amount={intent.amount}")
        return IntentCreated(
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            amount=intent.amount,
            currency=intent.currency,
            total_amount=totals.total,
        )

    def attach_intent(self, attempt: CheckoutAttempt, payment_intent_id: str) -> Union[IntentCreated, Failed]:
        """Resume an attempt whose intent was created by an earlier request."""

        def _attach(att: CheckoutAttempt) -> IntentCreated:
            if not payment_intent_id:
                raise ValidationError(
                    "Payment intent ID is required", missing_fields=["payment_intent_id"]
                )
            intent = self.processor.retrieve_intent(payment_intent_id)
            att.intent = intent
            att.state = CheckoutState.INTENT_CREATED
            return IntentCreated(
                payment_intent_id=intent.id,
                client_secret=intent.client_secret,
                amount=intent.amount,
                currency=intent.currency,
                total_amount=Decimal(intent.amount) / 100,
            )

        return self._advance(attempt, CheckoutState.ADDRESS_VALIDATED, "attach_intent", _attach)

    # -- step 3

    def confirm_payment(self, attempt: CheckoutAttempt) -> Union[PaymentConfirmed, Failed]:
        return self._advance(
            attempt, CheckoutState.INTENT_CREATED, "confirm_payment", self._confirm_payment
        )

    def _confirm_payment(self, attempt: CheckoutAttempt) -> PaymentConfirmed:
        intent = self.processor.retrieve_intent(attempt.intent.id)
        if intent.metadata.get("user_id") != str(attempt.user_id):
            raise ValidationError("Payment intent does not belong to this user")

        simulated = False
        if intent.status == REQUIRES_PAYMENT_METHOD and self.simulate_success:
            # Payment collection happens client-side; only honoured outside production.
            logger.warning("Treating intent %s as collected out-of-band", intent.id)
            intent = intent.with_status(SUCCEEDED)
            simulated = True

        if not intent.succeeded:
            record_payment_event(intent.id, attempt.user_id, "payment_not_completed", intent.status)
            raise PaymentNotCompletedError(payment_status=intent.status)

        attempt.intent = intent
        attempt.state = CheckoutState.PAYMENT_CONFIRMED
        record_payment_event(
            intent.id, attempt.user_id, "payment_confirmed", "simulated" if simulated else None
        )
        return PaymentConfirmed(
            payment_intent_id=intent.id, payment_status=intent.status, simulated=simulated
        )

    # -- step 4

    def persist_order(self, attempt: CheckoutAttempt) -> Union[OrderPersisted, Failed]:
        result = self._advance(
            attempt, CheckoutState.PAYMENT_CONFIRMED, "persist_order", self._persist_order
        )
        if isinstance(result, Failed):
            logger.error(
                "Payment %s captured for user %s but no order was persisted; requires reconciliation",
                self._intent_id(attempt),
                attempt.user_id,
            )
            record_payment_event(
                self._intent_id(attempt), attempt.user_id, "order_failed", result.message
            )
        return result

    def _persist_order(self, attempt: CheckoutAttempt) -> OrderPersisted:
        intent = attempt.intent
        existing = self.orders.find_by_payment_intent(intent.id)
        if existing is not None:
            logger.info("Intent %s already produced order %s", intent.id, existing.id)
            attempt.order = self.orders.find_by_id(existing.id)
            attempt.replayed = True
            attempt.state = CheckoutState.ORDER_PERSISTED
            return OrderPersisted(
                order_id=existing.id,
                total_amount=Decimal(str(existing.total_amount)),
                replayed=True,
            )

        try:
            totals = self._priced_cart(attempt.user_id)
        except EmptyCartError as e:
            raise OrderPersistenceError(
                "Cart was emptied after payment", requires_reconciliation=True
            ) from e
        if totals.minor_units != intent.amount:
            raise OrderPersistenceError(
                f"Cart total no longer matches the amount charged on {intent.id}",
                requires_reconciliation=True,
                charged_amount=intent.amount,
                cart_amount=totals.minor_units,
            )
        draft = OrderDraft(
            user_id=attempt.user_id,
            total_amount=totals.total,
            shipping_address=attempt.shipping_address,
            billing_address=attempt.billing_address,
            items=[
                OrderLineDraft(line.product_id, line.quantity, line.unit_price)
                for line in totals.lines
            ],
            payment_intent_id=intent.id,
            status="paid",
            payment_status=intent.status,
            currency=intent.currency,
        )
        try:
            attempt.order = self.orders.create(draft)
        except OrderPersistenceError as e:
            e.details["requires_reconciliation"] = True
            raise
        ORDERS_PLACED.labels(intent.currency).inc()
        attempt.totals = totals
        attempt.state = CheckoutState.ORDER_PERSISTED
        record_payment_event(intent.id, attempt.user_id, "order_created", str(attempt.order["id"]))
        return OrderPersisted(order_id=attempt.order["id"], total_amount=totals.total)

    # -- step 5

    def clear_cart(self, attempt: CheckoutAttempt) -> Union[CartCleared, Failed]:
        return self._advance(
            attempt, CheckoutState.ORDER_PERSISTED, "clear_cart", self._clear_cart
        )

    def _clear_cart(self, attempt: CheckoutAttempt) -> CartCleared:
        if not attempt.replayed:
            try:
                self.cart_factory(attempt.user_id).clear()
            except Exception:
                # The order is durable; a stale cart is left for the user to empty.
                logger.exception("Failed to clear cart for user %s after order", attempt.user_id)
        attempt.state = CheckoutState.CART_CLEARED
        return CartCleared(user_id=attempt.user_id)

    # -- step 6

    def finish(self, attempt: CheckoutAttempt) -> Union[Receipt, Failed]:
        return self._advance(attempt, CheckoutState.CART_CLEARED, "finish", self._finish)

    def _finish(self, attempt: CheckoutAttempt) -> Receipt:
        order = attempt.order
        receipt = Receipt(
            order_id=order["id"],
            payment_intent_id=attempt.intent.id,
            amount=attempt.intent.amount,
            total_amount=Decimal(str(order["total_amount"])),
            currency=attempt.intent.currency,
            payment_status=attempt.intent.status,
            shipping_address=order.get("shipping_address") or attempt.shipping_address,
        )
        attempt.state = CheckoutState.DONE
        if self.notify is not None and not attempt.replayed:
            self.notify(receipt.to_dict())
        return receipt

    # -- sequences

    def complete(self, attempt: CheckoutAttempt) -> Union[Receipt, Failed]:
        """Run steps 3-6 on an attempt that holds an intent."""
        for step in (self.confirm_payment, self.persist_order, self.clear_cart, self.finish):
            result = step(attempt)
            if isinstance(result, Failed):
                return result
        return result

    def run(self, attempt: CheckoutAttempt) -> Union[Receipt, Failed]:
        """Run a whole attempt from ``idle``."""
        for step in (self.validate, self.create_intent):
            result = step(attempt)
            if isinstance(result, Failed):
                return result
        return self.complete(attempt)


def request_from_payload(payload) -> CheckoutRequest:
    """Build a ``CheckoutRequest`` from a validated pydantic body."""
    data = payload.model_dump()
    return CheckoutRequest(
        shipping_address_id=data.get("shipping_address_id"),
        shipping_address=data.get("shipping_address"),
        billing_address=data.get("billing_address"),
        payment_method=data.get("payment_method") or "credit-card",
        card=data.get("card"),
        save_address=bool(data.get("save_address")),
    )

