import logging
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from models import db
from models.order import ORDER_STATUSES, Order, OrderItem, PaymentEvent
from storefront.services.errors import OrderPersistenceError, ValidationError
from storefront.utils.db import transactional

logger = logging.getLogger(__name__)


@dataclass
class OrderLineDraft:
    product_id: int
    quantity: int
    price: Decimal


@dataclass
class OrderDraft:
    user_id: int
    total_amount: Decimal
    shipping_address: Dict
    billing_address: Dict
    items: List[OrderLineDraft] = field(default_factory=list)
    payment_intent_id: Optional[str] = None
    status: str = "pending"
    payment_status: Optional[str] = None
    currency: str = "usd"

    def to_dict(self):
        data = asdict(self)
        data["total_amount"] = float(self.total_amount)
        for line in data["items"]:
            line["price"] = float(line["price"])
        return data


def _serialize_header(order: Order) -> Dict:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "payment_intent_id": order.payment_intent_id,
        "total_amount": float(order.total_amount),
        "currency": order.currency,
        "status": order.status,
        "payment_status": order.payment_status,
        "created_at": order.created_at,
    }


def _ordered_items(order_id) -> List[OrderItem]:
    return OrderItem.query.filter_by(order_id=order_id).order_by(OrderItem.id).all()


class OrderStore:
    def create(self, draft: OrderDraft) -> Dict:
        """Insert the header and every item in one transaction.

        Any failure rolls the whole order back and surfaces as
        ``OrderPersistenceError``.
        """
        try:
            with transactional("Order persistence failed"):
                order = Order(
                    user_id=draft.user_id,
                    payment_intent_id=draft.payment_intent_id,
                    total_amount=draft.total_amount,
                    currency=draft.currency,
                    shipping_address=draft.shipping_address,
                    billing_address=draft.billing_address,
                    status=draft.status,
                    payment_status=draft.payment_status,
                )
                db.session.add(order)
                db.session.flush()
                for line in draft.items:
                    db.session.add(
                        OrderItem(
                            order_id=order.id,
                            product_id=line.product_id,
                            quantity=line.quantity,
                            price=line.price,
                        )
                    )
                    db.session.flush()
                order_id = order.id
        except Exception as e:
            raise OrderPersistenceError(
                "Failed to persist order",
                payment_intent_id=draft.payment_intent_id,
            ) from e
        logger.info("Order %s created for user %s", order_id, draft.user_id)
        confirmation = draft.to_dict()
        confirmation["id"] = order_id
        return confirmation

    def get(self, order_id) -> Optional[Order]:
        return db.session.get(Order, order_id)

    def find_by_id(self, order_id) -> Optional[Dict]:
        order = self.get(order_id)
        if order is None:
            return None
        data = _serialize_header(order)
        data.update(
            shipping_address=order.shipping_address,
            billing_address=order.billing_address,
            updated_at=order.updated_at,
            user_name=order.user.name if order.user else None,
            user_email=order.user.email if order.user else None,
            items=[oi.to_dict() for oi in _ordered_items(order.id)],
        )
        return data

    def find_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        if not payment_intent_id:
            return None
        return Order.query.filter_by(payment_intent_id=payment_intent_id).first()

    def get_user_orders(self, user_id) -> List[Dict]:
        orders = (
            Order.query.filter_by(user_id=user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )
        result = []
        for order in orders:
            data = _serialize_header(order)
            data["items"] = [oi.to_dict() for oi in _ordered_items(order.id)]
            result.append(data)
        return result

    def get_all_orders(self, limit: int = 100) -> List[Dict]:
        orders = Order.query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
        result = []
        for order in orders:
            data = _serialize_header(order)
            data["user_name"] = order.user.name if order.user else None
            data["user_email"] = order.user.email if order.user else None
            result.append(data)
        return result

    def update_status(self, order_id, status: str) -> bool:
        """Set the order status. Any known status may follow any other."""
        if status not in ORDER_STATUSES:
            raise ValidationError("Invalid status", allowed=list(ORDER_STATUSES))
        with transactional("Failed to update order status"):
            updated = Order.query.filter_by(id=order_id).update({"status": status})
        return bool(updated)

    def mark_payment_status(self, payment_intent_id: str, payment_status: str) -> Optional[Order]:
        order = self.find_by_payment_intent(payment_intent_id)
        if order is None:
            return None
        with transactional("Failed to update order payment status"):
            order.payment_status = payment_status
        return order


def record_payment_event(payment_intent_id, user_id, event: str, detail: str = None) -> None:
    """Append to the payment audit trail in its own transaction."""
    try:
        with transactional("Failed to record payment event"):
            db.session.add(
                PaymentEvent(
                    payment_intent_id=payment_intent_id,
                    user_id=user_id,
                    event=event,
                    detail=detail,
                )
            )
    except Exception:
        logger.error("Payment event %s for intent %s was not recorded", event, payment_intent_id)


def unreconciled_payments() -> List[Dict]:
    """Intents whose payment was confirmed but that never produced an order."""
    confirmed = PaymentEvent.query.filter_by(event="payment_confirmed").all()
    result = []
    seen = set()
    for ev in confirmed:
        if ev.payment_intent_id in seen:
            continue
        seen.add(ev.payment_intent_id)
        if Order.query.filter_by(payment_intent_id=ev.payment_intent_id).first() is None:
            result.append(ev.to_dict())
    return result
