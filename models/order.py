from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from models import db, BIGINT

ORDER_STATUSES = ("pending", "paid", "shipped", "delivered", "cancelled", "refunded")


class Order(db.Model):
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_created", "user_id", "created_at"),
    )
    id = Column(BIGINT, primary_key=True)
    user_id = Column(BIGINT, ForeignKey("users.id"), nullable=False)
    payment_intent_id = Column(String(255), unique=True, nullable=True)
    total_amount = Column(db.Numeric(10, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="usd")
    shipping_address = Column(db.JSON, nullable=False)
    billing_address = Column(db.JSON, nullable=False)
    status = Column(String(20), default="pending")  # see ORDER_STATUSES
    payment_status = Column(String(40), nullable=True)  # mirrors the processor's intent status
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    user = db.relationship("User", lazy=True)
    items = db.relationship(
        "OrderItem", backref="order", cascade="all, delete-orphan", lazy=True
    )


class OrderItem(db.Model):
    __tablename__ = "order_items"
    id = db.Column(BIGINT, primary_key=True)
    order_id = db.Column(BIGINT, db.ForeignKey("orders.id"), nullable=False)
    product_id = db.Column(BIGINT, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    # Snapshot of the product's sell price when the order was built
    price = db.Column(db.Numeric(10, 2), nullable=False)
    created_at = db.Column(DateTime, default=func.now())

    product = db.relationship("Product", lazy=True)

    def to_dict(self):
        product = self.product
        return {
            "product_id": self.product_id,
            "product_name": product.name if product else None,
            "images": list(product.images or []) if product else [],
            "quantity": self.quantity,
            "price": float(self.price),
        }


class PaymentEvent(db.Model):
    """Audit trail of checkout/payment steps, one row per step outcome."""

    __tablename__ = "payment_events"
    id = Column(BIGINT, primary_key=True)
    payment_intent_id = Column(String(255), nullable=True, index=True)
    user_id = Column(BIGINT, nullable=True)
    event = Column(String(50), nullable=False)
    detail = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())

    def to_dict(self):
        return {
            "payment_intent_id": self.payment_intent_id,
            "user_id": self.user_id,
            "event": self.event,
            "detail": self.detail,
            "created_at": self.created_at,
        }
