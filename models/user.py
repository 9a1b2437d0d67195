from datetime import datetime
from models import db, BIGINT


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(BIGINT, primary_key=True)
    name = db.Column(db.String(100), nullable=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(20), default="customer")  # customer, admin
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    addresses = db.relationship(
        "ShippingAddress", backref="user", cascade="all, delete-orphan", lazy=True
    )

    def __repr__(self):
        return f"<User id={self.id} role={self.role}>"


class ShippingAddress(db.Model):
    __tablename__ = "shipping_addresses"
    __table_args__ = (
        db.Index("ix_shipping_addresses_user_default", "user_id", "is_default"),
    )

    id = db.Column(BIGINT, primary_key=True)
    user_id = db.Column(BIGINT, db.ForeignKey("users.id"), nullable=False)
    full_name = db.Column(db.String(255), nullable=False)
    mobile_number = db.Column(db.String(20), nullable=True)
    address_line1 = db.Column(db.String(255), nullable=False)
    address_line2 = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(100), nullable=False)
    state = db.Column(db.String(100), nullable=False)
    postal_code = db.Column(db.String(20), nullable=False)
    country = db.Column(db.String(100), nullable=False, default="US")
    is_default = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            "full_name": self.full_name,
            "mobile_number": self.mobile_number,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
        }
