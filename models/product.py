from datetime import datetime
from models import db, BIGINT


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(BIGINT, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Pricing
    price = db.Column(db.Numeric(10, 2), nullable=False)       # List price
    sell_price = db.Column(db.Numeric(10, 2), nullable=False)  # Charged price

    # Inventory
    quantity = db.Column(db.Integer, default=0)

    images = db.Column(db.JSON, default=list)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Product id={self.id} name={self.name!r}>"
