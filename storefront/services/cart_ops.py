"""Server-side cart storage for authenticated users.

None of these helpers commit; callers wrap them in ``transactional``.
"""
from typing import List
from sqlalchemy import func
from models import db
from models.cart import CartItem
from models.product import Product


def add_item(user_id: int, product_id: int, quantity: int) -> CartItem:
    """Add ``quantity`` of a product, summing onto an existing row."""
    row = (
        CartItem.query.filter_by(user_id=user_id, product_id=product_id)
        .with_for_update()
        .first()
    )
    if row:
        row.quantity = row.quantity + quantity
    else:
        row = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
        db.session.add(row)
    db.session.flush()
    return row


def set_quantity(user_id: int, product_id: int, quantity: int) -> None:
    CartItem.query.filter_by(user_id=user_id, product_id=product_id).update(
        {"quantity": quantity}, synchronize_session="fetch"
    )


def remove_item(user_id: int, product_id: int) -> None:
    CartItem.query.filter_by(user_id=user_id, product_id=product_id).delete(
        synchronize_session="fetch"
    )


def clear(user_id: int) -> None:
    CartItem.query.filter_by(user_id=user_id).delete(synchronize_session="fetch")


def list_items(user_id: int) -> List[dict]:
    """Cart rows joined with live product data, newest first."""
    rows = (
        db.session.query(CartItem, Product)
        .join(Product, CartItem.product_id == Product.id)
        .filter(CartItem.user_id == user_id)
        .order_by(CartItem.added_at.desc(), CartItem.id.desc())
        .all()
    )
    return [
        {
            "cart_id": ci.id,
            "product_id": p.id,
            "quantity": ci.quantity,
            "added_at": ci.added_at,
            "name": p.name,
            "price": float(p.price),
            "sell_price": float(p.sell_price),
            "images": list(p.images or []),
            "stock_quantity": p.quantity,
            "is_active": bool(p.is_active),
        }
        for ci, p in rows
    ]


def count(user_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(CartItem.quantity), 0))
        .filter(CartItem.user_id == user_id)
        .scalar()
    )
    return int(total or 0)
