from decimal import Decimal as D
import logging

from flask import Blueprint, request
from werkzeug.security import generate_password_hash

from models import db
from models.product import Product
from models.user import User
from storefront.utils.jwt import create_access_token, create_refresh_token
from storefront.utils.responses import ok


test_support_bp = Blueprint("test_support_bp", __name__)


@test_support_bp.route("/__ok", methods=["GET"])
def __ok():
    return ok({"ping": "pong"})


@test_support_bp.route("/__boom", methods=["GET"])
def __boom():
    raise RuntimeError("boom")


@test_support_bp.route("/__log", methods=["GET"])
def __log():
    logging.getLogger(__name__).info("test log line")
    return ok({"logged": True})


@test_support_bp.route("/__auth/login_stub", methods=["POST"])
def __login_stub():
    j = request.get_json() or {}
    email = (j.get("email") or "test@example.com").lower()
    role = j.get("role", "customer")
    user = User.query.filter_by(email=email).first()
    if not user:
        user = User(
            email=email,
            name=j.get("name", "Test"),
            role=role,
            password_hash=generate_password_hash(j.get("password", "secret")),
        )
        db.session.add(user)
        db.session.commit()
    return ok({
        "user_id": user.id,
        "access": create_access_token(user.id, user.role),
        "refresh": create_refresh_token(user.id),
    })


@test_support_bp.route("/__seed/product", methods=["POST"])
def __seed_product():
    """
    Body: {"name": "Mug", "price": 12.0, "sell_price": 10.0, "quantity": 5}
    Returns: {"product_id": ...}
    """
    j = request.get_json() or {}
    price = D(str(j.get("price", 10)))
    product = Product(
        name=j.get("name", "Widget"),
        price=price,
        sell_price=D(str(j.get("sell_price", price))),
        quantity=int(j.get("quantity", 10)),
        images=j.get("images") or [],
        is_active=bool(j.get("is_active", True)),
    )
    db.session.add(product)
    db.session.commit()
    return ok({"product_id": product.id})
