from flask import Blueprint, g, request

from storefront.schemas.cart import AddCartItemRequest, UpdateCartItemRequest
from storefront.utils import auth_required, ok, validate_schema
from storefront.version import API_PREFIX
from .session_cart import guest_cart, merge_guest_cart, server_cart

cart_bp = Blueprint("cart", __name__, url_prefix=f"{API_PREFIX}/cart")


def _guest_payload(store):
    return {
        "cart_items": store.items(),
        "totals": store.totals().to_dict(),
    }


def _server_payload(store):
    return {
        "cart_items": store.items(),
        "count": store.count(),
        "totals": store.totals().to_dict(),
    }


# ------------------- Guest cart -------------------

@cart_bp.route("/guest", methods=["GET"])
def view_guest_cart():
    return ok(_guest_payload(guest_cart()))


@cart_bp.route("/guest", methods=["POST"])
@validate_schema(AddCartItemRequest)
def add_to_guest_cart():
    body = request.validated_data
    store = guest_cart()
    store.add_item(body.product_id, body.quantity)
    return ok(_guest_payload(store), message="Item added to cart")


@cart_bp.route("/guest/items/<int:product_id>", methods=["PUT"])
@validate_schema(UpdateCartItemRequest)
def update_guest_cart_item(product_id):
    store = guest_cart()
    store.update_quantity(product_id, request.validated_data.quantity)
    return ok(_guest_payload(store), message="Cart updated")


@cart_bp.route("/guest/items/<int:product_id>", methods=["DELETE"])
def remove_guest_cart_item(product_id):
    store = guest_cart()
    store.remove_item(product_id)
    return ok(_guest_payload(store), message="Item removed")


@cart_bp.route("/guest", methods=["DELETE"])
def clear_guest_cart():
    store = guest_cart()
    store.clear()
    return ok(_guest_payload(store), message="Cart cleared")


# ------------------- Server cart -------------------

@cart_bp.route("", methods=["GET"])
@auth_required
def view_cart():
    store = server_cart(g.user_id)
    store.refresh()
    return ok(_server_payload(store))


@cart_bp.route("/items", methods=["POST"])
@auth_required
@validate_schema(AddCartItemRequest)
def add_to_cart():
    body = request.validated_data
    store = server_cart(g.user_id)
    store.add_item(body.product_id, body.quantity)
    return ok(_server_payload(store), message="Item added to cart")


@cart_bp.route("/items/<int:product_id>", methods=["PUT"])
@auth_required
@validate_schema(UpdateCartItemRequest)
def update_cart_item(product_id):
    store = server_cart(g.user_id)
    store.update_quantity(product_id, request.validated_data.quantity)
    return ok(_server_payload(store), message="Cart updated")


@cart_bp.route("/items/<int:product_id>", methods=["DELETE"])
@auth_required
def remove_cart_item(product_id):
    store = server_cart(g.user_id)
    store.remove_item(product_id)
    return ok(_server_payload(store), message="Item removed")


@cart_bp.route("", methods=["DELETE"])
@auth_required
def clear_cart():
    store = server_cart(g.user_id)
    store.clear()
    return ok(_server_payload(store), message="Cart cleared")


@cart_bp.route("/count", methods=["GET"])
@auth_required
def cart_count():
    return ok({"count": server_cart(g.user_id).count()})


@cart_bp.route("/merge", methods=["POST"])
@auth_required
def merge_cart():
    result = merge_guest_cart(g.user_id)
    return ok(result.to_dict(), message="Cart merged" if not result.skipped else "Already merged")
