from flask import Blueprint, g

from storefront.services.order_service import OrderStore
from storefront.auth.permissions import role_has_scope
from storefront.utils import auth_required, error, ok
from storefront.version import API_PREFIX

orders_bp = Blueprint("orders", __name__, url_prefix=f"{API_PREFIX}/orders")


@orders_bp.before_request
@auth_required
def _enforce_authenticated():
    return None


@orders_bp.route("", methods=["GET"])
def order_history():
    return ok({"orders": OrderStore().get_user_orders(g.user_id)})


@orders_bp.route("/<int:order_id>", methods=["GET"])
def order_detail(order_id):
    order = OrderStore().find_by_id(order_id)
    if order is None or (order["user_id"] != g.user_id and not role_has_scope(g.role, "view_any_order")):
        return error("Order not found", status=404)
    return ok({"order": order})
