import logging

from flask import Blueprint, request

from storefront.schemas.order import UpdateOrderStatusRequest
from storefront.services.order_service import OrderStore, unreconciled_payments
from storefront.utils import auth_required, error, ok, role_required, validate_schema
from storefront.version import API_PREFIX

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix=f"{API_PREFIX}/admin")


@admin_bp.before_request
@auth_required
@role_required("admin:manage_orders")
def _enforce_admin_role():
    """Ensure the requester is an authenticated admin."""
    return None


@admin_bp.route("/orders", methods=["GET"])
def list_orders():
    return ok({"orders": OrderStore().get_all_orders()})


@admin_bp.route("/orders/<int:order_id>/status", methods=["PUT"])
@validate_schema(UpdateOrderStatusRequest)
def update_order_status(order_id):
    status = request.validated_data.status
    if not OrderStore().update_status(order_id, status):
        return error("Order not found", status=404)
    logger.info("Order %s moved to %s", order_id, status)
    return ok({"order_id": order_id, "status": status}, message="Order status updated successfully")


@admin_bp.route("/payments/unreconciled", methods=["GET"])
def list_unreconciled():
    return ok({"payments": unreconciled_payments()})
