import logging

from flask import Blueprint, current_app, request
from flask_limiter.util import get_remote_address
from werkzeug.security import check_password_hash

from extensions import limiter
from models.user import User
from storefront.schemas.auth import LoginRequest, RefreshRequest
from storefront.utils import (
    TokenError,
    create_access_token,
    create_refresh_token,
    decode_token,
    error,
    ok,
    validate_schema,
)
from storefront.version import API_PREFIX
from .session_cart import end_cart_session, merge_guest_cart

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix=f"{API_PREFIX}/auth")


def _token_payload(user):
    return {
        "access_token": create_access_token(user.id, user.role or "customer"),
        "refresh_token": create_refresh_token(user.id),
        "expires_in": current_app.config["ACCESS_TOKEN_LIFETIME_MIN"] * 60,
    }


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(
    lambda: current_app.config["LOGIN_LIMIT_PER_IP"],
    key_func=get_remote_address,
    error_message="Too many login attempts from this IP",
)
@validate_schema(LoginRequest)
def login():
    body = request.validated_data
    user = User.query.filter_by(email=body.email.lower()).first()
    if not user or not user.password_hash or not check_password_hash(user.password_hash, body.password):
        return error("Invalid email or password", status=401)

    merge = merge_guest_cart(user.id)
    logger.info("User %s logged in", user.id)
    data = _token_payload(user)
    data["user"] = {"id": user.id, "name": user.name, "role": user.role}
    data["cart_merge"] = merge.to_dict()
    return ok(data, message="Logged in")


@auth_bp.route("/refresh", methods=["POST"])
@validate_schema(RefreshRequest)
def refresh_tokens():
    try:
        payload = decode_token(request.validated_data.refresh_token, expected_type="refresh")
    except TokenError as e:
        return error(str(e), status=401)
    try:
        user = User.query.filter_by(id=int(payload.get("sub"))).first()
    except (TypeError, ValueError):
        user = None
    if user is None:
        return error("Unknown user", status=401)
    return ok(_token_payload(user))


@auth_bp.route("/logout", methods=["POST"])
def logout_handler():
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return error("Token missing", status=401)
    try:
        decode_token(auth.split(" ", 1)[1])
    except TokenError as e:
        return error(str(e), status=401)
    end_cart_session()
    return ok(message="Logged out")
