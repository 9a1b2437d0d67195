from functools import wraps
from flask import request, g
from .responses import error
from storefront.auth.permissions import role_has_scope
from .jwt import decode_token, TokenError
from models import db
from models.user import User


def _bearer_token():
    auth = request.headers.get("Authorization", "")
    if not auth:
        return None
    return auth.split(" ", 1)[1] if auth.startswith("Bearer ") else auth


def auth_required(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return error("Auth header missing", status=401)
        try:
            payload = decode_token(token, expected_type="access")
        except TokenError as e:
            return error(str(e), status=401)

        try:
            user = db.session.get(User, int(payload["sub"]))
        except (TypeError, ValueError):
            user = None
        if user is None:
            return error("Unknown user", status=401)
        g.user_id = user.id
        g.role = user.role or payload.get("role")
        request.user = user
        return func(*args, **kwargs)

    return wrapper


def _entry_allows(role, entry):
    wanted, _, action = entry.partition(":")
    if role != wanted:
        return False
    return not action or role_has_scope(role, action)


def role_required(required):
    """Allow the request when the caller matches any ``role`` or ``role:action`` entry."""
    entries = set(required) if isinstance(required, (list, tuple, set)) else {required}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            role = getattr(g, "role", None)
            if not role:
                return error("Role missing", status=403)
            if not any(_entry_allows(role, entry) for entry in entries):
                return error("Forbidden", status=403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
