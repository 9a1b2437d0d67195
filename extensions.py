"""Extension instances shared by the storefront app and its blueprints.

They are created unbound so route modules can decorate views at import time;
``create_app`` binds them with ``init_app``.
"""
import os

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address


def _default_limits():
    raw = os.getenv("RATELIMIT_DEFAULT", "300 per hour")
    return [part.strip() for part in raw.split(";") if part.strip()]


# Login and checkout confirmation add their own, stricter per-IP limits
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=os.getenv("RATELIMIT_STORAGE_URL", "memory://"),
    strategy="fixed-window",
    default_limits=_default_limits(),
    headers_enabled=True,
)
