from .auth import auth_bp
from .cart import cart_bp
from .checkout import checkout_bp
from .orders import orders_bp
from .admin import admin_bp
from .payments import payments_bp


__all__ = [
    'auth_bp',
    'cart_bp',
    'checkout_bp',
    'orders_bp',
    'admin_bp',
    'payments_bp',
]
