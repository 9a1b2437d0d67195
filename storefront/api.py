from storefront.routes import (
    auth_bp,
    cart_bp,
    checkout_bp,
    orders_bp,
    admin_bp,
    payments_bp,
)


def register_api_v1(app):
    """Register blueprint routes under the API version prefix."""
    app.register_blueprint(auth_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(payments_bp)
