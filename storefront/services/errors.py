class CheckoutError(Exception):
    """Base for the cart/checkout error family; carries its HTTP mapping."""

    status = 400
    reason = "checkout_error"

    def __init__(self, message=None, **details):
        super().__init__(message or self.__class__.__doc__ or self.reason)
        self.details = details

    def to_dict(self):
        payload = {"reason": self.reason}
        payload.update(self.details)
        return payload


class ValidationError(CheckoutError):
    """Invalid or missing input."""

    reason = "validation_error"

    def __init__(self, message="Invalid input", missing_fields=None, **details):
        super().__init__(message, **details)
        self.missing_fields = list(missing_fields or [])
        if self.missing_fields:
            self.details["missing_fields"] = self.missing_fields


class EmptyCartError(CheckoutError):
    """Cart is empty"""

    reason = "empty_cart"


class PaymentProviderError(CheckoutError):
    """Payment provider rejected the request"""

    status = 502
    reason = "payment_provider_error"


class PaymentNotCompletedError(CheckoutError):
    """Payment not completed"""

    status = 402
    reason = "payment_not_completed"

    def __init__(self, message=None, payment_status=None, **details):
        super().__init__(message, payment_status=payment_status, **details)
        self.payment_status = payment_status


class OrderPersistenceError(CheckoutError):
    """Failed to persist order"""

    status = 500
    reason = "order_persistence_error"


class NetworkError(CheckoutError):
    """Payment provider unreachable, please retry"""

    status = 503
    reason = "network_error"


class CheckoutStateError(CheckoutError):
    """Checkout step called out of order"""

    status = 409
    reason = "invalid_checkout_state"


class CheckoutCancelled(CheckoutError):
    """Checkout attempt was cancelled"""

    status = 409
    reason = "cancelled"
