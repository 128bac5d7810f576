"""
Errors raised by checkout, payment confirmation and order transitions.

Each carries a stable ``code`` for API clients and the HTTP status the API
layer answers with.
"""


class OrderError(Exception):
    code = 'ORDER_ERROR'
    status_code = 400
    default_message = "Order operation failed."

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


class CheckoutValidationError(OrderError):
    """Empty cart, missing address, unsupported payment method, unknown item."""
    code = 'VALIDATION_ERROR'
    default_message = "Checkout request is invalid."


class OutOfStock(OrderError):
    code = 'OUT_OF_STOCK'
    status_code = 409
    default_message = "One or more items are out of stock."


class InventoryConflict(OrderError):
    """A binding stock commit lost to a concurrent commit; nothing was decremented."""
    code = 'INVENTORY_CONFLICT'
    status_code = 409
    default_message = "Stock changed while the order was being confirmed."


class PaymentInitFailed(OrderError):
    code = 'PAYMENT_INIT_FAILED'
    status_code = 502
    default_message = "Failed to create payment order. Please try again."


class VerificationFailed(OrderError):
    code = 'VERIFICATION_FAILED'
    default_message = "Payment verification failed."


class InvalidOperation(OrderError):
    code = 'INVALID_OPERATION'
    default_message = "Operation is not allowed for this order."


class InvalidTransition(OrderError):
    code = 'INVALID_TRANSITION'
    default_message = "Order status transition is not allowed."


class OrderNotFound(OrderError):
    code = 'NOT_FOUND'
    status_code = 404
    default_message = "Order not found."


class AdapterError(Exception):
    """Failure talking to an external payment or shipping service."""

    def __init__(self, message, status_code=None):
        self.status_code = status_code
        super().__init__(message)


class TransientAdapterError(AdapterError):
    """Timeout, connection failure, HTTP 5xx or 429: safe to retry."""


class PermanentAdapterError(AdapterError):
    """Rejected request or unusable response: retrying will not help."""
