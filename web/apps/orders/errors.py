"""Typed errors raised by the orders domain.

Each error carries a short machine-checkable ``code`` (also its ``str()``)
and the HTTP status the views answer with. Views are the request boundary:
they catch ``OrderError`` and render ``as_body()``; nothing in this module
knows about HTTP frameworks.
"""


class OrderError(ValueError):
    """Base class for expected order-lifecycle failures."""

    code = "ORDER_ERROR"
    http_status = 400

    def __init__(self, message: str | None = None):
        super().__init__(self.code)
        self.message = message or self.code

    def as_body(self) -> dict:
        return {"error": self.code}


class EmptyCartError(OrderError):
    code = "EMPTY_CART"


class OverStockError(OrderError):
    """Some non-preorder product in the cart exceeds its stock snapshot."""

    code = "OVER_STOCK"
    http_status = 422

    def __init__(self, lines: list[dict]):
        super().__init__("Quantity exceeds stock for one or more products")
        self.lines = lines

    def as_body(self) -> dict:
        return {"error": self.code, "lines": self.lines}


class ShippingValidationError(OrderError):
    code = "SHIPPING_INVALID"

    def __init__(self, fields: dict[str, str]):
        super().__init__("Shipping selection or customer details are incomplete")
        self.fields = fields

    def as_body(self) -> dict:
        return {"error": self.code, "fields": self.fields}


class OrderPersistenceError(OrderError):
    code = "ORDER_NOT_PERSISTED"
    http_status = 500


class PaymentProviderError(Exception):
    """Raised by provider adapters for transport, HTTP or circuit failures.

    Attributes:
        status_code: Provider HTTP status when a response was received.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PaymentSetupError(OrderError):
    """The provider preference could not be created; the order stays pending."""

    code = "PAYMENT_SETUP_FAILED"
    http_status = 500

    def __init__(self, reference: str):
        super().__init__(f"Payment preference not created for {reference}")
        self.reference = reference

    def as_body(self) -> dict:
        return {"error": self.code, "reference": self.reference}


class OrderNotFoundError(OrderError):
    code = "ORDER_NOT_FOUND"
    http_status = 404


class OrderNotPendingError(OrderError):
    code = "ORDER_NOT_PENDING"
    http_status = 409


class PaymentAlreadyAttachedError(OrderError):
    code = "PAYMENT_ALREADY_ATTACHED"
    http_status = 409


class PaymentIdInUseError(OrderError):
    code = "PAYMENT_ID_IN_USE"
    http_status = 409
