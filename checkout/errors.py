"""
Checkout error taxonomy.

Error message constants are centralized to avoid string duplication; the
exception classes carry the HTTP status and the machine-readable code that
the API layer renders.
"""

from typing import Any

# Intent errors
ERROR_INTENT_NOT_FOUND = "Payment intent not found"
ERROR_INTENT_NOT_PAYABLE = "Payment intent is not awaiting payment"
ERROR_AMOUNT_MISMATCH = "Cart total changed since checkout started"

# Catalog errors
ERROR_PRODUCT_NOT_FOUND = "Product not found"
ERROR_VARIANT_NOT_FOUND = "Variant not found"
ERROR_INSUFFICIENT_STOCK = "Insufficient stock"

# Order errors
ERROR_ORDER_NOT_FOUND = "Order not found"
ERROR_ORDER_INVALID_STATUS = "Invalid order status"
ERROR_MATERIALIZATION_FAILED = "Payment received but the order could not be created"

# Input errors
ERROR_EMPTY_CART = "Cart is empty"
ERROR_INVALID_ITEM = "Each item needs a product id and a quantity of at least 1"
ERROR_INCOMPLETE_ADDRESS = "Shipping address is incomplete"
ERROR_INVALID_AMOUNT = "Payable amount is below the minimum"

# Gateway errors
ERROR_GATEWAY_UNAVAILABLE = "Payment gateway unavailable, please retry"
ERROR_GATEWAY_REJECTED = "Payment gateway rejected the request"
ERROR_UNKNOWN_GATEWAY = "Unknown payment gateway"
ERROR_INVALID_SIGNATURE = "Invalid signature"

# Reconciliation reasons persisted on intents
RECONCILE_ORDER_INSERT_FAILED = "order_insert_failed"
RECONCILE_MISSING_SHIPPING_ADDRESS = "missing_shipping_address"


class CheckoutError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    code = "CHECKOUT_ERROR"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class ValidationError(CheckoutError):
    """Bad client input. Never retried automatically."""

    status_code = 400
    code = "VALIDATION_ERROR"


class IncompleteShippingAddress(ValidationError):
    code = "INCOMPLETE_SHIPPING_ADDRESS"

    def __init__(self, missing_fields: list[str]) -> None:
        super().__init__(ERROR_INCOMPLETE_ADDRESS, missing_fields=missing_fields)
        self.missing_fields = missing_fields


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"


class InvalidCoupon(ValidationError):
    code = "INVALID_COUPON"


class AmountMismatch(CheckoutError):
    """Catalog prices drifted between intent creation and the gateway call."""

    status_code = 400
    code = "AMOUNT_MISMATCH"


class NotFoundError(CheckoutError):
    status_code = 404
    code = "NOT_FOUND"


class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"


class VariantNotFound(NotFoundError):
    code = "VARIANT_NOT_FOUND"


class IntentNotFound(NotFoundError):
    code = "INTENT_NOT_FOUND"


class OrderNotFound(NotFoundError):
    code = "ORDER_NOT_FOUND"


class InsufficientStock(CheckoutError):
    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, items: list[dict[str, Any]]) -> None:
        super().__init__(ERROR_INSUFFICIENT_STOCK, items=items)
        self.items = items


class InvalidStateTransition(CheckoutError):
    status_code = 409
    code = "INVALID_STATE"


class Unauthorized(CheckoutError):
    status_code = 401
    code = "UNAUTHORIZED"


class GatewayUnavailable(CheckoutError):
    """Timeout or network failure talking to the provider: outcome unknown."""

    status_code = 502
    code = "GATEWAY_UNAVAILABLE"


class GatewayRejected(CheckoutError):
    """Provider answered, but not with a usable acknowledgement."""

    status_code = 502
    code = "GATEWAY_REJECTED"

    def __init__(
        self, message: str | None = None, response: Any = None, http_status: int | None = None
    ) -> None:
        super().__init__(message or ERROR_GATEWAY_REJECTED)
        self.response = response
        self.http_status = http_status


class MaterializationFailed(CheckoutError):
    status_code = 500
    code = "MATERIALIZATION_FAILED"
