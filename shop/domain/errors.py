"""
Domain errors for checkout and order confirmation.

Every error carries a stable ``code`` and the HTTP status the API layer
responds with. Extra keyword arguments end up in the error payload so the
client can act on them (e.g. re-prompt with the available quantity).
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any


class ShopError(Exception):
    """Base class for errors surfaced to API clients."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, **self.details}


class ValidationError(ShopError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFound(ShopError):
    code = "NOT_FOUND"
    status_code = 404


class Forbidden(ShopError):
    code = "FORBIDDEN"
    status_code = 403


class PaymentNotCompleted(ShopError):
    code = "PAYMENT_NOT_COMPLETED"
    status_code = 400


class InvalidOrderState(ShopError):
    code = "INVALID_STATE"
    status_code = 400


class SignatureInvalid(ShopError):
    code = "SIGNATURE_INVALID"
    status_code = 400


class GatewayError(ShopError):
    """Payment gateway unreachable or returned an error. Safe to retry."""

    code = "GATEWAY_ERROR"
    status_code = 502

    def __init__(self, message: str, retryable: bool = True, **details: Any):
        self.retryable = retryable
        super().__init__(message, retryable=retryable, **details)


class InsufficientStock(ShopError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(
        self,
        product_id: str,
        available: int,
        requested: int,
        product_name: str | None = None,
    ):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        label = product_name or product_id
        super().__init__(
            f"Insufficient stock for {label}. Only {available} available",
            productId=product_id,
            available=available,
            requested=requested,
        )


class PriceMismatch(ShopError):
    code = "PRICE_MISMATCH"
    status_code = 409

    def __init__(self, product_id: str, expected: Decimal, received: Decimal, product_name: str | None = None):
        self.product_id = product_id
        self.expected = expected
        self.received = received
        super().__init__(
            f"Price mismatch for {product_name or product_id}",
            productId=product_id,
            expected=str(expected),
            received=str(received),
        )
