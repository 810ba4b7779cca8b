"""
Domain model for Order aggregate.
"""
from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from uuid import UUID, uuid4

from shop.domain.errors import InvalidOrderState, ValidationError

# Client-supplied amounts may drift from server arithmetic by rounding only.
MONEY_EPSILON = Decimal("0.01")

_ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


class OrderStatus(str, Enum):
    """Order status enumeration (wire-visible)."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment status enumeration (wire-visible)."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CARD = "card"
    COD = "cod"
    UPI = "upi"
    NETBANKING = "netbanking"


CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED)

# Staff-driven fulfilment moves forward one step at a time.
FULFILMENT_TRANSITIONS = {
    OrderStatus.CONFIRMED: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
}


def generate_order_number() -> str:
    """Human-readable order identifier, e.g. ``ORD-1718000000000-7K2QX9ZLM``."""
    suffix = "".join(secrets.choice(_ORDER_NUMBER_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def parse_amount(value, field_name: str) -> Decimal:
    """Parse a non-negative money amount from client input."""
    if value is None or value == "":
        return Decimal("0.00")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number", field=field_name)
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a number", field=field_name)
    if amount < 0:
        raise ValidationError(f"{field_name} must be non-negative", field=field_name)
    return amount.quantize(Decimal("0.01"))


class OrderItem:
    """Order line item value object."""

    def __init__(self, product_id: str, quantity: int, price: Decimal, product_name: str = ""):
        if not product_id:
            raise ValidationError("Product id is required")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", productId=product_id)
        if price < 0:
            raise ValidationError("Price must be non-negative", productId=product_id)

        self.product_id = product_id
        self.product_name = product_name or product_id
        self.quantity = quantity
        self.price = price

    @property
    def line_total(self) -> Decimal:
        """Calculate item line total."""
        return self.price * self.quantity

    def __repr__(self) -> str:
        return f"OrderItem({self.product_id!r}, quantity={self.quantity}, price={self.price})"


@dataclass(frozen=True)
class ShippingAddress:
    """Shipping address snapshot. Captured at order creation, never mutated."""
    full_name: str
    address: str
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""

    @classmethod
    def from_payload(cls, data: dict | None, default_country: str = "") -> ShippingAddress:
        if not isinstance(data, dict):
            raise ValidationError("Complete shipping address is required")
        full_name = str(data.get("fullName") or "").strip()
        address = str(data.get("address") or "").strip()
        if not full_name or not address:
            raise ValidationError("Complete shipping address is required")
        return cls(
            full_name=full_name,
            address=address,
            city=str(data.get("city") or "").strip(),
            state=str(data.get("state") or "").strip(),
            zip_code=str(data.get("zipCode") or "").strip(),
            country=str(data.get("country") or "").strip() or default_country,
        )

    def to_dict(self) -> dict:
        return {
            "fullName": self.full_name,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zipCode": self.zip_code,
            "country": self.country,
        }


@dataclass
class Order:
    """Order aggregate root.

    Items, prices and the shipping address are a snapshot taken when the
    payment intent is requested. After that only status, payment and
    fulfilment fields change, and those changes go through the repository's
    conditional updates rather than through this object.
    """
    user_id: int
    items: list[OrderItem]
    shipping_address: ShippingAddress
    subtotal: Decimal
    total: Decimal
    discount: Decimal = Decimal("0.00")
    shipping: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    promo_code: str | None = None
    id: UUID = field(default_factory=uuid4)
    order_number: str = field(default_factory=generate_order_number)
    status: OrderStatus = OrderStatus.PENDING
    payment_method: PaymentMethod = PaymentMethod.CARD
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_reference: str | None = None
    created_at: datetime | None = None
    confirmed_at: datetime | None = None
    estimated_delivery: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    notes: str = ""
    tracking_number: str = ""

    @property
    def items_total(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0.00"))

    @property
    def is_pending(self) -> bool:
        return self.status == OrderStatus.PENDING

    @property
    def can_cancel(self) -> bool:
        return self.status in CANCELLABLE_STATUSES

    def validate_totals(self) -> None:
        """Check the pricing breakdown: total = subtotal - discount + shipping + tax."""
        if not self.items:
            raise ValidationError("No items in cart")
        for name in ("subtotal", "discount", "shipping", "tax", "total"):
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} must be non-negative", field=name)

        if abs(self.items_total - self.subtotal) > MONEY_EPSILON:
            raise ValidationError(
                "Subtotal does not match order items",
                expected=str(self.items_total),
                received=str(self.subtotal),
            )
        expected_total = self.subtotal - self.discount + self.shipping + self.tax
        if abs(expected_total - self.total) > MONEY_EPSILON:
            raise ValidationError(
                "Total does not match pricing breakdown",
                expected=str(expected_total),
                received=str(self.total),
            )

    def next_fulfilment_status(self, new_status: OrderStatus) -> OrderStatus:
        """Validate a staff fulfilment transition and return the target status."""
        allowed = FULFILMENT_TRANSITIONS.get(self.status)
        if allowed != new_status:
            raise InvalidOrderState(
                f"Cannot move order from {self.status.value} to {new_status.value}",
                status=self.status.value,
            )
        return new_status

    def ensure_cancellable(self) -> None:
        if not self.can_cancel:
            raise InvalidOrderState(
                "Order cannot be cancelled at this stage",
                status=self.status.value,
            )
