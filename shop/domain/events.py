"""
Domain events written to the transactional outbox.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID


class EventVersion(str, Enum):
    """Event version for upcasting."""
    V1 = "1.0"


@dataclass
class DomainEvent:
    """Base domain event."""
    event_id: UUID
    aggregate_id: UUID
    event_type: str
    # version and occurred_at are set in subclasses to avoid dataclass field ordering issues


@dataclass
class OrderCreated(DomainEvent):
    """Pending order created together with its payment intent."""
    order_number: str
    user_id: int
    total: Decimal
    items_count: int
    payment_reference: str
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""


@dataclass
class OrderConfirmed(DomainEvent):
    """Order confirmed, stock decremented and cart cleared."""
    order_number: str
    user_id: int
    payment_reference: str
    trigger: str
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""


@dataclass
class OrderPaymentFailed(DomainEvent):
    """Gateway reported a failed payment for a pending order."""
    order_number: str
    user_id: int
    payment_reference: str
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""


@dataclass
class OrderCancelled(DomainEvent):
    """Order cancelled by its owner."""
    order_number: str
    user_id: int
    reason: str
    stock_restored: bool
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""


@dataclass
class OrderStatusChanged(DomainEvent):
    """Fulfilment status changed by staff."""
    order_number: str
    user_id: int
    status: str
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""
