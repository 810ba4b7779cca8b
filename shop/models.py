"""
Expose ORM models for Django's auto-discovery while keeping real definitions
under the infrastructure module.
"""

from shop.infra.models import (
    CartItemORM,
    CartORM,
    OrderItemORM,
    OrderORM,
    ProductORM,
)
from shop.infra.outbox import OutboxEvent

__all__ = [
    "CartItemORM",
    "CartORM",
    "OrderItemORM",
    "OrderORM",
    "OutboxEvent",
    "ProductORM",
]
