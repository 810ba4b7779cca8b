"""
Customer-initiated order cancellation.
"""
from __future__ import annotations

import logging
from uuid import UUID, uuid4

from django.db import transaction
from django.utils import timezone

from shop.domain.errors import Forbidden, InvalidOrderState, NotFound
from shop.domain.events import OrderCancelled
from shop.domain.order import Order, OrderStatus
from shop.infra.locks import order_lock
from shop.infra.outbox import OutboxRepository
from shop.infra.repositories import OrderRepository, ProductRepository

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "Cancelled by customer"


class CancellationService:
    """Cancels pending or confirmed orders, restoring stock for confirmed ones."""

    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        product_repo: ProductRepository | None = None,
        outbox_repo: OutboxRepository | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.product_repo = product_repo or ProductRepository()
        self.outbox_repo = outbox_repo or OutboxRepository()

    def cancel_order(self, order_id: UUID | str, user_id: int, reason: str | None = None) -> Order:
        reason = (reason or "").strip() or DEFAULT_CANCEL_REASON

        with transaction.atomic():
            with order_lock(order_id):
                order = self.order_repo.get_for_update(order_id)
                if order is None:
                    raise NotFound("Order not found")
                if order.user_id != user_id:
                    raise Forbidden("Order does not belong to the current user")

                order.ensure_cancellable()
                # Stock was only taken when the order was confirmed.
                restore_stock = order.status == OrderStatus.CONFIRMED

                if not self.order_repo.mark_cancelled(order.id, order.status, reason, timezone.now()):
                    raise InvalidOrderState("Order status changed, please retry", status=order.status.value)

                if restore_stock:
                    for item in order.items:
                        if not self.product_repo.increment_stock(item.product_id, item.quantity):
                            logger.warning(
                                "stock_restore_skipped",
                                extra={"order_id": str(order.id), "product_id": item.product_id},
                            )

                self.outbox_repo.add_event(
                    OrderCancelled(
                        event_id=uuid4(),
                        aggregate_id=order.id,
                        event_type="OrderCancelled",
                        order_number=order.order_number,
                        user_id=order.user_id,
                        reason=reason,
                        stock_restored=restore_stock,
                    ),
                    "Order",
                )

        logger.info(
            "order_cancelled",
            extra={
                "order_id": str(order.id),
                "previous_status": order.status.value,
                "stock_restored": restore_stock,
            },
        )
        return self.order_repo.get_by_id(order.id)
