"""
Order reads for customers and fulfilment updates for staff.
"""
from __future__ import annotations

import logging
from uuid import UUID, uuid4

from django.db import transaction
from django.utils import timezone

from shop.domain.errors import Forbidden, InvalidOrderState, NotFound, ValidationError
from shop.domain.events import OrderStatusChanged
from shop.domain.order import Order, OrderStatus
from shop.infra.outbox import OutboxRepository
from shop.infra.repositories import OrderRepository

logger = logging.getLogger(__name__)


def parse_status(value, field_name: str = "status") -> OrderStatus:
    try:
        return OrderStatus(str(value).lower())
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: {value}", field=field_name)


class OrderService:
    def __init__(
        self,
        order_repo: OrderRepository | None = None,
        outbox_repo: OutboxRepository | None = None,
    ):
        self.order_repo = order_repo or OrderRepository()
        self.outbox_repo = outbox_repo or OutboxRepository()

    def get_order(self, order_id: UUID | str, user_id: int) -> Order:
        order = self.order_repo.get_by_id(order_id)
        if order is None:
            raise NotFound("Order not found")
        if order.user_id != user_id:
            raise Forbidden("Order does not belong to the current user")
        return order

    def list_orders(self, user_id: int, status: str | None = None) -> tuple[list[Order], dict[str, int]]:
        """Orders newest first, plus counts per status across all of the user's orders."""
        status_filter = None
        if status and status != "all":
            status_filter = parse_status(status)
        orders = self.order_repo.list_by_user(user_id, status=status_filter)
        return orders, self.order_repo.status_counts(user_id)

    def update_status(self, order_id: UUID | str, new_status: str) -> Order:
        """Move an order one fulfilment step forward (staff only)."""
        target = parse_status(new_status, "newStatus")
        order = self.order_repo.get_by_id(order_id)
        if order is None:
            raise NotFound("Order not found")
        order.next_fulfilment_status(target)

        changes = {"status": target}
        if target == OrderStatus.DELIVERED:
            changes["delivered_at"] = timezone.now()

        with transaction.atomic():
            if not self.order_repo.transition(order.id, order.status, **changes):
                raise InvalidOrderState("Order status changed, please retry", status=order.status.value)
            self.outbox_repo.add_event(
                OrderStatusChanged(
                    event_id=uuid4(),
                    aggregate_id=order.id,
                    event_type="OrderStatusChanged",
                    order_number=order.order_number,
                    user_id=order.user_id,
                    status=target.value,
                ),
                "Order",
            )

        logger.info(
            "order_status_changed",
            extra={"order_id": str(order.id), "from_status": order.status.value, "to_status": target.value},
        )
        return self.order_repo.get_by_id(order.id)
