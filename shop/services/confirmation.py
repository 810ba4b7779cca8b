"""
Order confirmation: the single place where a pending order becomes confirmed.

Two independent triggers reach it: the client calling confirm-payment after
Stripe.js reports success, and Stripe's ``payment_intent.succeeded`` webhook.
Either may arrive first, both may arrive together and webhooks may be
redelivered. Stock is decremented and the order confirmed exactly once, inside
one database transaction; whoever commits second observes the confirmed order
and does nothing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID, uuid4

from django.db import transaction
from django.utils import timezone

from shop.domain.errors import (
    Forbidden,
    InsufficientStock,
    InvalidOrderState,
    NotFound,
    PaymentNotCompleted,
    ValidationError,
)
from shop.domain.events import OrderConfirmed, OrderPaymentFailed
from shop.domain.order import Order, OrderStatus
from shop.infra.gateway import PAYMENT_FAILED, PAYMENT_SUCCEEDED, GatewayEvent, StripeGateway
from shop.infra.locks import order_lock
from shop.infra.outbox import OutboxRepository
from shop.infra.repositories import CartRepository, OrderRepository, ProductRepository

logger = logging.getLogger(__name__)

TRIGGER_CLIENT = "client"
TRIGGER_WEBHOOK = "webhook"

# Statuses an order can only reach after a successful confirmation.
PAID_STATUSES = (
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)


@dataclass(frozen=True)
class ConfirmationResult:
    order: Order
    # False when the order had already been confirmed by another trigger.
    applied: bool


class _LostConfirmationRace(Exception):
    """Status moved away from pending between the row read and the CAS."""


class OrderConfirmationService:
    """Applies payment success to orders exactly once."""

    def __init__(
        self,
        gateway: StripeGateway,
        order_repo: OrderRepository | None = None,
        product_repo: ProductRepository | None = None,
        cart_repo: CartRepository | None = None,
        outbox_repo: OutboxRepository | None = None,
    ):
        self.gateway = gateway
        self.order_repo = order_repo or OrderRepository()
        self.product_repo = product_repo or ProductRepository()
        self.cart_repo = cart_repo or CartRepository()
        self.outbox_repo = outbox_repo or OutboxRepository()

    def confirm_from_client(self, payment_reference: str, order_id: UUID | str, user_id: int) -> ConfirmationResult:
        """Confirm an order on behalf of its owner after client-side payment."""
        if not payment_reference or not order_id:
            raise ValidationError("Payment intent ID and order ID are required")

        order = self.order_repo.get_by_id(order_id)
        if order is None:
            raise NotFound("Order not found")
        if order.user_id != user_id:
            raise Forbidden("Order does not belong to the current user")
        if order.payment_reference and order.payment_reference != payment_reference:
            raise PaymentNotCompleted("Payment does not belong to this order")

        # Authoritative status comes from the gateway, never from the client.
        intent = self.gateway.retrieve_payment_intent(payment_reference)
        if not intent.succeeded:
            raise PaymentNotCompleted("Payment not completed", paymentStatus=intent.status)

        if order.status in PAID_STATUSES:
            logger.info(
                "order_already_confirmed",
                extra={"order_id": str(order.id), "trigger": TRIGGER_CLIENT},
            )
            return ConfirmationResult(order=order, applied=False)
        if order.status != OrderStatus.PENDING:
            raise InvalidOrderState(f"Order is {order.status.value}", status=order.status.value)

        result = self._apply_confirmation(order.id, payment_reference, TRIGGER_CLIENT)
        if result.order.status not in PAID_STATUSES:
            # Cancelled while we were waiting for the lock.
            raise InvalidOrderState(f"Order is {result.order.status.value}", status=result.order.status.value)
        return result

    def process_webhook(self, payload: bytes, signature: str | None) -> GatewayEvent:
        """Verify a raw webhook delivery and apply it."""
        event = self.gateway.construct_event(payload, signature)
        self.confirm_from_webhook(event)
        return event

    def confirm_from_webhook(self, event: GatewayEvent) -> None:
        """Apply a verified gateway event. Safe to call repeatedly for one event."""
        log_extra = {
            "event_id": event.id,
            "event_type": event.type,
            "payment_reference": event.payment_reference,
        }
        if event.type == PAYMENT_SUCCEEDED:
            self._handle_payment_succeeded(event)
        elif event.type == PAYMENT_FAILED:
            self._handle_payment_failed(event)
        else:
            logger.info("webhook_event_ignored", extra=log_extra)

    def _handle_payment_succeeded(self, event: GatewayEvent) -> None:
        order = self._order_for_event(event)
        if order is None:
            return
        if not order.is_pending:
            logger.info(
                "webhook_already_handled",
                extra={"order_id": str(order.id), "status": order.status.value, "event_id": event.id},
            )
            return
        try:
            self._apply_confirmation(order.id, event.payment_reference, TRIGGER_WEBHOOK)
        except InsufficientStock as exc:
            # The order stays pending; Stripe redelivers on non-2xx and a
            # later delivery confirms it once the product is restocked.
            logger.error(
                "webhook_confirmation_oversold",
                extra={
                    "order_id": str(order.id),
                    "product_id": exc.product_id,
                    "available": exc.available,
                    "event_id": event.id,
                },
            )
            raise

    def _handle_payment_failed(self, event: GatewayEvent) -> None:
        order = self._order_for_event(event)
        if order is None:
            return
        if order.status == OrderStatus.CANCELLED:
            return
        if order.status != OrderStatus.PENDING:
            logger.warning(
                "payment_failed_for_non_pending_order",
                extra={"order_id": str(order.id), "status": order.status.value, "event_id": event.id},
            )
            return

        with transaction.atomic():
            if not self.order_repo.mark_payment_failed(order.id, timezone.now()):
                logger.info("payment_failed_race_lost", extra={"order_id": str(order.id)})
                return
            self.outbox_repo.add_event(
                OrderPaymentFailed(
                    event_id=uuid4(),
                    aggregate_id=order.id,
                    event_type="OrderPaymentFailed",
                    order_number=order.order_number,
                    user_id=order.user_id,
                    payment_reference=event.payment_reference,
                ),
                "Order",
            )
        logger.info(
            "order_payment_failed",
            extra={"order_id": str(order.id), "payment_reference": event.payment_reference},
        )

    def _order_for_event(self, event: GatewayEvent) -> Order | None:
        order = None
        if event.payment_reference:
            order = self.order_repo.get_by_payment_reference(event.payment_reference)
        if order is None:
            logger.warning(
                "webhook_order_not_found",
                extra={"event_id": event.id, "payment_reference": event.payment_reference},
            )
        return order

    def _apply_confirmation(self, order_id: UUID, payment_reference: str, trigger: str) -> ConfirmationResult:
        """Decrement stock, confirm and clear the cart in one transaction."""
        try:
            with transaction.atomic():
                with order_lock(order_id):
                    order = self.order_repo.get_for_update(order_id)
                    if order is None:
                        raise NotFound("Order not found")
                    if not order.is_pending:
                        logger.info(
                            "confirmation_skipped",
                            extra={"order_id": str(order_id), "status": order.status.value, "trigger": trigger},
                        )
                        return ConfirmationResult(order=order, applied=False)

                    self._decrement_stock(order)

                    if not self.order_repo.mark_confirmed(order.id, payment_reference, timezone.now()):
                        raise _LostConfirmationRace()

                    self.cart_repo.clear(order.user_id)
                    self.outbox_repo.add_event(
                        OrderConfirmed(
                            event_id=uuid4(),
                            aggregate_id=order.id,
                            event_type="OrderConfirmed",
                            order_number=order.order_number,
                            user_id=order.user_id,
                            payment_reference=payment_reference,
                            trigger=trigger,
                        ),
                        "Order",
                    )
        except _LostConfirmationRace:
            current = self.order_repo.get_by_id(order_id)
            logger.info(
                "confirmation_race_lost",
                extra={"order_id": str(order_id), "trigger": trigger},
            )
            return ConfirmationResult(order=current, applied=False)
        except InsufficientStock as exc:
            logger.warning(
                "confirmation_insufficient_stock",
                extra={
                    "order_id": str(order_id),
                    "product_id": exc.product_id,
                    "available": exc.available,
                    "requested": exc.requested,
                    "trigger": trigger,
                },
            )
            raise

        confirmed = self.order_repo.get_by_id(order_id)
        logger.info(
            "order_confirmed",
            extra={
                "order_id": str(order_id),
                "order_number": confirmed.order_number,
                "payment_reference": payment_reference,
                "trigger": trigger,
            },
        )
        return ConfirmationResult(order=confirmed, applied=True)

    def _decrement_stock(self, order: Order) -> None:
        """Conditionally decrement every line item; any failure aborts the transaction."""
        for item in order.items:
            if self.product_repo.decrement_stock(item.product_id, item.quantity):
                continue
            available = self.product_repo.get_stock(item.product_id)
            if available is None:
                raise NotFound(f"Product {item.product_id} not found", productId=item.product_id)
            raise InsufficientStock(
                item.product_id,
                available=available,
                requested=item.quantity,
                product_name=item.product_name,
            )
