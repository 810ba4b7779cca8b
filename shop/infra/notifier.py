"""
Notifier that turns outbox events into customer emails.
"""
from __future__ import annotations

import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail

from shop.infra.outbox import OutboxEvent, OutboxRepository

logger = logging.getLogger(__name__)

MAX_DELIVERY_ATTEMPTS = 5


class OrderNotifier:
    """Dispatches order lifecycle events from the outbox."""

    def __init__(self, outbox_repo: OutboxRepository | None = None, mailer=send_mail):
        self.outbox_repo = outbox_repo or OutboxRepository()
        self.mailer = mailer
        self._handlers = {
            "OrderConfirmed": self._notify_confirmed,
            "OrderCancelled": self._notify_cancelled,
            "OrderPaymentFailed": self._notify_payment_failed,
            "OrderStatusChanged": self._notify_status_changed,
        }

    def process_outbox_events(self, limit: int = 100) -> int:
        """Process unprocessed outbox events. Returns the number handled."""
        events = self.outbox_repo.get_unprocessed_events(limit=limit, max_retries=MAX_DELIVERY_ATTEMPTS)
        processed_count = 0

        for event_orm in events:
            try:
                self._process_event(event_orm)
            except Exception as e:
                # Leave it unprocessed; the next run retries it.
                self.outbox_repo.increment_retry(event_orm.id)
                logger.error(
                    "notification_failed",
                    extra={
                        "event_id": str(event_orm.id),
                        "event_type": event_orm.event_type,
                        "error": str(e),
                    },
                    exc_info=True,
                )
                continue
            self.outbox_repo.mark_processed(event_orm.id)
            processed_count += 1

        return processed_count

    def _process_event(self, event_orm: OutboxEvent) -> None:
        handler = self._handlers.get(event_orm.event_type)
        if handler is None:
            return
        handler(event_orm.event_data)

    def _recipient(self, event_data: dict) -> str | None:
        user = get_user_model().objects.filter(pk=event_data.get("user_id")).first()
        if user is None or not user.email:
            logger.warning(
                "notification_without_recipient",
                extra={"order_number": event_data.get("order_number")},
            )
            return None
        return user.email

    def _send(self, event_data: dict, subject: str, body: str) -> None:
        recipient = self._recipient(event_data)
        if recipient is None:
            return
        self.mailer(subject, body, settings.DEFAULT_FROM_EMAIL, [recipient], fail_silently=False)
        logger.info(
            "notification_sent",
            extra={"order_number": event_data.get("order_number"), "subject": subject},
        )

    def _notify_confirmed(self, event_data: dict) -> None:
        order_number = event_data["order_number"]
        self._send(
            event_data,
            f"Your order {order_number} is confirmed",
            f"Thank you for shopping at The Cologne Hub.\n\n"
            f"We received your payment and order {order_number} is confirmed.",
        )

    def _notify_cancelled(self, event_data: dict) -> None:
        order_number = event_data["order_number"]
        self._send(
            event_data,
            f"Your order {order_number} was cancelled",
            f"Order {order_number} was cancelled.\nReason: {event_data.get('reason') or 'n/a'}",
        )

    def _notify_payment_failed(self, event_data: dict) -> None:
        order_number = event_data["order_number"]
        self._send(
            event_data,
            f"Payment failed for order {order_number}",
            f"We could not collect payment for order {order_number}. "
            f"The order was cancelled and no items were reserved.",
        )

    def _notify_status_changed(self, event_data: dict) -> None:
        order_number = event_data["order_number"]
        status = event_data["status"]
        self._send(
            event_data,
            f"Order {order_number} is {status}",
            f"Your order {order_number} is now {status}.",
        )
