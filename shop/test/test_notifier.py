"""
Tests for outbox-driven customer notifications.
"""
from io import StringIO

from django.core import mail
from django.core.management import call_command
from django.test import TestCase, override_settings

from shop.infra.notifier import MAX_DELIVERY_ATTEMPTS, OrderNotifier
from shop.infra.outbox import OutboxEvent
from shop.services.cancellation import CancellationService
from shop.services.confirmation import OrderConfirmationService
from shop.test.factories import FakeGateway, make_order, make_product, make_user


@override_settings(
    EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend",
    DEFAULT_FROM_EMAIL="orders@example.com",
)
class OrderNotifierTest(TestCase):

    def setUp(self):
        self.user = make_user()
        make_product("P1", stock=5)
        self.order = make_order(self.user, [("P1", 1, "1500.00")], payment_reference="pi_1")
        gateway = FakeGateway()
        gateway.add_intent("pi_1")
        OrderConfirmationService(gateway=gateway).confirm_from_client("pi_1", self.order.id, self.user.pk)

    def test_confirmation_email_is_sent_once(self):
        processed = OrderNotifier().process_outbox_events()

        self.assertEqual(processed, 1)
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ["customer@example.com"])
        self.assertEqual(message.from_email, "orders@example.com")
        self.assertEqual(message.subject, f"Your order {self.order.order_number} is confirmed")

        self.assertEqual(OrderNotifier().process_outbox_events(), 0)
        self.assertEqual(len(mail.outbox), 1)

    def test_cancellation_email(self):
        OrderNotifier().process_outbox_events()
        CancellationService().cancel_order(self.order.id, self.user.pk, "Ordered twice")

        OrderNotifier().process_outbox_events()

        self.assertEqual(len(mail.outbox), 2)
        self.assertIn("Ordered twice", mail.outbox[1].body)

    def test_failed_delivery_is_retried_later(self):
        def broken_mailer(*args, **kwargs):
            raise ConnectionRefusedError("smtp down")

        processed = OrderNotifier(mailer=broken_mailer).process_outbox_events()

        self.assertEqual(processed, 0)
        event = OutboxEvent.objects.get(event_type="OrderConfirmed")
        self.assertFalse(event.processed)
        self.assertEqual(event.retry_count, 1)

        self.assertEqual(OrderNotifier().process_outbox_events(), 1)
        self.assertEqual(len(mail.outbox), 1)

    def test_gives_up_after_max_attempts(self):
        OutboxEvent.objects.update(retry_count=MAX_DELIVERY_ATTEMPTS)
        self.assertEqual(OrderNotifier().process_outbox_events(), 0)
        self.assertEqual(len(mail.outbox), 0)

    def test_user_without_email_is_skipped(self):
        self.user.email = ""
        self.user.save()

        self.assertEqual(OrderNotifier().process_outbox_events(), 1)
        self.assertEqual(len(mail.outbox), 0)

    def test_management_command(self):
        out = StringIO()
        call_command("process_outbox", "--limit", "10", stdout=out)

        self.assertIn("Processed 1 events", out.getvalue())
        self.assertEqual(len(mail.outbox), 1)
