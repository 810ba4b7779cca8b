"""
Tests for Stripe webhook handling.
"""
from django.test import TestCase

from shop.domain.errors import InsufficientStock, SignatureInvalid
from shop.domain.order import OrderStatus, PaymentStatus
from shop.infra.gateway import PAYMENT_FAILED, PAYMENT_SUCCEEDED
from shop.infra.models import CartItemORM, ProductORM
from shop.infra.outbox import OutboxEvent
from shop.infra.repositories import OrderRepository
from shop.services.confirmation import OrderConfirmationService
from shop.test.factories import (
    FakeGateway,
    event_payload,
    make_cart,
    make_order,
    make_product,
    make_user,
    sign_payload,
    stock_of,
)


class WebhookTest(TestCase):

    def setUp(self):
        self.service = OrderConfirmationService(gateway=FakeGateway())
        self.user = make_user()
        make_product("P1", stock=5)
        make_cart(self.user, [("P1", 2)])
        self.order = make_order(self.user, [("P1", 2, "1500.00")], payment_reference="pi_1")

    def deliver(self, event_type, intent_id="pi_1", event_id="evt_1"):
        payload = event_payload(event_type, intent_id, event_id)
        return self.service.process_webhook(payload.encode("utf-8"), sign_payload(payload))

    def status(self):
        return OrderRepository().get_by_id(self.order.id)

    def test_succeeded_event_confirms_order(self):
        event = self.deliver(PAYMENT_SUCCEEDED)

        self.assertEqual(event.payment_reference, "pi_1")
        order = self.status()
        self.assertEqual(order.status, OrderStatus.CONFIRMED)
        self.assertEqual(order.payment_status, PaymentStatus.PAID)
        self.assertEqual(stock_of("P1"), 3)
        self.assertFalse(CartItemORM.objects.filter(cart__user=self.user).exists())

    def test_replayed_event_is_applied_once(self):
        """Test that Stripe redelivering the same event does not decrement twice."""
        self.deliver(PAYMENT_SUCCEEDED)
        self.deliver(PAYMENT_SUCCEEDED)
        self.deliver(PAYMENT_SUCCEEDED, event_id="evt_2")

        self.assertEqual(stock_of("P1"), 3)
        self.assertEqual(OutboxEvent.objects.filter(event_type="OrderConfirmed").count(), 1)

    def test_failed_payment_cancels_pending_order(self):
        self.deliver(PAYMENT_FAILED)

        order = self.status()
        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertEqual(order.payment_status, PaymentStatus.FAILED)
        self.assertIsNotNone(order.cancelled_at)
        self.assertEqual(stock_of("P1"), 5)
        self.assertTrue(OutboxEvent.objects.filter(event_type="OrderPaymentFailed").exists())

    def test_failed_payment_does_not_touch_confirmed_order(self):
        self.deliver(PAYMENT_SUCCEEDED)
        self.deliver(PAYMENT_FAILED, event_id="evt_2")

        order = self.status()
        self.assertEqual(order.status, OrderStatus.CONFIRMED)
        self.assertEqual(order.payment_status, PaymentStatus.PAID)
        self.assertEqual(stock_of("P1"), 3)

    def test_succeeded_after_failure_is_ignored(self):
        self.deliver(PAYMENT_FAILED)
        self.deliver(PAYMENT_SUCCEEDED, event_id="evt_2")

        self.assertEqual(self.status().status, OrderStatus.CANCELLED)
        self.assertEqual(stock_of("P1"), 5)

    def test_unknown_payment_reference_is_acknowledged(self):
        event = self.deliver(PAYMENT_SUCCEEDED, intent_id="pi_unknown")

        self.assertEqual(event.payment_reference, "pi_unknown")
        self.assertEqual(self.status().status, OrderStatus.PENDING)

    def test_other_event_types_are_ignored(self):
        self.deliver("charge.refunded")
        self.assertEqual(self.status().status, OrderStatus.PENDING)

    def test_oversold_order_stays_pending_and_asks_for_redelivery(self):
        make_product("P2", stock=0)
        order = make_order(self.user, [("P2", 1, "10.00")], payment_reference="pi_2")

        with self.assertRaises(InsufficientStock):
            self.deliver(PAYMENT_SUCCEEDED, intent_id="pi_2")

        self.assertEqual(OrderRepository().get_by_id(order.id).status, OrderStatus.PENDING)
        self.assertEqual(stock_of("P2"), 0)

    def test_redelivery_after_restock_confirms(self):
        make_product("P2", stock=0)
        order = make_order(self.user, [("P2", 1, "10.00")], payment_reference="pi_2")
        with self.assertRaises(InsufficientStock):
            self.deliver(PAYMENT_SUCCEEDED, intent_id="pi_2")

        ProductORM.objects.filter(product_id="P2").update(stock_quantity=4)
        self.deliver(PAYMENT_SUCCEEDED, intent_id="pi_2")

        self.assertEqual(OrderRepository().get_by_id(order.id).status, OrderStatus.CONFIRMED)
        self.assertEqual(stock_of("P2"), 3)

    def test_bad_signature_is_rejected(self):
        payload = event_payload(PAYMENT_SUCCEEDED, "pi_1")
        with self.assertRaises(SignatureInvalid):
            self.service.process_webhook(payload.encode("utf-8"), sign_payload(payload, secret="whsec_wrong"))
        self.assertEqual(self.status().status, OrderStatus.PENDING)

    def test_tampered_payload_is_rejected(self):
        payload = event_payload(PAYMENT_SUCCEEDED, "pi_1")
        header = sign_payload(payload)
        tampered = payload.replace("pi_1", "pi_9")
        with self.assertRaises(SignatureInvalid):
            self.service.process_webhook(tampered.encode("utf-8"), header)

    def test_missing_signature_is_rejected(self):
        payload = event_payload(PAYMENT_SUCCEEDED, "pi_1")
        with self.assertRaises(SignatureInvalid):
            self.service.process_webhook(payload.encode("utf-8"), None)
