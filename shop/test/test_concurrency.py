"""
Race tests for confirmation triggers running on separate connections.

Each trigger runs in its own thread with its own database connection. On
PostgreSQL they serialize on row and advisory locks, on SQLite on the
database write lock taken at BEGIN IMMEDIATE.
"""
import threading
import time
from unittest.mock import patch

from django.db import connections
from django.test import TransactionTestCase

from shop.domain.order import OrderStatus
from shop.infra.gateway import PAYMENT_SUCCEEDED, GatewayEvent
from shop.infra.outbox import OutboxEvent
from shop.infra.repositories import OrderRepository
from shop.services.confirmation import OrderConfirmationService
from shop.test.factories import FakeGateway, make_order, make_product, make_user, stock_of


class ConcurrentConfirmationTest(TransactionTestCase):

    def run_concurrently(self, *callables):
        barrier = threading.Barrier(len(callables))
        outcomes = [None] * len(callables)

        def runner(index, func):
            try:
                barrier.wait()
                outcomes[index] = func()
            except Exception as e:
                outcomes[index] = e
            finally:
                connections.close_all()

        threads = [threading.Thread(target=runner, args=(i, func)) for i, func in enumerate(callables)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return outcomes

    def test_client_and_webhook_race_decrements_once(self):
        gateway = FakeGateway()
        gateway.add_intent("pi_1")
        service = OrderConfirmationService(gateway=gateway)
        user = make_user()
        make_product("P1", stock=5)
        order = make_order(user, [("P1", 2, "1500.00")], payment_reference="pi_1")
        event = GatewayEvent(id="evt_1", type=PAYMENT_SUCCEEDED, payment_reference="pi_1")

        outcomes = self.run_concurrently(
            lambda: service.confirm_from_client("pi_1", order.id, user.pk),
            lambda: service.confirm_from_webhook(event),
            lambda: service.confirm_from_client("pi_1", order.id, user.pk),
        )

        for outcome in outcomes:
            self.assertNotIsInstance(outcome, Exception)
        self.assertEqual(OrderRepository().get_by_id(order.id).status, OrderStatus.CONFIRMED)
        self.assertEqual(stock_of("P1"), 3)
        self.assertEqual(OutboxEvent.objects.filter(event_type="OrderConfirmed").count(), 1)

    def test_both_triggers_past_pending_check_confirm_once(self):
        """Test that a trigger which read pending before the other committed gets the confirmed order."""
        gateway = FakeGateway()
        gateway.add_intent("pi_1")
        service = OrderConfirmationService(gateway=gateway)
        user = make_user()
        make_product("P1", stock=5)
        order = make_order(user, [("P1", 2, "1500.00")], payment_reference="pi_1")
        event = GatewayEvent(id="evt_1", type=PAYMENT_SUCCEEDED, payment_reference="pi_1")

        decrement = service._decrement_stock

        def slow_decrement(locked_order):
            time.sleep(0.3)
            decrement(locked_order)

        with patch.object(service, "_decrement_stock", side_effect=slow_decrement):
            outcomes = self.run_concurrently(
                lambda: service.confirm_from_client("pi_1", order.id, user.pk),
                lambda: service.confirm_from_webhook(event),
            )

        for outcome in outcomes:
            self.assertNotIsInstance(outcome, Exception)
        self.assertEqual(outcomes[0].order.status, OrderStatus.CONFIRMED)
        self.assertEqual(stock_of("P1"), 3)
        self.assertEqual(OutboxEvent.objects.filter(event_type="OrderConfirmed").count(), 1)

    def test_two_orders_compete_for_last_unit(self):
        gateway = FakeGateway()
        gateway.add_intent("pi_a")
        gateway.add_intent("pi_b")
        service = OrderConfirmationService(gateway=gateway)
        alice = make_user("alice")
        bob = make_user("bob")
        make_product("P1", stock=1)
        order_a = make_order(alice, [("P1", 1, "1500.00")], payment_reference="pi_a")
        order_b = make_order(bob, [("P1", 1, "1500.00")], payment_reference="pi_b")

        outcomes = self.run_concurrently(
            lambda: service.confirm_from_client("pi_a", order_a.id, alice.pk),
            lambda: service.confirm_from_client("pi_b", order_b.id, bob.pk),
        )

        failures = [outcome for outcome in outcomes if isinstance(outcome, Exception)]
        self.assertEqual(len(failures), 1)
        self.assertEqual(failures[0].code, "INSUFFICIENT_STOCK")
        self.assertEqual(stock_of("P1"), 0)
