"""
Unit tests for domain models.
"""
import re
from decimal import Decimal

from django.test import SimpleTestCase

from shop.domain.errors import InsufficientStock, InvalidOrderState, ValidationError
from shop.domain.order import (
    Order,
    OrderItem,
    OrderStatus,
    ShippingAddress,
    generate_order_number,
    parse_amount,
)


def _order(**overrides):
    items = [
        OrderItem("P1", 2, Decimal("1500.00")),
        OrderItem("P2", 1, Decimal("499.50")),
    ]
    values = {
        "user_id": 1,
        "items": items,
        "shipping_address": ShippingAddress(full_name="Asha Rao", address="12 MG Road"),
        "subtotal": Decimal("3499.50"),
        "discount": Decimal("100.00"),
        "shipping": Decimal("50.00"),
        "tax": Decimal("10.00"),
        "total": Decimal("3459.50"),
    }
    values.update(overrides)
    return Order(**values)


class OrderItemTest(SimpleTestCase):
    """Tests for OrderItem value object."""

    def test_line_total(self):
        item = OrderItem("P1", 3, Decimal("100.10"))
        self.assertEqual(item.line_total, Decimal("300.30"))

    def test_name_defaults_to_product_id(self):
        self.assertEqual(OrderItem("P1", 1, Decimal("1.00")).product_name, "P1")

    def test_zero_quantity_fails(self):
        """Test that quantity below one raises error."""
        with self.assertRaises(ValidationError):
            OrderItem("P1", 0, Decimal("100.00"))

    def test_negative_price_fails(self):
        with self.assertRaises(ValidationError):
            OrderItem("P1", 1, Decimal("-1.00"))


class OrderTest(SimpleTestCase):
    """Tests for Order aggregate."""

    def test_new_order_is_pending(self):
        order = _order()
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertTrue(order.is_pending)
        self.assertTrue(order.can_cancel)
        self.assertTrue(re.fullmatch(r"ORD-\d{13}-[A-Z0-9]{9}", order.order_number))

    def test_valid_totals(self):
        _order().validate_totals()

    def test_totals_tolerate_rounding(self):
        _order(total=Decimal("3459.51")).validate_totals()

    def test_total_mismatch_fails(self):
        """Test that a tampered total is rejected."""
        with self.assertRaises(ValidationError) as context:
            _order(total=Decimal("1.00")).validate_totals()
        self.assertEqual(context.exception.details["expected"], "3459.50")

    def test_subtotal_mismatch_fails(self):
        with self.assertRaises(ValidationError):
            _order(subtotal=Decimal("3000.00"), total=Decimal("2960.00")).validate_totals()

    def test_empty_order_fails(self):
        with self.assertRaises(ValidationError) as context:
            _order(items=[], subtotal=Decimal("0.00"), total=Decimal("0.00")).validate_totals()
        self.assertEqual(context.exception.message, "No items in cart")

    def test_fulfilment_moves_one_step(self):
        order = _order(status=OrderStatus.CONFIRMED)
        self.assertEqual(order.next_fulfilment_status(OrderStatus.PROCESSING), OrderStatus.PROCESSING)

    def test_fulfilment_cannot_skip_steps(self):
        order = _order(status=OrderStatus.CONFIRMED)
        with self.assertRaises(InvalidOrderState):
            order.next_fulfilment_status(OrderStatus.DELIVERED)

    def test_pending_order_cannot_be_fulfilled(self):
        with self.assertRaises(InvalidOrderState):
            _order().next_fulfilment_status(OrderStatus.PROCESSING)

    def test_cancel_allowed_only_before_processing(self):
        _order(status=OrderStatus.CONFIRMED).ensure_cancellable()
        for status in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED):
            with self.assertRaises(InvalidOrderState):
                _order(status=status).ensure_cancellable()


class ParsingTest(SimpleTestCase):

    def test_parse_amount(self):
        self.assertEqual(parse_amount("12.346", "total"), Decimal("12.35"))
        self.assertEqual(parse_amount(7, "total"), Decimal("7.00"))
        self.assertEqual(parse_amount(None, "tax"), Decimal("0.00"))

    def test_parse_amount_rejects_garbage(self):
        for value in ("abc", "-1", "NaN"):
            with self.assertRaises(ValidationError):
                parse_amount(value, "total")

    def test_shipping_address_requires_name_and_street(self):
        with self.assertRaises(ValidationError) as context:
            ShippingAddress.from_payload({"fullName": "Asha Rao"})
        self.assertEqual(context.exception.message, "Complete shipping address is required")

    def test_shipping_address_default_country(self):
        address = ShippingAddress.from_payload(
            {"fullName": "Asha Rao", "address": "12 MG Road", "zipCode": "411001"},
            default_country="India",
        )
        self.assertEqual(address.country, "India")
        self.assertEqual(address.to_dict()["zipCode"], "411001")

    def test_order_numbers_are_unique(self):
        self.assertEqual(len({generate_order_number() for _ in range(100)}), 100)


class ErrorPayloadTest(SimpleTestCase):

    def test_insufficient_stock_payload(self):
        error = InsufficientStock("P1", available=1, requested=2, product_name="Oud Noir")
        self.assertEqual(error.status_code, 409)
        self.assertEqual(
            error.to_dict(),
            {
                "code": "INSUFFICIENT_STOCK",
                "message": "Insufficient stock for Oud Noir. Only 1 available",
                "productId": "P1",
                "available": 1,
                "requested": 2,
            },
        )
