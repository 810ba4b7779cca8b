"""
Checkout: validate the client's cart and open a pending order with a Stripe
payment intent.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from shop.domain.errors import InsufficientStock, NotFound, PriceMismatch, ValidationError
from shop.domain.events import OrderCreated
from shop.domain.order import (
    MONEY_EPSILON,
    Order,
    OrderItem,
    ShippingAddress,
    parse_amount,
)
from shop.infra.gateway import StripeGateway
from shop.infra.outbox import OutboxRepository
from shop.infra.repositories import CartRepository, OrderRepository, ProductRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    client_secret: str | None
    order_id: UUID
    order_number: str
    payment_reference: str


def parse_items(raw_items) -> list[OrderItem]:
    """Build line items from the client payload."""
    if not raw_items or not isinstance(raw_items, list):
        raise ValidationError("No items in cart")
    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("Invalid cart item")
        product_id = str(raw.get("productId") or "").strip()
        try:
            quantity = int(raw.get("quantity"))
        except (TypeError, ValueError):
            raise ValidationError("Quantity must be an integer", productId=product_id)
        items.append(
            OrderItem(
                product_id=product_id,
                quantity=quantity,
                price=parse_amount(raw.get("price"), "price"),
                product_name=str(raw.get("name") or ""),
            )
        )
    return items


class CheckoutService:
    """Creates payment intents and the pending orders that track them."""

    def __init__(
        self,
        gateway: StripeGateway,
        order_repo: OrderRepository | None = None,
        product_repo: ProductRepository | None = None,
        cart_repo: CartRepository | None = None,
        outbox_repo: OutboxRepository | None = None,
        minimum_charge: Decimal | None = None,
        default_country: str | None = None,
        delivery_days: int | None = None,
    ):
        self.gateway = gateway
        self.order_repo = order_repo or OrderRepository()
        self.product_repo = product_repo or ProductRepository()
        self.cart_repo = cart_repo or CartRepository()
        self.outbox_repo = outbox_repo or OutboxRepository()
        self.minimum_charge = (
            minimum_charge if minimum_charge is not None else Decimal(str(settings.PAYMENT_MINIMUM_CHARGE))
        )
        self.default_country = default_country if default_country is not None else settings.DEFAULT_SHIPPING_COUNTRY
        self.delivery_days = delivery_days if delivery_days is not None else settings.ESTIMATED_DELIVERY_DAYS

    def validate_cart_items(self, items: list[OrderItem], user_id: int) -> None:
        """Check existence, stock and price of every item against the catalog.

        Advisory only: stock can still run out before confirmation, which
        re-checks it atomically.
        """
        if not self.cart_repo.get_items(user_id):
            raise ValidationError("Cart is empty")

        products = self.product_repo.get_many([item.product_id for item in items])
        for item in items:
            product = products.get(item.product_id)
            if product is None:
                raise NotFound(f"Product {item.product_id} not found", productId=item.product_id)
            if product.stock_quantity < item.quantity:
                raise InsufficientStock(
                    item.product_id,
                    available=product.stock_quantity,
                    requested=item.quantity,
                    product_name=product.name,
                )
            if abs(product.retail_price - item.price) > MONEY_EPSILON:
                raise PriceMismatch(
                    item.product_id,
                    expected=product.retail_price,
                    received=item.price,
                    product_name=product.name,
                )

    def create_payment_intent(self, user_id: int, payload: dict) -> CheckoutResult:
        items = parse_items(payload.get("items"))
        address = ShippingAddress.from_payload(payload.get("shippingAddress"), self.default_country)

        discount = payload.get("discount")
        if discount is None:
            discount = payload.get("promoDiscount")
        promo_code = str(payload.get("promoCode") or "").strip() or None

        self.validate_cart_items(items, user_id)

        # The client's name for a product is display text only; prefer the catalog's.
        products = self.product_repo.get_many([item.product_id for item in items])
        for item in items:
            item.product_name = products[item.product_id].name

        order = Order(
            user_id=user_id,
            items=items,
            shipping_address=address,
            subtotal=parse_amount(payload.get("subtotal"), "subtotal"),
            discount=parse_amount(discount, "discount"),
            shipping=parse_amount(payload.get("shipping"), "shipping"),
            tax=parse_amount(payload.get("tax"), "tax"),
            total=parse_amount(payload.get("total"), "total"),
            promo_code=promo_code,
            estimated_delivery=timezone.now() + timedelta(days=self.delivery_days),
        )
        order.validate_totals()
        if order.total < self.minimum_charge:
            raise ValidationError(
                f"Order total must be at least {self.minimum_charge}",
                minimum=str(self.minimum_charge),
            )

        intent = self.gateway.create_payment_intent(
            order.total,
            metadata={
                "userId": str(user_id),
                "orderNumber": order.order_number,
                "itemCount": str(len(items)),
                "promoCode": promo_code or "",
            },
            idempotency_key=order.order_number,
        )
        order.payment_reference = intent.id

        with transaction.atomic():
            self.order_repo.create(order)
            self.outbox_repo.add_event(
                OrderCreated(
                    event_id=uuid4(),
                    aggregate_id=order.id,
                    event_type="OrderCreated",
                    order_number=order.order_number,
                    user_id=user_id,
                    total=order.total,
                    items_count=len(items),
                    payment_reference=intent.id,
                ),
                "Order",
            )

        logger.info(
            "payment_intent_created",
            extra={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "payment_reference": intent.id,
                "total": str(order.total),
            },
        )
        return CheckoutResult(
            client_secret=intent.client_secret,
            order_id=order.id,
            order_number=order.order_number,
            payment_reference=intent.id,
        )
