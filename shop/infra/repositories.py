"""
Infrastructure repositories for orders, products and carts.

Every mutation that takes part in order confirmation is a single conditional
UPDATE, so the database decides who wins when two triggers race.
"""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from django.db import transaction
from django.db.models import Count, F
from django.utils import timezone

from shop.domain.order import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingAddress,
)
from shop.infra.models import (
    CartItemORM,
    CartORM,
    OrderItemORM,
    OrderORM,
    ProductORM,
)


def _as_uuid(value) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class ProductRepository:
    """Repository for the inventory view of products."""

    def get_many(self, product_ids: list[str]) -> dict[str, ProductORM]:
        products = ProductORM.objects.filter(product_id__in=product_ids)
        return {product.product_id: product for product in products}

    def get_stock(self, product_id: str) -> int | None:
        return (
            ProductORM.objects
            .filter(product_id=product_id)
            .values_list("stock_quantity", flat=True)
            .first()
        )

    def decrement_stock(self, product_id: str, quantity: int) -> bool:
        """Subtract ``quantity`` only if at least that much is in stock."""
        updated = (
            ProductORM.objects
            .filter(product_id=product_id, stock_quantity__gte=quantity)
            .update(
                stock_quantity=F("stock_quantity") - quantity,
                updated_at=timezone.now(),
            )
        )
        return updated == 1

    def increment_stock(self, product_id: str, quantity: int) -> bool:
        updated = (
            ProductORM.objects
            .filter(product_id=product_id)
            .update(
                stock_quantity=F("stock_quantity") + quantity,
                updated_at=timezone.now(),
            )
        )
        return updated == 1


class CartRepository:
    """Repository for per-user carts."""

    def get_items(self, user_id: int) -> list[tuple[str, int]]:
        return list(
            CartItemORM.objects
            .filter(cart__user_id=user_id)
            .order_by("id")
            .values_list("product_id", "quantity")
        )

    def clear(self, user_id: int) -> int:
        """Remove all items but keep the cart itself."""
        deleted, _ = CartItemORM.objects.filter(cart__user_id=user_id).delete()
        CartORM.objects.filter(user_id=user_id).update(updated_at=timezone.now())
        return deleted


class OrderRepository:
    """Repository for Order aggregate."""

    def get_by_id(self, order_id: UUID | str) -> Order | None:
        """Get order by ID with items."""
        order_uuid = _as_uuid(order_id)
        if order_uuid is None:
            return None
        order_orm = (
            OrderORM.objects
            .prefetch_related("items")
            .filter(id=order_uuid)
            .first()
        )
        return self._to_domain(order_orm) if order_orm else None

    def get_for_update(self, order_id: UUID | str) -> Order | None:
        """Get order and lock its row until the surrounding transaction ends."""
        order_uuid = _as_uuid(order_id)
        if order_uuid is None:
            return None
        order_orm = (
            OrderORM.objects
            .select_for_update()
            .filter(id=order_uuid)
            .first()
        )
        return self._to_domain(order_orm) if order_orm else None

    def get_by_payment_reference(self, payment_reference: str) -> Order | None:
        order_orm = (
            OrderORM.objects
            .prefetch_related("items")
            .filter(payment_reference=payment_reference)
            .first()
        )
        return self._to_domain(order_orm) if order_orm else None

    def list_by_user(self, user_id: int, status: OrderStatus | None = None) -> list[Order]:
        """Get user orders, newest first."""
        queryset = OrderORM.objects.filter(user_id=user_id)
        if status is not None:
            queryset = queryset.filter(status=status.value)
        queryset = queryset.prefetch_related("items").order_by("-created_at")
        return [self._to_domain(order_orm) for order_orm in queryset]

    def status_counts(self, user_id: int) -> dict[str, int]:
        counts = {"all": 0}
        counts.update({status.value: 0 for status in OrderStatus})
        rows = (
            OrderORM.objects
            .filter(user_id=user_id)
            .values("status")
            .annotate(count=Count("id"))
        )
        for row in rows:
            if row["status"] in counts:
                counts[row["status"]] = row["count"]
                counts["all"] += row["count"]
        return counts

    @transaction.atomic
    def create(self, order: Order) -> UUID:
        """Persist a new order with its line item snapshot."""
        order_orm = OrderORM.objects.create(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            subtotal=order.subtotal,
            discount=order.discount,
            promo_code=order.promo_code,
            shipping=order.shipping,
            tax=order.tax,
            total=order.total,
            status=order.status.value,
            payment_method=order.payment_method.value,
            payment_status=order.payment_status.value,
            payment_reference=order.payment_reference,
            shipping_address=order.shipping_address.to_dict(),
            estimated_delivery=order.estimated_delivery,
        )
        OrderItemORM.objects.bulk_create([
            OrderItemORM(
                order=order_orm,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                price=item.price,
                total_price=item.line_total,
            )
            for item in order.items
        ])
        return order_orm.id

    def transition(self, order_id: UUID, expected_status: OrderStatus, **changes) -> bool:
        """Compare-and-swap: apply ``changes`` only if status is still ``expected_status``."""
        values = {
            key: value.value if isinstance(value, (OrderStatus, PaymentStatus)) else value
            for key, value in changes.items()
        }
        values["updated_at"] = timezone.now()
        updated = (
            OrderORM.objects
            .filter(id=order_id, status=expected_status.value)
            .update(**values)
        )
        return updated == 1

    def mark_confirmed(self, order_id: UUID, payment_reference: str, confirmed_at: datetime) -> bool:
        return self.transition(
            order_id,
            OrderStatus.PENDING,
            status=OrderStatus.CONFIRMED,
            payment_status=PaymentStatus.PAID,
            payment_reference=payment_reference,
            confirmed_at=confirmed_at,
        )

    def mark_payment_failed(self, order_id: UUID, failed_at: datetime) -> bool:
        return self.transition(
            order_id,
            OrderStatus.PENDING,
            status=OrderStatus.CANCELLED,
            payment_status=PaymentStatus.FAILED,
            cancelled_at=failed_at,
            notes="Payment failed",
        )

    def mark_cancelled(
        self,
        order_id: UUID,
        expected_status: OrderStatus,
        reason: str,
        cancelled_at: datetime,
    ) -> bool:
        return self.transition(
            order_id,
            expected_status,
            status=OrderStatus.CANCELLED,
            cancelled_at=cancelled_at,
            notes=reason,
        )

    def _to_domain(self, order_orm: OrderORM) -> Order:
        """Convert ORM model to domain entity."""
        items = [
            OrderItem(
                product_id=item_orm.product_id,
                product_name=item_orm.product_name,
                quantity=item_orm.quantity,
                price=item_orm.price,
            )
            for item_orm in order_orm.items.all()
        ]
        address = order_orm.shipping_address or {}
        return Order(
            id=order_orm.id,
            order_number=order_orm.order_number,
            user_id=order_orm.user_id,
            items=items,
            shipping_address=ShippingAddress(
                full_name=address.get("fullName", ""),
                address=address.get("address", ""),
                city=address.get("city", ""),
                state=address.get("state", ""),
                zip_code=address.get("zipCode", ""),
                country=address.get("country", ""),
            ),
            subtotal=order_orm.subtotal,
            discount=order_orm.discount,
            promo_code=order_orm.promo_code,
            shipping=order_orm.shipping,
            tax=order_orm.tax,
            total=order_orm.total,
            status=OrderStatus(order_orm.status),
            payment_method=PaymentMethod(order_orm.payment_method),
            payment_status=PaymentStatus(order_orm.payment_status),
            payment_reference=order_orm.payment_reference,
            created_at=order_orm.created_at,
            confirmed_at=order_orm.confirmed_at,
            estimated_delivery=order_orm.estimated_delivery,
            delivered_at=order_orm.delivered_at,
            cancelled_at=order_orm.cancelled_at,
            notes=order_orm.notes,
            tracking_number=order_orm.tracking_number,
        )
