from __future__ import annotations

from uuid import uuid4

from django.conf import settings
from django.db import models
from django.db.models import Q

ORDER_STATUS_CHOICES = (
    ("pending", "Pending"),
    ("confirmed", "Confirmed"),
    ("processing", "Processing"),
    ("shipped", "Shipped"),
    ("delivered", "Delivered"),
    ("cancelled", "Cancelled"),
)

PAYMENT_STATUS_CHOICES = (
    ("pending", "Pending"),
    ("paid", "Paid"),
    ("failed", "Failed"),
    ("refunded", "Refunded"),
)

PAYMENT_METHOD_CHOICES = (
    ("card", "Card"),
    ("cod", "Cash on delivery"),
    ("upi", "UPI"),
    ("netbanking", "Net banking"),
)


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ProductORM(TimeStampedModel):
    product_id = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    brand = models.CharField(max_length=120, blank=True, default="")
    retail_price = models.DecimalField(max_digits=12, decimal_places=2)
    # Mutated only through conditional decrement / restore increment.
    stock_quantity = models.PositiveIntegerField(default=0)

    def __str__(self):
        return f"{self.name} ({self.product_id})"


class CartORM(TimeStampedModel):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="cart",
    )


class CartItemORM(TimeStampedModel):
    cart = models.ForeignKey(
        CartORM,
        on_delete=models.CASCADE,
        related_name="items",
    )
    product_id = models.CharField(max_length=64)
    quantity = models.PositiveIntegerField(default=1)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=("cart", "product_id"), name="cart_item_unique_product"),
        ]


class OrderORM(TimeStampedModel):
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    order_number = models.CharField(max_length=40, unique=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )

    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    promo_code = models.CharField(max_length=64, null=True, blank=True)
    shipping = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2)

    status = models.CharField(max_length=20, choices=ORDER_STATUS_CHOICES, default="pending")
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, default="card")
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default="pending")
    payment_reference = models.CharField(max_length=255, unique=True, null=True, blank=True)

    shipping_address = models.JSONField()

    confirmed_at = models.DateTimeField(null=True, blank=True)
    estimated_delivery = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True, default="")
    tracking_number = models.CharField(max_length=64, blank=True, default="")

    class Meta:
        indexes = [
            models.Index(fields=("user", "-created_at"), name="order_user_created_idx"),
            models.Index(fields=("status",), name="order_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(subtotal__gte=0)
                    & Q(discount__gte=0)
                    & Q(shipping__gte=0)
                    & Q(tax__gte=0)
                    & Q(total__gte=0)
                ),
                name="order_amounts_non_negative",
            ),
        ]

    def __str__(self):
        return self.order_number


class OrderItemORM(TimeStampedModel):
    order = models.ForeignKey(
        OrderORM,
        on_delete=models.CASCADE,
        related_name="items",
    )
    product_id = models.CharField(max_length=64)
    product_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=12, decimal_places=2)
    total_price = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ("id",)
