from django.contrib import admin

from shop.infra.models import (
    CartItemORM,
    CartORM,
    OrderItemORM,
    OrderORM,
    ProductORM,
)
from shop.infra.outbox import OutboxEvent


@admin.register(ProductORM)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("product_id", "name", "brand", "retail_price", "stock_quantity", "updated_at")
    search_fields = ("product_id", "name", "brand")


class CartItemInline(admin.TabularInline):
    model = CartItemORM
    extra = 0


@admin.register(CartORM)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "updated_at")
    inlines = (CartItemInline,)


class OrderItemInline(admin.TabularInline):
    model = OrderItemORM
    extra = 0
    readonly_fields = ("product_id", "product_name", "quantity", "price", "total_price")


@admin.register(OrderORM)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "user", "status", "payment_status", "total", "created_at")
    list_filter = ("status", "payment_status", "created_at")
    search_fields = ("order_number", "payment_reference", "user__username")
    # Status changes go through the services so stock stays consistent.
    readonly_fields = ("id", "status", "payment_status", "payment_reference", "confirmed_at", "cancelled_at")
    inlines = (OrderItemInline,)


@admin.register(OutboxEvent)
class OutboxEventAdmin(admin.ModelAdmin):
    list_display = ("id", "aggregate_id", "aggregate_type", "event_type", "processed", "retry_count", "created_at")
    list_filter = ("processed", "aggregate_type", "event_type", "created_at")
    readonly_fields = ("id", "aggregate_id", "aggregate_type", "event_type", "event_data", "processed", "processed_at", "retry_count")
