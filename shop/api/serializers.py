"""
JSON shapes for orders as returned by the REST API.
"""
from __future__ import annotations

from shop.domain.order import Order


def _iso(value):
    return value.isoformat() if value else None


def serialize_order(order: Order) -> dict:
    return {
        "id": str(order.id),
        "orderId": order.order_number,
        "status": order.status.value,
        "paymentStatus": order.payment_status.value,
        "paymentMethod": order.payment_method.value,
        "paymentId": order.payment_reference,
        "items": [
            {
                "productId": item.product_id,
                "productName": item.product_name,
                "quantity": item.quantity,
                "price": str(item.price),
                "totalPrice": str(item.line_total),
            }
            for item in order.items
        ],
        "subtotal": str(order.subtotal),
        "promoDiscount": str(order.discount),
        "promoCode": order.promo_code,
        "shipping": str(order.shipping),
        "tax": str(order.tax),
        "total": str(order.total),
        "shippingAddress": order.shipping_address.to_dict(),
        "trackingNumber": order.tracking_number,
        "notes": order.notes,
        "createdAt": _iso(order.created_at),
        "confirmedAt": _iso(order.confirmed_at),
        "estimatedDelivery": _iso(order.estimated_delivery),
        "deliveredAt": _iso(order.delivered_at),
        "cancelledAt": _iso(order.cancelled_at),
    }
