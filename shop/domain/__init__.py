from shop.domain.order import Order, OrderItem, OrderStatus, PaymentStatus, ShippingAddress

__all__ = ["Order", "OrderItem", "OrderStatus", "PaymentStatus", "ShippingAddress"]
