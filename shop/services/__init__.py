from shop.services.cancellation import CancellationService
from shop.services.checkout import CheckoutService
from shop.services.confirmation import ConfirmationResult, OrderConfirmationService
from shop.services.orders import OrderService

__all__ = [
    "CancellationService",
    "CheckoutService",
    "ConfirmationResult",
    "OrderConfirmationService",
    "OrderService",
]
