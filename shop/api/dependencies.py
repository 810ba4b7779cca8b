"""
Service construction for views and resolvers.
"""
from django.apps import apps
from django.core.exceptions import ImproperlyConfigured

from shop.services import (
    CancellationService,
    CheckoutService,
    OrderConfirmationService,
    OrderService,
)


def get_gateway():
    gateway = apps.get_app_config("shop").gateway
    if gateway is None:
        raise ImproperlyConfigured("STRIPE_SECRET_KEY is not configured")
    return gateway


def confirmation_service() -> OrderConfirmationService:
    return OrderConfirmationService(gateway=get_gateway())


def checkout_service() -> CheckoutService:
    return CheckoutService(gateway=get_gateway())


def cancellation_service() -> CancellationService:
    return CancellationService()


def order_service() -> OrderService:
    return OrderService()
