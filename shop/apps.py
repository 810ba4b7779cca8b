import logging

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


class ShopConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "shop"
    verbose_name = "The Cologne Hub shop"

    # Shared Stripe gateway; None when no secret key is configured.
    gateway = None

    def ready(self):
        if not settings.STRIPE_SECRET_KEY:
            logger.warning("stripe_not_configured")
            return
        from shop.infra.gateway import StripeGateway

        self.gateway = StripeGateway.from_settings(settings)
