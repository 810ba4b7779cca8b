"""
Stripe payment gateway client.

The client is built once at process start (see ``ShopConfig.ready``) and
handed to the services that need it. Services only see the small surface
below plus the ``PaymentIntent`` / ``GatewayEvent`` value objects, never raw
Stripe objects.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

import stripe

from shop.domain.errors import GatewayError, SignatureInvalid
from shop.infra.retry import retry_with_backoff

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (rupees, dollars) to the smallest unit."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    status: str
    amount: int
    currency: str
    client_secret: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass(frozen=True)
class GatewayEvent:
    """Verified webhook event, reduced to what order confirmation needs."""
    id: str
    type: str
    payment_reference: str | None


class StripeGateway:
    """Payment gateway backed by ``stripe.StripeClient``."""

    def __init__(self, client: stripe.StripeClient, webhook_secret: str, currency: str = "inr"):
        self._client = client
        self._webhook_secret = webhook_secret
        self.currency = currency

    @classmethod
    def from_settings(cls, settings) -> StripeGateway:
        http_client = stripe.RequestsClient(timeout=settings.STRIPE_TIMEOUT_SECONDS)
        client = stripe.StripeClient(
            settings.STRIPE_SECRET_KEY,
            http_client=http_client,
            max_network_retries=settings.STRIPE_MAX_NETWORK_RETRIES,
        )
        return cls(
            client,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            currency=settings.STRIPE_CURRENCY,
        )

    def create_payment_intent(
        self,
        amount: Decimal,
        metadata: dict,
        idempotency_key: str | None = None,
    ) -> PaymentIntent:
        params = {
            "amount": to_minor_units(amount),
            "currency": self.currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": metadata,
        }
        options = {"idempotency_key": idempotency_key} if idempotency_key else {}
        try:
            intent = self._client.payment_intents.create(params=params, options=options)
        except stripe.StripeError as exc:
            logger.error("payment_intent_create_failed", extra={"error": str(exc)})
            raise GatewayError("Failed to create payment intent") from exc
        return self._to_intent(intent)

    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntent:
        try:
            intent = self._retrieve(intent_id)
        except stripe.InvalidRequestError as exc:
            # Unknown intent id: nothing to retry.
            raise GatewayError("Payment intent not found", paymentIntentId=intent_id, retryable=False) from exc
        except stripe.StripeError as exc:
            logger.error(
                "payment_intent_retrieve_failed",
                extra={"payment_reference": intent_id, "error": str(exc)},
            )
            raise GatewayError("Payment gateway unavailable", paymentIntentId=intent_id) from exc
        return self._to_intent(intent)

    @retry_with_backoff(
        max_retries=2,
        initial_delay=0.2,
        max_delay=2.0,
        exceptions=(stripe.APIConnectionError,),
    )
    def _retrieve(self, intent_id: str):
        return self._client.payment_intents.retrieve(intent_id, options={"max_network_retries": 0})

    def construct_event(self, payload: bytes, signature: str | None) -> GatewayEvent:
        """Verify the webhook signature over the raw body, then parse it."""
        if not signature:
            raise SignatureInvalid("Missing Stripe-Signature header")
        try:
            event = self._client.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise SignatureInvalid(f"Webhook Error: {exc}") from exc
        except ValueError as exc:
            raise SignatureInvalid("Webhook Error: invalid payload") from exc

        data_object = event.data.object
        return GatewayEvent(
            id=event.id,
            type=event.type,
            payment_reference=getattr(data_object, "id", None),
        )

    def _to_intent(self, intent) -> PaymentIntent:
        return PaymentIntent(
            id=intent.id,
            status=intent.status,
            amount=intent.amount,
            currency=intent.currency,
            client_secret=getattr(intent, "client_secret", None),
        )
