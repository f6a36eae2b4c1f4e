# storefront/services/payment_gateway.py
"""
Payment Gateway Adapter.

``PaymentGateway`` is the contract the rest of the service talks to,
``StripeGateway`` implements it with the stripe SDK and ``FakeGateway``
(see fake_gateway.py) is used in development and tests. ``get_gateway()`` /
``set_gateway()`` pick the active implementation.
"""
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict

import stripe

from storefront.domain.errors import GatewayError, InvalidSignatureError
from storefront.utils import settings
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class IntentResult:
    """Processor-side payment intent as mirrored by this service."""

    external_reference: str
    client_secret: str
    amount: int
    currency: str
    status: str
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DecodedEvent:
    event_id: str
    event_type: str
    object_id: str | None
    object_status: str | None = None
    failure_reason: str | None = None
    data: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    @abstractmethod
    def create_intent(
        self,
        amount: int,
        currency: str,
        idempotency_key: str,
        metadata: Dict[str, str],
    ) -> IntentResult:
        """Create a payment intent for ``amount`` minor units."""
        ...

    @abstractmethod
    def retrieve_intent(self, external_reference: str) -> IntentResult:
        ...

    @abstractmethod
    def verify_event(self, raw_payload: bytes, signature_header: str | None) -> DecodedEvent:
        """Verify the signature of a webhook payload and decode it, fail closed."""
        ...


def decode_signed_event(
    raw_payload: bytes,
    signature_header: str | None,
    secret: str,
    tolerance: int,
) -> DecodedEvent:
    """
    Check a ``Stripe-Signature`` header (``t=<ts>,v1=<hmac-sha256>``) against
    the shared secret and decode the event. Any failure raises
    InvalidSignatureError, nothing unverified is returned.
    """
    if not secret:
        raise InvalidSignatureError("Webhook secret is not configured")
    if not signature_header:
        raise InvalidSignatureError("Missing signature header")

    payload = raw_payload.decode("utf-8") if isinstance(raw_payload, (bytes, bytearray)) else raw_payload
    try:
        stripe.WebhookSignature.verify_header(payload, signature_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        raise InvalidSignatureError("Invalid webhook signature") from e

    try:
        event = json.loads(payload)
        event_type = event["type"]
        event_id = event["id"]
        obj = event.get("data", {}).get("object", {}) or {}
    except (ValueError, KeyError, AttributeError, TypeError) as e:
        raise InvalidSignatureError("Webhook payload could not be decoded") from e

    if event_type.startswith("payment_intent.") and not obj.get("id"):
        raise InvalidSignatureError(f"Event {event_id} carries no payment intent id")

    last_error = obj.get("last_payment_error") or {}
    return DecodedEvent(
        event_id=event_id,
        event_type=event_type,
        object_id=obj.get("id"),
        object_status=obj.get("status"),
        failure_reason=last_error.get("message") if isinstance(last_error, dict) else None,
        data=obj,
    )


class StripeGateway(PaymentGateway):
    """Production adapter using the stripe SDK."""

    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        timeout: float = settings.GATEWAY_TIMEOUT_SECONDS,
        max_network_retries: int = settings.GATEWAY_MAX_NETWORK_RETRIES,
        tolerance: int = settings.WEBHOOK_TOLERANCE_SECONDS,
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        # bounded timeout and a bounded number of idempotency-keyed retries
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = max_network_retries

    def create_intent(self, amount, currency, idempotency_key, metadata) -> IntentResult:
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.api_key,
                amount=amount,
                currency=currency,
                payment_method_types=["card"],
                metadata=metadata,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe create_intent failed ({type(e).__name__}): {e}")
            raise GatewayError("Payment processor error") from e

        logger.info(f"Stripe payment intent {intent.id} for {amount} {currency}")
        return self._to_result(intent)

    def retrieve_intent(self, external_reference) -> IntentResult:
        try:
            intent = stripe.PaymentIntent.retrieve(external_reference, api_key=self.api_key)
        except stripe.InvalidRequestError as e:
            logger.warning(f"Stripe does not know payment intent {external_reference}: {e}")
            raise GatewayError(f"Unknown payment intent {external_reference}") from e
        except stripe.StripeError as e:
            logger.error(f"Stripe retrieve_intent failed ({type(e).__name__}): {e}")
            raise GatewayError("Payment processor error") from e
        return self._to_result(intent)

    def verify_event(self, raw_payload, signature_header) -> DecodedEvent:
        return decode_signed_event(raw_payload, signature_header, self.webhook_secret, self.tolerance)

    @staticmethod
    def _to_result(intent) -> IntentResult:
        metadata = intent.metadata
        return IntentResult(
            external_reference=intent.id,
            client_secret=intent.client_secret,
            amount=intent.amount,
            currency=intent.currency,
            status=intent.status,
            metadata=dict(metadata) if metadata else {},
        )


_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    """Active gateway, built from settings on first use."""
    global _current_gateway
    if _current_gateway is None:
        if settings.PAYMENT_GATEWAY == "fake":
            from storefront.services.fake_gateway import FakeGateway

            _current_gateway = FakeGateway(webhook_secret=settings.STRIPE_WEBHOOK_SECRET)
        else:
            _current_gateway = StripeGateway(
                api_key=settings.STRIPE_SECRET_KEY,
                webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            )
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None
