# storefront/services/fake_gateway.py
"""In-process payment gateway for development and tests.

Intents live in memory, keyed by the idempotency key exactly like the real
processor deduplicates retried creates. Webhooks are verified with the same
signature scheme as production, so signed test payloads go through the real
verification path.
"""
from typing import Dict, List
from uuid import uuid4

from storefront.domain.errors import GatewayError
from storefront.services.payment_gateway import (
    DecodedEvent,
    IntentResult,
    PaymentGateway,
    decode_signed_event,
)
from storefront.utils import settings


class FakeGateway(PaymentGateway):
    def __init__(self, webhook_secret: str = "whsec_test", tolerance: int = settings.WEBHOOK_TOLERANCE_SECONDS):
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance
        self.should_fail = False
        self.intents: Dict[str, IntentResult] = {}
        self._by_idempotency_key: Dict[str, str] = {}
        self.calls: List[dict] = []

    def configure(self, should_fail: bool) -> None:
        self.should_fail = should_fail

    def create_intent(self, amount, currency, idempotency_key, metadata) -> IntentResult:
        self.calls.append({"method": "create_intent", "amount": amount, "idempotency_key": idempotency_key})
        if self.should_fail:
            raise GatewayError("Payment processor unreachable")

        if idempotency_key in self._by_idempotency_key:
            return self.intents[self._by_idempotency_key[idempotency_key]]

        ref = f"pi_fake_{uuid4().hex[:16]}"
        intent = IntentResult(
            external_reference=ref,
            client_secret=f"{ref}_secret_{uuid4().hex[:8]}",
            amount=amount,
            currency=currency,
            status="requires_payment_method",
            metadata=dict(metadata),
        )
        self.intents[ref] = intent
        self._by_idempotency_key[idempotency_key] = ref
        return intent

    def retrieve_intent(self, external_reference) -> IntentResult:
        self.calls.append({"method": "retrieve_intent", "external_reference": external_reference})
        if self.should_fail:
            raise GatewayError("Payment processor unreachable")
        if external_reference not in self.intents:
            raise GatewayError(f"Unknown payment intent {external_reference}")
        return self.intents[external_reference]

    def verify_event(self, raw_payload, signature_header) -> DecodedEvent:
        return decode_signed_event(raw_payload, signature_header, self.webhook_secret, self.tolerance)

    def set_status(self, external_reference: str, status: str) -> IntentResult:
        """Simulate the customer completing (or abandoning) the payment."""
        current = self.intents[external_reference]
        updated = IntentResult(
            external_reference=current.external_reference,
            client_secret=current.client_secret,
            amount=current.amount,
            currency=current.currency,
            status=status,
            metadata=current.metadata,
        )
        self.intents[external_reference] = updated
        return updated
