# storefront/services/payment_service.py
from uuid import uuid4

from redis import RedisError
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.domain.errors import NotFoundError, ValidationError
from storefront.domain.status import OrderStatus, PaymentMethod
from storefront.repos.order_repo import OrderRepo
from storefront.services.payment_gateway import DecodedEvent, IntentResult, PaymentGateway
from storefront.services.reconciler import OrderStatusReconciler
from storefront.utils.money import to_minor_units
from storefront.utils.settings import PAYMENT_CURRENCY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def intent_idempotency_key(order_id: int) -> str:
    return f"order-{order_id}-payment-intent"


class PaymentService:
    """
    Payment side of checkout:
    - creates (or reuses) the processor intent for a card order
    - verifies webhook payloads and routes them to the reconciler
    """

    def __init__(self, db: Session, gateway: PaymentGateway, reconciler: OrderStatusReconciler | None = None,
                 currency: str = PAYMENT_CURRENCY):
        self.repo = OrderRepo(db)
        self.gateway = gateway
        self.reconciler = reconciler or OrderStatusReconciler(db)
        self.currency = currency

    def create_intent_for_user(self, user_id: int, order_id: int) -> IntentResult:
        order = self.repo.get_user_order(order_id, user_id)
        if not order:
            raise NotFoundError("Order not found")
        return self.create_intent(order)

    def create_intent(self, order: OrderModel) -> IntentResult:
        if order.payment_method != PaymentMethod.CARD.value:
            raise ValidationError(f"Order {order.id} is not a card order")

        if order.external_payment_reference:
            logger.info(f"Order {order.id} already has intent {order.external_payment_reference}, reusing it")
            return self.gateway.retrieve_intent(order.external_payment_reference)

        if order.status != OrderStatus.PENDING.value:
            raise ValidationError(f"Order {order.id} is {order.status}, it cannot take a payment")

        intent = self.gateway.create_intent(
            amount=to_minor_units(order.total_amount),
            currency=self.currency,
            idempotency_key=intent_idempotency_key(order.id),
            metadata={"order_id": str(order.id), "user_id": str(order.user_id)},
        )

        stored = self.reconciler.attach_reference(order.id, intent.external_reference)
        logger.info(f"Intent {intent.external_reference} ({intent.amount} {intent.currency}) for order {order.id}")
        if stored.external_payment_reference != intent.external_reference:
            return self.gateway.retrieve_intent(stored.external_payment_reference)
        return intent

    def verify_event(self, raw_payload: bytes, signature_header: str | None) -> DecodedEvent:
        return self.gateway.verify_event(raw_payload, signature_header)

    def handle_event(self, event: DecodedEvent) -> None:
        logger.info(f"Processor event {event.event_id} ({event.event_type}) for {event.object_id}")

        if event.event_type == "payment_intent.succeeded":
            self.reconciler.apply_payment_succeeded(event.object_id)
        elif event.event_type == "payment_intent.payment_failed":
            self.reconciler.apply_payment_failed(event.object_id, event.failure_reason)
        elif event.event_type == "payment_intent.canceled":
            self.reconciler.apply_payment_canceled(event.object_id)
        else:
            logger.info(f"Ignoring processor event type {event.event_type}")

    def process_webhook(self, raw_payload: bytes, signature_header: str | None, claims=None) -> bool:
        """
        Verify, claim and dispatch one webhook delivery.
        Returns False when the event was already processed.

        The claim store only saves redundant work. When it is unreachable the
        event is still dispatched, the reconciler's conditional writes keep a
        redelivery harmless.
        """
        event = self.verify_event(raw_payload, signature_header)

        claimant = uuid4().hex
        claimed = False
        if claims is not None:
            try:
                if not claims.claim_event(event.event_id, claimant):
                    logger.warning(f"Duplicate delivery of event {event.event_id}, already processed")
                    return False
                claimed = True
            except RedisError as e:
                logger.warning(f"Could not claim event {event.event_id}, processing without a claim: {e}")

        try:
            self.handle_event(event)
        except Exception:
            # let the processor's redelivery run the handlers again
            if claimed:
                self._release_claim(claims, event.event_id, claimant)
            raise
        return True

    @staticmethod
    def _release_claim(claims, event_id: str, claimant: str) -> None:
        try:
            claims.release_event(event_id, claimant)
        except RedisError as e:
            logger.warning(f"Could not release claim on event {event_id}: {e}")
