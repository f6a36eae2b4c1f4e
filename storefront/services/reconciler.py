# storefront/services/reconciler.py
"""
Order Status Reconciler.

The only writer of an order after creation. Both payment completion paths
(processor webhook and client redirect) and the periodic sweep call the same
operations here, so the order converges to the same state whichever arrives
first and however often each one is repeated.

Every write is a compare-and-set on the persisted value:

    UPDATE orders SET status = 'paid' WHERE id = :id AND status = 'pending'

A write that matches no row is re-read. If the target state already holds the
call is a successful no-op.
"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.domain.errors import (
    InvalidTransitionError,
    NotFoundError,
    ReferenceConflictError,
)
from storefront.domain.status import (
    SETTLED,
    OrderStatus,
    PaymentMethod,
    is_terminal,
    parse_status,
    validate_transition,
)
from storefront.repos.order_repo import OrderRepo
from storefront.services.notification_service import NotificationService, notify_safely
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

MAX_CAS_ATTEMPTS = 3


class OrderStatusReconciler:
    def __init__(self, db: Session, notifier=None):
        self.db = db
        self.repo = OrderRepo(db)
        self.notifier = notifier or NotificationService()

    # payment signals

    def apply_payment_succeeded(self, external_reference: str) -> OrderModel | None:
        order = self._find_by_reference(external_reference)
        if order is None:
            # the webhook can beat the client attaching the reference, the
            # redirect path or the sweep will apply it later
            logger.warning(f"Payment succeeded for unknown reference {external_reference}, ignoring")
            return None

        current = OrderStatus(order.status)
        if current in SETTLED:
            logger.info(f"Order {order.id} already {current.value}, payment signal is a no-op")
            return order
        if current is OrderStatus.CANCELLED:
            logger.warning(
                f"Payment {external_reference} succeeded for cancelled order {order.id}, leaving it cancelled"
            )
            return order

        return self._compare_and_set(order, OrderStatus.PENDING, OrderStatus.PAID)

    def apply_payment_failed(self, external_reference: str, reason: str | None = None) -> OrderModel | None:
        order = self._find_by_reference(external_reference)
        if order is None:
            logger.warning(f"Payment failed for unknown reference {external_reference}, ignoring")
            return None

        # the customer can retry the same intent, the order stays where it is
        logger.warning(
            f"Payment {external_reference} failed for order {order.id} ({order.status}): {reason or 'no reason given'}"
        )
        return order

    def apply_payment_canceled(self, external_reference: str) -> OrderModel | None:
        order = self._find_by_reference(external_reference)
        if order is None:
            logger.warning(f"Payment canceled for unknown reference {external_reference}, ignoring")
            return None

        if order.status != OrderStatus.PENDING.value:
            logger.info(f"Order {order.id} is {order.status}, payment cancellation is a no-op")
            return order

        return self._compare_and_set(order, OrderStatus.PENDING, OrderStatus.CANCELLED)

    # reference

    def attach_reference(self, order_id: int, external_reference: str) -> OrderModel:
        """
        Write the external payment reference once. Repeating the same value is
        harmless, a different value is rejected.
        """
        try:
            applied = self.repo.attach_reference(order_id, external_reference)
            if applied:
                self.repo.commit()
        except IntegrityError:
            self.repo.rollback()
            raise ReferenceConflictError(
                f"Payment reference {external_reference} is already attached to another order"
            )
        except Exception:
            self.repo.rollback()
            raise

        if not applied:
            self.repo.rollback()

        order = self.repo.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")

        if order.external_payment_reference != external_reference:
            raise ReferenceConflictError(
                f"Order {order_id} already has a different payment reference"
            )

        if applied:
            logger.info(f"Payment reference {external_reference} attached to order {order_id}")
        return order

    # operator transitions

    def apply_status_change(self, order_id: int, requested_status, user_id: int | None = None) -> OrderModel:
        requested = parse_status(requested_status)

        for _ in range(MAX_CAS_ATTEMPTS):
            order = (
                self.repo.get_user_order(order_id, user_id)
                if user_id is not None
                else self.repo.get_order(order_id)
            )
            if order is None:
                raise NotFoundError("Order not found")

            current = OrderStatus(order.status)
            if is_terminal(current):
                raise InvalidTransitionError(f"Order {order_id} is {current.value}, no further changes allowed")
            if current is requested:
                return order

            validate_transition(current, requested)
            if requested is OrderStatus.PAID and order.payment_method == PaymentMethod.CARD.value:
                raise InvalidTransitionError(
                    "Card orders are marked paid by the payment processor only"
                )

            if self.repo.transition_status(order.id, current.value, requested.value):
                self.repo.commit()
                return self._after_transition(order, current, requested)

            # lost the race, look at what the other writer left behind
            self.repo.rollback()

        raise InvalidTransitionError(f"Order {order_id} is changing concurrently, please retry")

    def _find_by_reference(self, external_reference: str | None) -> OrderModel | None:
        if not external_reference:
            logger.warning("Payment signal without a payment reference, ignoring")
            return None
        return self.repo.get_by_reference(external_reference)

    def _compare_and_set(self, order: OrderModel, expected: OrderStatus, target: OrderStatus) -> OrderModel:
        try:
            applied = self.repo.transition_status(order.id, expected.value, target.value)
            if applied:
                self.repo.commit()
            else:
                self.repo.rollback()
        except Exception:
            self.repo.rollback()
            raise

        if applied:
            return self._after_transition(order, expected, target)

        fresh = self.repo.get_order(order.id)
        logger.info(
            f"Order {order.id} moved to {fresh.status} concurrently, {target.value} transition is a no-op"
        )
        return fresh

    def _after_transition(self, order: OrderModel, previous: OrderStatus, target: OrderStatus) -> OrderModel:
        fresh = self.repo.get_order(order.id)
        logger.info(f"Order {fresh.id}: {previous.value} -> {target.value}")
        notify_safely(self.notifier, fresh.user_id, fresh.id, target.value)
        return fresh
