# storefront/services/order_service.py
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.domain.errors import NotFoundError, ValidationError
from storefront.domain.status import PaymentMethod
from storefront.repos.order_repo import OrderRepo
from storefront.services.payment_gateway import PaymentGateway
from storefront.services.reconciler import OrderStatusReconciler
from storefront.utils.money import line_total, to_minor_units
from storefront.utils.settings import PAYMENT_CURRENCY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def serialize_order(order: OrderModel) -> Dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "total_amount": order.total_amount,
        "status": order.status,
        "payment_method": order.payment_method,
        "external_payment_reference": order.external_payment_reference,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "items": [
            {
                "id": line.id,
                "product_id": line.product_id,
                "product_name": line.product_name,
                "unit_price": line.unit_price,
                "quantity": line.quantity,
                "subtotal": line_total(line.unit_price, line.quantity),
            }
            for line in order.lines
        ],
    }


class OrderService:
    """
    Order queries and the client-redirect completion path.
    Writes go through OrderStatusReconciler.
    """

    def __init__(self, db: Session, reconciler: OrderStatusReconciler | None = None,
                 gateway: PaymentGateway | None = None, currency: str = PAYMENT_CURRENCY):
        self.repo = OrderRepo(db)
        self.reconciler = reconciler or OrderStatusReconciler(db)
        self.gateway = gateway
        self.currency = currency

    #query
    def list_orders(self, user_id: int) -> List[Dict[str, Any]]:
        return [serialize_order(o) for o in self.repo.list_user_orders(user_id)]

    def get_order(self, order_id: int, user_id: int) -> Dict[str, Any]:
        return serialize_order(self._owned_order(order_id, user_id))

    #commands
    def confirm_payment(self, order_id: int, user_id: int, payment_intent_id: str) -> Dict[str, Any]:
        """
        Client came back from the processor's payment page.

        The intent is fetched from the processor, never trusted from the
        client. Amount and currency have to match the order, and so does the
        order id the intent was created for when the processor echoes it.
        Only a processor-reported success marks the order paid.
        """
        order = self._owned_order(order_id, user_id)
        if order.payment_method != PaymentMethod.CARD.value:
            raise ValidationError(f"Order {order.id} is not a card order")

        intent = self.gateway.retrieve_intent(payment_intent_id)
        if intent.amount != to_minor_units(order.total_amount) or intent.currency.lower() != self.currency.lower():
            logger.warning(
                f"Intent {payment_intent_id} ({intent.amount} {intent.currency}) does not match order {order.id}"
            )
            raise ValidationError("Payment intent does not match the order")

        intended_order = (intent.metadata or {}).get("order_id")
        if intended_order is not None and str(intended_order) != str(order.id):
            logger.warning(f"Intent {payment_intent_id} was created for order {intended_order}, not order {order.id}")
            raise ValidationError("Payment intent belongs to another order")

        self.reconciler.attach_reference(order.id, payment_intent_id)

        if intent.status == "succeeded":
            self.reconciler.apply_payment_succeeded(payment_intent_id)
        elif intent.status == "canceled":
            self.reconciler.apply_payment_canceled(payment_intent_id)
        else:
            logger.info(f"Intent {payment_intent_id} for order {order.id} is {intent.status}, waiting for processor")

        return serialize_order(self._owned_order(order_id, user_id))

    def change_status(self, order_id: int, user_id: int, status: str) -> None:
        self.reconciler.apply_status_change(order_id, status, user_id=user_id)

    def _owned_order(self, order_id: int, user_id: int) -> OrderModel:
        order = self.repo.get_user_order(order_id, user_id)
        if not order:
            raise NotFoundError("Order not found")
        return order
