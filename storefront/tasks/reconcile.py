# storefront/tasks/reconcile.py
from datetime import datetime, timezone, timedelta

from sqlalchemy.orm import Session

from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.domain.errors import GatewayError
from storefront.repos.order_repo import OrderRepo
from storefront.services.payment_gateway import PaymentGateway, get_gateway
from storefront.services.reconciler import OrderStatusReconciler
from storefront.utils.settings import RECONCILE_AFTER_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def sweep_pending_payments(
    db: Session,
    gateway: PaymentGateway,
    reconciler: OrderStatusReconciler | None = None,
    older_than_seconds: int = RECONCILE_AFTER_SECONDS,
) -> int:
    """
    Catch up on card orders whose completion signal never arrived (webhook
    lost or delivered before the reference was attached). Asks the processor
    for the intent status and feeds it to the reconciler.
    Returns the number of orders that changed status.
    """
    reconciler = reconciler or OrderStatusReconciler(db)
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=older_than_seconds)
    orders = OrderRepo(db).list_stale_pending_card_orders(cutoff)
    logger.info(f"Found {len(orders)} pending card order(s) to reconcile")

    changed = 0
    for order in orders:
        ref = order.external_payment_reference
        try:
            intent = gateway.retrieve_intent(ref)
        except GatewayError as e:
            logger.warning(f"Could not reconcile order {order.id} ({ref}): {e}")
            continue

        if intent.status == "succeeded":
            result = reconciler.apply_payment_succeeded(ref)
        elif intent.status == "canceled":
            result = reconciler.apply_payment_canceled(ref)
        else:
            continue

        if result is not None and result.status != "pending":
            changed += 1
    return changed


@celery_app.task(name="storefront.tasks.reconcile.reconcile_pending_payments_task")
def reconcile_pending_payments_task():
    logger.info("Reconcile pending payments task started")
    db = SessionLocal()
    try:
        changed = sweep_pending_payments(db, get_gateway())
        logger.info(f"Reconciled {changed} order(s)")
        return changed
    finally:
        db.close()
