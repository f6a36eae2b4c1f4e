# storefront/api/routers/payment.py
from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_user_id, get_event_claims, get_notifier, get_payment_gateway
from storefront.data.database import get_db
from storefront.domain.errors import InvalidSignatureError, ShopError
from storefront.domain.schemas import CreateIntentIn, IntentOut, WebhookAck
from storefront.services.payment_service import PaymentService
from storefront.services.reconciler import OrderStatusReconciler
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/payment", tags=["payment"])


def get_service(db: Session, gateway, notifier):
    return PaymentService(db, gateway, OrderStatusReconciler(db, notifier))


@router.post("/create-payment-intent", response_model=IntentOut)
def create_payment_intent(
    payload: CreateIntentIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    gateway=Depends(get_payment_gateway),
    notifier=Depends(get_notifier),
):
    try:
        intent = get_service(db, gateway, notifier).create_intent_for_user(user_id, payload.order_id)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return {
        "client_secret": intent.client_secret,
        "payment_intent_id": intent.external_reference,
        "amount": intent.amount,
        "currency": intent.currency,
    }


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway=Depends(get_payment_gateway),
    notifier=Depends(get_notifier),
    claims=Depends(get_event_claims),
):
    """
    Processor callback. No auth header, the signature proves authenticity,
    an unverifiable payload is rejected before anything reads it.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    service = get_service(db, gateway, notifier)
    try:
        processed = await run_in_threadpool(service.process_webhook, payload, signature, claims)
    except InvalidSignatureError as e:
        logger.warning(f"Rejected webhook: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return {"received": True, "duplicate": not processed}
