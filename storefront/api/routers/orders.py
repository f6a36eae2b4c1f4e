# storefront/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from sqlalchemy.orm import Session

from storefront.api.deps import get_catalog, get_current_user_id, get_notifier, get_payment_gateway
from storefront.data.database import get_db
from storefront.domain.errors import ShopError
from storefront.domain.schemas import AttachReferenceIn, OrderCreateIn, OrderOut, StatusChangeIn
from storefront.services.order_factory import OrderFactory
from storefront.services.order_service import OrderService, serialize_order
from storefront.services.reconciler import OrderStatusReconciler

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session, notifier, gateway=None):
    return OrderService(db, reconciler=OrderStatusReconciler(db, notifier), gateway=gateway)


@router.post("", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreateIn,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=255),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    catalog=Depends(get_catalog),
    notifier=Depends(get_notifier),
):
    """
    Checkout: turns the caller's cart into a pending order and empties the cart.
    Repeating the call with the same Idempotency-Key returns the same order.
    """
    factory = OrderFactory(db, catalog, notifier)
    try:
        order = factory.create(user_id, payload.payment_method, idempotency_key=idempotency_key)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return serialize_order(order)


@router.get("", response_model=List[OrderOut])
def list_orders(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier),
):
    return get_service(db, notifier).list_orders(user_id)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier),
):
    try:
        return get_service(db, notifier).get_order(order_id, user_id)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.put("/{order_id}", response_model=OrderOut)
def attach_payment(
    order_id: int,
    payload: AttachReferenceIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier),
    gateway=Depends(get_payment_gateway),
):
    """
    Client-redirect completion: attaches the payment intent and, if the
    processor reports it succeeded, marks the order paid.
    """
    try:
        return get_service(db, notifier, gateway).confirm_payment(order_id, user_id, payload.payment_intent_id)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.put("/{order_id}/status", status_code=204)
def change_status(
    order_id: int,
    payload: StatusChangeIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier),
):
    try:
        get_service(db, notifier).change_status(order_id, user_id, payload.status)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return Response(status_code=204)
