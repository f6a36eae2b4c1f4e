# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from storefront.api.deps import get_catalog, get_current_user_id
from storefront.data.database import get_db
from storefront.domain.errors import ShopError
from storefront.domain.schemas import CartItemIn, CartOut, CartQuantityIn
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartOut)
def get_cart(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    catalog=Depends(get_catalog),
):
    return CartService(db, catalog).get_cart(user_id)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: CartItemIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    catalog=Depends(get_catalog),
):
    try:
        return CartService(db, catalog).add_product(user_id, payload.product_id, payload.quantity)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.put("/items/{product_id}", response_model=CartOut)
def update_item(
    product_id: int,
    payload: CartQuantityIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    catalog=Depends(get_catalog),
):
    try:
        return CartService(db, catalog).update_quantity(user_id, product_id, payload.quantity)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/items/{product_id}", response_model=CartOut)
def remove_item(
    product_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    catalog=Depends(get_catalog),
):
    try:
        return CartService(db, catalog).remove_product(user_id, product_id)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
