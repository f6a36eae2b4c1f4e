# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import List, Optional
from decimal import Decimal
from datetime import datetime


class CamelModel(BaseModel):
    """JSON uses camelCase, python code uses snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# cart

class CartItemIn(CamelModel):
    """Schema for adding a product to the cart."""

    product_id: int = Field(..., gt=0, description="Product id")
    quantity: int = Field(..., description="Quantity, must be > 0")


class CartQuantityIn(CamelModel):
    quantity: int


class CartItemOut(CamelModel):
    product_id: int
    quantity: int


class CartOut(CamelModel):
    cart_id: int | None = None
    user_id: int
    version: int
    items: List[CartItemOut]


# orders

class OrderCreateIn(CamelModel):
    payment_method: str = Field("cash", description="'cash' or 'card'")


class AttachReferenceIn(CamelModel):
    payment_intent_id: str = Field(..., min_length=1, max_length=255)


class StatusChangeIn(CamelModel):
    status: str = Field(..., min_length=1, max_length=20)


class OrderLineOut(CamelModel):
    id: int
    product_id: int
    product_name: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal


class OrderOut(CamelModel):
    id: int
    user_id: int
    total_amount: Decimal
    status: str
    payment_method: str
    external_payment_reference: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderLineOut]


# payment

class CreateIntentIn(CamelModel):
    order_id: int = Field(..., gt=0)


class IntentOut(CamelModel):
    client_secret: str
    payment_intent_id: str
    amount: int
    currency: str


class WebhookAck(CamelModel):
    received: bool = True
    duplicate: bool = False
