# storefront/services/cart_snapshot.py
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Protocol, Tuple

from storefront.domain.errors import EmptyCartError, ValidationError
from storefront.repos.cart_repo import CartRepo
from storefront.utils.money import to_money
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class Catalog(Protocol):
    def price_and_name(self, product_id: int) -> Tuple[Decimal, str] | None: ...


@dataclass(frozen=True)
class CartLineSnapshot:
    product_id: int
    product_name: str
    unit_price: Decimal
    quantity: int


class CartSnapshotReader:
    """
    Reads the user's cart as a flat list of priced lines.

    Name and price come from the catalog at call time, that copy is what the
    order lines freeze. Nothing is written here.
    """

    def __init__(self, cart_repo: CartRepo, catalog: Catalog):
        self.carts = cart_repo
        self.catalog = catalog

    def read(self, user_id: int) -> List[CartLineSnapshot]:
        cart = self.carts.get_cart_by_user(user_id)
        items = self.carts.get_cart_items(cart.id) if cart else []
        if not items:
            raise EmptyCartError()

        lines = []
        for item in items:
            if item.quantity <= 0:
                raise ValidationError(f"Invalid quantity {item.quantity} for product {item.product_id}")

            priced = self.catalog.price_and_name(item.product_id)
            if priced is None:
                raise ValidationError(f"Product {item.product_id} is no longer available")
            price, name = priced

            lines.append(
                CartLineSnapshot(
                    product_id=item.product_id,
                    product_name=name,
                    unit_price=to_money(price),
                    quantity=item.quantity,
                )
            )

        logger.info(f"Cart snapshot for user {user_id}: {len(lines)} line(s)")
        return lines
