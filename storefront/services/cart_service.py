from typing import Dict, Any
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.domain.errors import ConcurrencyConflictError, NotFoundError, ValidationError
from storefront.repos.cart_repo import CartRepo
from storefront.services.cart_snapshot import Catalog
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Cart line management, one cart per user
    commands (add, update, remove) bump the cart version with optimistic locking
    so an edit racing a checkout invalidates the checkout snapshot
    query (get) read only
    """

    def __init__(self, db: Session, catalog: Catalog):
        self.repo = CartRepo(db)
        self.catalog = catalog

    #query
    def get_cart(self, user_id: int) -> Dict[str, Any]:
        cart = self.repo.get_cart_by_user(user_id)
        if not cart:
            return {"cart_id": None, "user_id": user_id, "version": 0, "items": []}

        items = self.repo.get_cart_items(cart.id)
        return {
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "version": cart.version,
            "items": [
                {"product_id": i.product_id, "quantity": i.quantity}
                for i in items
            ],
        }

    #commands
    def add_product(self, user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        if self.catalog.price_and_name(product_id) is None:
            raise ValidationError(f"Product {product_id} does not exist")

        cart = self._get_or_create_cart(user_id)
        existing_item = self.repo.get_cart_item(cart.id, product_id)

        if existing_item:
            logger.info(
                f"Product {product_id} already in cart {cart.id}, quantity "
                f"{existing_item.quantity} -> {existing_item.quantity + quantity}"
            )
            existing_item.quantity += quantity
        else:
            logger.info(f"Adding product {product_id} to cart {cart.id}")
            self.repo.add_cart_item(
                CartItemModel(cart_id=cart.id, product_id=product_id, quantity=quantity)
            )

        self._commit_with_version(cart)
        return self.get_cart(user_id)

    def update_quantity(self, user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        cart = self.repo.get_cart_by_user(user_id)
        item = self.repo.get_cart_item(cart.id, product_id) if cart else None
        if not item:
            raise NotFoundError(f"Product {product_id} is not in the cart")

        item.quantity = quantity
        self._commit_with_version(cart)
        return self.get_cart(user_id)

    def remove_product(self, user_id: int, product_id: int) -> Dict[str, Any]:
        cart = self.repo.get_cart_by_user(user_id)
        if not cart or not self.repo.delete_cart_item(cart.id, product_id):
            self.repo.rollback()
            raise NotFoundError(f"Product {product_id} is not in the cart")

        logger.info(f"Removed product {product_id} from cart {cart.id}")
        self._commit_with_version(cart)
        return self.get_cart(user_id)

    def _get_or_create_cart(self, user_id: int) -> CartModel:
        cart = self.repo.get_cart_by_user(user_id)
        if cart:
            return cart
        try:
            cart = self.repo.create_cart(CartModel(user_id=user_id, version=1))
            self.repo.commit()
            logger.info(f"Created cart {cart.id} for user {user_id}")
            return cart
        except IntegrityError:
            # created by a parallel request
            self.repo.rollback()
            return self.repo.get_cart_by_user(user_id)

    def _commit_with_version(self, cart: CartModel) -> None:
        # UPDATE carts SET version = v + 1 WHERE id = :id AND version = v
        old_version = cart.version
        try:
            rowcount = self.repo.bump_version(cart.id, old_version)
            if rowcount == 0:
                self.repo.rollback()
                raise ConcurrencyConflictError("Cart was modified by another operation, please retry")
            self.repo.commit()
        except ConcurrencyConflictError:
            raise
        except Exception:
            self.repo.rollback()
            raise
        logger.info(f"Cart {cart.id} new version: {old_version + 1}")
