# storefront/services/order_factory.py
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel, OrderLineModel
from storefront.domain.errors import ConcurrencyConflictError, EmptyCartError
from storefront.domain.status import OrderStatus, parse_payment_method
from storefront.repos.cart_repo import CartRepo
from storefront.repos.order_repo import OrderRepo
from storefront.services.cart_snapshot import Catalog, CartSnapshotReader
from storefront.services.notification_service import NotificationService, notify_safely
from storefront.utils.money import order_total
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class OrderFactory:
    """
    Turns the user's cart into a pending order in one transaction.

    Duplicate submissions are absorbed on the server:
    - the cart version read with the snapshot is claimed with a conditional
      update before anything is inserted, a checkout that loses the claim
      returns the order of the checkout that won it
    - (user_id, checkout_key) and (user_id, idempotency_key) are unique
    """

    def __init__(
        self,
        db: Session,
        catalog: Catalog,
        notifier=None,
        max_attempts: int = 3,
    ):
        self.db = db
        self.carts = CartRepo(db)
        self.orders = OrderRepo(db)
        self.reader = CartSnapshotReader(self.carts, catalog)
        self.notifier = notifier or NotificationService()
        self.max_attempts = max_attempts

    def create(self, user_id: int, payment_method, idempotency_key: str | None = None) -> OrderModel:
        method = parse_payment_method(payment_method)

        if idempotency_key:
            existing = self.orders.get_by_idempotency_key(user_id, idempotency_key)
            if existing:
                logger.info(f"Idempotent replay of checkout {idempotency_key}, returning order {existing.id}")
                return existing

        for attempt in range(1, self.max_attempts + 1):
            cart = self.carts.get_cart_by_user(user_id)
            if cart is None:
                raise EmptyCartError()

            checkout_key = f"{cart.id}:{cart.version}"
            lines = self.reader.read(user_id)

            try:
                order = self._persist(user_id, cart.id, cart.version, checkout_key, method.value, lines, idempotency_key)
            except IntegrityError:
                # another request inserted the same checkout/idempotency key first
                self.db.rollback()
                existing = self._find_existing(user_id, checkout_key, idempotency_key)
                if existing:
                    logger.info(f"Concurrent checkout for user {user_id} already created order {existing.id}")
                    return existing
                raise
            except Exception:
                self.db.rollback()
                raise

            if order is not None:
                logger.info(
                    f"Order {order.id} created for user {user_id}: total {order.total_amount}, "
                    f"{len(order.lines)} line(s), payment {order.payment_method}"
                )
                notify_safely(self.notifier, user_id, order.id, order.status)
                return order

            existing = self._find_existing(user_id, checkout_key, idempotency_key)
            if existing:
                logger.info(f"Cart {cart.id} v{cart.version} was already checked out as order {existing.id}")
                return existing

            logger.info(
                f"Cart {cart.id} changed during checkout (attempt {attempt}/{self.max_attempts}), retrying"
            )

        raise ConcurrencyConflictError("Cart is being modified concurrently, please retry checkout")

    def _persist(self, user_id, cart_id, cart_version, checkout_key, method, lines, idempotency_key):
        # claim the snapshot first, a stale version means the cart moved under us
        if self.carts.bump_version(cart_id, cart_version) == 0:
            self.db.rollback()
            return None

        order = OrderModel(
            user_id=user_id,
            checkout_key=checkout_key,
            idempotency_key=idempotency_key,
            total_amount=order_total((line.unit_price, line.quantity) for line in lines),
            status=OrderStatus.PENDING.value,
            payment_method=method,
        )
        order.lines = [
            OrderLineModel(
                product_id=line.product_id,
                product_name=line.product_name,
                unit_price=line.unit_price,
                quantity=line.quantity,
            )
            for line in lines
        ]
        self.orders.add_order(order)
        self.carts.clear_items(cart_id)

        self.db.commit()
        self.db.refresh(order)
        return order

    def _find_existing(self, user_id, checkout_key, idempotency_key):
        if idempotency_key:
            existing = self.orders.get_by_idempotency_key(user_id, idempotency_key)
            if existing:
                return existing
        return self.orders.get_by_checkout_key(user_id, checkout_key)
