# storefront/repos/order_repo.py
from datetime import datetime, timezone
from typing import List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel


class OrderRepo:
    """
    Persistence of orders.

    All status and reference writes are conditional updates, the caller
    decides what a zero rowcount means.
    """

    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id, populate_existing=True)

    def get_user_order(self, order_id: int, user_id: int) -> OrderModel | None:
        return self._one(
            select(OrderModel).where(OrderModel.id == order_id, OrderModel.user_id == user_id)
        )

    def list_user_orders(self, user_id: int) -> List[OrderModel]:
        stmt = (
            select(OrderModel)
            .where(OrderModel.user_id == user_id)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_by_reference(self, external_reference: str) -> OrderModel | None:
        return self._one(
            select(OrderModel).where(OrderModel.external_payment_reference == external_reference)
        )

    def get_by_checkout_key(self, user_id: int, checkout_key: str) -> OrderModel | None:
        return self._one(
            select(OrderModel).where(
                OrderModel.user_id == user_id,
                OrderModel.checkout_key == checkout_key,
            )
        )

    def get_by_idempotency_key(self, user_id: int, idempotency_key: str) -> OrderModel | None:
        return self._one(
            select(OrderModel).where(
                OrderModel.user_id == user_id,
                OrderModel.idempotency_key == idempotency_key,
            )
        )

    def list_stale_pending_card_orders(self, older_than: datetime) -> List[OrderModel]:
        stmt = (
            select(OrderModel)
            .where(
                OrderModel.status == "pending",
                OrderModel.payment_method == "card",
                OrderModel.external_payment_reference.is_not(None),
                OrderModel.updated_at < older_than,
            )
            .order_by(OrderModel.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def transition_status(self, order_id: int, expected: str, new: str) -> int:
        """UPDATE orders SET status = :new WHERE id = :id AND status = :expected"""
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == expected)
            .values(status=new, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def attach_reference(self, order_id: int, external_reference: str) -> int:
        """Write-once: only applies while the reference is still NULL."""
        result = self.db.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.external_payment_reference.is_(None),
            )
            .values(
                external_payment_reference=external_reference,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

    def _one(self, stmt) -> OrderModel | None:
        return self.db.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
