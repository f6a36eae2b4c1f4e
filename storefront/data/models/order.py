from datetime import datetime, timezone
from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship
from storefront.data.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class OrderModel(Base):
    __tablename__ = "orders"
    __table_args__ = (
        # one order per (cart, cart version) - a second checkout of the same snapshot cannot insert
        UniqueConstraint("user_id", "checkout_key", name="uq_order_checkout_key"),
        UniqueConstraint("user_id", "idempotency_key", name="uq_order_idempotency_key"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    checkout_key = Column(String(64), nullable=False)
    idempotency_key = Column(String(255), nullable=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending, paid, shipped, delivered, cancelled
    payment_method = Column(String(10), nullable=False)  # cash, card
    external_payment_reference = Column(String(255), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    lines = relationship(
        "OrderLineModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLineModel.id",
        lazy="selectin",
    )


class OrderLineModel(Base):
    """Frozen copy of product name/price at checkout time, never updated."""

    __tablename__ = "order_lines"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    product_name = Column(String(200), nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("OrderModel", back_populates="lines")
