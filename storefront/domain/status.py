# storefront/domain/status.py
"""
Order state machine.

    pending -> paid -> shipped -> delivered
    pending -> cancelled
    paid    -> cancelled

``delivered`` and ``cancelled`` are terminal. Every entry point that changes
an order status goes through ``validate_transition``.
"""
from enum import Enum
from typing import Dict, FrozenSet

from storefront.domain.errors import (
    InvalidPaymentMethodError,
    InvalidTransitionError,
    ValidationError,
)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"


TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# statuses in which payment has already been collected
SETTLED = frozenset({OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED})

# older web clients send "stripe" for card payments
_PAYMENT_METHOD_ALIASES = {"stripe": PaymentMethod.CARD}


def parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid status '{value}'")


def parse_payment_method(value) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    normalized = str(value or "").strip().lower()
    if normalized in _PAYMENT_METHOD_ALIASES:
        return _PAYMENT_METHOD_ALIASES[normalized]
    try:
        return PaymentMethod(normalized)
    except ValueError:
        raise InvalidPaymentMethodError(
            f"Invalid payment method '{value}'. Must be 'cash' or 'card'"
        )


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return requested in TRANSITIONS[current]


def validate_transition(current: OrderStatus, requested: OrderStatus) -> None:
    if not can_transition(current, requested):
        raise InvalidTransitionError(
            f"Cannot change order status from '{current.value}' to '{requested.value}'"
        )


def is_terminal(status: OrderStatus) -> bool:
    return not TRANSITIONS[status]
