# storefront/utils/money.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple

CENT = Decimal("0.01")


def to_money(amount) -> Decimal:
    """Round a price to whole cents, the precision order lines are stored with."""
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return (Decimal(unit_price) * quantity).quantize(CENT)


def order_total(lines: Iterable[Tuple[Decimal, int]]) -> Decimal:
    """Exact decimal sum of unit_price * quantity."""
    return sum((line_total(price, qty) for price, qty in lines), Decimal("0.00"))


def to_minor_units(amount: Decimal) -> int:
    # processor expects the smallest currency unit (cents)
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
