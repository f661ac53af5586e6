"""Point arithmetic: one point per full 100 currency units spent."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal
from typing import Union

Amount = Union[Decimal, int, float, str]

POINTS_UNIT = Decimal("100")


def _to_decimal(amount: Amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    # str() keeps floats like 15750.0 from picking up binary noise
    return Decimal(str(amount))


def points_for_amount(amount: Amount) -> int:
    """Return ``floor(amount / 100)``.

    The same function is used when a transaction is created, edited and
    deleted, so the balance delta applied and reversed always match.
    """

    quotient = _to_decimal(amount) / POINTS_UNIT
    return int(quotient.to_integral_value(rounding=ROUND_DOWN))


def points_adjustment(old_amount: Amount, new_amount: Amount) -> int:
    """Signed balance change when a transaction amount is edited."""

    return points_for_amount(new_amount) - points_for_amount(old_amount)


def points_value(points: int) -> Decimal:
    """Currency amount needed to earn ``points``."""

    return Decimal(points) * POINTS_UNIT


def can_redeem(balance: int, required: int) -> bool:
    return balance >= required


__all__ = ["POINTS_UNIT", "can_redeem", "points_adjustment", "points_for_amount", "points_value"]
