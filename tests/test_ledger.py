from decimal import Decimal

import pytest

from loyaltyx_api.services.ledger import can_redeem, points_adjustment, points_for_amount, points_value


@pytest.mark.parametrize(
    ("amount", "expected"),
    [
        (Decimal("0.01"), 0),
        (Decimal("99.99"), 0),
        (Decimal("100"), 1),
        (Decimal("15750"), 157),
        (Decimal("5000.00"), 50),
        (15750.0, 157),
        ("199.99", 1),
    ],
)
def test_points_for_amount_truncates(amount, expected) -> None:
    assert points_for_amount(amount) == expected


def test_points_for_amount_is_deterministic_for_edits() -> None:
    original = Decimal("15750")
    edited = Decimal("2500")

    adjustment = points_adjustment(original, edited)

    assert adjustment == -132
    assert points_for_amount(original) + adjustment == points_for_amount(edited)


def test_points_value_and_redeemability() -> None:
    assert points_value(3) == Decimal("300")
    assert can_redeem(100, 100)
    assert not can_redeem(50, 100)
