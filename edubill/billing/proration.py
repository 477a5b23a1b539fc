"""
Proration for mid-period plan and cycle changes.

Both the credit for the old plan and the charge for the new plan are
exact fractions of a day-count ratio. Only the final difference is rounded
(half up), so the result never depends on how intermediate terms would
have been rounded.

Example: 8000 → 20000 over Jan 1..Feb 1 (31 days), changed on Jan 16:
    remaining = 16, unused = 128000/31 ≈ 4129.03, new = 320000/31 ≈ 10322.58
    amount = round(192000/31 ≈ 6193.55) = 6194
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from datetime import timedelta
from fractions import Fraction

MICROSECOND = timedelta(microseconds=1)
DAY_MICROSECONDS = timedelta(days=1) // MICROSECOND


@dataclass(frozen=True)
class ProrationResult:
    remaining_days: int
    total_days: int
    unused_amount: Fraction
    new_amount: Fraction
    amount: int

    @property
    def is_charge(self) -> bool:
        return self.amount > 0

    @property
    def is_credit(self) -> bool:
        return self.amount < 0

    def as_dict(self) -> dict:
        return {
            "remaining_days": self.remaining_days,
            "total_days": self.total_days,
            "unused_amount": round_fraction(self.unused_amount),
            "new_amount": round_fraction(self.new_amount),
            "amount": self.amount,
        }


def round_fraction(value: Fraction) -> int:
    """Round half away from zero."""
    sign = -1 if value < 0 else 1
    return sign * int((abs(value) + Fraction(1, 2)) // 1)


def _ceil_days(delta: timedelta) -> int:
    micros = delta // MICROSECOND
    return -(-micros // DAY_MICROSECONDS)


def calculate_proration(
    old_price: int,
    new_price: int,
    period_start: datetime,
    period_end: datetime,
    change_date: datetime,
) -> ProrationResult:
    """
    Net charge (positive) or credit (negative) for switching price mid-period.

    ``remaining_days`` is clamped to ``[0, total_days]``; a zero-length
    period yields a zero result.
    """
    total_days = max(_ceil_days(period_end - period_start), 0)
    remaining_days = min(max(_ceil_days(period_end - change_date), 0), total_days)

    if total_days == 0:
        zero = Fraction(0)
        return ProrationResult(0, 0, zero, zero, 0)

    ratio = Fraction(remaining_days, total_days)
    unused = old_price * ratio
    new = new_price * ratio
    return ProrationResult(
        remaining_days=remaining_days,
        total_days=total_days,
        unused_amount=unused,
        new_amount=new,
        amount=round_fraction(new - unused),
    )
