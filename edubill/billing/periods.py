"""
Billing-period arithmetic.

Periods use calendar months, not fixed 30-day blocks: a monthly period
starting Jan 31 ends at the end of Feb 28/29. Starts are floored to the
start of the day and ends run to the last microsecond of the end day.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from datetime import time

from dateutil.relativedelta import relativedelta
from django.utils import timezone

from edubill.billing.constants import CYCLE_MONTHS


@dataclass(frozen=True)
class BillingPeriod:
    start: datetime
    end: datetime


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.max, tzinfo=value.tzinfo)


def add_cycle(value: datetime, cycle: str) -> datetime:
    return value + relativedelta(months=CYCLE_MONTHS[cycle])


def calculate_billing_period(start: datetime | None, cycle: str) -> BillingPeriod:
    """
    Period covering one ``cycle`` from ``start``.

    The end is the last instant of the day one cycle after the start, so
    consecutive periods chain with ``start_of_day(previous.end)``.
    """
    start = start_of_day(start or timezone.now())
    return BillingPeriod(start=start, end=end_of_day(add_cycle(start, cycle)))


def next_billing_period(previous_end: datetime, cycle: str) -> BillingPeriod:
    """The period that follows one ending at ``previous_end``."""
    return calculate_billing_period(start_of_day(previous_end), cycle)
