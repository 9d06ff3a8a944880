"""
Calendar helpers for trial lengths and billing periods.

Trials are measured in calendar months, not in 30-day blocks: a 12 month
trial started on March 15 ends on March 15 of the following year, and a one
month trial started on January 31 ends on the last day of February.
"""

from __future__ import annotations

import calendar
import math
from datetime import UTC
from datetime import datetime

from tierbill.billing.constants import MONTHS_PER_YEAR

SECONDS_PER_DAY = 24 * 60 * 60


def add_calendar_months(moment: datetime, months: int) -> datetime:
    """
    Add whole calendar months to a datetime.

    Rolls the year over as needed and clamps the day of month when the
    target month is shorter, so the result is always a valid date. The time
    of day and tzinfo are preserved.
    """
    if months < 0:
        msg = f"months must be non-negative, got {months}"
        raise ValueError(msg)

    month_index = moment.month - 1 + months
    year = moment.year + month_index // MONTHS_PER_YEAR
    month = month_index % MONTHS_PER_YEAR + 1
    last_day = calendar.monthrange(year, month)[1]
    return moment.replace(year=year, month=month, day=min(moment.day, last_day))


def trial_period_days(trial_months: int, now: datetime | None = None) -> int:
    """
    Number of days from now until the same date trial_months later.

    Stripe Checkout only accepts trial_period_days, so the calendar-month
    trial is converted into a day count here.
    """
    start = now or datetime.now(tz=UTC)
    end = add_calendar_months(start, trial_months)
    return math.ceil((end - start).total_seconds() / SECONDS_PER_DAY)


def from_timestamp(value: int | None) -> datetime | None:
    """Convert a Stripe unix timestamp to an aware datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=UTC)


def to_timestamp(value: datetime | None) -> int | None:
    """Convert an aware datetime back to a Stripe unix timestamp."""
    if value is None:
        return None
    return int(value.timestamp())
