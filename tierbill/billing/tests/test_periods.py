from datetime import UTC
from datetime import datetime

import pytest

from tierbill.billing.periods import add_calendar_months
from tierbill.billing.periods import from_timestamp
from tierbill.billing.periods import to_timestamp
from tierbill.billing.periods import trial_period_days


class TestAddCalendarMonths:
    def test_clamps_to_end_of_short_month(self):
        start = datetime(2025, 1, 31, 12, 0, tzinfo=UTC)
        assert add_calendar_months(start, 1) == datetime(2025, 2, 28, 12, 0, tzinfo=UTC)

    def test_leap_year_february(self):
        start = datetime(2024, 1, 31, tzinfo=UTC)
        assert add_calendar_months(start, 1) == datetime(2024, 2, 29, tzinfo=UTC)

    def test_rolls_over_year(self):
        start = datetime(2025, 11, 15, tzinfo=UTC)
        assert add_calendar_months(start, 3) == datetime(2026, 2, 15, tzinfo=UTC)

    def test_twelve_months_keeps_day_of_month(self):
        start = datetime(2025, 3, 15, 9, 30, tzinfo=UTC)
        assert add_calendar_months(start, 12) == datetime(2026, 3, 15, 9, 30, tzinfo=UTC)

    def test_zero_months(self):
        start = datetime(2025, 3, 15, tzinfo=UTC)
        assert add_calendar_months(start, 0) == start

    def test_negative_months_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            add_calendar_months(datetime(2025, 1, 1, tzinfo=UTC), -1)


class TestTrialPeriodDays:
    def test_year_without_leap_day(self):
        now = datetime(2025, 3, 15, 10, 0, tzinfo=UTC)
        assert trial_period_days(12, now=now) == 365

    def test_year_spanning_leap_day(self):
        now = datetime(2023, 3, 15, 10, 0, tzinfo=UTC)
        assert trial_period_days(12, now=now) == 366

    def test_one_month_from_january_31(self):
        now = datetime(2025, 1, 31, tzinfo=UTC)
        # Ends Feb 28, not Mar 3
        assert trial_period_days(1, now=now) == 28

    def test_six_months(self):
        now = datetime(2025, 1, 1, tzinfo=UTC)
        assert trial_period_days(6, now=now) == 181


class TestTimestamps:
    def test_none_passes_through(self):
        assert from_timestamp(None) is None
        assert to_timestamp(None) is None

    def test_utc(self):
        moment = from_timestamp(1735689600)
        assert moment == datetime(2025, 1, 1, tzinfo=UTC)
        assert to_timestamp(moment) == 1735689600
