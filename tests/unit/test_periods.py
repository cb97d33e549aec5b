"""Tests for period keys, previous-period lookup, and reset countdowns."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from src.core.periods import (
    format_countdown,
    next_period_start,
    period_key,
    period_start,
    previous_period_key,
    time_until_next_reset,
)
from src.core.schemas import Period

LA = ZoneInfo("America/Los_Angeles")
UTC = timezone.utc


def _la(*args: int) -> datetime:
    return datetime(*args, tzinfo=LA)  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


class TestWeeklyKey:
    def test_format(self) -> None:
        assert period_key(Period.WEEKLY, _la(2026, 1, 7, 12)) == "2026-W02"

    def test_iso_week_year_differs_from_calendar_year(self) -> None:
        # Mon 2025-12-29 belongs to ISO week 1 of 2026.
        assert period_key(Period.WEEKLY, _la(2025, 12, 29, 9)) == "2026-W01"
        # Fri 2021-01-01 belongs to ISO week 53 of 2020.
        assert period_key(Period.WEEKLY, _la(2021, 1, 1, 12)) == "2020-W53"

    def test_same_week_same_key(self) -> None:
        monday = _la(2026, 1, 5, 0, 0)
        keys = {period_key(Period.WEEKLY, monday + timedelta(hours=h)) for h in range(0, 7 * 24, 5)}
        assert keys == {"2026-W02"}

    def test_next_week_later_key(self) -> None:
        t1 = _la(2026, 1, 7, 12)
        t2 = t1 + timedelta(weeks=1)
        assert period_key(Period.WEEKLY, t1) != period_key(Period.WEEKLY, t2)
        assert period_key(Period.WEEKLY, t2) > period_key(Period.WEEKLY, t1)

    def test_rollover_uses_reference_zone(self) -> None:
        # Sunday 23:59 in Los Angeles is already Monday in UTC.
        before = datetime(2026, 1, 5, 7, 59, tzinfo=UTC)
        after = datetime(2026, 1, 5, 8, 0, tzinfo=UTC)
        assert period_key(Period.WEEKLY, before, LA) == "2026-W01"
        assert period_key(Period.WEEKLY, after, LA) == "2026-W02"

    def test_caller_zone_does_not_matter(self) -> None:
        instant = datetime(2026, 1, 5, 7, 30, tzinfo=UTC)
        tokyo = instant.astimezone(ZoneInfo("Asia/Tokyo"))
        assert period_key(Period.WEEKLY, instant, LA) == period_key(Period.WEEKLY, tokyo, LA)

    def test_naive_is_utc(self) -> None:
        assert period_key(Period.WEEKLY, datetime(2026, 1, 5, 7, 59), LA) == "2026-W01"


class TestMonthlyAndYearlyKeys:
    def test_monthly_format(self) -> None:
        assert period_key(Period.MONTHLY, _la(2026, 3, 9)) == "2026-03"

    def test_monthly_boundary_in_reference_zone(self) -> None:
        # 07:00 UTC on Feb 1 is still Jan 31 in Los Angeles.
        assert period_key(Period.MONTHLY, datetime(2026, 2, 1, 7, 0, tzinfo=UTC), LA) == "2026-01"
        assert period_key(Period.MONTHLY, datetime(2026, 2, 1, 8, 0, tzinfo=UTC), LA) == "2026-02"

    def test_yearly_format(self) -> None:
        assert period_key(Period.YEARLY, _la(2026, 6, 1)) == "2026"

    def test_yearly_boundary_in_reference_zone(self) -> None:
        assert period_key(Period.YEARLY, datetime(2026, 1, 1, 5, 0, tzinfo=UTC), LA) == "2025"

    def test_period_key_accepts_string(self) -> None:
        assert period_key("monthly", _la(2026, 4, 2)) == "2026-04"  # type: ignore[arg-type]

    def test_defaults_to_now(self) -> None:
        key = period_key(Period.YEARLY)
        assert len(key) == 4 and key.isdigit()


# ---------------------------------------------------------------------------
# Boundaries
# ---------------------------------------------------------------------------


class TestBoundaries:
    def test_week_starts_monday(self) -> None:
        start = period_start(Period.WEEKLY, _la(2026, 1, 7, 15))
        assert start == _la(2026, 1, 5)
        assert start.weekday() == 0

    def test_next_month_wraps_year(self) -> None:
        assert next_period_start(Period.MONTHLY, _la(2026, 12, 15)) == _la(2027, 1, 1)

    def test_next_year(self) -> None:
        assert next_period_start(Period.YEARLY, _la(2026, 7, 4)) == _la(2027, 1, 1)


class TestPreviousPeriodKey:
    def test_previous_week(self) -> None:
        assert previous_period_key(Period.WEEKLY, _la(2026, 1, 7)) == "2026-W01"

    def test_previous_week_across_years(self) -> None:
        assert previous_period_key(Period.WEEKLY, _la(2026, 1, 1)) == "2025-W52"

    def test_previous_month(self) -> None:
        assert previous_period_key(Period.MONTHLY, _la(2026, 1, 15)) == "2025-12"
        assert previous_period_key(Period.MONTHLY, _la(2026, 3, 31)) == "2026-02"

    def test_previous_year(self) -> None:
        assert previous_period_key(Period.YEARLY, _la(2026, 8, 1)) == "2025"


# ---------------------------------------------------------------------------
# Countdown
# ---------------------------------------------------------------------------


class TestTimeUntilNextReset:
    def test_weekly(self) -> None:
        # Wed noon -> next Monday midnight = 4.5 days
        ms = time_until_next_reset(Period.WEEKLY, _la(2026, 1, 7, 12), LA)
        assert ms == int(timedelta(days=4, hours=12).total_seconds() * 1000)

    def test_weekly_across_dst_start(self) -> None:
        # Clocks spring forward on 2026-03-08, so only 47 real hours remain.
        ms = time_until_next_reset(Period.WEEKLY, _la(2026, 3, 7, 0), LA)
        assert ms == 47 * 3_600_000

    def test_monthly(self) -> None:
        ms = time_until_next_reset(Period.MONTHLY, _la(2026, 1, 31, 23), LA)
        assert ms == 3_600_000

    def test_yearly(self) -> None:
        ms = time_until_next_reset(Period.YEARLY, _la(2026, 12, 31, 23, 30), LA)
        assert ms == 30 * 60_000

    @pytest.mark.parametrize("period", list(Period))
    def test_always_positive(self, period: Period) -> None:
        assert time_until_next_reset(period) > 0


class TestFormatCountdown:
    def test_days(self) -> None:
        assert format_countdown(388_800_000) == "4d 12h 0m"

    def test_hours(self) -> None:
        assert format_countdown(3_660_000) == "1h 1m"

    def test_minutes(self) -> None:
        assert format_countdown(59_999) == "0m"

    def test_negative_clamped(self) -> None:
        assert format_countdown(-5) == "0m"
