import pytest
from datetime import date

from leaveflow.schemas.policy import HolidayEntry
from leaveflow.services.calendar import WorkingCalendar

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"]


@pytest.fixture
def calendar():
    holidays = [
        HolidayEntry(day=date(2020, 12, 25), name="Christmas", recurring=True),
        HolidayEntry(day=date(2025, 3, 12), name="Company day", recurring=False),
    ]
    return WorkingCalendar.from_names(WEEKDAYS, holidays)


def test_full_week_counts_weekdays_only(calendar):
    # Mon 2025-03-03 .. Sun 2025-03-09
    assert calendar.count_working_days(date(2025, 3, 3), date(2025, 3, 9)) == 5


def test_single_day_request(calendar):
    assert calendar.count_working_days(date(2025, 3, 4), date(2025, 3, 4)) == 1
    assert calendar.count_working_days(date(2025, 3, 4), date(2025, 3, 4), start_half_day=True) == 0.5


def test_weekend_only_range_has_no_working_days(calendar):
    assert calendar.count_working_days(date(2025, 3, 8), date(2025, 3, 9)) == 0


def test_half_days_at_both_ends(calendar):
    # Mon..Fri with half days on Monday and Friday
    assert calendar.count_working_days(
        date(2025, 3, 3), date(2025, 3, 7), start_half_day=True, end_half_day=True
    ) == 4


def test_half_day_flag_on_weekend_boundary_is_ignored(calendar):
    # Starts on Saturday; the half day falls on a non-working day
    assert calendar.count_working_days(date(2025, 3, 8), date(2025, 3, 11), start_half_day=True) == 2


def test_fixed_and_recurring_holidays_are_skipped(calendar):
    assert not calendar.is_working_day(date(2025, 3, 12))
    assert calendar.is_working_day(date(2026, 3, 12))
    assert not calendar.is_working_day(date(2025, 12, 25))
    # Mon 10 .. Fri 14 March 2025 with the company day on Wednesday
    assert calendar.count_working_days(date(2025, 3, 10), date(2025, 3, 14)) == 4


def test_reversed_range_raises(calendar):
    with pytest.raises(ValueError):
        calendar.count_working_days(date(2025, 3, 7), date(2025, 3, 3))


def test_working_days_between_excludes_start(calendar):
    # Mon 3 -> Thu 6: Tue, Wed, Thu
    assert calendar.working_days_between(date(2025, 3, 3), date(2025, 3, 6)) == 3
    assert calendar.working_days_between(date(2025, 3, 6), date(2025, 3, 3)) == 0

