"""
Working-day calendar.

Counts the days a leave request actually consumes: configured weekdays
only, minus public holidays, with optional half days at either end.
"""
from datetime import date, timedelta
from typing import FrozenSet, Iterable, Iterator, Tuple

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class WorkingCalendar:
    def __init__(
        self,
        working_weekdays: FrozenSet[int],
        fixed_holidays: FrozenSet[date] = frozenset(),
        recurring_holidays: FrozenSet[Tuple[int, int]] = frozenset(),
    ):
        self.working_weekdays = frozenset(working_weekdays)
        self.fixed_holidays = frozenset(fixed_holidays)
        self.recurring_holidays = frozenset(recurring_holidays)

    @classmethod
    def from_names(cls, working_days: Iterable[str], holidays: Iterable = ()) -> "WorkingCalendar":
        weekdays = frozenset(WEEKDAY_NAMES.index(name.capitalize()) for name in working_days)
        fixed, recurring = set(), set()
        for holiday in holidays:
            if holiday.recurring:
                recurring.add((holiday.day.month, holiday.day.day))
            else:
                fixed.add(holiday.day)
        return cls(weekdays, frozenset(fixed), frozenset(recurring))

    def is_holiday(self, day: date) -> bool:
        return day in self.fixed_holidays or (day.month, day.day) in self.recurring_holidays

    def is_working_day(self, day: date) -> bool:
        return day.weekday() in self.working_weekdays and not self.is_holiday(day)

    def iter_working_days(self, start: date, end: date) -> Iterator[date]:
        day = start
        while day <= end:
            if self.is_working_day(day):
                yield day
            day += timedelta(days=1)

    def count_working_days(
        self,
        start: date,
        end: date,
        start_half_day: bool = False,
        end_half_day: bool = False,
    ) -> float:
        """
        Working days in [start, end]. A half-day flag removes half of that
        boundary day; on a single-day range either flag yields 0.5.
        """
        if end < start:
            raise ValueError("end date precedes start date")

        full_days = sum(1 for _ in self.iter_working_days(start, end))
        if full_days == 0:
            return 0.0

        if start == end:
            return 0.5 if (start_half_day or end_half_day) else 1.0

        total = float(full_days)
        if start_half_day and self.is_working_day(start):
            total -= 0.5
        if end_half_day and self.is_working_day(end):
            total -= 0.5
        return total

    def working_days_between(self, after: date, until: date) -> int:
        """Working days in (after, until]. Zero when `until` is not after `after`."""
        if until <= after:
            return 0
        return sum(1 for _ in self.iter_working_days(after + timedelta(days=1), until))
