"""
Work calendars -- which days count as working days for an employee.

The calendar is an injected capability: the engine only asks
``is_working_day(employee_id, day)``. ``WeekdayCalendar`` is the default
implementation (Saturday/Sunday off plus a public holiday set).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class WorkCalendar(Protocol):
    """Employee working-day capability. Must be side-effect free."""

    def is_working_day(self, employee_id: str, day: date) -> bool:
        ...


@dataclass(frozen=True)
class WeekdayCalendar:
    """Fixed weekly off-days plus public holidays, same for every employee."""
    weekend_days: frozenset[int] = frozenset({5, 6})  # Monday == 0
    holidays: frozenset[date] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if any(d < 0 or d > 6 for d in self.weekend_days):
            raise ValueError("weekend_days must be weekday numbers 0..6")

    @classmethod
    def with_holidays(cls, holidays: Iterable[date]) -> "WeekdayCalendar":
        return cls(holidays=frozenset(holidays))

    def is_working_day(self, employee_id: str, day: date) -> bool:
        return day.weekday() not in self.weekend_days and day not in self.holidays


def iter_days(start: date, end: date) -> Iterator[date]:
    """Every calendar day from ``start`` to ``end`` inclusive."""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def working_days_between(
    calendar: WorkCalendar,
    employee_id: str,
    start: date,
    end: date,
) -> int:
    """Count working days in [start, end] inclusive."""
    return sum(1 for d in iter_days(start, end) if calendar.is_working_day(employee_id, d))
