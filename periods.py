import calendar
from dataclasses import dataclass
from datetime import date, timedelta

from models import BudgetPeriod


@dataclass(frozen=True)
class Period:
    """Half-open date range ``[start, end)``."""

    start: date
    end: date


def month_start(d: date) -> date:
    return d.replace(day=1)


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def shift_months(d: date, count: int) -> date:
    """Move ``d`` by ``count`` months keeping the day, clamped to the month's end."""
    first = add_months(d, count)
    last_day = calendar.monthrange(first.year, first.month)[1]
    return first.replace(day=min(d.day, last_day))


def week_start_on_or_before(d: date, week_start: int) -> date:
    return d - timedelta(days=(d.weekday() - week_start) % 7)


def budget_period_range(
    period: BudgetPeriod, reference: date, *, week_start: int = 6
) -> Period:
    if period == BudgetPeriod.weekly:
        start = week_start_on_or_before(reference, week_start)
        return Period(start, start + timedelta(days=7))
    start = month_start(reference)
    return Period(start, add_months(start, 1))


def trailing_months_start(today: date, months: int = 12) -> date:
    """First day of the window covering the current month and the ``months - 1`` before it."""
    return add_months(month_start(today), -(months - 1))


def trailing_days(today: date, days: int) -> Period:
    """``days`` calendar days ending with (and including) ``today``."""
    start = today - timedelta(days=days - 1)
    return Period(start, today + timedelta(days=1))
