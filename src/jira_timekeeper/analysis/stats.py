"""Derived statistics over worklog collections.

Everything here is recomputed on each call from already-fetched worklogs.
"""

import calendar
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from jira_timekeeper.core.models import WorkLog

DEFAULT_TARGET_HOURS = 168


@dataclass
class TaskTotal:
    """Time logged on a single task."""

    issue_key: str
    minutes: int
    entries: int
    percentage_of_target: float


@dataclass
class MonthlySummary:
    """Progress towards a monthly hours target.

    Attributes:
        month: Calendar month (1-12)
        year: Calendar year
        target_hours: Monthly target
        total_minutes: Minutes logged in the month
        percentage: Share of the target reached
        remaining_minutes: Minutes still needed, never negative
        business_days_left: Weekdays left in the month, counting the start day
        daily_minutes_needed: Minutes per business day to reach the target
        tasks: Per-task totals, largest first
    """

    month: int
    year: int
    target_hours: float
    total_minutes: int
    percentage: float
    remaining_minutes: int
    business_days_left: int
    daily_minutes_needed: float
    tasks: list[TaskTotal] = field(default_factory=list)

    @property
    def total_hours(self) -> float:
        return self.total_minutes / 60


def total_minutes(worklogs: Iterable[WorkLog]) -> int:
    """Sum of time spent over worklogs."""
    return sum(w.time_spent_minutes for w in worklogs)


def group_by_task(worklogs: Iterable[WorkLog]) -> dict[str, list[WorkLog]]:
    """Partition worklogs by issue key.

    Keys keep the order in which they first appear; entries keep their order
    within a key.
    """
    groups: dict[str, list[WorkLog]] = {}
    for worklog in worklogs:
        groups.setdefault(worklog.issue_key, []).append(worklog)
    return groups


def percentage_of_target(minutes: int, target_hours: float) -> float:
    """Percentage of a target reached by ``minutes``.

    Returns:
        ``(minutes / 60) / target_hours * 100``, or 0 for a non-positive target
    """
    if target_hours <= 0:
        return 0.0
    return (minutes / 60) / target_hours * 100


def business_days_remaining(year: int, month: int, start_day: int) -> int:
    """Count weekdays from start_day to the end of the month, inclusive.

    Args:
        year: Calendar year
        month: Calendar month (1-12)
        start_day: First day of the month to count

    Returns:
        Number of days that are neither Saturday nor Sunday
    """
    last_day = calendar.monthrange(year, month)[1]
    count = 0
    for day in range(max(start_day, 1), last_day + 1):
        if date(year, month, day).weekday() < 5:
            count += 1
    return count


def daily_minutes_needed(minutes: int, target_hours: float, business_days: int) -> float:
    """Minutes per business day still needed to reach the target.

    Returns:
        Remaining minutes divided by business days, 0 if none remain
    """
    if business_days <= 0:
        return 0.0
    remaining = max(0.0, target_hours * 60 - minutes)
    return remaining / business_days


def task_breakdown(
    worklogs: Iterable[WorkLog], target_hours: float = DEFAULT_TARGET_HOURS
) -> list[TaskTotal]:
    """Per-task totals sorted by time spent, largest first."""
    totals = [
        TaskTotal(
            issue_key=key,
            minutes=total_minutes(entries),
            entries=len(entries),
            percentage_of_target=percentage_of_target(total_minutes(entries), target_hours),
        )
        for key, entries in group_by_task(worklogs).items()
    ]
    totals.sort(key=lambda t: t.minutes, reverse=True)
    return totals


def summarize_month(
    worklogs: list[WorkLog],
    month: int,
    year: int,
    target_hours: float = DEFAULT_TARGET_HOURS,
    today: Optional[date] = None,
) -> MonthlySummary:
    """Compute progress towards the monthly target.

    Business days are counted from today for the current month, and from the
    last day of the month otherwise.

    Args:
        worklogs: Worklogs already restricted to the month
        month: Calendar month (1-12)
        year: Calendar year
        target_hours: Monthly target in hours
        today: Reference date. Defaults to today.

    Returns:
        Monthly summary
    """
    if today is None:
        today = date.today()

    if (today.year, today.month) == (year, month):
        start_day = today.day
    else:
        start_day = calendar.monthrange(year, month)[1]

    total = total_minutes(worklogs)
    days_left = business_days_remaining(year, month, start_day)

    return MonthlySummary(
        month=month,
        year=year,
        target_hours=target_hours,
        total_minutes=total,
        percentage=percentage_of_target(total, target_hours),
        remaining_minutes=max(0, int(round(target_hours * 60)) - total),
        business_days_left=days_left,
        daily_minutes_needed=daily_minutes_needed(total, target_hours, days_left),
        tasks=task_breakdown(worklogs, target_hours),
    )
