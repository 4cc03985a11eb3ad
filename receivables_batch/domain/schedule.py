"""
Pure schedule evaluation functions.

Contract:
    ``should_fire(schedule, as_of)`` and ``compute_next_run()`` are PURE --
    no I/O, no clock access.  The scheduler supplies ``as_of`` from its
    injected Clock.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta

from receivables_batch.domain.types import JobSchedule, ScheduleFrequency

_FIXED_DELTAS = {
    ScheduleFrequency.HOURLY: timedelta(hours=1),
    ScheduleFrequency.DAILY: timedelta(days=1),
    ScheduleFrequency.WEEKLY: timedelta(weeks=1),
}


def add_months(base: datetime, months: int) -> datetime:
    """``base`` moved by whole calendar months, clamping the day to month end."""
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return base.replace(year=year, month=month, day=day)


def should_fire(schedule: JobSchedule, as_of: datetime) -> bool:
    """Determine if a schedule should fire at ``as_of``.

    Rules:
        - Inactive schedules never fire.
        - ON_DEMAND never fires automatically.
        - ONCE fires if never run before.
        - Recurring frequencies fire when ``as_of >= next_run_at``, or
          immediately when no next run has been computed yet.
    """
    if not schedule.is_active:
        return False

    if schedule.frequency == ScheduleFrequency.ON_DEMAND:
        return False

    if schedule.frequency == ScheduleFrequency.ONCE:
        return schedule.last_run_at is None

    if schedule.next_run_at is not None and as_of < schedule.next_run_at:
        return False

    return True


def compute_next_run(
    frequency: ScheduleFrequency,
    last_run_at: datetime | None,
) -> datetime | None:
    """Next run time after ``last_run_at``; None for ONCE / ON_DEMAND or a never-run schedule."""
    if frequency in (ScheduleFrequency.ON_DEMAND, ScheduleFrequency.ONCE):
        return None
    if last_run_at is None:
        return None
    if frequency == ScheduleFrequency.MONTHLY:
        return add_months(last_run_at, 1)
    return last_run_at + _FIXED_DELTAS[frequency]
