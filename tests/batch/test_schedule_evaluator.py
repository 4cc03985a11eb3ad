"""
Tests for receivables_batch.domain.schedule.

Validates the pure schedule evaluation functions: should_fire(),
compute_next_run() and month arithmetic.
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from receivables_batch.domain.schedule import add_months, compute_next_run, should_fire
from receivables_batch.domain.types import (
    BatchJobStatus,
    JobSchedule,
    ScheduleFrequency,
)

NOW = datetime(2024, 6, 30, 12, 0, 0, tzinfo=timezone.utc)


def _schedule(frequency=ScheduleFrequency.DAILY, **kwargs) -> JobSchedule:
    return JobSchedule(
        schedule_id=uuid4(),
        job_name="Nightly payment scores",
        task_type="receivables.payment_score_recalculation",
        frequency=frequency,
        **kwargs,
    )


class TestJobSchedule:
    def test_frozen(self):
        schedule = _schedule()
        with pytest.raises(FrozenInstanceError):
            schedule.is_active = False  # type: ignore[misc]

    def test_defaults(self):
        schedule = _schedule()
        assert schedule.is_active is True
        assert schedule.next_run_at is None
        assert schedule.last_run_status is None
        assert schedule.parameters == {}


# =============================================================================
# should_fire
# =============================================================================


class TestShouldFire:
    def test_inactive_never_fires(self):
        assert not should_fire(_schedule(is_active=False), NOW)

    def test_on_demand_never_fires(self):
        assert not should_fire(_schedule(ScheduleFrequency.ON_DEMAND), NOW)

    def test_once_fires_when_never_run(self):
        assert should_fire(_schedule(ScheduleFrequency.ONCE), NOW)

    def test_once_does_not_fire_again(self):
        schedule = _schedule(
            ScheduleFrequency.ONCE,
            last_run_at=NOW - timedelta(days=1),
            last_run_status=BatchJobStatus.COMPLETED,
        )
        assert not should_fire(schedule, NOW)

    def test_recurring_without_next_run_fires(self):
        assert should_fire(_schedule(ScheduleFrequency.HOURLY), NOW)

    def test_recurring_before_next_run(self):
        schedule = _schedule(next_run_at=NOW + timedelta(minutes=1))
        assert not should_fire(schedule, NOW)

    def test_recurring_at_next_run(self):
        assert should_fire(_schedule(next_run_at=NOW), NOW)

    def test_recurring_after_next_run(self):
        schedule = _schedule(ScheduleFrequency.WEEKLY, next_run_at=NOW - timedelta(hours=3))
        assert should_fire(schedule, NOW)


# =============================================================================
# compute_next_run
# =============================================================================


class TestComputeNextRun:
    @pytest.mark.parametrize("frequency, delta", [
        (ScheduleFrequency.HOURLY, timedelta(hours=1)),
        (ScheduleFrequency.DAILY, timedelta(days=1)),
        (ScheduleFrequency.WEEKLY, timedelta(weeks=1)),
    ])
    def test_fixed_intervals(self, frequency, delta):
        assert compute_next_run(frequency, NOW) == NOW + delta

    def test_monthly(self):
        start = datetime(2024, 3, 15, 2, 0, tzinfo=timezone.utc)
        assert compute_next_run(ScheduleFrequency.MONTHLY, start) == datetime(
            2024, 4, 15, 2, 0, tzinfo=timezone.utc,
        )

    @pytest.mark.parametrize("frequency", [ScheduleFrequency.ONCE, ScheduleFrequency.ON_DEMAND])
    def test_non_recurring(self, frequency):
        assert compute_next_run(frequency, NOW) is None

    def test_never_run(self):
        assert compute_next_run(ScheduleFrequency.DAILY, None) is None


class TestAddMonths:
    def test_clamps_to_month_end(self):
        jan31 = datetime(2024, 1, 31, tzinfo=timezone.utc)
        assert add_months(jan31, 1) == datetime(2024, 2, 29, tzinfo=timezone.utc)

    def test_non_leap_february(self):
        jan31 = datetime(2023, 1, 31, tzinfo=timezone.utc)
        assert add_months(jan31, 1).day == 28

    def test_year_rollover(self):
        dec = datetime(2024, 12, 10, 8, 30, tzinfo=timezone.utc)
        assert add_months(dec, 1) == datetime(2025, 1, 10, 8, 30, tzinfo=timezone.utc)

    def test_keeps_time_and_zone(self):
        result = add_months(NOW, 2)
        assert (result.hour, result.minute, result.tzinfo) == (12, 0, timezone.utc)
