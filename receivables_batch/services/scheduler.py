"""
BatchScheduler -- In-process polling scheduler.

Contract:
    Polls active schedules on a configurable interval, evaluates
    ``should_fire()`` (pure), and submits + executes jobs via
    ``BatchExecutor``.  The stop signal doubles as the executor's
    cancellation event, so ``stop()`` interrupts a running job between
    items and leaves it resumable.

Architecture: receivables_batch/services.  Uses receivables_batch.domain.schedule
    for pure evaluation and receivables_batch.services.executor for execution.

Invariants enforced:
    - All timestamps from the injected Clock.
    - Schedule evaluation is pure (should_fire).
    - Graceful shutdown: the stop signal is honoured between schedules and
      between items.
"""

from __future__ import annotations

import threading
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from receivables_batch.domain.schedule import compute_next_run, should_fire
from receivables_batch.domain.types import JobSchedule, ScheduleFrequency
from receivables_batch.models.batch import JobScheduleModel
from receivables_batch.services.executor import BatchExecutor
from receivables_kernel.db.base import SYSTEM_ACTOR_ID
from receivables_kernel.domain.clock import Clock, SystemClock
from receivables_kernel.exceptions import ScheduleNotFoundError
from receivables_kernel.logging_config import get_logger

logger = get_logger("batch.scheduler")


def add_schedule(
    session: Session,
    job_name: str,
    task_type: str,
    frequency: ScheduleFrequency,
    actor_id: UUID = SYSTEM_ACTOR_ID,
    parameters: dict[str, Any] | None = None,
    next_run_at=None,
) -> JobSchedule:
    """Persist a new active schedule."""
    model = JobScheduleModel(
        id=uuid4(),
        job_name=job_name,
        task_type=task_type,
        frequency=frequency.value,
        parameters=parameters or None,
        next_run_at=next_run_at,
        is_active=True,
        created_by_id=actor_id,
    )
    session.add(model)
    session.flush()
    logger.info("schedule_added", extra={
        "schedule_id": str(model.id),
        "job_name": job_name,
        "frequency": frequency.value,
    })
    return model.to_dto()


def set_schedule_active(session: Session, schedule_id: UUID, active: bool) -> JobSchedule:
    """Pause or resume a schedule.

    Raises:
        ScheduleNotFoundError: If schedule_id does not exist.
    """
    model = session.get(JobScheduleModel, schedule_id)
    if model is None:
        raise ScheduleNotFoundError(str(schedule_id))
    model.is_active = active
    session.flush()
    return model.to_dto()


class BatchScheduler:
    """In-process polling scheduler for batch job schedules.

    Contract:
        - ``tick()`` evaluates all active schedules, fires due ones.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election).
        - Does NOT handle timezone conversions (expects UTC).
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        executor_factory: Callable[[Session], BatchExecutor],
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        tick_interval_seconds: int = 60,
    ):
        self._session_factory = session_factory
        self._executor_factory = executor_factory
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or SYSTEM_ACTOR_ID
        self._tick_interval = tick_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> int:
        """Evaluate and fire due schedules (public for testing).

        Returns the number of schedules that were fired.
        """
        session = self._session_factory()
        try:
            fired = self._evaluate_schedules(session)
            session.commit()
            return fired
        except Exception:
            session.rollback()
            logger.exception("scheduler_tick_failed")
            return 0
        finally:
            session.close()

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="batch-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the scheduler to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Background polling loop.  Exits when stop_event is set."""
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._tick_interval)

    def _evaluate_schedules(self, session: Session) -> int:
        """Query active schedules, evaluate, fire due ones."""
        now = self._clock.now()

        schedules = session.execute(
            select(JobScheduleModel)
            .where(JobScheduleModel.is_active == True)  # noqa: E712
            .order_by(JobScheduleModel.job_name)
        ).scalars().all()

        fired = 0

        for schedule_model in schedules:
            if self._stop_event.is_set():
                break

            if not should_fire(schedule_model.to_dto(), now):
                continue

            try:
                with session.begin_nested():
                    self._fire(session, schedule_model, now)
                fired += 1
            except Exception:
                logger.exception(
                    "schedule_fire_failed",
                    extra={
                        "schedule_id": str(schedule_model.id),
                        "job_name": schedule_model.job_name,
                    },
                )

        return fired

    def _fire(self, session: Session, schedule_model: JobScheduleModel, now) -> None:
        idempotency_key = (
            f"schedule-{schedule_model.id}-"
            f"{now.strftime('%Y%m%d-%H%M')}"
        )

        executor = self._executor_factory(session)

        job = executor.submit_job(
            job_name=schedule_model.job_name,
            task_type=schedule_model.task_type,
            idempotency_key=idempotency_key,
            actor_id=self._actor_id,
            parameters=schedule_model.parameters or {},
        )

        result = executor.execute_job(
            job.job_id, self._actor_id, cancel_event=self._stop_event,
        )

        schedule_model.last_run_at = now
        schedule_model.last_run_status = result.status.value
        next_run = compute_next_run(
            frequency=ScheduleFrequency(schedule_model.frequency),
            last_run_at=now,
        )
        schedule_model.next_run_at = next_run

        logger.info(
            "schedule_fired",
            extra={
                "schedule_id": str(schedule_model.id),
                "job_name": schedule_model.job_name,
                "job_id": str(job.job_id),
                "status": result.status.value,
                "next_run_at": next_run.isoformat() if next_run else None,
            },
        )
