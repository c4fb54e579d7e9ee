"""
PayoutScheduler -- In-process polling scheduler for payout tasks.

Contract:
    Holds a set of ScheduledJobs (cron expression -> task type).  Every
    ``tick()`` fires the jobs whose next run time has been reached, through
    the TaskRegistry, then recomputes their next run time.

Architecture: payout_batch/services.  Uses payout_batch.domain.schedule for
    pure evaluation.

Invariants enforced:
    - All timestamps come from the injected Clock.
    - A task that raises is logged; the loop and later ticks carry on.
    - Only next-fire times live in memory.  Losing them on restart loses
      nothing but the position in the schedule; settlement correctness lives
      in the store.
    - Graceful shutdown: ``stop()`` is honoured between jobs.
"""

from __future__ import annotations

import threading
from datetime import datetime

from payout_batch.domain.schedule import compute_next_run, should_fire
from payout_batch.domain.types import ScheduledJob
from payout_batch.tasks.base import TaskRegistry
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.logging_config import get_logger

logger = get_logger("batch.scheduler")


class PayoutScheduler:
    """In-process polling scheduler for payout jobs.

    Non-goals:
        - NOT a distributed scheduler (no leader election).  Overlapping
          runs from several processes are tolerated by the settlement
          protocol, not prevented here.
    """

    def __init__(
        self,
        task_registry: TaskRegistry,
        jobs: tuple[ScheduledJob, ...],
        clock: Clock | None = None,
        tick_interval_seconds: int = 60,
    ):
        for job in jobs:
            if job.task_type not in task_registry:
                raise ValueError(
                    f"Job '{job.name}' references unknown task type '{job.task_type}'"
                )
        self._registry = task_registry
        self._jobs = tuple(jobs)
        self._clock = clock or SystemClock()
        self._tick_interval = tick_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

        now = self._clock.now()
        self._next_run: dict[str, datetime | None] = {
            job.name: compute_next_run(job.cron_expression, now) if job.is_active else None
            for job in self._jobs
        }

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> int:
        """Fire every due job (public for testing).  Returns the number fired."""
        now = self._clock.now()
        fired = 0

        for job in self._jobs:
            if self._stop_event.is_set():
                break
            if not should_fire(self._next_run.get(job.name), now, job.is_active):
                continue

            self._next_run[job.name] = compute_next_run(job.cron_expression, now)
            fired += 1
            try:
                result = self._registry.get(job.task_type).run(now)
            except Exception:
                logger.exception(
                    "scheduled_job_failed",
                    extra={"job_name": job.name, "task_type": job.task_type},
                )
                continue

            logger.info(
                "scheduled_job_fired",
                extra={
                    "job_name": job.name,
                    "task_type": job.task_type,
                    "result_type": type(result).__name__,
                    "next_run_at": self._next_run[job.name],
                },
            )

        return fired

    def next_run_times(self) -> dict[str, datetime | None]:
        return dict(self._next_run)

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="payout-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={
                "tick_interval": self._tick_interval,
                "jobs": [job.name for job in self._jobs],
            },
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current job to finish."""
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
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)
