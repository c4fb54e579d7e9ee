"""
Tests for payout_batch.services.scheduler.

Validates PayoutScheduler: next-run computation at start-up, tick()
firing, next-run recomputation, failure isolation between jobs, and the
start/stop lifecycle.
"""

import threading
from datetime import datetime

import pytest

from payout_batch.domain.types import ScheduledJob
from payout_batch.services.scheduler import PayoutScheduler
from payout_batch.tasks.base import TaskRegistry
from payout_kernel.domain.clock import DeterministicClock


# =============================================================================
# Test task implementations
# =============================================================================


class CountingTask:
    """Records every firing time."""

    def __init__(self, task_type="test.counting"):
        self._task_type = task_type
        self.fired_at = []

    @property
    def task_type(self) -> str:
        return self._task_type

    @property
    def description(self) -> str:
        return "Counting test task"

    def run(self, as_of: datetime):
        self.fired_at.append(as_of)
        return len(self.fired_at)


class ExplodingTask:
    """Always raises."""

    task_type = "test.exploding"
    description = "Exploding test task"

    def run(self, as_of: datetime):
        raise RuntimeError("task blew up")


@pytest.fixture
def start():
    return datetime(2024, 1, 10, 11, 30)


@pytest.fixture
def sched_clock(start):
    return DeterministicClock(start)


def _scheduler(clock, *tasks_and_jobs, **kwargs):
    registry = TaskRegistry()
    jobs = []
    for task, job in tasks_and_jobs:
        if task.task_type not in registry:
            registry.register(task)
        jobs.append(job)
    return PayoutScheduler(registry, tuple(jobs), clock=clock, **kwargs)


# =============================================================================
# Construction
# =============================================================================


class TestSchedulerSetup:

    def test_next_runs_computed_from_clock(self, sched_clock):
        task = CountingTask()
        scheduler = _scheduler(
            sched_clock,
            (task, ScheduledJob("hourly", task.task_type, "0 * * * *")),
        )
        assert scheduler.next_run_times() == {"hourly": datetime(2024, 1, 10, 12, 0)}

    def test_inactive_job_has_no_next_run(self, sched_clock):
        task = CountingTask()
        scheduler = _scheduler(
            sched_clock,
            (task, ScheduledJob("off", task.task_type, "0 * * * *", is_active=False)),
        )
        assert scheduler.next_run_times() == {"off": None}

    def test_unknown_task_type_rejected(self, sched_clock):
        with pytest.raises(ValueError):
            PayoutScheduler(
                TaskRegistry(),
                (ScheduledJob("ghost", "test.missing", "0 * * * *"),),
                clock=sched_clock,
            )

    def test_invalid_cron_rejected(self, sched_clock):
        task = CountingTask()
        with pytest.raises(ValueError):
            _scheduler(sched_clock, (task, ScheduledJob("bad", task.task_type, "61 * * * *")))


# =============================================================================
# tick()
# =============================================================================


class TestTick:

    def test_nothing_due(self, sched_clock):
        task = CountingTask()
        scheduler = _scheduler(
            sched_clock, (task, ScheduledJob("hourly", task.task_type, "0 * * * *")),
        )
        assert scheduler.tick() == 0
        assert task.fired_at == []

    def test_fires_when_due_and_recomputes(self, sched_clock):
        task = CountingTask()
        scheduler = _scheduler(
            sched_clock, (task, ScheduledJob("hourly", task.task_type, "0 * * * *")),
        )

        sched_clock.set_time(datetime(2024, 1, 10, 12, 0))
        assert scheduler.tick() == 1
        assert task.fired_at == [datetime(2024, 1, 10, 12, 0)]
        assert scheduler.next_run_times()["hourly"] == datetime(2024, 1, 10, 13, 0)

        # Same minute again: not due
        assert scheduler.tick() == 0

    def test_missed_runs_collapse_into_one(self, sched_clock):
        task = CountingTask()
        scheduler = _scheduler(
            sched_clock, (task, ScheduledJob("hourly", task.task_type, "0 * * * *")),
        )

        sched_clock.set_time(datetime(2024, 1, 10, 17, 20))
        assert scheduler.tick() == 1
        assert len(task.fired_at) == 1
        assert scheduler.next_run_times()["hourly"] == datetime(2024, 1, 10, 18, 0)

    def test_failing_job_does_not_stop_others(self, sched_clock, captured_logs):
        bad = ExplodingTask()
        good = CountingTask()
        scheduler = _scheduler(
            sched_clock,
            (bad, ScheduledJob("bad", bad.task_type, "0 12 * * *")),
            (good, ScheduledJob("good", good.task_type, "0 12 * * *")),
        )

        sched_clock.set_time(datetime(2024, 1, 10, 12, 0))
        assert scheduler.tick() == 2
        assert len(good.fired_at) == 1

        # The failed job still moves on to its next slot
        assert scheduler.next_run_times()["bad"] == datetime(2024, 1, 11, 12, 0)
        failures = [r for r in captured_logs() if r["message"] == "scheduled_job_failed"]
        assert len(failures) == 1
        assert failures[0]["job_name"] == "bad"

    def test_two_jobs_same_task(self, sched_clock):
        task = CountingTask()
        scheduler = _scheduler(
            sched_clock,
            (task, ScheduledJob("morning", task.task_type, "0 12 * * *")),
            (task, ScheduledJob("evening", task.task_type, "0 20 * * *")),
        )
        sched_clock.set_time(datetime(2024, 1, 10, 12, 0))
        assert scheduler.tick() == 1
        sched_clock.set_time(datetime(2024, 1, 10, 20, 0))
        assert scheduler.tick() == 1
        assert len(task.fired_at) == 2


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:

    def test_start_and_stop(self, sched_clock):
        fired = threading.Event()

        class SignallingTask(CountingTask):
            def run(self, as_of):
                fired.set()
                return super().run(as_of)

        task = SignallingTask()
        # Already due at start-up: next run is computed from 11:30, clock moved past it
        scheduler = _scheduler(
            sched_clock,
            (task, ScheduledJob("hourly", task.task_type, "0 * * * *")),
            tick_interval_seconds=1,
        )
        sched_clock.advance_hours(1)

        scheduler.start()
        assert scheduler.is_running
        assert fired.wait(timeout=5)
        scheduler.stop(timeout=5)

        assert not scheduler.is_running
        assert len(task.fired_at) == 1

    def test_start_twice_is_harmless(self, sched_clock):
        task = CountingTask()
        scheduler = _scheduler(
            sched_clock,
            (task, ScheduledJob("hourly", task.task_type, "0 * * * *")),
            tick_interval_seconds=1,
        )
        scheduler.start()
        scheduler.start()
        scheduler.stop(timeout=5)
        assert not scheduler.is_running

    def test_stop_before_start(self, sched_clock):
        task = CountingTask()
        scheduler = _scheduler(
            sched_clock, (task, ScheduledJob("hourly", task.task_type, "0 * * * *")),
        )
        scheduler.stop()
        assert not scheduler.is_running

    def test_tick_honours_stop(self, sched_clock):
        task = CountingTask()
        scheduler = _scheduler(
            sched_clock, (task, ScheduledJob("hourly", task.task_type, "0 * * * *")),
        )
        scheduler.stop()
        sched_clock.advance_hours(1)
        assert scheduler.tick() == 0
