"""
PayoutOrchestrator -- composition root and admin control surface.

Contract:
    Wires the side-effect dispatcher, settlement effects, run service, task
    registry and scheduler from one PayoutSettings.  Exposes the operator
    actions: trigger a run now, eligibility summary, configuration snapshot,
    health check.

Architecture: payout_batch (top-level).  The canonical entry point for
    running payouts; the kernel never imports it.

Invariants enforced:
    - Clock injection: every component receives the same Clock.
    - Manual and scheduled runs share the same pipeline.
"""

from __future__ import annotations

from typing import Any, Callable

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payout_batch.domain.types import (
    PayoutRunStatus,
    PayoutRunTrigger,
    ScheduledJob,
    TriggerResponse,
)
from payout_batch.services.payout_runner import PayoutRunService
from payout_batch.services.scheduler import PayoutScheduler
from payout_batch.tasks.base import TaskRegistry
from payout_batch.tasks.payout_tasks import (
    DAILY_SUMMARY_TASK,
    MAINTENANCE_TASK,
    SETTLEMENT_TASK,
    AutomaticPayoutTask,
    EligibilitySummaryTask,
    PayoutMaintenanceTask,
)
from payout_config.schema import PayoutSettings
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.types import EligibilitySummary
from payout_kernel.logging_config import get_logger
from payout_kernel.services.settlement_service import SettlementEffects
from payout_kernel.services.side_effects import (
    CacheInvalidator,
    PayoutNotifier,
    SideEffectDispatcher,
)

logger = get_logger("batch.orchestrator")

TRIGGER_SUCCESS_MESSAGE = "Payout processing triggered successfully"
TRIGGER_DISABLED_MESSAGE = "Payout processing skipped: automatic payouts are disabled"
TRIGGER_FAILURE_PREFIX = "Failed to trigger payout processing"


def default_jobs(settings: PayoutSettings) -> tuple[ScheduledJob, ...]:
    return (
        ScheduledJob("settlement", SETTLEMENT_TASK, settings.settlement_cron),
        ScheduledJob("daily_summary", DAILY_SUMMARY_TASK, settings.summary_cron),
        ScheduledJob("maintenance", MAINTENANCE_TASK, settings.maintenance_cron),
    )


class PayoutOrchestrator:
    """DI container for the payout system.

    Contract:
        - ``trigger_now()`` runs the settlement pipeline immediately.
        - ``create_scheduler()`` returns a PayoutScheduler for background use.
        - ``close()`` drains the side-effect pool.

    Non-goals:
        - Does NOT start the scheduler automatically; the caller decides.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: PayoutSettings,
        clock: Clock | None = None,
        notifier: PayoutNotifier | None = None,
        cache_invalidator: CacheInvalidator | None = None,
        dispatcher: SideEffectDispatcher | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings
        self._clock = clock or SystemClock()
        self._dispatcher = dispatcher or SideEffectDispatcher(
            max_workers=settings.side_effect_workers,
        )
        effects = SettlementEffects(
            self._dispatcher,
            session_factory,
            cache_invalidator=cache_invalidator,
            commission_percent=settings.commission_percent,
            commission_enabled=settings.commission_enabled,
            clock=self._clock,
        )
        self._run_service = PayoutRunService(
            session_factory,
            settings,
            clock=self._clock,
            notifier=notifier,
            dispatcher=self._dispatcher,
            effects=effects,
        )
        self._task_registry = self._build_task_registry()

    def _build_task_registry(self) -> TaskRegistry:
        registry = TaskRegistry()
        registry.register(AutomaticPayoutTask(self._run_service))
        registry.register(EligibilitySummaryTask(self._run_service))
        registry.register(PayoutMaintenanceTask(self._run_service))
        return registry

    # -------------------------------------------------------------------------
    # Admin control surface
    # -------------------------------------------------------------------------

    def trigger_now(self) -> TriggerResponse:
        """Run the settlement pipeline immediately (manual trigger)."""
        triggered_at = self._clock.now()
        logger.info("manual_payout_trigger")
        try:
            run = self._run_service.run_automatic_payouts(trigger=PayoutRunTrigger.MANUAL)
        except Exception as exc:
            logger.exception("manual_payout_trigger_failed")
            return TriggerResponse(
                success=False,
                message=f"{TRIGGER_FAILURE_PREFIX}: {exc}",
                triggered_at=triggered_at,
            )

        if run.status == PayoutRunStatus.FAILED:
            error = run.error_message or f"{run.failed_count} payments failed"
            return TriggerResponse(
                success=False,
                message=f"{TRIGGER_FAILURE_PREFIX}: {error}",
                triggered_at=triggered_at,
                run=run,
            )
        if run.status == PayoutRunStatus.DISABLED:
            return TriggerResponse(
                success=True,
                message=TRIGGER_DISABLED_MESSAGE,
                triggered_at=triggered_at,
                run=run,
            )
        return TriggerResponse(
            success=True,
            message=TRIGGER_SUCCESS_MESSAGE,
            triggered_at=triggered_at,
            run=run,
        )

    def get_eligibility_summary(self) -> EligibilitySummary:
        return self._run_service.get_eligibility_summary()

    def get_configuration(self) -> dict[str, Any]:
        return self._settings.snapshot()

    def is_healthy(self) -> bool:
        """True when the store answers a trivial query.  Reads nothing else."""
        session = self._session_factory()
        try:
            session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.exception("payout_health_check_failed")
            return False
        finally:
            session.close()

    # -------------------------------------------------------------------------
    # Scheduler
    # -------------------------------------------------------------------------

    def create_scheduler(
        self, jobs: tuple[ScheduledJob, ...] | None = None,
    ) -> PayoutScheduler:
        return PayoutScheduler(
            task_registry=self._task_registry,
            jobs=jobs if jobs is not None else default_jobs(self._settings),
            clock=self._clock,
            tick_interval_seconds=self._settings.tick_interval_seconds,
        )

    def close(self, wait: bool = True) -> None:
        self._dispatcher.shutdown(wait=wait)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> PayoutSettings:
        return self._settings

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def run_service(self) -> PayoutRunService:
        return self._run_service

    @property
    def task_registry(self) -> TaskRegistry:
        return self._task_registry
