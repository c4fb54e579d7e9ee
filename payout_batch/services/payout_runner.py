"""
PayoutRunService -- the scan-then-settle pipeline and the reporting jobs.

Contract:
    ``run_automatic_payouts()`` is the one pipeline behind both the periodic
    task and the manual trigger.  It never raises: a scan failure is logged,
    reported to the notifier and returned as a FAILED PayoutRunResult.
    ``generate_daily_summary()`` and ``perform_maintenance()`` only read.

Architecture: payout_batch/services.  Composes kernel services with values
    from PayoutSettings; the kernel never sees the settings object.

Invariants enforced:
    - Each payment settles in its own transaction (SettlementProcessor);
      a run killed mid-batch leaves settled payments settled.
    - Notifications go through the side-effect dispatcher and never affect
      the run result.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Callable
from uuid import uuid4

from sqlalchemy.orm import Session

from payout_batch.domain.types import (
    MaintenanceReport,
    PayoutRunResult,
    PayoutRunStatus,
    PayoutRunTrigger,
)
from payout_config.schema import PayoutSettings
from payout_kernel.db.engine import transaction_scope
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.eligibility import EligibilityEvaluator
from payout_kernel.domain.types import (
    AffiliatePayoutStatus,
    EarningStatus,
    EligibilitySummary,
    PaymentSnapshot,
    SettlementRunResult,
)
from payout_kernel.logging_config import LogContext, get_logger
from payout_kernel.selectors.affiliate_selector import AffiliateSelector
from payout_kernel.selectors.payment_selector import PaymentSelector
from payout_kernel.services.eligibility_scanner import BatchEligibilityScanner
from payout_kernel.services.settlement_service import (
    SettlementEffects,
    SettlementProcessor,
)
from payout_kernel.services.side_effects import (
    LoggingPayoutNotifier,
    PayoutNotifier,
    SideEffectDispatcher,
)

logger = get_logger("batch.payout_runner")


def _run_status(batch: SettlementRunResult) -> PayoutRunStatus:
    if batch.failed == 0:
        return PayoutRunStatus.COMPLETED
    if batch.failed == batch.total:
        return PayoutRunStatus.FAILED
    return PayoutRunStatus.PARTIALLY_COMPLETED


class PayoutRunService:
    """Runs payout jobs against the store.

    Non-goals:
        - Does NOT prevent overlapping runs.  Overlap is safe because every
          write is a conditional UPDATE or guarded by a UNIQUE constraint.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: PayoutSettings,
        clock: Clock | None = None,
        notifier: PayoutNotifier | None = None,
        dispatcher: SideEffectDispatcher | None = None,
        effects: SettlementEffects | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingPayoutNotifier(
            admin_emails=settings.admin_emails,
            enabled=settings.notification_enabled,
        )
        self._dispatcher = dispatcher or SideEffectDispatcher(synchronous=True)
        self._evaluator = EligibilityEvaluator(settings.waiting_period_days)
        self._processor = SettlementProcessor(
            session_factory,
            self._evaluator,
            instructor_share_percent=settings.instructor_share_percent,
            clock=self._clock,
            effects=effects,
        )

    @property
    def settings(self) -> PayoutSettings:
        return self._settings

    @property
    def processor(self) -> SettlementProcessor:
        return self._processor

    # -------------------------------------------------------------------------
    # Settlement run
    # -------------------------------------------------------------------------

    def run_automatic_payouts(
        self, trigger: PayoutRunTrigger = PayoutRunTrigger.SCHEDULED,
    ) -> PayoutRunResult:
        run_id = uuid4()
        started_at = self._clock.now()

        if not self._settings.scheduling_enabled:
            logger.info(
                "automatic_payouts_disabled",
                extra={"run_id": str(run_id), "trigger": trigger.value},
            )
            return PayoutRunResult(
                run_id=run_id,
                trigger=trigger,
                status=PayoutRunStatus.DISABLED,
                started_at=started_at,
                completed_at=started_at,
            )

        with LogContext.bind(run_id=str(run_id), trigger=trigger.value):
            logger.info("payout_run_started")
            try:
                eligible = self._find_eligible()
            except Exception as exc:
                logger.exception("payout_scan_failed")
                self._notify("send_run_error", str(exc))
                return PayoutRunResult(
                    run_id=run_id,
                    trigger=trigger,
                    status=PayoutRunStatus.FAILED,
                    started_at=started_at,
                    completed_at=self._clock.now(),
                    error_message=str(exc),
                )

            if not eligible:
                logger.info("no_eligible_payments")
                return PayoutRunResult(
                    run_id=run_id,
                    trigger=trigger,
                    status=PayoutRunStatus.COMPLETED,
                    started_at=started_at,
                    completed_at=self._clock.now(),
                )

            batch = self._processor.process_batch(p.payment_id for p in eligible)
            result = PayoutRunResult(
                run_id=run_id,
                trigger=trigger,
                status=_run_status(batch),
                started_at=started_at,
                completed_at=self._clock.now(),
                eligible_count=len(eligible),
                settled_count=batch.settled,
                skipped_count=batch.skipped,
                failed_count=batch.failed,
                total_payment_amount=batch.total_payment_amount,
                total_earning_amount=batch.total_earning_amount,
                outcomes=batch.outcomes,
            )
            self._notify(
                "send_run_summary",
                result.settled_count,
                result.failed_count,
                result.total_payment_amount,
            )
            logger.info(
                "payout_run_completed",
                extra={
                    "status": result.status.value,
                    "eligible_count": result.eligible_count,
                    "settled_count": result.settled_count,
                    "skipped_count": result.skipped_count,
                    "failed_count": result.failed_count,
                    "total_payment_amount": str(result.total_payment_amount),
                },
            )
            return result

    def _find_eligible(self) -> tuple[PaymentSnapshot, ...]:
        with transaction_scope(self._session_factory) as session:
            scanner = BatchEligibilityScanner(
                session,
                self._evaluator,
                batch_size=self._settings.batch_size,
                oversample_factor=self._settings.oversample_factor,
                max_pages=self._settings.max_scan_pages,
                clock=self._clock,
            )
            return scanner.find_eligible_payments()

    # -------------------------------------------------------------------------
    # Reporting and housekeeping
    # -------------------------------------------------------------------------

    def get_eligibility_summary(self) -> EligibilitySummary:
        with transaction_scope(self._session_factory) as session:
            scanner = BatchEligibilityScanner(
                session,
                self._evaluator,
                batch_size=self._settings.batch_size,
                clock=self._clock,
            )
            return scanner.get_eligibility_summary(limit=self._settings.summary_scan_limit)

    def generate_daily_summary(self) -> EligibilitySummary:
        summary = self.get_eligibility_summary()
        self._notify("send_daily_summary", summary.to_dict())
        return summary

    def perform_maintenance(self) -> MaintenanceReport:
        now = self._clock.now()
        stale_before = now - timedelta(days=self._settings.stale_payout_days)

        with transaction_scope(self._session_factory) as session:
            earnings = PaymentSelector(session).count_earnings_by_status()
            affiliates = AffiliateSelector(session)
            stats = affiliates.statistics()
            stale = affiliates.count_stale_pending(stale_before)

        report = MaintenanceReport(
            total_earnings=sum(earnings.values()),
            available_earnings=earnings[EarningStatus.AVAILABLE],
            paid_earnings=earnings[EarningStatus.PAID],
            total_affiliate_payouts=stats.total_payouts,
            pending_affiliate_payouts=stats.pending_payouts,
            stale_pending_payouts=stale,
            stale_before=stale_before,
            generated_at=now,
        )
        if stale:
            logger.warning(
                "stale_affiliate_payouts",
                extra={
                    "count": stale,
                    "status": AffiliatePayoutStatus.PENDING.value,
                    "older_than_days": self._settings.stale_payout_days,
                },
            )
        logger.info("payout_maintenance_completed", extra=report.to_dict())
        return report

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def _notify(self, method: str, *args: Any) -> None:
        if not self._settings.notification_enabled:
            return
        self._dispatcher.submit(f"notify.{method}", getattr(self._notifier, method), *args)
