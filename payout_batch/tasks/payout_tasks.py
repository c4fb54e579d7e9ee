"""
Scheduled payout tasks.

Each task is a thin adapter from the scheduler's ``run(as_of)`` call to one
PayoutRunService job:

    payouts.settlement     -> run_automatic_payouts()
    payouts.daily_summary  -> generate_daily_summary()
    payouts.maintenance    -> perform_maintenance()
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from payout_batch.domain.types import (
    MaintenanceReport,
    PayoutRunResult,
    PayoutRunTrigger,
)
from payout_kernel.domain.types import EligibilitySummary

if TYPE_CHECKING:
    from payout_batch.services.payout_runner import PayoutRunService

SETTLEMENT_TASK = "payouts.settlement"
DAILY_SUMMARY_TASK = "payouts.daily_summary"
MAINTENANCE_TASK = "payouts.maintenance"


class AutomaticPayoutTask:
    """Scan for eligible payments and settle them."""

    task_type = SETTLEMENT_TASK
    description = "Settle eligible payments into instructor earnings"

    def __init__(self, run_service: PayoutRunService):
        self._run_service = run_service

    def run(self, as_of: datetime) -> PayoutRunResult:
        return self._run_service.run_automatic_payouts(trigger=PayoutRunTrigger.SCHEDULED)


class EligibilitySummaryTask:
    """Report how completed payments split across eligibility reasons."""

    task_type = DAILY_SUMMARY_TASK
    description = "Daily payout eligibility summary"

    def __init__(self, run_service: PayoutRunService):
        self._run_service = run_service

    def run(self, as_of: datetime) -> EligibilitySummary:
        return self._run_service.generate_daily_summary()


class PayoutMaintenanceTask:
    """Weekly housekeeping report over earnings and affiliate payouts."""

    task_type = MAINTENANCE_TASK
    description = "Weekly payout maintenance report"

    def __init__(self, run_service: PayoutRunService):
        self._run_service = run_service

    def run(self, as_of: datetime) -> MaintenanceReport:
        return self._run_service.perform_maintenance()
