"""Scheduled payout tasks and their registry."""

from payout_batch.tasks.base import PayoutTask, TaskRegistry
from payout_batch.tasks.payout_tasks import (
    DAILY_SUMMARY_TASK,
    MAINTENANCE_TASK,
    SETTLEMENT_TASK,
    AutomaticPayoutTask,
    EligibilitySummaryTask,
    PayoutMaintenanceTask,
)

__all__ = [
    "DAILY_SUMMARY_TASK",
    "MAINTENANCE_TASK",
    "SETTLEMENT_TASK",
    "AutomaticPayoutTask",
    "EligibilitySummaryTask",
    "PayoutMaintenanceTask",
    "PayoutTask",
    "TaskRegistry",
]
