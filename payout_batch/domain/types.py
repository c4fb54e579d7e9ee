"""
payout_batch.domain.types -- Frozen DTOs for payout runs and schedules.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payout_kernel.domain.types import SettlementOutcome


class PayoutRunStatus(str, Enum):
    """Outcome of one scan-and-settle run."""

    COMPLETED = "completed"  # No payment failed (includes "nothing eligible")
    PARTIALLY_COMPLETED = "partially_completed"  # Some payments failed
    FAILED = "failed"  # Scan failed, or every payment failed
    DISABLED = "disabled"  # Scheduling switched off; nothing read


class PayoutRunTrigger(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


@dataclass(frozen=True)
class PayoutRunResult:
    run_id: UUID
    trigger: PayoutRunTrigger
    status: PayoutRunStatus
    started_at: datetime
    completed_at: datetime | None = None
    eligible_count: int = 0
    settled_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    total_payment_amount: Decimal = Decimal("0.00")
    total_earning_amount: Decimal = Decimal("0.00")
    error_message: str | None = None
    outcomes: tuple[SettlementOutcome, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status != PayoutRunStatus.FAILED

    def to_dict(self) -> dict:
        return {
            "run_id": str(self.run_id),
            "trigger": self.trigger.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "eligible_count": self.eligible_count,
            "settled_count": self.settled_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "total_payment_amount": str(self.total_payment_amount),
            "total_earning_amount": str(self.total_earning_amount),
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class TriggerResponse:
    """Answer to a manual "run payouts now" request."""

    success: bool
    message: str
    triggered_at: datetime
    run: PayoutRunResult | None = None


@dataclass(frozen=True)
class MaintenanceReport:
    total_earnings: int
    available_earnings: int
    paid_earnings: int
    total_affiliate_payouts: int
    pending_affiliate_payouts: int
    stale_pending_payouts: int
    stale_before: datetime
    generated_at: datetime

    def to_dict(self) -> dict:
        return {
            "total_earnings": self.total_earnings,
            "available_earnings": self.available_earnings,
            "paid_earnings": self.paid_earnings,
            "total_affiliate_payouts": self.total_affiliate_payouts,
            "pending_affiliate_payouts": self.pending_affiliate_payouts,
            "stale_pending_payouts": self.stale_pending_payouts,
            "stale_before": self.stale_before.isoformat(),
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass(frozen=True)
class ScheduledJob:
    """A task bound to a cron expression.  Next-fire time lives in the scheduler."""

    name: str
    task_type: str
    cron_expression: str
    is_active: bool = True
