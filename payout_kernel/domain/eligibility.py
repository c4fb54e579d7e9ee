"""
Eligibility -- Pure payout eligibility rules.

Responsibility:
    Decide whether one payment may be converted into an instructor earning
    right now, and if not, which rule it failed first.

Architecture position:
    Kernel > Domain -- pure functional core.  The only side effect is the
    warning logged when refunds could not be loaded.

Invariants enforced:
    - Eligible implies COMPLETED, paid_out_at unset, waiting period elapsed,
      no PENDING/COMPLETED refund, no earning, course and instructor present.
    - Rules are evaluated in a fixed order; the reason is the first failure.
    - The waiting period compares real elapsed time (a ``timedelta``), so a
      payment completed at 23:59 is not eligible a few minutes into day 3.

Failure modes:
    - ValueError on a negative waiting period.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from payout_kernel.domain.types import (
    BLOCKING_REFUND_STATUSES,
    KNOWN_REFUND_STATUSES,
    EligibilityDecision,
    IneligibilityReason,
    PaymentSnapshot,
    PaymentStatus,
    RefundSnapshot,
    RefundStatus,
)
from payout_kernel.logging_config import get_logger

logger = get_logger("domain.eligibility")


def as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def has_blocking_refund(payment: PaymentSnapshot) -> bool:
    """True when a PENDING or COMPLETED refund exists.

    An unloadable refund collection counts as no blocking refund, and so
    does a stored status outside RefundStatus (logged as a warning).
    """
    if payment.refunds is None:
        logger.warning(
            "refunds_unavailable_assuming_none",
            extra={"payment_id": str(payment.payment_id)},
        )
        return False
    return any(_is_blocking(payment, refund) for refund in payment.refunds)


def _is_blocking(payment: PaymentSnapshot, refund: RefundSnapshot) -> bool:
    status = refund.status
    if isinstance(status, RefundStatus):
        status = status.value
    if status not in KNOWN_REFUND_STATUSES:
        logger.warning(
            "unknown_refund_status",
            extra={
                "payment_id": str(payment.payment_id),
                "refund_id": str(refund.refund_id),
                "refund_status": status,
            },
        )
        return False
    return status in BLOCKING_REFUND_STATUSES


def evaluate_eligibility(
    payment: PaymentSnapshot,
    as_of: datetime,
    waiting_period_days: int,
) -> EligibilityDecision:
    """
    Evaluate a payment against every payout rule, in order.

    Args:
        payment: Snapshot including refunds and the earning flag.
        as_of: Current time.
        waiting_period_days: Days that must elapse after completion.

    Returns:
        EligibilityDecision carrying the first failed rule, or eligible.
    """
    if waiting_period_days < 0:
        raise ValueError(f"waiting_period_days must be >= 0, got {waiting_period_days}")

    pid = payment.payment_id

    if PaymentStatus(payment.status) != PaymentStatus.COMPLETED:
        return EligibilityDecision.reject(
            pid,
            IneligibilityReason.NOT_COMPLETED,
            f"status is {PaymentStatus(payment.status).value}",
        )

    if payment.paid_out_at is not None:
        return EligibilityDecision.reject(
            pid,
            IneligibilityReason.ALREADY_PAID_OUT,
            f"paid out at {payment.paid_out_at.isoformat()}",
        )

    elapsed = as_utc(as_of) - as_utc(payment.updated_at)
    if elapsed < timedelta(days=waiting_period_days):
        return EligibilityDecision.reject(
            pid,
            IneligibilityReason.WITHIN_WAITING_PERIOD,
            f"{elapsed} elapsed of {waiting_period_days} days",
        )

    if has_blocking_refund(payment):
        return EligibilityDecision.reject(
            pid,
            IneligibilityReason.BLOCKING_REFUND,
            "pending or completed refund exists",
        )

    if payment.has_earning:
        return EligibilityDecision.reject(
            pid,
            IneligibilityReason.EARNING_EXISTS,
            "instructor earning already recorded",
        )

    if payment.course_id is None or payment.instructor_id is None:
        return EligibilityDecision.reject(
            pid,
            IneligibilityReason.MISSING_COURSE_OR_INSTRUCTOR,
            "course or instructor not set",
        )

    return EligibilityDecision.accept(pid)


class EligibilityEvaluator:
    """
    Configured wrapper around :func:`evaluate_eligibility`.

    Holds the waiting period so the scanner and the settlement processor
    apply exactly the same rule.
    """

    def __init__(self, waiting_period_days: int = 3):
        if waiting_period_days < 0:
            raise ValueError(
                f"waiting_period_days must be >= 0, got {waiting_period_days}"
            )
        self.waiting_period_days = waiting_period_days

    def evaluate(self, payment: PaymentSnapshot, as_of: datetime) -> EligibilityDecision:
        return evaluate_eligibility(payment, as_of, self.waiting_period_days)

    def is_eligible(self, payment: PaymentSnapshot, as_of: datetime) -> bool:
        return self.evaluate(payment, as_of).eligible
