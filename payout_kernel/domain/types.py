"""
payout_kernel.domain.types -- Frozen value objects and status enums.

ZERO I/O.  Selectors build these snapshots from ORM rows; the pure
eligibility evaluator and the services exchange nothing else, so no caller
ever acts on a live ORM object outside its transaction.

Invariants enforced:
    - All DTOs are frozen dataclasses (immutable).
    - ``PaymentSnapshot.refunds is None`` means the refund collection could
      not be loaded, which is distinct from "loaded, and empty".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class RefundStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


# Stored refund status values that hold back a payout.  Any other value,
# including one this enum does not know, does not block.
BLOCKING_REFUND_STATUSES: frozenset[str] = frozenset(
    {RefundStatus.PENDING.value, RefundStatus.COMPLETED.value}
)
KNOWN_REFUND_STATUSES: frozenset[str] = frozenset(s.value for s in RefundStatus)


class EarningStatus(str, Enum):
    AVAILABLE = "available"  # Settled, not yet transferred to the instructor
    PAID = "paid"


class DiscountType(str, Enum):
    GENERAL = "general"
    REFERRAL = "referral"


class AffiliatePayoutStatus(str, Enum):
    """Affiliate payout lifecycle.  PAID and CANCELLED are terminal."""

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not AffiliatePayoutStatus.PENDING


class IneligibilityReason(str, Enum):
    """First rule a payment failed, in evaluation order."""

    NOT_COMPLETED = "not_completed"
    ALREADY_PAID_OUT = "already_paid_out"
    WITHIN_WAITING_PERIOD = "within_waiting_period"
    BLOCKING_REFUND = "blocking_refund"
    EARNING_EXISTS = "earning_exists"
    MISSING_COURSE_OR_INSTRUCTOR = "missing_course_or_instructor"


class SettlementStatus(str, Enum):
    SETTLED = "settled"  # Earning written and paid_out_at set in one commit
    SKIPPED = "skipped"  # Idempotent no-op (already settled, ineligible, lost race)
    FAILED = "failed"  # Exception; transaction rolled back


class SkipReason(str, Enum):
    """Settlement no-op reasons not produced by the eligibility evaluator."""

    LOST_RACE = "lost_race"


class BulkPayoutAction(str, Enum):
    MARK_PAID = "mark_paid"
    CANCEL = "cancel"


# =============================================================================
# Payment snapshots
# =============================================================================


@dataclass(frozen=True)
class RefundSnapshot:
    """One refund as stored.  ``status`` is the raw column value."""

    refund_id: UUID
    status: str


@dataclass(frozen=True)
class PaymentSnapshot:
    """Immutable view of a payment and everything eligibility depends on.

    ``updated_at`` is the moment the payment reached its current status; for
    COMPLETED payments that is the completion time the waiting period is
    measured from.
    """

    payment_id: UUID
    amount: Decimal
    status: PaymentStatus
    updated_at: datetime
    paid_out_at: datetime | None = None
    course_id: UUID | None = None
    instructor_id: UUID | None = None
    user_id: UUID | None = None
    refunds: tuple[RefundSnapshot, ...] | None = ()
    has_earning: bool = False

    @property
    def refunds_loaded(self) -> bool:
        return self.refunds is not None


@dataclass(frozen=True)
class EligibilityDecision:
    """Result of evaluating one payment.  ``reason`` is None iff eligible."""

    payment_id: UUID
    eligible: bool
    reason: IneligibilityReason | None = None
    detail: str = ""

    @classmethod
    def accept(cls, payment_id: UUID) -> EligibilityDecision:
        return cls(payment_id=payment_id, eligible=True)

    @classmethod
    def reject(
        cls, payment_id: UUID, reason: IneligibilityReason, detail: str = "",
    ) -> EligibilityDecision:
        return cls(payment_id=payment_id, eligible=False, reason=reason, detail=detail)


@dataclass(frozen=True)
class EligibilitySummary:
    """Counts of COMPLETED payments by first disqualifying reason."""

    total_completed: int = 0
    already_paid_out: int = 0
    within_waiting_period: int = 0
    blocked_by_refund: int = 0
    earning_exists: int = 0
    missing_course_or_instructor: int = 0
    eligible: int = 0
    generated_at: datetime | None = None

    def to_dict(self) -> dict[str, int | str | None]:
        return {
            "total_completed": self.total_completed,
            "already_paid_out": self.already_paid_out,
            "within_waiting_period": self.within_waiting_period,
            "blocked_by_refund": self.blocked_by_refund,
            "earning_exists": self.earning_exists,
            "missing_course_or_instructor": self.missing_course_or_instructor,
            "eligible": self.eligible,
            "generated_at": (
                self.generated_at.isoformat() if self.generated_at else None
            ),
        }


# =============================================================================
# Settlement results
# =============================================================================


@dataclass(frozen=True)
class SettlementOutcome:
    """Result of processing one payment through the settlement protocol."""

    payment_id: UUID
    status: SettlementStatus
    reason: str | None = None
    earning_id: UUID | None = None
    instructor_id: UUID | None = None
    payment_amount: Decimal | None = None
    earning_amount: Decimal | None = None
    paid_out_at: datetime | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def settled(self) -> bool:
        return self.status == SettlementStatus.SETTLED


@dataclass(frozen=True)
class SettlementRunResult:
    """Aggregate of one batch of independently settled payments."""

    outcomes: tuple[SettlementOutcome, ...] = ()

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def settled(self) -> int:
        return sum(1 for o in self.outcomes if o.status == SettlementStatus.SETTLED)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.status == SettlementStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == SettlementStatus.FAILED)

    @property
    def total_payment_amount(self) -> Decimal:
        return sum(
            (o.payment_amount for o in self.outcomes if o.settled and o.payment_amount is not None),
            Decimal("0.00"),
        )

    @property
    def total_earning_amount(self) -> Decimal:
        return sum(
            (o.earning_amount for o in self.outcomes if o.settled and o.earning_amount is not None),
            Decimal("0.00"),
        )


# =============================================================================
# Affiliate payouts
# =============================================================================


@dataclass(frozen=True)
class DiscountUsageSnapshot:
    discount_usage_id: UUID
    discount_type: DiscountType
    user_id: UUID
    course_id: UUID
    discount_amount: Decimal
    used_at: datetime | None = None
    referred_by_user_id: UUID | None = None
    discount_code: str | None = None


@dataclass(frozen=True)
class AffiliatePayoutView:
    payout_id: UUID
    discount_usage_id: UUID
    referred_by_user_id: UUID
    course_id: UUID
    commission_percent: Decimal
    commission_amount: Decimal
    status: AffiliatePayoutStatus
    payment_id: UUID | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class AffiliatePayoutFilter:
    """Admin search criteria.  Unset fields do not filter; bounds are inclusive."""

    referred_by_user_id: UUID | None = None
    status: AffiliatePayoutStatus | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None


@dataclass(frozen=True)
class BulkPayoutActionResult:
    """Per-item tally of a bulk admin action.  One failure never stops the rest."""

    action: BulkPayoutAction
    total_requested: int
    total_processed: int
    total_failed: int
    failure_reasons: dict[str, str] = field(default_factory=dict)

    @property
    def summary(self) -> str:
        return (
            f"Bulk {self.action.value} completed: {self.total_processed} processed, "
            f"{self.total_failed} failed out of {self.total_requested} requested"
        )


@dataclass(frozen=True)
class AffiliateStatistics:
    total_payouts: int = 0
    pending_payouts: int = 0
    paid_payouts: int = 0
    cancelled_payouts: int = 0
    total_commission_amount: Decimal = Decimal("0.00")
    pending_commission_amount: Decimal = Decimal("0.00")
    paid_commission_amount: Decimal = Decimal("0.00")
    cancelled_commission_amount: Decimal = Decimal("0.00")
