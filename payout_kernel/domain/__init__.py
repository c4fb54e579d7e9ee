"""Pure domain layer: value objects, clock, money and eligibility rules."""

from payout_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from payout_kernel.domain.eligibility import (
    EligibilityEvaluator,
    evaluate_eligibility,
)
from payout_kernel.domain.money import percentage_of, round_money
from payout_kernel.domain.types import (
    AffiliatePayoutStatus,
    BulkPayoutAction,
    DiscountType,
    EarningStatus,
    EligibilityDecision,
    EligibilitySummary,
    IneligibilityReason,
    PaymentSnapshot,
    PaymentStatus,
    RefundSnapshot,
    RefundStatus,
    SettlementOutcome,
    SettlementRunResult,
    SettlementStatus,
)

__all__ = [
    "AffiliatePayoutStatus",
    "BulkPayoutAction",
    "Clock",
    "DeterministicClock",
    "DiscountType",
    "EarningStatus",
    "EligibilityDecision",
    "EligibilityEvaluator",
    "EligibilitySummary",
    "IneligibilityReason",
    "PaymentSnapshot",
    "PaymentStatus",
    "RefundSnapshot",
    "RefundStatus",
    "SettlementOutcome",
    "SettlementRunResult",
    "SettlementStatus",
    "SystemClock",
    "evaluate_eligibility",
    "percentage_of",
    "round_money",
]
