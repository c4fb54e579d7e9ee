"""
Module: payout_kernel.services.eligibility_scanner
Responsibility: Produce a bounded, oldest-first list of payments that are
    eligible for settlement right now, and the reporting summary of why
    completed payments are or are not eligible.
Architecture position: Kernel > Services.  Reads through PaymentSelector,
    decides through EligibilityEvaluator.  Never writes.

Invariants enforced:
    - find_eligible_payments() never returns more than batch_size payments.
    - Candidates are read in pages of batch_size * oversample_factor, so a
      run of ineligible rows at the head of the queue (waiting period,
      refunds) does not starve the batch.  At most max_pages pages are read.
    - The summary counts every payment once, under its first failed rule.

Failure modes:
    - SQLAlchemyError from the candidate query propagates; the run service
      turns it into a FAILED run.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.eligibility import EligibilityEvaluator
from payout_kernel.domain.types import (
    EligibilitySummary,
    IneligibilityReason,
    PaymentSnapshot,
)
from payout_kernel.logging_config import get_logger
from payout_kernel.selectors.payment_selector import PaymentSelector

logger = get_logger("services.eligibility_scanner")

_SUMMARY_FIELDS: dict[IneligibilityReason, str] = {
    IneligibilityReason.ALREADY_PAID_OUT: "already_paid_out",
    IneligibilityReason.WITHIN_WAITING_PERIOD: "within_waiting_period",
    IneligibilityReason.BLOCKING_REFUND: "blocked_by_refund",
    IneligibilityReason.EARNING_EXISTS: "earning_exists",
    IneligibilityReason.MISSING_COURSE_OR_INSTRUCTOR: "missing_course_or_instructor",
}


class BatchEligibilityScanner:
    """
    Finds the next batch of settleable payments.

    The scan is advisory: the settlement processor re-reads and re-evaluates
    every payment inside its own transaction before writing anything.
    """

    def __init__(
        self,
        session: Session,
        evaluator: EligibilityEvaluator,
        batch_size: int = 50,
        oversample_factor: int = 3,
        max_pages: int = 3,
        clock: Clock | None = None,
    ):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if oversample_factor < 1:
            raise ValueError(f"oversample_factor must be >= 1, got {oversample_factor}")
        if max_pages < 1:
            raise ValueError(f"max_pages must be >= 1, got {max_pages}")
        self._selector = PaymentSelector(session)
        self._evaluator = evaluator
        self._batch_size = batch_size
        self._oversample_factor = oversample_factor
        self._max_pages = max_pages
        self._clock = clock or SystemClock()

    def find_eligible_payments(
        self, as_of: datetime | None = None,
    ) -> tuple[PaymentSnapshot, ...]:
        """
        Up to batch_size eligible payments, oldest completion first.

        Stops reading at a short page, a full batch, or after max_pages.
        """
        as_of = as_of or self._clock.now()
        page_size = self._batch_size * self._oversample_factor
        eligible: list[PaymentSnapshot] = []
        examined = 0

        for page in range(self._max_pages):
            candidates = self._selector.find_completed_unpaid(
                limit=page_size, offset=page * page_size,
            )
            examined += len(candidates)
            for snapshot in candidates:
                if self._evaluator.is_eligible(snapshot, as_of):
                    eligible.append(snapshot)
                    if len(eligible) >= self._batch_size:
                        break
            if len(eligible) >= self._batch_size or len(candidates) < page_size:
                break

        logger.info(
            "eligibility_scan_completed",
            extra={
                "examined": examined,
                "eligible": len(eligible),
                "batch_size": self._batch_size,
            },
        )
        return tuple(eligible[: self._batch_size])

    def get_eligibility_summary(
        self, as_of: datetime | None = None, limit: int = 1000,
    ) -> EligibilitySummary:
        """Tally up to ``limit`` COMPLETED payments by first failed rule."""
        as_of = as_of or self._clock.now()
        payments = self._selector.find_completed(limit=limit)

        counts = {name: 0 for name in _SUMMARY_FIELDS.values()}
        eligible = 0
        for snapshot in payments:
            decision = self._evaluator.evaluate(snapshot, as_of)
            if decision.eligible:
                eligible += 1
            elif decision.reason in _SUMMARY_FIELDS:
                counts[_SUMMARY_FIELDS[decision.reason]] += 1

        summary = EligibilitySummary(
            total_completed=len(payments),
            eligible=eligible,
            generated_at=as_of,
            **counts,
        )
        logger.info("eligibility_summary_generated", extra=summary.to_dict())
        return summary
