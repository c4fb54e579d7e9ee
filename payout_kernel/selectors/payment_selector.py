"""
Module: payout_kernel.selectors.payment_selector
Responsibility: Read-only payment queries that feed eligibility.  Builds
    PaymentSnapshot DTOs with refunds and the earning flag attached, so the
    pure evaluator gets everything it needs from one call.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Candidate pages are ordered oldest-first by (updated_at, id) so paging
      is stable and older payments are settled first.
    - A refund collection that fails to load yields ``refunds=None`` on the
      snapshot.  The failed read is confined to a SAVEPOINT so the caller's
      transaction stays usable.
    - Refund statuses are carried as stored, never parsed here, so a value
      outside RefundStatus cannot break a page read.

Failure modes:
    - SQLAlchemyError from the payment query itself propagates to the caller.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from payout_kernel.domain.types import (
    EarningStatus,
    PaymentSnapshot,
    PaymentStatus,
    RefundSnapshot,
)
from payout_kernel.logging_config import get_logger
from payout_kernel.models.earning import InstructorEarning
from payout_kernel.models.payment import Payment, Refund
from payout_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.payment")


class PaymentSelector(BaseSelector[Payment]):
    """Payment reads for the scanner and the settlement processor."""

    def get_payment(self, payment_id: UUID) -> PaymentSnapshot | None:
        """Fresh read of one payment with its refunds and earning flag."""
        row = self.session.get(Payment, payment_id, populate_existing=True)
        if row is None:
            return None
        return self._snapshots([row])[0]

    def find_completed_unpaid(self, limit: int, offset: int = 0) -> list[PaymentSnapshot]:
        """COMPLETED payments with paid_out_at unset, oldest-first."""
        stmt = (
            select(Payment)
            .where(
                Payment.status == PaymentStatus.COMPLETED.value,
                Payment.paid_out_at.is_(None),
            )
            .order_by(Payment.updated_at, Payment.id)
            .limit(limit)
            .offset(offset)
        )
        return self._snapshots(self.session.scalars(stmt).all())

    def find_completed(self, limit: int) -> list[PaymentSnapshot]:
        """COMPLETED payments, paid out or not, oldest-first."""
        stmt = (
            select(Payment)
            .where(Payment.status == PaymentStatus.COMPLETED.value)
            .order_by(Payment.updated_at, Payment.id)
            .limit(limit)
        )
        return self._snapshots(self.session.scalars(stmt).all())

    def has_earning(self, payment_id: UUID) -> bool:
        stmt = select(InstructorEarning.id).where(
            InstructorEarning.payment_id == payment_id
        )
        return self.session.scalar(stmt) is not None

    def count_earnings_by_status(self) -> dict[EarningStatus, int]:
        stmt = select(InstructorEarning.status, func.count()).group_by(
            InstructorEarning.status
        )
        counts = {status: 0 for status in EarningStatus}
        for status, count in self.session.execute(stmt):
            counts[EarningStatus(status)] = count
        return counts

    # -- internals -----------------------------------------------------------

    def _snapshots(self, rows: Sequence[Payment]) -> list[PaymentSnapshot]:
        if not rows:
            return []
        ids = [row.id for row in rows]
        refunds = self._load_refunds(ids)
        earned = self._earned_payment_ids(ids)
        return [
            PaymentSnapshot(
                payment_id=row.id,
                amount=row.amount,
                status=PaymentStatus(row.status),
                updated_at=row.updated_at,
                paid_out_at=row.paid_out_at,
                course_id=row.course_id,
                instructor_id=row.instructor_id,
                user_id=row.user_id,
                refunds=None if refunds is None else refunds.get(row.id, ()),
                has_earning=row.id in earned,
            )
            for row in rows
        ]

    def _load_refunds(
        self, payment_ids: list[UUID],
    ) -> dict[UUID, tuple[RefundSnapshot, ...]] | None:
        """Refunds grouped by payment, or None when the read fails."""
        stmt = (
            select(Refund.payment_id, Refund.id, Refund.status)
            .where(Refund.payment_id.in_(payment_ids))
            .order_by(Refund.created_at)
        )
        grouped: dict[UUID, list[RefundSnapshot]] = defaultdict(list)
        try:
            with self.session.begin_nested():
                for payment_id, refund_id, status in self.session.execute(stmt):
                    grouped[payment_id].append(
                        RefundSnapshot(refund_id=refund_id, status=status)
                    )
        except SQLAlchemyError as exc:
            logger.warning(
                "refund_load_failed",
                extra={"payment_count": len(payment_ids), "error": str(exc)},
            )
            return None
        return {pid: tuple(items) for pid, items in grouped.items()}

    def _earned_payment_ids(self, payment_ids: list[UUID]) -> set[UUID]:
        stmt = select(InstructorEarning.payment_id).where(
            InstructorEarning.payment_id.in_(payment_ids)
        )
        return set(self.session.scalars(stmt).all())
