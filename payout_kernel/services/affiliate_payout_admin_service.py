"""
Module: payout_kernel.services.affiliate_payout_admin_service
Responsibility: Administrative lifecycle of affiliate payouts: confirm as
    paid, cancel with a reason, bulk versions of both, plus search,
    statistics and CSV export.
Architecture position: Kernel > Services.  Works inside the caller's session.

Invariants enforced:
    - PENDING is the only status that can change.  Every transition is a
      conditional UPDATE guarded on ``status = 'pending'``, so two admins
      racing on one payout cannot both succeed.
    - Cancellation always records a non-empty reason.
    - Bulk actions isolate each item in a SAVEPOINT; one failure never undoes
      or stops the others.

Failure modes:
    - AffiliatePayoutNotFoundError: payout id does not exist.
    - InvalidPayoutTransitionError: payout is PAID or CANCELLED.
    - CancellationReasonRequiredError: empty cancellation reason.
    - UnknownBulkActionError: unsupported bulk action name.
"""

from __future__ import annotations

import csv
import io
from typing import Iterable
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.types import (
    AffiliatePayoutFilter,
    AffiliatePayoutStatus,
    AffiliatePayoutView,
    AffiliateStatistics,
    BulkPayoutAction,
    BulkPayoutActionResult,
)
from payout_kernel.exceptions import (
    AffiliatePayoutNotFoundError,
    CancellationReasonRequiredError,
    InvalidPayoutTransitionError,
    PayoutKernelError,
    UnknownBulkActionError,
)
from payout_kernel.logging_config import LogContext, get_logger
from payout_kernel.models.affiliate import AffiliatePayout
from payout_kernel.selectors.affiliate_selector import AffiliateSelector

logger = get_logger("services.affiliate_payout_admin")

CSV_HEADER = (
    "Payout ID",
    "Discount Usage ID",
    "Referrer ID",
    "Course ID",
    "Payment ID",
    "Commission Percent",
    "Commission Amount",
    "Status",
    "Created At",
    "Paid At",
    "Cancelled At",
    "Cancellation Reason",
)


def _fmt(value) -> str:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


class AffiliatePayoutAdminService:
    """Admin operations on affiliate payouts."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()
        self._selector = AffiliateSelector(session)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_payout(self, payout_id: UUID) -> AffiliatePayoutView:
        view = self._selector.get_payout(payout_id)
        if view is None:
            raise AffiliatePayoutNotFoundError(str(payout_id))
        return view

    def list_payouts(
        self, filters: AffiliatePayoutFilter | None = None,
    ) -> list[AffiliatePayoutView]:
        return self._selector.list_payouts(filters)

    def get_statistics(self) -> AffiliateStatistics:
        return self._selector.statistics()

    def export_csv(self, filters: AffiliatePayoutFilter | None = None) -> bytes:
        """Filtered payouts as UTF-8 CSV with a BOM (spreadsheet friendly)."""
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(CSV_HEADER)
        payouts = self._selector.list_payouts(filters)
        for p in payouts:
            writer.writerow(
                [
                    _fmt(p.payout_id),
                    _fmt(p.discount_usage_id),
                    _fmt(p.referred_by_user_id),
                    _fmt(p.course_id),
                    _fmt(p.payment_id),
                    _fmt(p.commission_percent),
                    _fmt(p.commission_amount),
                    p.status.value,
                    _fmt(p.created_at),
                    _fmt(p.paid_at),
                    _fmt(p.cancelled_at),
                    _fmt(p.cancellation_reason),
                ]
            )
        logger.info("affiliate_payouts_exported", extra={"row_count": len(payouts)})
        return buffer.getvalue().encode("utf-8-sig")

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def mark_as_paid(self, payout_id: UUID) -> AffiliatePayoutView:
        """PENDING -> PAID.  Any other current status raises."""
        now = self._clock.now()
        with LogContext.bind(payout_id=str(payout_id)):
            self._transition(
                payout_id,
                AffiliatePayoutStatus.PAID,
                {"status": AffiliatePayoutStatus.PAID.value, "paid_at": now},
            )
            logger.info("affiliate_payout_marked_paid", extra={"paid_at": now})
        return self.get_payout(payout_id)

    def cancel_payout(self, payout_id: UUID, reason: str | None) -> AffiliatePayoutView:
        """PENDING -> CANCELLED with a mandatory reason."""
        if reason is None or not reason.strip():
            raise CancellationReasonRequiredError(str(payout_id))
        now = self._clock.now()
        with LogContext.bind(payout_id=str(payout_id)):
            self._transition(
                payout_id,
                AffiliatePayoutStatus.CANCELLED,
                {
                    "status": AffiliatePayoutStatus.CANCELLED.value,
                    "cancelled_at": now,
                    "cancellation_reason": reason.strip(),
                },
            )
            logger.info(
                "affiliate_payout_cancelled",
                extra={"cancelled_at": now, "reason": reason.strip()},
            )
        return self.get_payout(payout_id)

    def _transition(
        self, payout_id: UUID, target: AffiliatePayoutStatus, values: dict,
    ) -> None:
        result = self.session.execute(
            update(AffiliatePayout)
            .where(
                AffiliatePayout.id == payout_id,
                AffiliatePayout.status == AffiliatePayoutStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return
        current = self.get_payout(payout_id)
        raise InvalidPayoutTransitionError(
            str(payout_id), current.status.value, target.value,
        )

    # -------------------------------------------------------------------------
    # Bulk
    # -------------------------------------------------------------------------

    def bulk_action(
        self,
        payout_ids: Iterable[UUID],
        action: BulkPayoutAction | str,
        reason: str | None = None,
    ) -> BulkPayoutActionResult:
        """
        Apply ``action`` to each payout independently.

        Returns counts plus ``failure_reasons`` keyed by payout id.  Counts are
        per requested item, so a repeated id counts each time it is attempted
        and ``total_processed + total_failed == total_requested`` always holds.
        Only an unknown action name raises; per-item errors are collected.
        """
        try:
            action = BulkPayoutAction(action)
        except ValueError:
            raise UnknownBulkActionError(
                str(action), tuple(a.value for a in BulkPayoutAction),
            ) from None

        ids = list(payout_ids)
        processed = 0
        failed = 0
        failures: dict[str, str] = {}

        for payout_id in ids:
            try:
                with self.session.begin_nested():
                    if action == BulkPayoutAction.MARK_PAID:
                        self.mark_as_paid(payout_id)
                    else:
                        self.cancel_payout(payout_id, reason)
                processed += 1
            except (PayoutKernelError, SQLAlchemyError) as exc:
                failed += 1
                failures[str(payout_id)] = str(exc)
                logger.warning(
                    "bulk_payout_item_failed",
                    extra={
                        "payout_id": str(payout_id),
                        "action": action.value,
                        "error_code": getattr(exc, "code", type(exc).__name__),
                    },
                )

        result = BulkPayoutActionResult(
            action=action,
            total_requested=len(ids),
            total_processed=processed,
            total_failed=failed,
            failure_reasons=failures,
        )
        logger.info(
            "bulk_payout_action_completed",
            extra={
                "action": action.value,
                "total_requested": result.total_requested,
                "total_processed": result.total_processed,
                "total_failed": result.total_failed,
            },
        )
        return result
