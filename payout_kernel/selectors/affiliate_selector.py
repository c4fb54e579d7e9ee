"""
Module: payout_kernel.selectors.affiliate_selector
Responsibility: Read-only queries over discount usages and affiliate payouts:
    single lookups, admin search, per-status statistics.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from payout_kernel.domain.types import (
    AffiliatePayoutFilter,
    AffiliatePayoutStatus,
    AffiliatePayoutView,
    AffiliateStatistics,
    DiscountType,
    DiscountUsageSnapshot,
)
from payout_kernel.models.affiliate import AffiliatePayout, DiscountUsage
from payout_kernel.selectors.base import BaseSelector


def usage_to_snapshot(row: DiscountUsage) -> DiscountUsageSnapshot:
    return DiscountUsageSnapshot(
        discount_usage_id=row.id,
        discount_type=DiscountType(row.discount_type),
        user_id=row.user_id,
        course_id=row.course_id,
        discount_amount=row.discount_amount,
        used_at=row.used_at,
        referred_by_user_id=row.referred_by_user_id,
        discount_code=row.discount_code,
    )


def payout_to_view(row: AffiliatePayout) -> AffiliatePayoutView:
    return AffiliatePayoutView(
        payout_id=row.id,
        discount_usage_id=row.discount_usage_id,
        referred_by_user_id=row.referred_by_user_id,
        course_id=row.course_id,
        commission_percent=row.commission_percent,
        commission_amount=row.commission_amount,
        status=AffiliatePayoutStatus(row.status),
        payment_id=row.payment_id,
        paid_at=row.paid_at,
        cancelled_at=row.cancelled_at,
        cancellation_reason=row.cancellation_reason,
        created_at=row.created_at,
    )


class AffiliateSelector(BaseSelector[AffiliatePayout]):
    """Discount usage and affiliate payout reads."""

    def get_usage(self, discount_usage_id: UUID) -> DiscountUsageSnapshot | None:
        row = self.session.get(DiscountUsage, discount_usage_id)
        return usage_to_snapshot(row) if row is not None else None

    def find_usages_for_purchase(
        self, user_id: UUID, course_id: UUID,
    ) -> list[DiscountUsageSnapshot]:
        """Every discount usage the buyer applied to the course."""
        stmt = (
            select(DiscountUsage)
            .where(
                DiscountUsage.user_id == user_id,
                DiscountUsage.course_id == course_id,
            )
            .order_by(DiscountUsage.created_at, DiscountUsage.id)
        )
        return [usage_to_snapshot(row) for row in self.session.scalars(stmt)]

    def get_payout(self, payout_id: UUID) -> AffiliatePayoutView | None:
        row = self.session.get(AffiliatePayout, payout_id, populate_existing=True)
        return payout_to_view(row) if row is not None else None

    def get_payout_by_usage(self, discount_usage_id: UUID) -> AffiliatePayoutView | None:
        stmt = select(AffiliatePayout).where(
            AffiliatePayout.discount_usage_id == discount_usage_id
        )
        row = self.session.scalars(
            stmt.execution_options(populate_existing=True)
        ).first()
        return payout_to_view(row) if row is not None else None

    def list_payouts(
        self, filters: AffiliatePayoutFilter | None = None,
    ) -> list[AffiliatePayoutView]:
        """Payouts matching ``filters``, newest first."""
        filters = filters or AffiliatePayoutFilter()
        stmt = select(AffiliatePayout)
        if filters.referred_by_user_id is not None:
            stmt = stmt.where(
                AffiliatePayout.referred_by_user_id == filters.referred_by_user_id
            )
        if filters.status is not None:
            stmt = stmt.where(AffiliatePayout.status == filters.status.value)
        if filters.created_from is not None:
            stmt = stmt.where(AffiliatePayout.created_at >= filters.created_from)
        if filters.created_to is not None:
            stmt = stmt.where(AffiliatePayout.created_at <= filters.created_to)
        if filters.min_amount is not None:
            stmt = stmt.where(AffiliatePayout.commission_amount >= filters.min_amount)
        if filters.max_amount is not None:
            stmt = stmt.where(AffiliatePayout.commission_amount <= filters.max_amount)
        stmt = stmt.order_by(AffiliatePayout.created_at.desc(), AffiliatePayout.id)
        return [payout_to_view(row) for row in self.session.scalars(stmt)]

    def statistics(self) -> AffiliateStatistics:
        stmt = select(
            AffiliatePayout.status,
            func.count(),
            func.coalesce(func.sum(AffiliatePayout.commission_amount), 0),
        ).group_by(AffiliatePayout.status)

        counts = {status: 0 for status in AffiliatePayoutStatus}
        amounts = {status: Decimal("0.00") for status in AffiliatePayoutStatus}
        for status, count, total in self.session.execute(stmt):
            key = AffiliatePayoutStatus(status)
            counts[key] = count
            amounts[key] = Decimal(str(total)).quantize(Decimal("0.01"))

        return AffiliateStatistics(
            total_payouts=sum(counts.values()),
            pending_payouts=counts[AffiliatePayoutStatus.PENDING],
            paid_payouts=counts[AffiliatePayoutStatus.PAID],
            cancelled_payouts=counts[AffiliatePayoutStatus.CANCELLED],
            total_commission_amount=sum(amounts.values(), Decimal("0.00")),
            pending_commission_amount=amounts[AffiliatePayoutStatus.PENDING],
            paid_commission_amount=amounts[AffiliatePayoutStatus.PAID],
            cancelled_commission_amount=amounts[AffiliatePayoutStatus.CANCELLED],
        )

    def count_stale_pending(self, created_before: datetime) -> int:
        stmt = select(func.count()).select_from(AffiliatePayout).where(
            AffiliatePayout.status == AffiliatePayoutStatus.PENDING.value,
            AffiliatePayout.created_at < created_before,
        )
        return self.session.scalar(stmt) or 0
