"""
Module: payout_kernel.models.affiliate
Responsibility: ORM persistence for discount usages and the affiliate
    (referral) payouts derived from them.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/types.py only.

Invariants enforced:
    - At most one affiliate payout per discount usage (uq_affiliate_payout_usage).
    - commission_percent is snapshotted at creation; later config changes
      never rewrite existing payouts.
    - PAID and CANCELLED are terminal.  Status changes go through conditional
      UPDATEs guarded on ``status = 'pending'``.

Failure modes:
    - IntegrityError on a second payout for the same discount usage.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payout_kernel.db.base import TimestampedBase, UUIDString
from payout_kernel.domain.types import AffiliatePayoutStatus, DiscountType


class DiscountUsage(TimestampedBase):
    """
    One application of a discount code by a buyer on a course.

    REFERRAL usages carry the referring user; GENERAL usages never earn
    commission.
    """

    __tablename__ = "discount_usages"

    __table_args__ = (
        Index("idx_discount_usage_user_course", "user_id", "course_id"),
    )

    discount_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    discount_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    discount_type: Mapped[DiscountType] = mapped_column(
        String(20),
        nullable=False,
    )

    referred_by_user_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    course_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    discount_amount: Mapped[Decimal] = mapped_column(nullable=False)

    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )


class AffiliatePayout(TimestampedBase):
    """Commission owed to a referrer for one referral discount usage."""

    __tablename__ = "affiliate_payouts"

    __table_args__ = (
        UniqueConstraint("discount_usage_id", name="uq_affiliate_payout_usage"),
        Index("idx_affiliate_payout_referrer", "referred_by_user_id"),
        Index("idx_affiliate_payout_status", "status"),
    )

    discount_usage_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("discount_usages.id"),
        nullable=False,
    )

    referred_by_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    course_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Payment that triggered creation, when known
    payment_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    commission_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
    )

    commission_amount: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[AffiliatePayoutStatus] = mapped_column(
        String(20),
        nullable=False,
        default=AffiliatePayoutStatus.PENDING,
    )

    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    cancellation_reason: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<AffiliatePayout {self.id} usage={self.discount_usage_id} {self.status}>"
