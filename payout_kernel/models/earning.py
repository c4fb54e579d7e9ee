"""
Module: payout_kernel.models.earning
Responsibility: ORM persistence for instructor earnings, the durable record
    that a payment has been settled.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/types.py only.

Invariants enforced:
    - At most one earning per payment (uq_earning_payment).  This is the
      backstop behind the conditional paid_out_at UPDATE: two settlers that
      both slip past the guard still cannot write two earnings.

Failure modes:
    - IntegrityError on a second earning for the same payment.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payout_kernel.db.base import TimestampedBase, UUIDString
from payout_kernel.domain.types import EarningStatus


class InstructorEarning(TimestampedBase):
    """
    The instructor's share of one settled payment.

    Created AVAILABLE with paid_at NULL; moving to PAID is the disbursement
    system's job, not settlement's.
    """

    __tablename__ = "instructor_earnings"

    __table_args__ = (
        UniqueConstraint("payment_id", name="uq_earning_payment"),
        Index("idx_earning_instructor", "instructor_id", "status"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payments.id"),
        nullable=False,
    )

    instructor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    course_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[EarningStatus] = mapped_column(
        String(20),
        nullable=False,
        default=EarningStatus.AVAILABLE,
    )

    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<InstructorEarning {self.id} payment={self.payment_id} {self.amount}>"
