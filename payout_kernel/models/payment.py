"""
Module: payout_kernel.models.payment
Responsibility: ORM persistence for student payments and the refunds raised
    against them.  Payments are the input side of settlement: the engine reads
    them, and its only write is the one-time ``paid_out_at`` stamp.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/types.py only.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - paid_out_at transitions NULL -> timestamp exactly once.  The ORM does not
      enforce this; every writer goes through the conditional UPDATE in
      SettlementProcessor (``WHERE paid_out_at IS NULL``).
    - updated_at is the moment the payment reached its current status.  For
      COMPLETED payments the waiting period is measured from it.

Failure modes:
    - IntegrityError on a refund whose payment_id does not exist.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payout_kernel.db.base import TimestampedBase, UUIDString
from payout_kernel.domain.types import PaymentStatus, RefundStatus


class Payment(TimestampedBase):
    """
    A student's payment for a course.

    Guarantees:
        - amount is the final price charged, two decimals.
        - instructor_id and course_id may be NULL for legacy rows; such
          payments are never settled.
    """

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payment_settlement_scan", "status", "paid_out_at", "updated_at"),
        Index("idx_payment_user_course", "user_id", "course_id"),
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    # Set once by settlement
    paid_out_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    course_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    instructor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Buyer; joins to discount usages for referral commissions
    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    refunds: Mapped[list[Refund]] = relationship(
        back_populates="payment",
        order_by="Refund.created_at",
    )

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.status} {self.amount}>"


class Refund(TimestampedBase):
    """A refund request against a payment.  PENDING and COMPLETED block payout."""

    __tablename__ = "refunds"

    __table_args__ = (
        Index("idx_refund_payment", "payment_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payments.id"),
        nullable=False,
    )

    status: Mapped[RefundStatus] = mapped_column(
        String(20),
        nullable=False,
        default=RefundStatus.PENDING,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    payment: Mapped[Payment] = relationship(back_populates="refunds")

    def __repr__(self) -> str:
        return f"<Refund {self.id} payment={self.payment_id} {self.status}>"
