"""
Module: payout_kernel.services.settlement_service
Responsibility: Convert one eligible payment into an instructor earning,
    exactly once, and run a batch of such conversions with per-payment
    failure isolation.
Architecture position: Kernel > Services.  Owns its transactions: receives a
    session factory and opens one ``transaction_scope`` per payment.

Invariants enforced:
    - At most one earning per payment, and paid_out_at set exactly once.
      The conditional UPDATE ``WHERE id = ? AND paid_out_at IS NULL`` is the
      claim; affected rows == 1 is the only success signal.  The UNIQUE
      constraint on instructor_earnings.payment_id is the backstop.
    - The claim and the earning insert commit together or not at all.
    - Eligibility is re-evaluated against a fresh read inside the
      transaction; the scan snapshot is never trusted.
    - Side effects are submitted only after commit.

Failure modes:
    - Never raises from process_payment/process_batch.  Errors become FAILED
      outcomes carrying the error code and message:
        PaymentNotFoundError  -> PAYMENT_NOT_FOUND
        SQLAlchemyError       -> TRANSIENT_STORE_ERROR
    - A lost race (claim affected zero rows, or the earning insert hit the
      UNIQUE constraint) is SKIPPED with reason ``lost_race``.  An integrity
      violation is only a lost race when an earning for the payment exists
      afterwards; any other violation is TRANSIENT_STORE_ERROR.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Iterable
from uuid import UUID, uuid4

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from payout_kernel.db.engine import transaction_scope
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.eligibility import EligibilityEvaluator
from payout_kernel.domain.money import HUNDRED, percentage_of, to_decimal
from payout_kernel.domain.types import (
    EarningStatus,
    IneligibilityReason,
    PaymentSnapshot,
    SettlementOutcome,
    SettlementRunResult,
    SettlementStatus,
    SkipReason,
)
from payout_kernel.exceptions import (
    PaymentNotFoundError,
    PayoutKernelError,
    TransientStoreError,
)
from payout_kernel.logging_config import LogContext, get_logger
from payout_kernel.models.earning import InstructorEarning
from payout_kernel.models.payment import Payment
from payout_kernel.selectors.payment_selector import PaymentSelector
from payout_kernel.services.affiliate_commission_service import (
    AffiliateCommissionService,
)
from payout_kernel.services.side_effects import (
    CacheInvalidator,
    NullCacheInvalidator,
    SideEffectDispatcher,
)

logger = get_logger("services.settlement")


class SettlementEffects:
    """
    Post-commit work for a settled payment.

    Creates affiliate payouts for the buyer's referral usages on the course,
    then invalidates the instructor's cached statistics.  Each runs in its
    own transaction on the dispatcher.
    """

    def __init__(
        self,
        dispatcher: SideEffectDispatcher,
        session_factory: Callable[[], Session],
        cache_invalidator: CacheInvalidator | None = None,
        commission_percent: Decimal | str = Decimal("3.0"),
        commission_enabled: bool = True,
        clock: Clock | None = None,
    ):
        self.dispatcher = dispatcher
        self._session_factory = session_factory
        self._cache = cache_invalidator or NullCacheInvalidator()
        self._commission_percent = to_decimal(commission_percent)
        self._commission_enabled = commission_enabled
        self._clock = clock or SystemClock()

    def on_settled(self, payment: PaymentSnapshot) -> None:
        if (
            self._commission_enabled
            and payment.user_id is not None
            and payment.course_id is not None
        ):
            self.dispatcher.submit(
                "create_affiliate_payouts",
                self._create_affiliate_payouts,
                payment.payment_id,
                payment.user_id,
                payment.course_id,
                payment.amount,
            )
        if payment.instructor_id is not None:
            self.dispatcher.submit(
                "invalidate_instructor_statistics",
                self._cache.invalidate_instructor_statistics,
                payment.instructor_id,
            )

    def _create_affiliate_payouts(
        self, payment_id: UUID, user_id: UUID, course_id: UUID, final_price: Decimal,
    ) -> None:
        with transaction_scope(self._session_factory) as session:
            AffiliateCommissionService(
                session,
                commission_percent=self._commission_percent,
                commission_enabled=self._commission_enabled,
                clock=self._clock,
            ).create_payouts_for_payment(payment_id, user_id, course_id, final_price)


class SettlementProcessor:
    """
    Settles payments one transaction at a time.

    Usage:
        processor = SettlementProcessor(session_factory, evaluator, Decimal("70"))
        result = processor.process_batch([p.payment_id for p in eligible])
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        evaluator: EligibilityEvaluator,
        instructor_share_percent: Decimal | int | str = Decimal("70"),
        clock: Clock | None = None,
        effects: SettlementEffects | None = None,
    ):
        share = to_decimal(instructor_share_percent)
        if share <= 0 or share > HUNDRED:
            raise ValueError(
                f"instructor_share_percent must be in (0, 100], got {share}"
            )
        self._session_factory = session_factory
        self._evaluator = evaluator
        self._share_percent = share
        self._clock = clock or SystemClock()
        self._effects = effects

    def calculate_earning_amount(self, amount: Decimal) -> Decimal:
        return percentage_of(amount, self._share_percent)

    # -------------------------------------------------------------------------
    # Single payment
    # -------------------------------------------------------------------------

    def process_payment(self, payment_id: UUID) -> SettlementOutcome:
        """Settle one payment.  Never raises; see module docstring."""
        with LogContext.bind(payment_id=str(payment_id)):
            settled_payment: PaymentSnapshot | None = None
            try:
                with transaction_scope(self._session_factory) as session:
                    outcome, settled_payment = self._settle(session, payment_id)
            except IntegrityError as exc:
                return self._integrity_outcome(payment_id, exc)
            except PayoutKernelError as exc:
                return self._failed(payment_id, exc)
            except SQLAlchemyError as exc:
                error = TransientStoreError("settlement", str(payment_id), str(exc))
                error.__cause__ = exc
                return self._failed(payment_id, error)
            except Exception as exc:
                return self._failed(payment_id, exc)

            if outcome.settled and settled_payment is not None and self._effects:
                self._effects.on_settled(settled_payment)
            return outcome

    def _integrity_outcome(
        self, payment_id: UUID, exc: IntegrityError,
    ) -> SettlementOutcome:
        # Only a competing earning for this payment makes the violation a lost race
        try:
            with transaction_scope(self._session_factory) as session:
                earning_exists = PaymentSelector(session).has_earning(payment_id)
        except SQLAlchemyError as check_exc:
            error = TransientStoreError("settlement", str(payment_id), str(check_exc))
            error.__cause__ = check_exc
            return self._failed(payment_id, error)

        if not earning_exists:
            error = TransientStoreError("settlement", str(payment_id), str(exc.orig))
            error.__cause__ = exc
            return self._failed(payment_id, error)

        logger.warning(
            "settlement_lost_race",
            extra={"payment_id": str(payment_id), "error": str(exc.orig)},
        )
        return SettlementOutcome(
            payment_id=payment_id,
            status=SettlementStatus.SKIPPED,
            reason=SkipReason.LOST_RACE.value,
        )

    def _settle(
        self, session: Session, payment_id: UUID,
    ) -> tuple[SettlementOutcome, PaymentSnapshot | None]:
        now = self._clock.now()
        payment = PaymentSelector(session).get_payment(payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))

        if payment.paid_out_at is not None:
            return self._skipped(payment, IneligibilityReason.ALREADY_PAID_OUT.value), None

        decision = self._evaluator.evaluate(payment, now)
        if not decision.eligible:
            return self._skipped(payment, decision.reason.value, decision.detail), None

        earning_amount = self.calculate_earning_amount(payment.amount)

        claimed = session.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.paid_out_at.is_(None))
            .values(paid_out_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        if claimed != 1:
            return self._skipped(payment, SkipReason.LOST_RACE.value), None

        earning = InstructorEarning(
            id=uuid4(),
            payment_id=payment_id,
            instructor_id=payment.instructor_id,
            course_id=payment.course_id,
            amount=earning_amount,
            status=EarningStatus.AVAILABLE,
            paid_at=None,
        )
        session.add(earning)
        session.flush()

        logger.info(
            "payment_settled",
            extra={
                "payment_id": str(payment_id),
                "earning_id": str(earning.id),
                "instructor_id": str(payment.instructor_id),
                "amount": str(payment.amount),
                "earning_amount": str(earning_amount),
            },
        )
        outcome = SettlementOutcome(
            payment_id=payment_id,
            status=SettlementStatus.SETTLED,
            earning_id=earning.id,
            instructor_id=payment.instructor_id,
            payment_amount=payment.amount,
            earning_amount=earning_amount,
            paid_out_at=now,
        )
        return outcome, payment

    @staticmethod
    def _skipped(
        payment: PaymentSnapshot, reason: str, detail: str = "",
    ) -> SettlementOutcome:
        logger.info(
            "settlement_skipped",
            extra={
                "payment_id": str(payment.payment_id),
                "reason": reason,
                "detail": detail,
            },
        )
        return SettlementOutcome(
            payment_id=payment.payment_id,
            status=SettlementStatus.SKIPPED,
            reason=reason,
            payment_amount=payment.amount,
        )

    @staticmethod
    def _failed(payment_id: UUID, exc: Exception) -> SettlementOutcome:
        code = getattr(exc, "code", type(exc).__name__)
        logger.error(
            "settlement_failed",
            extra={"payment_id": str(payment_id), "error_code": code},
            exc_info=exc,
        )
        return SettlementOutcome(
            payment_id=payment_id,
            status=SettlementStatus.FAILED,
            reason=code,
            error_code=code,
            error_message=str(exc),
        )

    # -------------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------------

    def process_batch(self, payment_ids: Iterable[UUID]) -> SettlementRunResult:
        """Settle each payment independently; one failure never stops the rest."""
        outcomes = tuple(self.process_payment(pid) for pid in payment_ids)
        result = SettlementRunResult(outcomes=outcomes)
        logger.info(
            "settlement_batch_completed",
            extra={
                "total": result.total,
                "settled": result.settled,
                "skipped": result.skipped,
                "failed": result.failed,
                "total_payment_amount": str(result.total_payment_amount),
                "total_earning_amount": str(result.total_earning_amount),
            },
        )
        return result
