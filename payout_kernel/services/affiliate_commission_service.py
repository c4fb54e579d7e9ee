"""
Module: payout_kernel.services.affiliate_commission_service
Responsibility: Create the affiliate payout owed to a referrer when a
    referral discount is used on a paid course.
Architecture position: Kernel > Services.  Works inside the caller's session;
    the caller owns the transaction.

Invariants enforced:
    - At most one affiliate payout per discount usage.  A prior payout is
      returned unchanged; a concurrent insert that loses on the UNIQUE
      constraint is rolled back to its SAVEPOINT and the winner is returned.
    - Only REFERRAL usages with a referrer earn commission.
    - commission_amount = final_price * commission_percent / 100, half-up to
      two decimals, with commission_percent snapshotted on the payout.
    - Payouts are created PENDING.  Confirmation is an explicit admin action.

Failure modes:
    - DiscountUsageNotFoundError: usage does not exist.
    - NonReferralDiscountError / MissingReferrerError: usage cannot earn
      commission (ValidationError, not retryable).
    - CommissionDisabledError: commission switched off (StateError).
"""

from __future__ import annotations

from concurrent.futures import Future
from decimal import Decimal
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payout_kernel.db.engine import transaction_scope
from payout_kernel.domain.clock import Clock, SystemClock
from payout_kernel.domain.money import HUNDRED, ZERO, percentage_of, to_decimal
from payout_kernel.domain.types import (
    AffiliatePayoutStatus,
    AffiliatePayoutView,
    DiscountType,
)
from payout_kernel.exceptions import (
    CommissionDisabledError,
    DiscountUsageNotFoundError,
    MissingReferrerError,
    NonReferralDiscountError,
)
from payout_kernel.logging_config import get_logger
from payout_kernel.models.affiliate import AffiliatePayout
from payout_kernel.selectors.affiliate_selector import AffiliateSelector
from payout_kernel.services.side_effects import SideEffectDispatcher

logger = get_logger("services.affiliate_commission")

DEFAULT_COMMISSION_PERCENT = Decimal("3.0")


class AffiliateCommissionService:
    """Idempotent creation of referral commissions."""

    def __init__(
        self,
        session: Session,
        commission_percent: Decimal | int | str = DEFAULT_COMMISSION_PERCENT,
        commission_enabled: bool = True,
        clock: Clock | None = None,
    ):
        percent = to_decimal(commission_percent)
        if percent <= 0 or percent > HUNDRED:
            raise ValueError(f"commission_percent must be in (0, 100], got {percent}")
        self.session = session
        self.commission_percent = percent
        self.commission_enabled = commission_enabled
        self._clock = clock or SystemClock()
        self._selector = AffiliateSelector(session)

    def calculate_commission_amount(self, final_price: Decimal | None) -> Decimal:
        """Commission on ``final_price``; zero for a missing or non-positive price."""
        if final_price is None:
            return ZERO
        price = to_decimal(final_price)
        if price <= 0:
            return ZERO
        return percentage_of(price, self.commission_percent)

    def create_payout(
        self,
        discount_usage_id: UUID,
        final_price: Decimal,
        payment_id: UUID | None = None,
    ) -> AffiliatePayoutView:
        """
        Create (or return the existing) payout for one discount usage.

        Raises:
            DiscountUsageNotFoundError, NonReferralDiscountError,
            MissingReferrerError, CommissionDisabledError.
        """
        usage = self._selector.get_usage(discount_usage_id)
        if usage is None:
            raise DiscountUsageNotFoundError(str(discount_usage_id))
        if usage.discount_type != DiscountType.REFERRAL:
            raise NonReferralDiscountError(
                str(discount_usage_id), usage.discount_type.value,
            )
        if usage.referred_by_user_id is None:
            raise MissingReferrerError(str(discount_usage_id))
        if not self.commission_enabled:
            raise CommissionDisabledError(str(discount_usage_id))

        existing = self._selector.get_payout_by_usage(discount_usage_id)
        if existing is not None:
            logger.info(
                "affiliate_payout_exists",
                extra={
                    "discount_usage_id": str(discount_usage_id),
                    "payout_id": str(existing.payout_id),
                },
            )
            return existing

        amount = self.calculate_commission_amount(final_price)
        payout_id = uuid4()
        try:
            with self.session.begin_nested():
                self.session.add(
                    AffiliatePayout(
                        id=payout_id,
                        discount_usage_id=discount_usage_id,
                        referred_by_user_id=usage.referred_by_user_id,
                        course_id=usage.course_id,
                        payment_id=payment_id,
                        commission_percent=self.commission_percent,
                        commission_amount=amount,
                        status=AffiliatePayoutStatus.PENDING,
                        created_at=self._clock.now(),
                    )
                )
                self.session.flush()
        except IntegrityError:
            winner = self._selector.get_payout_by_usage(discount_usage_id)
            if winner is None:
                raise
            logger.info(
                "affiliate_payout_concurrent_insert",
                extra={
                    "discount_usage_id": str(discount_usage_id),
                    "payout_id": str(winner.payout_id),
                },
            )
            return winner

        logger.info(
            "affiliate_payout_created",
            extra={
                "payout_id": str(payout_id),
                "discount_usage_id": str(discount_usage_id),
                "referred_by_user_id": str(usage.referred_by_user_id),
                "commission_percent": str(self.commission_percent),
                "commission_amount": str(amount),
            },
        )
        return self._selector.get_payout(payout_id)

    def create_payouts_for_payment(
        self,
        payment_id: UUID,
        user_id: UUID,
        course_id: UUID,
        final_price: Decimal,
    ) -> tuple[AffiliatePayoutView, ...]:
        """
        Settlement trigger: payouts for every referral usage the buyer
        applied to the course.  Usages that cannot earn commission are skipped.
        """
        if not self.commission_enabled:
            logger.info(
                "affiliate_commission_disabled",
                extra={"payment_id": str(payment_id)},
            )
            return ()

        payouts = []
        for usage in self._selector.find_usages_for_purchase(user_id, course_id):
            if (
                usage.discount_type != DiscountType.REFERRAL
                or usage.referred_by_user_id is None
            ):
                logger.debug(
                    "discount_usage_not_commissionable",
                    extra={
                        "discount_usage_id": str(usage.discount_usage_id),
                        "discount_type": usage.discount_type.value,
                    },
                )
                continue
            payouts.append(
                self.create_payout(usage.discount_usage_id, final_price, payment_id)
            )
        return tuple(payouts)


def create_payout_async(
    dispatcher: SideEffectDispatcher,
    session_factory: Callable[[], Session],
    discount_usage_id: UUID,
    final_price: Decimal,
    payment_id: UUID | None = None,
    commission_percent: Decimal | int | str = DEFAULT_COMMISSION_PERCENT,
    commission_enabled: bool = True,
    clock: Clock | None = None,
) -> Future | None:
    """
    Fire-and-forget ``create_payout`` in its own transaction.

    Used by the discount-usage trigger.  Errors, including validation
    errors, are logged by the dispatcher and never reach the caller.
    """

    def _create() -> None:
        with transaction_scope(session_factory) as session:
            AffiliateCommissionService(
                session,
                commission_percent=commission_percent,
                commission_enabled=commission_enabled,
                clock=clock,
            ).create_payout(discount_usage_id, final_price, payment_id)

    return dispatcher.submit("create_affiliate_payout", _create)
