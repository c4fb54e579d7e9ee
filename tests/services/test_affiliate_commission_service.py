"""
Tests for payout_kernel.services.affiliate_commission_service.

Validates commission arithmetic, the check order of create_payout, its
idempotence (one payout per discount usage), and the settlement and
fire-and-forget entry points.
"""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from payout_kernel.db.engine import transaction_scope
from payout_kernel.domain.types import AffiliatePayoutStatus, DiscountType
from payout_kernel.exceptions import (
    CommissionDisabledError,
    DiscountUsageNotFoundError,
    MissingReferrerError,
    NonReferralDiscountError,
)
from payout_kernel.models import AffiliatePayout
from payout_kernel.services.affiliate_commission_service import (
    AffiliateCommissionService,
    create_payout_async,
)
from payout_kernel.services.side_effects import SideEffectDispatcher

NOW = datetime(2024, 1, 10, 12, 0, 0)


def _payout_count(session_factory) -> int:
    with transaction_scope(session_factory) as session:
        return session.scalar(select(func.count()).select_from(AffiliatePayout))


# =============================================================================
# Arithmetic
# =============================================================================


class TestCalculateCommission:

    def _service(self, session_factory, percent="3.0"):
        return AffiliateCommissionService(session_factory(), commission_percent=percent)

    def test_default_three_percent(self, session_factory):
        service = self._service(session_factory)
        assert service.calculate_commission_amount(Decimal("250.00")) == Decimal("7.50")

    def test_rounds_half_up(self, session_factory):
        service = self._service(session_factory, "7")
        assert service.calculate_commission_amount(Decimal("33.335")) == Decimal("2.33")

    @pytest.mark.parametrize("price", [None, Decimal("0"), Decimal("-10.00")])
    def test_missing_or_non_positive_price_is_zero(self, session_factory, price):
        service = self._service(session_factory)
        assert service.calculate_commission_amount(price) == Decimal("0.00")

    @pytest.mark.parametrize("percent", ["0", "-1", "101"])
    def test_invalid_percent_rejected(self, session_factory, percent):
        with pytest.raises(ValueError):
            self._service(session_factory, percent)


# =============================================================================
# create_payout
# =============================================================================


class TestCreatePayout:

    def test_creates_pending_payout(self, session_factory, clock, create_discount_usage):
        referrer = uuid4()
        usage_id = create_discount_usage(referred_by_user_id=referrer)
        payment_id = uuid4()

        with transaction_scope(session_factory) as session:
            view = AffiliateCommissionService(session, clock=clock).create_payout(
                usage_id, Decimal("100.00"), payment_id,
            )

        assert view.status == AffiliatePayoutStatus.PENDING
        assert view.discount_usage_id == usage_id
        assert view.referred_by_user_id == referrer
        assert view.payment_id == payment_id
        assert view.commission_percent == Decimal("3.00")
        assert view.commission_amount == Decimal("3.00")
        assert view.created_at == NOW
        assert view.paid_at is None

    def test_second_call_returns_existing(self, session_factory, clock, create_discount_usage):
        usage_id = create_discount_usage()

        with transaction_scope(session_factory) as session:
            first = AffiliateCommissionService(session, clock=clock).create_payout(
                usage_id, Decimal("100.00"),
            )
        # A later call with another price and percent changes nothing
        with transaction_scope(session_factory) as session:
            second = AffiliateCommissionService(
                session, commission_percent="10", clock=clock,
            ).create_payout(usage_id, Decimal("999.00"))

        assert second.payout_id == first.payout_id
        assert second.commission_amount == Decimal("3.00")
        assert _payout_count(session_factory) == 1

    def test_missing_usage(self, session_factory):
        with transaction_scope(session_factory) as session:
            service = AffiliateCommissionService(session)
            with pytest.raises(DiscountUsageNotFoundError):
                service.create_payout(uuid4(), Decimal("100.00"))

    def test_general_discount_rejected(self, session_factory, create_discount_usage):
        usage_id = create_discount_usage(discount_type=DiscountType.GENERAL)
        with transaction_scope(session_factory) as session:
            service = AffiliateCommissionService(session)
            with pytest.raises(NonReferralDiscountError) as exc_info:
                service.create_payout(usage_id, Decimal("100.00"))
        assert exc_info.value.code == "NON_REFERRAL_DISCOUNT"
        assert exc_info.value.discount_type == "general"
        assert _payout_count(session_factory) == 0

    def test_missing_referrer_rejected(self, session_factory, create_discount_usage):
        usage_id = create_discount_usage(referred_by_user_id=None)
        with transaction_scope(session_factory) as session:
            service = AffiliateCommissionService(session)
            with pytest.raises(MissingReferrerError):
                service.create_payout(usage_id, Decimal("100.00"))

    def test_disabled_rejected(self, session_factory, create_discount_usage):
        usage_id = create_discount_usage()
        with transaction_scope(session_factory) as session:
            service = AffiliateCommissionService(session, commission_enabled=False)
            with pytest.raises(CommissionDisabledError) as exc_info:
                service.create_payout(usage_id, Decimal("100.00"))
        assert str(exc_info.value) == "Affiliate commission system is disabled"
        assert _payout_count(session_factory) == 0

    def test_referral_checked_before_disabled(self, session_factory, create_discount_usage):
        usage_id = create_discount_usage(discount_type=DiscountType.GENERAL)
        with transaction_scope(session_factory) as session:
            service = AffiliateCommissionService(session, commission_enabled=False)
            with pytest.raises(NonReferralDiscountError):
                service.create_payout(usage_id, Decimal("100.00"))

    def test_zero_price_creates_zero_commission(self, session_factory, create_discount_usage):
        usage_id = create_discount_usage()
        with transaction_scope(session_factory) as session:
            view = AffiliateCommissionService(session).create_payout(usage_id, Decimal("0"))
        assert view.commission_amount == Decimal("0.00")

    def test_concurrent_insert_returns_winner(
        self, session_factory, clock, create_discount_usage, monkeypatch,
    ):
        """The existence check misses a payout committed in between; UNIQUE catches it."""
        usage_id = create_discount_usage()
        with transaction_scope(session_factory) as session:
            winner = AffiliateCommissionService(session, clock=clock).create_payout(
                usage_id, Decimal("100.00"),
            )

        with transaction_scope(session_factory) as session:
            service = AffiliateCommissionService(session, clock=clock)
            real_lookup = service._selector.get_payout_by_usage
            calls = []

            def _stale_then_real(discount_usage_id):
                calls.append(discount_usage_id)
                if len(calls) == 1:
                    return None
                return real_lookup(discount_usage_id)

            monkeypatch.setattr(service._selector, "get_payout_by_usage", _stale_then_real)
            result = service.create_payout(usage_id, Decimal("100.00"))

        assert result.payout_id == winner.payout_id
        assert len(calls) == 2
        assert _payout_count(session_factory) == 1


# =============================================================================
# Settlement trigger
# =============================================================================


class TestCreatePayoutsForPayment:

    def test_only_referral_usages_earn(self, session_factory, clock, create_discount_usage):
        buyer, course = uuid4(), uuid4()
        referral = create_discount_usage(user_id=buyer, course_id=course)
        create_discount_usage(
            discount_type=DiscountType.GENERAL, user_id=buyer, course_id=course,
        )
        create_discount_usage(referred_by_user_id=None, user_id=buyer, course_id=course)
        create_discount_usage(user_id=buyer)  # other course

        payment_id = uuid4()
        with transaction_scope(session_factory) as session:
            payouts = AffiliateCommissionService(
                session, clock=clock,
            ).create_payouts_for_payment(payment_id, buyer, course, Decimal("80.00"))

        assert [p.discount_usage_id for p in payouts] == [referral]
        assert payouts[0].commission_amount == Decimal("2.40")
        assert payouts[0].payment_id == payment_id

    def test_disabled_returns_empty(self, session_factory, create_discount_usage):
        buyer, course = uuid4(), uuid4()
        create_discount_usage(user_id=buyer, course_id=course)
        with transaction_scope(session_factory) as session:
            payouts = AffiliateCommissionService(
                session, commission_enabled=False,
            ).create_payouts_for_payment(uuid4(), buyer, course, Decimal("80.00"))
        assert payouts == ()
        assert _payout_count(session_factory) == 0


# =============================================================================
# Fire-and-forget
# =============================================================================


class TestCreatePayoutAsync:

    def test_creates_payout_in_its_own_transaction(
        self, session_factory, clock, create_discount_usage,
    ):
        usage_id = create_discount_usage()
        dispatcher = SideEffectDispatcher(synchronous=True)

        create_payout_async(dispatcher, session_factory, usage_id, Decimal("100.00"), clock=clock)

        assert _payout_count(session_factory) == 1

    def test_errors_are_logged_not_raised(
        self, session_factory, create_discount_usage, captured_logs,
    ):
        usage_id = create_discount_usage(discount_type=DiscountType.GENERAL)
        dispatcher = SideEffectDispatcher(max_workers=1)

        future = create_payout_async(dispatcher, session_factory, usage_id, Decimal("100.00"))
        future.result(timeout=10)
        dispatcher.shutdown()

        failures = [r for r in captured_logs() if r["message"] == "side_effect_failed"]
        assert len(failures) == 1
        assert failures[0]["effect"] == "create_affiliate_payout"
        assert failures[0]["exc_code"] == "NON_REFERRAL_DISCOUNT"
        assert _payout_count(session_factory) == 0
