"""
Tests for payout_kernel.services.eligibility_scanner.

Validates the bounded, oldest-first batch (never more than batch_size),
oversampled paging past ineligible heads of the queue, and the summary
partition by first failed rule.
"""

from datetime import datetime, timedelta

import pytest

from payout_kernel.db.engine import transaction_scope
from payout_kernel.domain.types import PaymentStatus, RefundStatus
from payout_kernel.services.eligibility_scanner import BatchEligibilityScanner

NOW = datetime(2024, 1, 10, 12, 0, 0)


def _scan(session_factory, evaluator, clock, **kwargs):
    with transaction_scope(session_factory) as session:
        scanner = BatchEligibilityScanner(session, evaluator, clock=clock, **kwargs)
        return scanner.find_eligible_payments()


class TestFindEligiblePayments:

    def test_returns_only_eligible(
        self, session_factory, evaluator, clock, create_payment, create_refund,
    ):
        eligible = create_payment()
        create_payment(updated_at=NOW - timedelta(hours=10))
        refunded = create_payment()
        create_refund(refunded, RefundStatus.PENDING)
        create_payment(status=PaymentStatus.PENDING)
        create_payment(instructor_id=None)

        result = _scan(session_factory, evaluator, clock)

        assert [p.payment_id for p in result] == [eligible]

    def test_never_exceeds_batch_size(self, session_factory, evaluator, clock, create_payment):
        ids = [create_payment(updated_at=NOW - timedelta(days=20 - i)) for i in range(7)]

        result = _scan(session_factory, evaluator, clock, batch_size=3)

        assert [p.payment_id for p in result] == ids[:3]

    def test_pages_past_ineligible_head(
        self, session_factory, evaluator, clock, create_payment, create_refund,
    ):
        # Six refunded payments at the head of the queue, older than the eligible one
        for i in range(6):
            blocked = create_payment(updated_at=NOW - timedelta(days=30 - i))
            create_refund(blocked, RefundStatus.COMPLETED)
        eligible = create_payment(updated_at=NOW - timedelta(days=5))

        # Page size 2 * 2 = 4: the eligible payment is on the second page
        result = _scan(
            session_factory, evaluator, clock,
            batch_size=2, oversample_factor=2, max_pages=3,
        )

        assert [p.payment_id for p in result] == [eligible]

    def test_stops_after_max_pages(
        self, session_factory, evaluator, clock, create_payment, create_refund,
    ):
        for i in range(4):
            blocked = create_payment(updated_at=NOW - timedelta(days=30 - i))
            create_refund(blocked, RefundStatus.PENDING)
        create_payment(updated_at=NOW - timedelta(days=5))

        result = _scan(
            session_factory, evaluator, clock,
            batch_size=1, oversample_factor=2, max_pages=2,
        )

        assert result == ()

    def test_empty_store(self, session_factory, evaluator, clock):
        assert _scan(session_factory, evaluator, clock) == ()

    @pytest.mark.parametrize(
        "kwargs",
        [{"batch_size": 0}, {"oversample_factor": 0}, {"max_pages": 0}],
    )
    def test_invalid_bounds_rejected(self, session_factory, evaluator, kwargs):
        with transaction_scope(session_factory) as session:
            with pytest.raises(ValueError):
                BatchEligibilityScanner(session, evaluator, **kwargs)


class TestEligibilitySummary:

    def test_partition_by_first_reason(
        self,
        session_factory,
        evaluator,
        clock,
        create_payment,
        create_refund,
        create_earning,
    ):
        create_payment()
        create_payment()
        create_payment(paid_out_at=NOW - timedelta(days=1))
        create_payment(updated_at=NOW - timedelta(hours=1))
        # Refund and earning: counted once, under the refund
        both = create_payment()
        create_refund(both, RefundStatus.PENDING)
        create_earning(both)
        create_earning(create_payment())
        create_payment(course_id=None)
        create_payment(status=PaymentStatus.FAILED)

        with transaction_scope(session_factory) as session:
            summary = BatchEligibilityScanner(
                session, evaluator, clock=clock,
            ).get_eligibility_summary()

        assert summary.total_completed == 7
        assert summary.eligible == 2
        assert summary.already_paid_out == 1
        assert summary.within_waiting_period == 1
        assert summary.blocked_by_refund == 1
        assert summary.earning_exists == 1
        assert summary.missing_course_or_instructor == 1
        assert summary.generated_at == NOW

        partitioned = (
            summary.eligible
            + summary.already_paid_out
            + summary.within_waiting_period
            + summary.blocked_by_refund
            + summary.earning_exists
            + summary.missing_course_or_instructor
        )
        assert partitioned == summary.total_completed

    def test_summary_limit(self, session_factory, evaluator, clock, create_payment):
        for _ in range(5):
            create_payment()
        with transaction_scope(session_factory) as session:
            summary = BatchEligibilityScanner(
                session, evaluator, clock=clock,
            ).get_eligibility_summary(limit=3)
        assert summary.total_completed == 3
