"""
Tests for payout_kernel.selectors.payment_selector.

Validates snapshot construction (refunds and earning flag attached),
oldest-first candidate ordering and the lenient refund read.
"""

from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy.exc import OperationalError

from payout_kernel.db.engine import transaction_scope
from payout_kernel.domain.types import EarningStatus, PaymentStatus, RefundStatus
from payout_kernel.selectors.payment_selector import PaymentSelector

NOW =datetime(2024, 1, 10, 12, 0, 0)


class TestGetPayment:

    def test_missing_payment_returns_none(self, session_factory):
        with transaction_scope(session_factory) as session:
            assert PaymentSelector(session).get_payment(uuid4()) is None

    def test_snapshot_includes_refunds_and_earning(
        self, session_factory, create_payment, create_refund, create_earning,
    ):
        payment_id = create_payment()
        refund_id = create_refund(payment_id, RefundStatus.REJECTED)
        create_earning(payment_id)

        with transaction_scope(session_factory) as session:
            snapshot = PaymentSelector(session).get_payment(payment_id)

        assert snapshot.status == PaymentStatus.COMPLETED
        assert snapshot.has_earning
        assert [r.refund_id for r in snapshot.refunds] == [refund_id]
        assert snapshot.refunds[0].status == RefundStatus.REJECTED

    def test_no_refunds_is_empty_tuple_not_none(self, session_factory, create_payment):
        payment_id = create_payment()
        with transaction_scope(session_factory) as session:
            snapshot = PaymentSelector(session).get_payment(payment_id)
        assert snapshot.refunds == ()
        assert snapshot.refunds_loaded


class TestCandidateQueries:

    def test_completed_unpaid_oldest_first(self, session_factory, create_payment):
        newest = create_payment(updated_at=NOW - timedelta(days=4))
        oldest = create_payment(updated_at=NOW - timedelta(days=9))
        middle = create_payment(updated_at=NOW - timedelta(days=6))
        create_payment(paid_out_at=NOW - timedelta(days=1))
        create_payment(status=PaymentStatus.PENDING)

        with transaction_scope(session_factory) as session:
            rows = PaymentSelector(session).find_completed_unpaid(limit=10)

        assert [r.payment_id for r in rows] == [oldest, middle, newest]

    def test_limit_and_offset(self, session_factory, create_payment):
        ids = [
            create_payment(updated_at=NOW - timedelta(days=10 - i)) for i in range(5)
        ]
        with transaction_scope(session_factory) as session:
            selector = PaymentSelector(session)
            first = selector.find_completed_unpaid(limit=2)
            second = selector.find_completed_unpaid(limit=2, offset=2)

        assert [r.payment_id for r in first] == ids[:2]
        assert [r.payment_id for r in second] == ids[2:4]

    def test_find_completed_includes_paid_out(self, session_factory, create_payment):
        create_payment()
        create_payment(paid_out_at=NOW)
        create_payment(status=PaymentStatus.FAILED)

        with transaction_scope(session_factory) as session:
            rows = PaymentSelector(session).find_completed(limit=10)

        assert len(rows) == 2

    def test_count_earnings_by_status(
        self, session_factory, create_payment, create_earning,
    ):
        create_earning(create_payment())
        create_earning(create_payment())

        with transaction_scope(session_factory) as session:
            counts = PaymentSelector(session).count_earnings_by_status()

        assert counts == {EarningStatus.AVAILABLE: 2, EarningStatus.PAID: 0}


class TestRefundLoadFailure:

    def test_failed_refund_read_yields_none(
        self, session_factory, create_payment, captured_logs, monkeypatch,
    ):
        payment_id = create_payment()

        with transaction_scope(session_factory) as session:
            selector = PaymentSelector(session)
            original_execute = session.execute

            def _failing_execute(statement, *args, **kwargs):
                if "refunds" in str(statement):
                    raise OperationalError(str(statement), {}, Exception("disk I/O error"))
                return original_execute(statement, *args, **kwargs)

            monkeypatch.setattr(session, "execute", _failing_execute)
            snapshot = selector.get_payment(payment_id)

        assert snapshot is not None
        assert snapshot.refunds is None
        assert any(r["message"] == "refund_load_failed" for r in captured_logs())

    def test_unrecognised_refund_status_is_kept_as_stored(
        self, session_factory, create_payment, create_refund,
    ):
        payment_id = create_payment()
        create_refund(payment_id, "cancelled")

        with transaction_scope(session_factory) as session:
            snapshot = PaymentSelector(session).get_payment(payment_id)

        assert snapshot.refunds_loaded
        assert [r.status for r in snapshot.refunds] == ["cancelled"]
