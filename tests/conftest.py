"""
Pytest fixtures for the payout test suite.

Provides:
- File-backed SQLite databases, one per test (settlement opens several
  sessions at once, which an in-memory database shared per thread cannot do)
- Deterministic clock and data factories for payments, refunds, discount
  usages and affiliate payouts
- Structured log capture

Every factory commits its rows before returning, so no test holds a
write transaction open while the code under test writes.
"""

import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from payout_kernel.db.base import Base
from payout_kernel.db.engine import build_engine, transaction_scope
from payout_kernel.domain.clock import DeterministicClock
from payout_kernel.domain.eligibility import EligibilityEvaluator
from payout_kernel.domain.types import (
    AffiliatePayoutStatus,
    DiscountType,
    PaymentStatus,
    RefundStatus,
)
from payout_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payout_kernel.models import (
    AffiliatePayout,
    DiscountUsage,
    InstructorEarning,
    Payment,
    Refund,
)

# Fixed "now" for every test; naive because SQLite drops tzinfo
NOW = datetime(2024, 1, 10, 12, 0, 0)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payout_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, processor):
            processor.process_payment(payment_id)
            logs = captured_logs()
            assert any(r["message"] == "payment_settled" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payout_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "concurrency: mark test as running several threads against one database"
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'payouts.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def clock():
    return DeterministicClock(NOW)


@pytest.fixture
def evaluator():
    return EligibilityEvaluator(waiting_period_days=3)


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def create_payment(session_factory):
    """
    Insert a payment and return its id.

    Defaults describe a payment that is eligible at NOW: COMPLETED four days
    earlier, unpaid, with course and instructor set.
    """

    def _create(
        amount: Decimal | str = "100.00",
        status: PaymentStatus = PaymentStatus.COMPLETED,
        updated_at: datetime | None = None,
        paid_out_at: datetime | None = None,
        course_id: UUID | None = "default",
        instructor_id: UUID | None = "default",
        user_id: UUID | None = None,
    ) -> UUID:
        payment_id = uuid4()
        with transaction_scope(session_factory) as session:
            session.add(
                Payment(
                    id=payment_id,
                    amount=Decimal(str(amount)),
                    status=status.value,
                    updated_at=updated_at or NOW - timedelta(days=4),
                    paid_out_at=paid_out_at,
                    course_id=uuid4() if course_id == "default" else course_id,
                    instructor_id=uuid4() if instructor_id == "default" else instructor_id,
                    user_id=user_id,
                )
            )
        return payment_id

    return _create


@pytest.fixture
def create_refund(session_factory):
    def _create(
        payment_id: UUID,
        status: RefundStatus | str = RefundStatus.PENDING,
        amount: Decimal | str = "100.00",
    ) -> UUID:
        refund_id = uuid4()
        with transaction_scope(session_factory) as session:
            session.add(
                Refund(
                    id=refund_id,
                    payment_id=payment_id,
                    status=getattr(status, "value", status),
                    amount=Decimal(str(amount)),
                    reason="requested by student",
                )
            )
        return refund_id

    return _create


@pytest.fixture
def create_earning(session_factory):
    """Insert an earning directly, bypassing settlement."""

    def _create(payment_id: UUID, amount: Decimal | str = "70.00") -> UUID:
        earning_id = uuid4()
        with transaction_scope(session_factory) as session:
            session.add(
                InstructorEarning(
                    id=earning_id,
                    payment_id=payment_id,
                    instructor_id=uuid4(),
                    course_id=uuid4(),
                    amount=Decimal(str(amount)),
                )
            )
        return earning_id

    return _create


@pytest.fixture
def create_discount_usage(session_factory):
    def _create(
        discount_type: DiscountType = DiscountType.REFERRAL,
        referred_by_user_id: UUID | None = "default",
        user_id: UUID | None = None,
        course_id: UUID | None = None,
        discount_amount: Decimal | str = "10.00",
    ) -> UUID:
        usage_id = uuid4()
        if referred_by_user_id == "default":
            referred_by_user_id = (
                uuid4() if discount_type == DiscountType.REFERRAL else None
            )
        with transaction_scope(session_factory) as session:
            session.add(
                DiscountUsage(
                    id=usage_id,
                    discount_id=uuid4(),
                    discount_code="FRIEND10",
                    discount_type=discount_type.value,
                    referred_by_user_id=referred_by_user_id,
                    user_id=user_id or uuid4(),
                    course_id=course_id or uuid4(),
                    discount_amount=Decimal(str(discount_amount)),
                    used_at=NOW - timedelta(days=5),
                )
            )
        return usage_id

    return _create


@pytest.fixture
def create_affiliate_payout(session_factory, create_discount_usage):
    """Insert an affiliate payout (with its own discount usage) directly."""

    def _create(
        commission_amount: Decimal | str = "3.00",
        status: AffiliatePayoutStatus = AffiliatePayoutStatus.PENDING,
        referred_by_user_id: UUID | None = None,
        created_at: datetime | None = None,
    ) -> UUID:
        referrer = referred_by_user_id or uuid4()
        usage_id = create_discount_usage(referred_by_user_id=referrer)
        payout_id = uuid4()
        with transaction_scope(session_factory) as session:
            session.add(
                AffiliatePayout(
                    id=payout_id,
                    discount_usage_id=usage_id,
                    referred_by_user_id=referrer,
                    course_id=uuid4(),
                    commission_percent=Decimal("3.00"),
                    commission_amount=Decimal(str(commission_amount)),
                    status=status.value,
                    paid_at=NOW if status == AffiliatePayoutStatus.PAID else None,
                    cancelled_at=NOW if status == AffiliatePayoutStatus.CANCELLED else None,
                    cancellation_reason=(
                        "duplicate" if status == AffiliatePayoutStatus.CANCELLED else None
                    ),
                    created_at=created_at or NOW - timedelta(days=1),
                )
            )
        return payout_id

    return _create
