"""
Typed Exception Hierarchy for the Payout Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Money-moving code must handle errors precisely. Callers catch by type and
read structured attributes; they never parse message strings.

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        commission_service.create_payout(usage_id, final_price)
    except NonReferralDiscountError as e:
        api_response(code=e.code, discount_usage_id=e.discount_usage_id)
    except CommissionDisabledError:
        pass  # retry only after a configuration change

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayoutKernelError (base)
    |
    +-- ValidationError                 (bad input; not retryable as-is)
    |   +-- NonReferralDiscountError
    |   +-- MissingReferrerError
    |   +-- CancellationReasonRequiredError
    |   +-- UnknownBulkActionError
    |
    +-- StateError                      (feature disabled / terminal state)
    |   +-- CommissionDisabledError
    |   +-- InvalidPayoutTransitionError
    |
    +-- NotFoundError
    |   +-- PaymentNotFoundError
    |   +-- DiscountUsageNotFoundError
    |   +-- AffiliatePayoutNotFoundError
    |
    +-- TransientStoreError             (I/O failure scoped to one unit of work)

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                          | When Raised
------------|-------------------------------|------------------------------------
Validation  | NON_REFERRAL_DISCOUNT         | Commission for a non-referral usage
            | MISSING_REFERRER              | Referral usage without a referrer
            | CANCELLATION_REASON_REQUIRED  | Cancel without a reason
            | UNKNOWN_BULK_ACTION           | Bulk action name not recognised
------------|-------------------------------|------------------------------------
State       | COMMISSION_DISABLED           | Commission feature switched off
            | INVALID_PAYOUT_TRANSITION     | PAID/CANCELLED payout transitioned
------------|-------------------------------|------------------------------------
Not found   | PAYMENT_NOT_FOUND             | Payment id does not exist
            | DISCOUNT_USAGE_NOT_FOUND      | Discount usage id does not exist
            | AFFILIATE_PAYOUT_NOT_FOUND    | Affiliate payout id does not exist
------------|-------------------------------|------------------------------------
Store       | TRANSIENT_STORE_ERROR         | Database failure during settlement

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Per-payment errors never abort a batch. The settlement processor catches
   everything at the payment boundary and reports a FAILED outcome.

2. ValidationError and StateError are raised to the caller. Retrying without
   changing the data (validation) or configuration (state) gives the same
   result.

3. TransientStoreError wraps the underlying SQLAlchemy error as ``__cause__``
   and is safe to retry on the next scheduled run.
"""


class PayoutKernelError(Exception):
    """
    Base exception for all payout kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYOUT_KERNEL_ERROR"


# Category bases


class ValidationError(PayoutKernelError):
    """Base exception for invalid input."""

    code: str = "VALIDATION_ERROR"


class StateError(PayoutKernelError):
    """Base exception for operations refused because of current state."""

    code: str = "STATE_ERROR"


class NotFoundError(PayoutKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class TransientStoreError(PayoutKernelError):
    """
    Durable store failure scoped to one unit of work.

    Raised with the original database exception chained as ``__cause__``.
    """

    code: str = "TRANSIENT_STORE_ERROR"

    def __init__(self, operation: str, entity_id: str, detail: str):
        self.operation = operation
        self.entity_id = entity_id
        self.detail = detail
        super().__init__(
            f"Store failure during {operation} for {entity_id}: {detail}"
        )


# Validation errors


class NonReferralDiscountError(ValidationError):
    """Affiliate commission requested for a discount that is not a referral."""

    code: str = "NON_REFERRAL_DISCOUNT"

    def __init__(self, discount_usage_id: str, discount_type: str):
        self.discount_usage_id = discount_usage_id
        self.discount_type = discount_type
        super().__init__(
            f"Affiliate payout can only be created for REFERRAL discounts; "
            f"usage {discount_usage_id} has type {discount_type}"
        )


class MissingReferrerError(ValidationError):
    """Referral discount usage has no referring user."""

    code: str = "MISSING_REFERRER"

    def __init__(self, discount_usage_id: str):
        self.discount_usage_id = discount_usage_id
        super().__init__(
            f"No referrer found for discount usage {discount_usage_id}"
        )


class CancellationReasonRequiredError(ValidationError):
    """Cancelling an affiliate payout requires a non-empty reason."""

    code: str = "CANCELLATION_REASON_REQUIRED"

    def __init__(self, payout_id: str):
        self.payout_id = payout_id
        super().__init__(f"A cancellation reason is required for payout {payout_id}")


class UnknownBulkActionError(ValidationError):
    """Bulk payout action is not one of the supported actions."""

    code: str = "UNKNOWN_BULK_ACTION"

    def __init__(self, action: str, supported: tuple[str, ...]):
        self.action = action
        self.supported = supported
        super().__init__(
            f"Unknown bulk action '{action}'. Supported: {', '.join(supported)}"
        )


# State errors


class CommissionDisabledError(StateError):
    """Affiliate commission feature is switched off in configuration."""

    code: str = "COMMISSION_DISABLED"

    def __init__(self, discount_usage_id: str):
        self.discount_usage_id = discount_usage_id
        super().__init__("Affiliate commission system is disabled")


class InvalidPayoutTransitionError(StateError):
    """
    Affiliate payout cannot move from its current status to the target.

    PENDING is the only non-terminal status. PAID and CANCELLED never change.
    """

    code: str = "INVALID_PAYOUT_TRANSITION"

    def __init__(self, payout_id: str, current_status: str, target_status: str):
        self.payout_id = payout_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Cannot transition payout {payout_id} from {current_status} "
            f"to {target_status}"
        )


# Not found errors


class PaymentNotFoundError(NotFoundError):
    """Payment with given ID was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class DiscountUsageNotFoundError(NotFoundError):
    """Discount usage with given ID was not found."""

    code: str = "DISCOUNT_USAGE_NOT_FOUND"

    def __init__(self, discount_usage_id: str):
        self.discount_usage_id = discount_usage_id
        super().__init__(f"Discount usage not found: {discount_usage_id}")


class AffiliatePayoutNotFoundError(NotFoundError):
    """Affiliate payout with given ID was not found."""

    code: str = "AFFILIATE_PAYOUT_NOT_FOUND"

    def __init__(self, payout_id: str):
        self.payout_id = payout_id
        super().__init__(f"Affiliate payout not found: {payout_id}")
