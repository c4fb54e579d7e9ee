"""ORM models for the payout kernel."""

from payout_kernel.models.affiliate import AffiliatePayout, DiscountUsage
from payout_kernel.models.earning import InstructorEarning
from payout_kernel.models.payment import Payment, Refund

__all__ = [
    "AffiliatePayout",
    "DiscountUsage",
    "InstructorEarning",
    "Payment",
    "Refund",
]
