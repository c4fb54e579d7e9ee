"""Read-only selectors returning frozen snapshots."""

from payout_kernel.selectors.affiliate_selector import AffiliateSelector
from payout_kernel.selectors.base import BaseSelector
from payout_kernel.selectors.payment_selector import PaymentSelector

__all__ = [
    "AffiliateSelector",
    "BaseSelector",
    "PaymentSelector",
]
