"""Payout kernel services."""

from payout_kernel.services.affiliate_commission_service import (
    AffiliateCommissionService,
    create_payout_async,
)
from payout_kernel.services.affiliate_payout_admin_service import (
    AffiliatePayoutAdminService,
)
from payout_kernel.services.eligibility_scanner import BatchEligibilityScanner
from payout_kernel.services.settlement_service import (
    SettlementEffects,
    SettlementProcessor,
)
from payout_kernel.services.side_effects import (
    CacheInvalidator,
    LoggingPayoutNotifier,
    NullCacheInvalidator,
    PayoutNotifier,
    SideEffectDispatcher,
)

__all__ = [
    "AffiliateCommissionService",
    "AffiliatePayoutAdminService",
    "BatchEligibilityScanner",
    "CacheInvalidator",
    "LoggingPayoutNotifier",
    "NullCacheInvalidator",
    "PayoutNotifier",
    "SettlementEffects",
    "SettlementProcessor",
    "SideEffectDispatcher",
    "create_payout_async",
]
