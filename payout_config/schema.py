"""
PayoutSettings schema.

The one frozen object every payout component is configured from.  The
loader parses YAML into it; the orchestrator passes individual values down
to kernel services, which never see this type.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any

DEFAULT_SETTLEMENT_CRON = "0 8,12,16,20 * * *"
DEFAULT_SUMMARY_CRON = "0 9 * * *"
DEFAULT_MAINTENANCE_CRON = "0 2 * * 0"


@dataclass(frozen=True)
class PayoutSettings:
    """Settlement, commission and scheduling options."""

    # Eligibility and settlement
    waiting_period_days: int = 3
    instructor_share_percent: Decimal = Decimal("70")
    batch_size: int = 50
    oversample_factor: int = 3
    max_scan_pages: int = 3
    summary_scan_limit: int = 1000

    # Affiliate commission
    commission_percent: Decimal = Decimal("3.0")
    commission_enabled: bool = True

    # Scheduling
    scheduling_enabled: bool = True
    settlement_cron: str = DEFAULT_SETTLEMENT_CRON
    summary_cron: str = DEFAULT_SUMMARY_CRON
    maintenance_cron: str = DEFAULT_MAINTENANCE_CRON
    tick_interval_seconds: int = 60

    # Notifications and side effects
    notification_enabled: bool = True
    admin_emails: tuple[str, ...] = ()
    side_effect_workers: int = 4

    # Housekeeping
    stale_payout_days: int = 30

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def snapshot(self) -> dict[str, Any]:
        """Admin configuration view; decimals rendered as strings."""
        return {
            "waiting_period_days": self.waiting_period_days,
            "instructor_share_percent": str(self.instructor_share_percent),
            "batch_size": self.batch_size,
            "scheduling_enabled": self.scheduling_enabled,
            "commission_percent": str(self.commission_percent),
            "commission_enabled": self.commission_enabled,
            "notification_enabled": self.notification_enabled,
            "admin_emails": list(self.admin_emails),
            "schedules": {
                "settlement": self.settlement_cron,
                "daily_summary": self.summary_cron,
                "maintenance": self.maintenance_cron,
            },
        }
