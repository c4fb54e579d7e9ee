"""Payout run pipeline and scheduler."""

from payout_batch.services.payout_runner import PayoutRunService
from payout_batch.services.scheduler import PayoutScheduler

__all__ = ["PayoutRunService", "PayoutScheduler"]
