"""
payout_batch -- scheduling, run pipeline and admin control surface for
instructor payouts.

Entry point: ``payout_batch.orchestrator.PayoutOrchestrator``.
"""
