"""
Payout kernel: eligibility, settlement and affiliate commission for
instructor payouts.
"""

__version__ = "0.1.0"
