"""Database layer for the payout kernel."""

from payout_kernel.db.base import Base, TimestampedBase, UUIDString
from payout_kernel.db.engine import (
    build_engine,
    create_tables,
    init_engine_from_url,
    transaction_scope,
)

__all__ = [
    "Base",
    "TimestampedBase",
    "UUIDString",
    "build_engine",
    "create_tables",
    "init_engine_from_url",
    "transaction_scope",
]
