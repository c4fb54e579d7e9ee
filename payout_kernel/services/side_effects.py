"""
Module: payout_kernel.services.side_effects
Responsibility: Best-effort work that follows a committed settlement:
    affiliate commission creation, instructor statistics cache invalidation,
    admin notifications.  Defines the hook protocols and the dispatcher that
    runs them off the settlement path.
Architecture position: Kernel > Services.  Imported by the settlement
    processor and the batch run service.

Invariants enforced:
    - A side effect never runs before the transaction it depends on commits.
      Callers submit only after ``transaction_scope`` exits.
    - A failing side effect is logged and dropped.  It never changes a
      settlement outcome or stops a batch.

Failure modes:
    - None surfaced.  Exceptions inside effects are logged as
      ``side_effect_failed`` with the effect name.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from decimal import Decimal
from typing import Any, Callable, Protocol, runtime_checkable
from uuid import UUID

from payout_kernel.logging_config import get_logger

logger = get_logger("services.side_effects")


# =============================================================================
# Hook protocols
# =============================================================================


@runtime_checkable
class CacheInvalidator(Protocol):
    """Drops cached per-instructor statistics after their earnings change."""

    def invalidate_instructor_statistics(self, instructor_id: UUID) -> None: ...


@runtime_checkable
class PayoutNotifier(Protocol):
    """Admin notifications about payout runs."""

    def send_run_summary(
        self, success_count: int, failure_count: int, total_amount: Decimal,
    ) -> None: ...

    def send_run_error(self, error: str) -> None: ...

    def send_daily_summary(self, summary: dict[str, Any]) -> None: ...


class NullCacheInvalidator:
    """Used when no statistics cache is deployed."""

    def invalidate_instructor_statistics(self, instructor_id: UUID) -> None:
        logger.debug(
            "cache_invalidation_skipped",
            extra={"instructor_id": str(instructor_id)},
        )


class LoggingPayoutNotifier:
    """
    Notifier that writes admin notifications to the log.

    Delivery over email belongs to an outer layer; this keeps the run
    summaries visible when none is wired in.
    """

    def __init__(self, admin_emails: tuple[str, ...] = (), enabled: bool = True):
        self.admin_emails = tuple(admin_emails)
        self.enabled = enabled

    def send_run_summary(
        self, success_count: int, failure_count: int, total_amount: Decimal,
    ) -> None:
        if not self.enabled:
            return
        logger.info(
            "payout_run_summary_notification",
            extra={
                "recipients": list(self.admin_emails),
                "success_count": success_count,
                "failure_count": failure_count,
                "total_amount": str(total_amount),
            },
        )

    def send_run_error(self, error: str) -> None:
        if not self.enabled:
            return
        logger.error(
            "payout_run_error_notification",
            extra={"recipients": list(self.admin_emails), "error": error},
        )

    def send_daily_summary(self, summary: dict[str, Any]) -> None:
        if not self.enabled:
            return
        logger.info(
            "payout_daily_summary_notification",
            extra={"recipients": list(self.admin_emails), "summary": summary},
        )


# =============================================================================
# Dispatcher
# =============================================================================


class SideEffectDispatcher:
    """
    Runs best-effort callables on a worker pool.

    With ``synchronous=True`` effects run inline on the caller's thread,
    which keeps tests deterministic.  Either way exceptions are logged,
    never raised.
    """

    def __init__(self, max_workers: int = 4, synchronous: bool = False):
        self.synchronous = synchronous
        self._executor: ThreadPoolExecutor | None = None
        if not synchronous:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers,
                thread_name_prefix="payout-side-effect",
            )

    def submit(
        self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any,
    ) -> Future | None:
        """Schedule ``fn(*args, **kwargs)``.  Returns the future when pooled."""
        if self._executor is None:
            self._run(name, fn, args, kwargs)
            return None
        return self._executor.submit(self._run, name, fn, args, kwargs)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
            self.synchronous = True

    @staticmethod
    def _run(
        name: str,
        fn: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        try:
            fn(*args, **kwargs)
        except Exception:
            logger.exception("side_effect_failed", extra={"effect": name})
            return
        logger.debug("side_effect_completed", extra={"effect": name})
