"""
Structured JSON logging for the payout kernel.

Every record is one JSON line.  Run-scoped identifiers (the payout run, the
payment being settled, the affiliate payout being changed) live in context
variables and are stamped onto each line emitted while they are bound, so a
settlement failure can be traced back to its run without threading ids
through every call.
"""

__all__ = [
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

ROOT_LOGGER = "payout_kernel"


class LogContext:
    """Run-scoped log fields, safe across threads and tasks."""

    _vars: dict[str, ContextVar[str | None]] = {
        name: ContextVar(f"payout_log_{name}", default=None)
        for name in ("run_id", "trigger", "payment_id", "payout_id")
    }

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Bind fields for the duration of the block, then restore the old values.

        Values are stringified; names that are not context fields are ignored.
        """
        tokens = [
            (cls._vars[name], cls._vars[name].set(str(value)))
            for name, value in fields.items()
            if value is not None and name in cls._vars
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return {
            name: value
            for name, var in cls._vars.items()
            if (value := var.get()) is not None
        }

    @classmethod
    def clear(cls) -> None:
        for var in cls._vars.values():
            var.set(None)


# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    return repr(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: base fields, bound context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in entry
        )
        if record.exc_info and record.exc_info[1] is not None:
            entry.update(self._exception_fields(record.exc_info[1]))
            entry["traceback"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=_json_default)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        # Kernel errors expose a code plus their constructor arguments as attributes
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        for name, value in vars(exc).items():
            if not name.startswith("_") and name != "code":
                fields[f"exc_{name}"] = value
        return fields


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``payout_kernel`` hierarchy."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the ``payout_kernel`` logger.  Only the first call counts."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    target = handler if handler is not None else logging.StreamHandler(sys.stderr)
    target.setFormatter(StructuredFormatter())
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.propagate = False
    root.addHandler(target)


def reset_logging() -> None:
    """Undo configure_logging.  Used by the test suite."""
    global _configured
    with _lock:
        _configured = False
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.setLevel(logging.NOTSET)
    root.propagate = True
