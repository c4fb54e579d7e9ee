"""
YAML loader for payout settings.

Reads a YAML mapping (top-level key ``payouts``), coerces each value to the
field's type and validates the result.

Failure modes:
* Missing file          -> ``FileNotFoundError`` propagates.
* Malformed YAML        -> ``yaml.YAMLError`` propagates.
* Unknown key           -> ``ValueError``.
* Bad type or range     -> ``ValueError`` listing every problem.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payout_batch.domain.schedule import is_valid_cron
from payout_config.schema import PayoutSettings

_INT_FIELDS = frozenset({
    "waiting_period_days",
    "batch_size",
    "oversample_factor",
    "max_scan_pages",
    "summary_scan_limit",
    "tick_interval_seconds",
    "side_effect_workers",
    "stale_payout_days",
})
_DECIMAL_FIELDS = frozenset({"instructor_share_percent", "commission_percent"})
_BOOL_FIELDS = frozenset({"commission_enabled", "scheduling_enabled", "notification_enabled"})
_CRON_FIELDS = ("settlement_cron", "summary_cron", "maintenance_cron")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _coerce(name: str, value: Any) -> Any:
    if name in _INT_FIELDS:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{name} must be an integer, got {value!r}")
        return value
    if name in _DECIMAL_FIELDS:
        if isinstance(value, bool):
            raise ValueError(f"{name} must be a number, got {value!r}")
        try:
            # YAML parses 3.0 as float; go through str() to keep it exact
            number = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"{name} must be a number, got {value!r}") from None
        if not number.is_finite():
            raise ValueError(f"{name} must be a finite number, got {value!r}")
        return number
    if name in _BOOL_FIELDS:
        if not isinstance(value, bool):
            raise ValueError(f"{name} must be true or false, got {value!r}")
        return value
    if name == "admin_emails":
        if value is None:
            return ()
        if isinstance(value, str):
            value = value.split(",")
        return tuple(str(v).strip() for v in value if str(v).strip())
    if name in _CRON_FIELDS:
        return str(value)
    raise ValueError(f"Unknown payout setting: {name}")


def parse_settings(
    data: dict[str, Any], base: PayoutSettings | None = None,
) -> PayoutSettings:
    """Apply ``data`` on top of ``base`` (defaults when None)."""
    known = set(PayoutSettings.field_names())
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown payout settings: {', '.join(unknown)}")
    values = {name: _coerce(name, value) for name, value in data.items()}
    return replace(base or PayoutSettings(), **values)


def validate_settings(settings: PayoutSettings) -> None:
    """
    Reject settings no run could honour.

    Raises:
        ValueError: listing every problem found.
    """
    errors: list[str] = []

    if settings.waiting_period_days < 0:
        errors.append("waiting_period_days must be >= 0")
    if settings.batch_size <= 0:
        errors.append("batch_size must be positive")
    if settings.oversample_factor < 1:
        errors.append("oversample_factor must be >= 1")
    if settings.max_scan_pages < 1:
        errors.append("max_scan_pages must be >= 1")
    if settings.summary_scan_limit <= 0:
        errors.append("summary_scan_limit must be positive")
    if settings.tick_interval_seconds <= 0:
        errors.append("tick_interval_seconds must be positive")
    if settings.side_effect_workers <= 0:
        errors.append("side_effect_workers must be positive")
    if settings.stale_payout_days <= 0:
        errors.append("stale_payout_days must be positive")
    for name in _DECIMAL_FIELDS:
        value = getattr(settings, name)
        if not (Decimal("0") < value <= Decimal("100")):
            errors.append(f"{name} must be in (0, 100], got {value}")
    for name in _CRON_FIELDS:
        expression = getattr(settings, name)
        if not is_valid_cron(expression):
            errors.append(f"{name} is not a valid cron expression: '{expression}'")

    if errors:
        raise ValueError(
            "Payout configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in sorted(errors))
        )


def load_settings(path: Path, overrides: dict[str, Any] | None = None) -> PayoutSettings:
    """Load ``path``, apply ``overrides`` and validate."""
    raw = load_yaml_file(path)
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    section = raw.get("payouts", raw) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{path}: 'payouts' must be a mapping")
    settings = parse_settings(section)
    if overrides:
        settings = parse_settings(overrides, base=settings)
    validate_settings(settings)
    return settings


def compute_checksum(settings: PayoutSettings) -> str:
    """SHA-256 of the canonical JSON form of the settings."""
    canonical = json.dumps(
        {name: getattr(settings, name) for name in PayoutSettings.field_names()},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(canonical.encode()).hexdigest()
