"""
payout_config -- single public entrypoint for payout configuration.

Responsibility:
    Provides the ONLY way to obtain payout settings at runtime through
    ``get_active_config()``.  Components receive the returned
    ``PayoutSettings`` (or plain values taken from it); none of them read
    configuration files themselves.

Architecture position:
    Configuration.  Sits beside ``payout_batch`` and above
    ``payout_kernel``.  The kernel MUST NEVER import from ``payout_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Every returned ``PayoutSettings`` has passed ``validate_settings()``.

Failure modes:
    - ``FileNotFoundError`` -- the requested YAML file does not exist.
    - ``ValueError`` -- unknown keys, wrong types or out-of-range values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PAYOUT_CONFIG_TRACE`` log entry with the source path and checksum, so
    a run's logs show which settings governed it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from payout_config.loader import compute_checksum, load_settings, validate_settings
from payout_config.schema import PayoutSettings
from payout_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(
    path: Path | str | None = None,
    overrides: dict[str, Any] | None = None,
) -> PayoutSettings:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML file to load.  Defaults to payout_config/defaults.yaml.
        overrides: Field values applied on top of the file before validation.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the configuration is invalid.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    settings = load_settings(source, overrides)

    _logger.info(
        "PAYOUT_CONFIG_TRACE",
        extra={
            "trace_type": "PAYOUT_CONFIG_TRACE",
            "source": str(source),
            "checksum": compute_checksum(settings),
            "override_keys": sorted(overrides or {}),
            "scheduling_enabled": settings.scheduling_enabled,
            "commission_enabled": settings.commission_enabled,
        },
    )
    return settings


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "PayoutSettings",
    "get_active_config",
    "validate_settings",
]
