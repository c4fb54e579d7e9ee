"""
Money -- Decimal rounding helpers for payout amounts.

Responsibility:
    One place where earning and commission amounts are derived from a base
    amount and a percentage, so every caller rounds the same way.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic; floats are rejected.
    - Results are quantized to two decimal places with ROUND_HALF_UP.

Failure modes:
    - TypeError when a float is passed.
    - ValueError when a string is not a valid decimal.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Coerce an int, str or Decimal to Decimal.

    Raises:
        TypeError: If value is a float (binary rounding would leak in).
        ValueError: If a string does not parse as a decimal.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("Monetary values must not be float; pass Decimal or str")
    if isinstance(value, bool):
        raise TypeError("Monetary values must not be bool")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid decimal value: {value!r}") from None


def round_money(amount: Decimal) -> Decimal:
    """Round to two decimal places, half-up."""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def percentage_of(amount: Decimal | int | str, percent: Decimal | int | str) -> Decimal:
    """
    ``amount × percent ÷ 100`` rounded half-up to two decimals.

    The division happens before rounding, so ``33.335 × 7 ÷ 100`` is
    ``2.33345`` and rounds to ``2.33``.
    """
    return round_money(to_decimal(amount) * to_decimal(percent) / HUNDRED)
