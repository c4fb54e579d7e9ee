"""
Pure cron evaluation for payout schedules.

Contract:
    ``parse_cron()``, ``matches_cron()``, ``compute_next_run()`` and
    ``should_fire()`` are PURE: no I/O, no clock reads.  The scheduler passes
    the current time in.

Architecture: payout_batch/domain.  ZERO I/O.

Supported syntax (5 fields: minute hour day-of-month month day-of-week):
    ``*``, ``N``, ``N-M``, ``*/S``, ``N-M/S``, ``N/S`` and comma lists.
    Day-of-week accepts 0-7, where both 0 and 7 mean Sunday.  When both
    day-of-month and day-of-week are restricted, a time matches if EITHER
    matches (standard cron semantics).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

# (low, high) per field, in expression order
_FIELD_BOUNDS: tuple[tuple[str, int, int], ...] = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day_of_month", 1, 31),
    ("month", 1, 12),
    ("day_of_week", 0, 7),
)

# Give up looking for a match after this many days
_SEARCH_HORIZON_DAYS = 366 * 4


@dataclass(frozen=True)
class CronSpec:
    """Parsed cron expression; each field is the set of allowed values."""

    expression: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days_of_month: frozenset[int]
    months: frozenset[int]
    days_of_week: frozenset[int]  # 0 = Sunday
    day_of_month_restricted: bool = False
    day_of_week_restricted: bool = False


def _to_int(text: str, name: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise ValueError(f"{name}: cannot parse '{text}'") from None


def _expand_part(part: str, name: str, low: int, high: int) -> set[int]:
    step = 1
    if "/" in part:
        part, step_text = part.split("/", 1)
        step = _to_int(step_text, name)
        if step <= 0:
            raise ValueError(f"{name}: step must be positive, got {step}")

    if part == "*":
        start, end = low, high
    elif "-" in part:
        first, last = part.split("-", 1)
        start, end = _to_int(first, name), _to_int(last, name)
        if start > end:
            raise ValueError(f"{name}: range start > end in '{part}'")
    else:
        start = _to_int(part, name)
        end = high if step != 1 else start

    if start < low or end > high:
        raise ValueError(f"{name}: '{part}' outside [{low}, {high}]")
    return set(range(start, end + 1, step))


def _parse_field(text: str, name: str, low: int, high: int) -> frozenset[int]:
    values: set[int] = set()
    for part in text.split(","):
        if not part:
            raise ValueError(f"{name}: empty list element in '{text}'")
        values |= _expand_part(part, name, low, high)
    return frozenset(values)


def parse_cron(expression: str) -> CronSpec:
    """Parse a 5-field cron expression.

    Raises:
        ValueError: If the expression is malformed or a value is out of range.
    """
    parts = expression.split()
    if len(parts) != 5:
        raise ValueError(
            f"Cron expression must have 5 fields, got {len(parts)}: '{expression}'"
        )

    fields = [
        _parse_field(text, name, low, high)
        for text, (name, low, high) in zip(parts, _FIELD_BOUNDS)
    ]
    # Fold 7 (Sunday) onto 0
    days_of_week = frozenset(d % 7 for d in fields[4])

    return CronSpec(
        expression=" ".join(parts),
        minutes=fields[0],
        hours=fields[1],
        days_of_month=fields[2],
        months=fields[3],
        days_of_week=days_of_week,
        day_of_month_restricted=parts[2] != "*",
        day_of_week_restricted=parts[4] != "*",
    )


def is_valid_cron(expression: str) -> bool:
    try:
        parse_cron(expression)
    except ValueError:
        return False
    return True


def _day_matches(spec: CronSpec, dt: datetime) -> bool:
    cron_dow = (dt.weekday() + 1) % 7  # Python: Monday=0; cron: Sunday=0
    dom_ok = dt.day in spec.days_of_month
    dow_ok = cron_dow in spec.days_of_week
    if spec.day_of_month_restricted and spec.day_of_week_restricted:
        return dom_ok or dow_ok
    return dom_ok and dow_ok


def matches_cron(spec: CronSpec, dt: datetime) -> bool:
    """True when ``dt`` (to the minute) is a firing time of ``spec``."""
    return (
        dt.minute in spec.minutes
        and dt.hour in spec.hours
        and dt.month in spec.months
        and _day_matches(spec, dt)
    )


def next_cron_match(spec: CronSpec, after: datetime) -> datetime:
    """First firing time strictly after ``after``.

    Walks day by day, then within a matching day hour by hour and minute by
    minute, so sparse schedules do not cost a minute-level scan of the year.

    Raises:
        ValueError: If nothing matches within the search horizon
            (e.g. ``0 0 31 2 *``).
    """
    start = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
    day = start.replace(hour=0, minute=0)

    for offset in range(_SEARCH_HORIZON_DAYS):
        current_day = day + timedelta(days=offset)
        if current_day.month not in spec.months or not _day_matches(spec, current_day):
            continue
        for hour in sorted(spec.hours):
            for minute in sorted(spec.minutes):
                candidate = current_day.replace(hour=hour, minute=minute)
                if candidate >= start:
                    return candidate

    raise ValueError(
        f"No match for '{spec.expression}' within {_SEARCH_HORIZON_DAYS} days of {after}"
    )


def compute_next_run(cron_expression: str, after: datetime) -> datetime:
    """Next firing time of ``cron_expression`` strictly after ``after``."""
    return next_cron_match(parse_cron(cron_expression), after)


def should_fire(next_run_at: datetime | None, as_of: datetime, is_active: bool = True) -> bool:
    """A schedule fires once its next run time has been reached.

    Missed runs collapse into one firing; the scheduler then recomputes
    ``next_run_at`` from ``as_of``.
    """
    if not is_active or next_run_at is None:
        return False
    return as_of >= next_run_at
