"""Shift duration to share weight mapping."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any

from tippool.core.errors import InvalidShiftError

# (exclusive upper bound in minutes, weight); the last tier is open ended.
WEIGHT_TIERS: tuple[tuple[Decimal | None, Decimal], ...] = (
    (Decimal("420"), Decimal("0.5")),
    (Decimal("600"), Decimal("1.0")),
    (Decimal("750"), Decimal("1.5")),
    (None, Decimal("2.0")),
)

MINUTES_PER_DAY = 24 * 60

_TIME_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def _as_minutes(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidShiftError(f"shift duration is missing or malformed: {value!r}")
    try:
        minutes = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidShiftError(f"shift duration is not a number: {value!r}") from exc
    if not minutes.is_finite():
        raise InvalidShiftError(f"shift duration is not finite: {value!r}")
    if minutes < 0:
        raise InvalidShiftError(f"shift duration cannot be negative: {value!r}")
    return minutes


def weight_of(duration_minutes: Any) -> Decimal:
    """Return the share weight earned by a shift of ``duration_minutes``."""

    minutes = _as_minutes(duration_minutes)
    for upper, weight in WEIGHT_TIERS:
        if upper is None or minutes < upper:
            return weight
    raise AssertionError("weight tiers must end with an open tier")  # pragma: no cover


def _parse_clock(value: str) -> int:
    match = _TIME_PATTERN.match(str(value or ""))
    if not match:
        raise InvalidShiftError(f"shift time must use HH:MM: {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidShiftError(f"shift time out of range: {value!r}")
    return hours * 60 + minutes


def shift_duration_minutes(start_time: str, end_time: str, break_minutes: Any = 0) -> Decimal:
    """Worked minutes between two ``HH:MM`` clock times, minus the unpaid break.

    A shift whose end time is earlier than its start time runs past midnight.
    """

    start = _parse_clock(start_time)
    end = _parse_clock(end_time)
    span = end - start
    if span < 0:
        span += MINUTES_PER_DAY

    pause = _as_minutes(break_minutes or 0)
    worked = Decimal(span) - pause
    if worked < 0:
        raise InvalidShiftError(
            f"break of {pause} minutes exceeds shift {start_time}-{end_time}"
        )
    return worked
