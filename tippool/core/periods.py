"""Calendar bookkeeping for distribution periods.

``is_date_blocked`` is the advisory check a caller runs while picking the
start of a new period. ``validate_periods`` is the hard precondition applied
before any shares are computed.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Sequence

from tippool.core.errors import InvalidPeriodError
from tippool.core.schema import Distribution, HistoryRange, Period


def is_date_blocked(
    day: date,
    draft_periods: Sequence[Period],
    history_ranges: Iterable[HistoryRange],
    reference_date: date,
    exclude_index: int | None = None,
) -> bool:
    """Return ``True`` when ``day`` cannot start a new period.

    Rules are checked in order: days after ``reference_date`` are blocked,
    then days inside a finalized history range, then days inside the window
    of another period of the same draft (the one at ``exclude_index`` is the
    period being edited and is skipped).
    """

    if day > reference_date:
        return True
    if any(history.contains(day) for history in history_ranges):
        return True
    for index, period in enumerate(draft_periods):
        if index == exclude_index:
            continue
        if period.contains(day):
            return True
    return False


def eligible_start_dates(
    first: date,
    last: date,
    draft_periods: Sequence[Period],
    history_ranges: Iterable[HistoryRange],
    reference_date: date,
    exclude_index: int | None = None,
) -> list[date]:
    """List every day in ``[first, last]`` that may start a new period."""

    ranges = list(history_ranges)
    eligible: list[date] = []
    day = first
    while day <= last:
        if not is_date_blocked(day, draft_periods, ranges, reference_date, exclude_index):
            eligible.append(day)
        day += timedelta(days=1)
    return eligible


def history_ranges_from(
    distributions: Iterable[Distribution],
    exclude_distribution_id: str | None = None,
) -> list[HistoryRange]:
    """Collect the date ranges already covered by finalized distributions.

    The distribution re-opened for editing is left out so its own dates stay
    selectable.
    """

    ranges: list[HistoryRange] = []
    for distribution in distributions:
        if exclude_distribution_id is not None and distribution.distribution_id == exclude_distribution_id:
            continue
        ranges.extend(distribution.history_ranges())
    return ranges


def _overlaps(period: Period, history: HistoryRange) -> bool:
    return period.start_date <= history.end and history.start <= period.end_date


def validate_periods(
    periods: Sequence[Period],
    history_ranges: Iterable[HistoryRange],
    reference_date: date,
) -> None:
    ranges = list(history_ranges)
    for index, period in enumerate(periods):
        if period.amount < 0:
            raise InvalidPeriodError(f"period {index} has a negative amount ({period.amount})")
        if period.start_date > reference_date:
            raise InvalidPeriodError(
                f"period {index} starts on {period.start_date}, after {reference_date}"
            )
        for history in ranges:
            if _overlaps(period, history):
                raise InvalidPeriodError(
                    f"period {index} ({period.start_date}..{period.end_date}) overlaps "
                    f"finalized range {history.start}..{history.end}"
                )

    ordered = sorted(range(len(periods)), key=lambda i: periods[i].start_date)
    for current, following in zip(ordered, ordered[1:]):
        if periods[following].start_date <= periods[current].end_date:
            raise InvalidPeriodError(f"periods {current} and {following} overlap")
