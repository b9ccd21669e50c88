"""Composed entry points of the tip pool engine."""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence

from tippool.core.payouts import allocate_payouts, rebalance_on_adjustment, reset_adjustments
from tippool.core.periods import eligible_start_dates, history_ranges_from, is_date_blocked, validate_periods
from tippool.core.schema import (
    AllocationResult,
    Distribution,
    HistoryRange,
    Period,
    RoundingPolicy,
    ShiftAttendance,
)
from tippool.core.shares import aggregate_shares

logger = logging.getLogger(__name__)

validate_date = is_date_blocked


def group_attendance(rows: Iterable[ShiftAttendance]) -> dict[str, list[ShiftAttendance]]:
    grouped: dict[str, list[ShiftAttendance]] = {}
    for row in rows:
        grouped.setdefault(row.employee_id, []).append(row)
    return grouped


def pool_of(periods: Sequence[Period]) -> Decimal:
    return sum((period.amount for period in periods), Decimal("0"))


def calculate_distribution(
    periods: Sequence[Period],
    attendance_by_employee: Mapping[str, Iterable[ShiftAttendance]],
    *,
    total_pool: Any = None,
    department_filter: Iterable[str] | None = None,
    rounding: RoundingPolicy | None = None,
    history_ranges: Iterable[HistoryRange] = (),
    reference_date: date,
) -> AllocationResult:
    """Aggregate shares over ``periods`` and split the pool across them.

    ``total_pool`` defaults to the sum of the period amounts.
    """

    records = aggregate_shares(
        periods,
        attendance_by_employee,
        department_filter,
        history_ranges=history_ranges,
        reference_date=reference_date,
    )
    pool = pool_of(periods) if total_pool is None else total_pool
    result = allocate_payouts(records, pool, rounding)
    logger.debug(
        "calculated distribution of %s over %s shares for %s employees",
        result.total_pool,
        result.total_shares,
        len(result.records),
    )
    return result


def build_distribution(
    distribution_id: str,
    store_id: str,
    periods: Sequence[Period],
    result: AllocationResult,
    *,
    created_at: datetime,
    finalized_by: str | None = None,
) -> Distribution:
    return Distribution(
        distribution_id=distribution_id,
        store_id=store_id,
        periods=list(periods),
        records=[record.model_copy(deep=True) for record in result.records],
        total_amount=result.total_pool,
        variance=result.variance,
        created_at=created_at,
        finalized_by=finalized_by,
        finalized_at=created_at,
    )


__all__ = [
    "aggregate_shares",
    "allocate_payouts",
    "build_distribution",
    "calculate_distribution",
    "eligible_start_dates",
    "group_attendance",
    "history_ranges_from",
    "is_date_blocked",
    "pool_of",
    "rebalance_on_adjustment",
    "reset_adjustments",
    "validate_date",
    "validate_periods",
]
