from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from tippool.core.periods import validate_periods
from tippool.core.schema import EmployeeShareRecord, HistoryRange, Period, PeriodDetail, ShiftAttendance
from tippool.core.weights import weight_of

logger = logging.getLogger(__name__)


@dataclass
class _EmployeeTally:
    name: str = ""
    shifts: int = 0
    shares: Decimal = Decimal("0")
    by_period: dict[int, Decimal] = field(default_factory=dict)


def _normalise_filter(department_filter: Iterable[str] | None) -> frozenset[str]:
    if not department_filter:
        return frozenset()
    return frozenset(str(item) for item in department_filter)


def _period_index_for(day: date, periods: Sequence[Period]) -> int | None:
    for index, period in enumerate(periods):
        if period.contains(day):
            return index
    return None


def aggregate_shares(
    periods: Sequence[Period],
    attendance_by_employee: Mapping[str, Iterable[ShiftAttendance]],
    department_filter: Iterable[str] | None = None,
    *,
    history_ranges: Iterable[HistoryRange] = (),
    reference_date: date,
) -> list[EmployeeShareRecord]:
    """Sum shift weights per employee across the given periods.

    Employees without a qualifying shift are left out. An absent or empty
    ``department_filter`` counts every department.
    """

    validate_periods(periods, history_ranges, reference_date)
    departments = _normalise_filter(department_filter)

    tallies: dict[str, _EmployeeTally] = {}
    for employee_id in sorted(attendance_by_employee):
        tally = _EmployeeTally()
        for shift in attendance_by_employee[employee_id]:
            weight = weight_of(shift.duration_minutes)
            if not tally.name and shift.employee_name:
                tally.name = shift.employee_name
            if departments and shift.department_id not in departments:
                continue
            index = _period_index_for(shift.date, periods)
            if index is None:
                continue
            tally.shifts += 1
            tally.shares += weight
            tally.by_period[index] = tally.by_period.get(index, Decimal("0")) + weight
        if tally.shifts:
            tallies[employee_id] = tally

    records = [
        EmployeeShareRecord(
            employee_id=employee_id,
            employee_name=tally.name or employee_id,
            shifts_worked=tally.shifts,
            calculated_shares=tally.shares,
            adjusted_shares=tally.shares,
            period_details=[
                PeriodDetail(period_index=index, shares=tally.by_period.get(index, Decimal("0")))
                for index in range(len(periods))
            ],
        )
        for employee_id, tally in tallies.items()
    ]
    logger.debug(
        "aggregated %s shift records into %s employees over %s periods",
        sum(tally.shifts for tally in tallies.values()),
        len(records),
        len(periods),
    )
    return records
