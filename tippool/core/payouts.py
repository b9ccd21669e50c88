"""Fixed-pool proportional payouts and manual share overrides.

Every payout is ``total_pool * shares / total_shares``. Changing one record's
shares changes the rate, so every other record's payout moves with it.

With rounding enabled amounts are rounded half-up to the nearest multiple of
the step. With rounding disabled amounts keep full ``Decimal`` precision and
the variance is zero up to the decimal context precision.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Sequence

from tippool.core.errors import InvalidAdjustmentError, InvalidPeriodError
from tippool.core.schema import (
    CENT,
    AllocationResult,
    AllocationWarning,
    EmployeeShareRecord,
    PeriodDetail,
    RoundingPolicy,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def round_to_step(value: Decimal, step: Decimal) -> Decimal:
    """Round ``value`` half-up to the nearest multiple of ``step``."""

    units = (value / step).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return (units * step).quantize(CENT, rounding=ROUND_HALF_UP)


def _money(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidPeriodError(f"pool amount is not a number: {value!r}") from exc
    if not amount.is_finite():
        raise InvalidPeriodError(f"pool amount is not finite: {value!r}")
    return amount


def _share_value(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidAdjustmentError(f"share value is missing or malformed: {value!r}")
    try:
        shares = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidAdjustmentError(f"share value is not a number: {value!r}") from exc
    if not shares.is_finite():
        raise InvalidAdjustmentError(f"share value is not finite: {value!r}")
    if shares < 0:
        raise InvalidAdjustmentError(f"share value cannot be negative: {value!r}")
    return shares


def allocate_payouts(
    records: Sequence[EmployeeShareRecord],
    total_pool: Any,
    rounding: RoundingPolicy | None = None,
) -> AllocationResult:
    rounding = rounding or RoundingPolicy()
    pool = _money(total_pool)
    if pool < 0:
        raise InvalidPeriodError(f"total pool cannot be negative ({pool})")
    for record in records:
        if record.adjusted_shares < 0:
            raise InvalidAdjustmentError(
                f"employee {record.employee_id} has negative adjusted shares ({record.adjusted_shares})"
            )

    total_shares = sum((record.adjusted_shares for record in records), ZERO)

    if total_shares == 0:
        allocated = [
            record.model_copy(
                update={
                    "final_amount": ZERO,
                    "period_details": [
                        detail.model_copy(update={"amount": ZERO}) for detail in record.period_details
                    ],
                }
            )
            for record in records
        ]
        logger.warning("no shares to distribute; %s of the pool stays unassigned", pool)
        return AllocationResult(
            records=allocated,
            total_pool=pool,
            total_shares=ZERO,
            rate=ZERO,
            variance=pool,
            warnings=[AllocationWarning.ZERO_SHARES],
        )

    def payout(shares: Decimal) -> Decimal:
        raw = pool * shares / total_shares
        if rounding.enabled:
            return round_to_step(raw, rounding.step)
        return raw

    allocated = []
    for record in records:
        details = [
            PeriodDetail(
                period_index=detail.period_index,
                shares=detail.shares,
                amount=payout(detail.shares),
            )
            for detail in record.period_details
        ]
        allocated.append(
            record.model_copy(
                update={"final_amount": payout(record.adjusted_shares), "period_details": details}
            )
        )

    distributed = sum((record.final_amount for record in allocated), ZERO)
    variance = pool - distributed
    if variance != 0:
        logger.debug("allocation variance of %s against pool %s", variance, pool)

    return AllocationResult(
        records=allocated,
        total_pool=pool,
        total_shares=total_shares,
        rate=pool / total_shares,
        variance=variance,
    )


def rebalance_on_adjustment(
    records: Sequence[EmployeeShareRecord],
    total_pool: Any,
    changed_index: int,
    new_share_value: Any,
    rounding: RoundingPolicy | None = None,
) -> AllocationResult:
    """Override one record's shares and recompute every payout."""

    if isinstance(changed_index, bool) or not isinstance(changed_index, int):
        raise InvalidAdjustmentError(f"record index must be an integer: {changed_index!r}")
    if not 0 <= changed_index < len(records):
        raise InvalidAdjustmentError(
            f"record index {changed_index} out of range for {len(records)} records"
        )
    shares = _share_value(new_share_value)

    updated = list(records)
    updated[changed_index] = records[changed_index].model_copy(update={"adjusted_shares": shares}, deep=True)
    logger.debug(
        "adjusted shares of %s from %s to %s",
        records[changed_index].employee_id,
        records[changed_index].adjusted_shares,
        shares,
    )
    return allocate_payouts(updated, total_pool, rounding)


def reset_adjustments(records: Sequence[EmployeeShareRecord]) -> list[EmployeeShareRecord]:
    return [record.model_copy(update={"adjusted_shares": record.calculated_shares}, deep=True) for record in records]
