from __future__ import annotations

from decimal import ROUND_HALF_UP

import pandas as pd

from tippool.core.schema import CENT, Distribution

PAYOUT_COLUMNS = [
    "distribution_id",
    "employee_id",
    "employee_name",
    "shifts_worked",
    "calculated_shares",
    "adjusted_shares",
    "amount",
    "period_start",
    "period_end",
]


def payout_rows(distribution: Distribution) -> list[dict]:
    period_start = min(period.start_date for period in distribution.periods).isoformat()
    period_end = max(period.end_date for period in distribution.periods).isoformat()
    rows = []
    for record in distribution.records:
        rows.append(
            {
                "distribution_id": distribution.distribution_id,
                "employee_id": record.employee_id,
                "employee_name": record.employee_name,
                "shifts_worked": record.shifts_worked,
                "calculated_shares": str(record.calculated_shares),
                "adjusted_shares": str(record.adjusted_shares),
                "amount": str(record.final_amount.quantize(CENT, rounding=ROUND_HALF_UP)),
                "period_start": period_start,
                "period_end": period_end,
            }
        )
    return rows


def payouts_csv(distribution: Distribution) -> str:
    df = pd.DataFrame(payout_rows(distribution), columns=PAYOUT_COLUMNS)
    return df.to_csv(index=False)
