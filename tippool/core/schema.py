from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

PERIOD_DAYS = 7
CENT = Decimal("0.01")


class Period(BaseModel):
    """A fixed seven day window holding the pool collected over it."""

    model_config = ConfigDict(frozen=True)

    start_date: date
    amount: Decimal = Decimal("0")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def end_date(self) -> date:
        return self.start_date + timedelta(days=PERIOD_DAYS - 1)

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


class HistoryRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


class ShiftAttendance(BaseModel):
    model_config = ConfigDict(frozen=True)

    employee_id: str
    employee_name: str = ""
    date: date
    duration_minutes: Decimal | None = None
    department_id: str | None = None


class PeriodDetail(BaseModel):
    period_index: int
    shares: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")


class EmployeeShareRecord(BaseModel):
    employee_id: str
    employee_name: str
    shifts_worked: int = 0
    calculated_shares: Decimal = Decimal("0")
    adjusted_shares: Decimal = Decimal("0")
    final_amount: Decimal = Decimal("0")
    period_details: list[PeriodDetail] = Field(default_factory=list)


class RoundingPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    step: Decimal = CENT

    @field_validator("step")
    @classmethod
    def _check_step(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("rounding step must be positive")
        if value != value.quantize(CENT):
            raise ValueError("rounding step must be a whole number of cents")
        return value


class AllocationWarning(str, Enum):
    ZERO_SHARES = "zero_share_warning"


class AllocationResult(BaseModel):
    records: list[EmployeeShareRecord] = Field(default_factory=list)
    total_pool: Decimal = Decimal("0")
    total_shares: Decimal = Decimal("0")
    rate: Decimal = Decimal("0")
    variance: Decimal = Decimal("0")
    warnings: list[AllocationWarning] = Field(default_factory=list)

    @property
    def zero_share_warning(self) -> bool:
        return AllocationWarning.ZERO_SHARES in self.warnings


class Distribution(BaseModel):
    """A finalized tip distribution as handed to the persistence sink.

    Unrounded ``records`` keep full precision; cents are applied only when
    exporting payouts.
    """

    distribution_id: str
    store_id: str
    periods: list[Period]
    records: list[EmployeeShareRecord]
    total_amount: Decimal
    variance: Decimal = Decimal("0")
    status: Literal["finalized"] = "finalized"
    created_at: datetime
    finalized_by: str | None = None
    finalized_at: datetime | None = None

    def history_ranges(self) -> list[HistoryRange]:
        return [HistoryRange(start=period.start_date, end=period.end_date) for period in self.periods]

    def amount_for(self, employee_id: str) -> Decimal | None:
        for record in self.records:
            if record.employee_id == employee_id:
                return record.final_amount
        return None
