"""Parser for shift attendance exports (CSV or XLSX)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import load_workbook

from tippool.core.errors import InvalidShiftError
from tippool.core.schema import ShiftAttendance
from tippool.core.weights import shift_duration_minutes

REQUIRED_COLUMNS = ("employee_id", "date")


@dataclass
class AttendanceParseResult:
    rows: list[ShiftAttendance]


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    return str(value).strip()


def _safe_decimal(value: Any) -> Decimal | None:
    text = _text(value)
    if not text:
        return None
    try:
        decimal_value = Decimal(text)
    except InvalidOperation as exc:
        raise InvalidShiftError(f"duration is not a number: {text!r}") from exc
    return decimal_value


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = _text(value)
    try:
        return date.fromisoformat(text[:10])
    except ValueError as exc:
        raise InvalidShiftError(f"shift date must be YYYY-MM-DD: {text!r}") from exc


def _clock(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%H:%M")
    if hasattr(value, "hour") and hasattr(value, "minute"):
        return f"{value.hour:02d}:{value.minute:02d}"
    return _text(value)[:5]


def _normalise_columns(dataframe: pd.DataFrame) -> pd.DataFrame:
    renamed = {col: str(col).strip().lower().replace(" ", "_") for col in dataframe.columns}
    return dataframe.rename(columns=renamed)


def _row_to_attendance(row: dict[str, Any]) -> ShiftAttendance:
    employee_id = _text(row.get("employee_id"))
    if not employee_id:
        raise InvalidShiftError(f"attendance row without employee_id: {row!r}")
    duration = _safe_decimal(row.get("duration_minutes"))
    if duration is None and _text(row.get("start_time")) and _text(row.get("end_time")):
        duration = shift_duration_minutes(
            _clock(row.get("start_time")),
            _clock(row.get("end_time")),
            _safe_decimal(row.get("break_minutes")) or 0,
        )
    return ShiftAttendance(
        employee_id=employee_id,
        employee_name=_text(row.get("employee_name")),
        date=_parse_date(row.get("date")),
        duration_minutes=duration,
        department_id=_text(row.get("department_id")) or None,
    )


def _frame_to_rows(dataframe: pd.DataFrame) -> list[ShiftAttendance]:
    dataframe = _normalise_columns(dataframe.dropna(how="all"))
    missing = [column for column in REQUIRED_COLUMNS if column not in dataframe.columns]
    if missing:
        raise InvalidShiftError(f"attendance sheet is missing columns: {', '.join(missing)}")
    rows: list[ShiftAttendance] = []
    for record in dataframe.to_dict(orient="records"):
        if not any(_text(value) for value in record.values()):
            continue
        rows.append(_row_to_attendance(record))
    return rows


def _parse_csv(path: Path) -> AttendanceParseResult:
    dataframe = pd.read_csv(path, dtype=str, keep_default_na=False)
    return AttendanceParseResult(rows=_frame_to_rows(dataframe))


def parse(path: Path, sheet_name: str | None = None) -> AttendanceParseResult:
    if path.suffix.lower() == ".csv":
        return _parse_csv(path)

    workbook = load_workbook(path, data_only=True, read_only=True)
    try:
        worksheet = workbook[sheet_name] if sheet_name and sheet_name in workbook.sheetnames else workbook.active
        values = list(worksheet.iter_rows(values_only=True))
    finally:
        workbook.close()
    if not values:
        return AttendanceParseResult(rows=[])

    headers = [_text(cell) for cell in values[0]]
    dataframe = pd.DataFrame(values[1:], columns=headers)
    return AttendanceParseResult(rows=_frame_to_rows(dataframe))
