from __future__ import annotations

from contextlib import contextmanager
from datetime import date
from typing import Any, Iterator

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response
from pydantic import ValidationError

from tippool.application import get_tip_pool_service
from tippool.core.errors import DraftStateError, TipPoolError
from tippool.core.schema import AllocationResult, Distribution, Period, RoundingPolicy
from tippool.exporters.payout_sheet import payouts_csv

router = APIRouter(tags=["tips"])


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"not found: {exc.args[0]}") from exc
    except DraftStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except TipPoolError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _parse_periods(payload: dict[str, Any]) -> list[Period]:
    raw = payload.get("periods") or []
    if not isinstance(raw, list):
        raise HTTPException(status_code=400, detail="periods must be a list")
    with _translate_errors():
        return [Period.model_validate(item) for item in raw]


def _parse_date(value: Any, field: str) -> date | None:
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"{field} must be YYYY-MM-DD") from exc


def _serialise_result(result: AllocationResult) -> dict:
    data = result.model_dump(mode="json")
    data["zero_share_warning"] = result.zero_share_warning
    return data


def _serialise_distribution(distribution: Distribution) -> dict:
    return distribution.model_dump(mode="json")


@router.get("/stores/{store_id}/tips/dates")
async def list_period_dates(
    store_id: str,
    start: str = Query(...),
    end: str = Query(...),
    draft_id: str | None = Query(default=None),
    exclude_index: int | None = Query(default=None),
    reference_date: str | None = Query(default=None),
) -> dict:
    first = _parse_date(start, "start")
    last = _parse_date(end, "end")
    if first is None or last is None:
        raise HTTPException(status_code=400, detail="start and end are required")
    if last < first:
        raise HTTPException(status_code=400, detail="end must not be before start")
    service = get_tip_pool_service()
    with _translate_errors():
        eligible = service.eligible_dates(
            store_id,
            first,
            last,
            draft_id=draft_id,
            exclude_index=exclude_index,
            reference_date=_parse_date(reference_date, "reference_date"),
        )
    return {"store_id": store_id, "eligible": [day.isoformat() for day in eligible]}


@router.get("/stores/{store_id}/tips/dates/{day}")
async def check_period_date(
    store_id: str,
    day: str,
    draft_id: str | None = Query(default=None),
    exclude_index: int | None = Query(default=None),
    reference_date: str | None = Query(default=None),
) -> dict:
    candidate = _parse_date(day, "day")
    service = get_tip_pool_service()
    with _translate_errors():
        blocked = service.is_date_blocked(
            store_id,
            candidate,
            draft_id=draft_id,
            exclude_index=exclude_index,
            reference_date=_parse_date(reference_date, "reference_date"),
        )
    return {"date": candidate.isoformat(), "blocked": blocked}


@router.post("/stores/{store_id}/tips/drafts")
async def open_draft(store_id: str, payload: dict) -> dict:
    periods = _parse_periods(payload)
    service = get_tip_pool_service()
    with _translate_errors():
        draft = service.open_draft(
            store_id,
            periods,
            editing_distribution_id=payload.get("editing_distribution_id"),
        )
    return draft.summary()


@router.get("/tips/drafts/{draft_id}")
async def get_draft(draft_id: str) -> dict:
    service = get_tip_pool_service()
    with _translate_errors():
        draft = service.get_draft(draft_id)
    return draft.summary()


@router.put("/tips/drafts/{draft_id}/periods")
async def configure_draft(draft_id: str, payload: dict) -> dict:
    periods = _parse_periods(payload)
    service = get_tip_pool_service()
    with _translate_errors():
        draft = service.configure_draft(draft_id, periods)
    return draft.summary()


@router.post("/tips/drafts/{draft_id}/calculate")
async def calculate_draft(draft_id: str, payload: dict | None = None) -> dict:
    payload = payload or {}
    service = get_tip_pool_service()
    with _translate_errors():
        rounding = RoundingPolicy.model_validate(payload["rounding"]) if payload.get("rounding") else None
        result = service.calculate_draft(
            draft_id,
            department_ids=payload.get("department_ids"),
            rounding=rounding,
            total_pool=payload.get("total_pool"),
            reference_date=_parse_date(payload.get("reference_date"), "reference_date"),
        )
    return _serialise_result(result)


@router.post("/tips/drafts/{draft_id}/adjust")
async def adjust_draft(draft_id: str, payload: dict) -> dict:
    if "index" not in payload or "shares" not in payload:
        raise HTTPException(status_code=400, detail="index and shares are required")
    service = get_tip_pool_service()
    with _translate_errors():
        result = service.adjust_draft(draft_id, payload["index"], payload["shares"])
    return _serialise_result(result)


@router.post("/tips/drafts/{draft_id}/reset")
async def reset_draft(draft_id: str) -> dict:
    service = get_tip_pool_service()
    with _translate_errors():
        result = service.reset_draft(draft_id)
    return _serialise_result(result)


@router.post("/tips/drafts/{draft_id}/finalize")
async def finalize_draft(draft_id: str, payload: dict | None = None) -> dict:
    payload = payload or {}
    service = get_tip_pool_service()
    with _translate_errors():
        distribution = service.finalize_draft(
            draft_id,
            finalized_by=payload.get("finalized_by"),
            reference_date=_parse_date(payload.get("reference_date"), "reference_date"),
        )
    return _serialise_distribution(distribution)


@router.get("/stores/{store_id}/tips/history")
async def list_history(store_id: str) -> dict:
    service = get_tip_pool_service()
    items = [_serialise_distribution(item) for item in service.list_history(store_id)]
    return {"store_id": store_id, "items": items}


@router.get("/stores/{store_id}/tips/trend")
async def get_trend(store_id: str, limit: int | None = Query(default=None, ge=0)) -> dict:
    service = get_tip_pool_service()
    points = service.distribution_trend(store_id, limit)
    return {"store_id": store_id, "items": [{**point, "amount": str(point["amount"])} for point in points]}


@router.get("/tips/distributions/{distribution_id}")
async def get_distribution(distribution_id: str) -> dict:
    service = get_tip_pool_service()
    with _translate_errors():
        distribution = service.get_distribution(distribution_id)
    return _serialise_distribution(distribution)


@router.get("/tips/distributions/{distribution_id}/payouts.csv")
async def export_distribution_payouts(distribution_id: str) -> Response:
    service = get_tip_pool_service()
    with _translate_errors():
        distribution = service.get_distribution(distribution_id)
    return Response(
        content=payouts_csv(distribution),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{distribution_id}.csv"'},
    )


@router.get("/employees/{employee_id}/tips")
async def get_employee_tips(employee_id: str) -> dict:
    service = get_tip_pool_service()
    history = service.employee_tip_history(employee_id)
    return {
        "employee_id": employee_id,
        "total": str(history["total"]),
        "items": [
            {
                **item,
                "amount": str(item["amount"]),
                "start_date": item["start_date"].isoformat(),
                "end_date": item["end_date"].isoformat(),
                "finalized_at": item["finalized_at"].isoformat() if item["finalized_at"] else None,
            }
            for item in history["items"]
        ],
    }
