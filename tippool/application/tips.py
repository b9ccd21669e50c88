"""Application service layer for tip pool distributions."""
from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable

from tippool.core import settings
from tippool.core.engine import (
    allocate_payouts,
    build_distribution,
    calculate_distribution,
    eligible_start_dates,
    group_attendance,
    history_ranges_from,
    is_date_blocked,
    rebalance_on_adjustment,
    reset_adjustments,
    validate_periods,
)
from tippool.core.errors import InvalidPeriodError
from tippool.core.schema import AllocationResult, Distribution, HistoryRange, Period, RoundingPolicy
from tippool.domain import DistributionDraft
from tippool.extractors import attendance_sheet
from tippool.infrastructure import InMemoryTipPoolRepository, TipPoolRepository

logger = logging.getLogger(__name__)


def _month_day(day: date) -> str:
    return f"{day:%b} {day.day}"


class TipPoolService:
    """Coordinates tip pool use cases for stores and employees."""

    def __init__(self, repository: TipPoolRepository) -> None:
        self._repository = repository
        self._finalize_lock = threading.Lock()

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------
    def get_draft(self, draft_id: str) -> DistributionDraft:
        draft = self._repository.get_draft(draft_id)
        if draft is None:
            raise KeyError(draft_id)
        return draft

    def get_distribution(self, distribution_id: str) -> Distribution:
        distribution = self._repository.get_distribution(distribution_id)
        if distribution is None:
            raise KeyError(distribution_id)
        return distribution

    def history_ranges(self, store_id: str, exclude_distribution_id: str | None = None) -> list[HistoryRange]:
        return history_ranges_from(self._repository.list_distributions(store_id), exclude_distribution_id)

    # ------------------------------------------------------------------
    # period picking
    # ------------------------------------------------------------------
    def _picking_context(
        self, store_id: str, draft_id: str | None
    ) -> tuple[list[Period], list[HistoryRange]]:
        if draft_id is None:
            return [], self.history_ranges(store_id)
        draft = self.get_draft(draft_id)
        return draft.periods, self.history_ranges(store_id, draft.editing_distribution_id)

    def is_date_blocked(
        self,
        store_id: str,
        day: date,
        *,
        draft_id: str | None = None,
        exclude_index: int | None = None,
        reference_date: date | None = None,
    ) -> bool:
        periods, ranges = self._picking_context(store_id, draft_id)
        return is_date_blocked(day, periods, ranges, reference_date or date.today(), exclude_index)

    def eligible_dates(
        self,
        store_id: str,
        first: date,
        last: date,
        *,
        draft_id: str | None = None,
        exclude_index: int | None = None,
        reference_date: date | None = None,
    ) -> list[date]:
        periods, ranges = self._picking_context(store_id, draft_id)
        return eligible_start_dates(first, last, periods, ranges, reference_date or date.today(), exclude_index)

    # ------------------------------------------------------------------
    # draft lifecycle
    # ------------------------------------------------------------------
    def open_draft(
        self,
        store_id: str,
        periods: Iterable[Period] | None = None,
        *,
        editing_distribution_id: str | None = None,
    ) -> DistributionDraft:
        selected = list(periods or [])
        if editing_distribution_id is not None:
            original = self.get_distribution(editing_distribution_id)
            if original.store_id != store_id:
                raise KeyError(editing_distribution_id)
            if not selected:
                selected = list(original.periods)

        draft = DistributionDraft(
            draft_id=self._repository.next_id("draft"),
            store_id=store_id,
            periods=selected,
            rounding=settings.default_rounding(),
            editing_distribution_id=editing_distribution_id,
        )
        self._repository.save_draft(draft)
        logger.info(
            "opened draft %s for store %s%s",
            draft.draft_id,
            store_id,
            f" editing {editing_distribution_id}" if editing_distribution_id else "",
        )
        return draft

    def configure_draft(self, draft_id: str, periods: Iterable[Period]) -> DistributionDraft:
        draft = self.get_draft(draft_id)
        draft.configure(list(periods))
        return draft

    def calculate_draft(
        self,
        draft_id: str,
        *,
        department_ids: Iterable[str] | None = None,
        rounding: RoundingPolicy | None = None,
        total_pool: Any = None,
        reference_date: date | None = None,
    ) -> AllocationResult:
        draft = self.get_draft(draft_id)
        departments = sorted({str(item) for item in department_ids or ()})
        policy = rounding or draft.rounding

        ranges = self.history_ranges(draft.store_id, draft.editing_distribution_id)
        attendance: list = []
        if draft.periods:
            first = min(period.start_date for period in draft.periods)
            last = max(period.end_date for period in draft.periods)
            attendance = self._repository.list_attendance(draft.store_id, first, last, departments)

        result = calculate_distribution(
            draft.periods,
            group_attendance(attendance),
            total_pool=total_pool,
            department_filter=departments,
            rounding=policy,
            history_ranges=ranges,
            reference_date=reference_date or date.today(),
        )
        draft.record_calculation(result, policy, departments)
        if result.zero_share_warning:
            logger.warning("draft %s has no shares; pool of %s is unassigned", draft_id, result.total_pool)
        logger.info(
            "calculated draft %s: %s employees, pool %s, variance %s",
            draft_id,
            len(result.records),
            result.total_pool,
            result.variance,
        )
        return result

    def adjust_draft(self, draft_id: str, index: int, shares: Any) -> AllocationResult:
        draft = self.get_draft(draft_id)
        current = draft.require_result()
        result = rebalance_on_adjustment(current.records, current.total_pool, index, shares, draft.rounding)
        draft.record_adjustment(result)
        return result

    def reset_draft(self, draft_id: str) -> AllocationResult:
        draft = self.get_draft(draft_id)
        current = draft.require_result()
        result = allocate_payouts(reset_adjustments(current.records), current.total_pool, draft.rounding)
        draft.record_reset(result)
        return result

    def finalize_draft(
        self,
        draft_id: str,
        *,
        finalized_by: str | None = None,
        reference_date: date | None = None,
        now: datetime | None = None,
    ) -> Distribution:
        draft = self.get_draft(draft_id)
        if not draft.periods:
            raise InvalidPeriodError(f"draft {draft_id} has no periods to finalize")

        with self._finalize_lock:
            result = draft.require_result()
            # History may have moved since the draft was calculated.
            ranges = self.history_ranges(draft.store_id, draft.editing_distribution_id)
            validate_periods(draft.periods, ranges, reference_date or date.today())

            distribution = build_distribution(
                self._repository.next_id("dist"),
                draft.store_id,
                draft.periods,
                result,
                created_at=now or datetime.now(timezone.utc),
                finalized_by=finalized_by,
            )
            if draft.editing_distribution_id is not None:
                self._repository.replace_distribution(draft.editing_distribution_id, distribution)
            else:
                self._repository.save_distribution(distribution)
            draft.mark_finalized(distribution.distribution_id)

        if distribution.variance != 0:
            logger.warning(
                "distribution %s finalized with variance %s", distribution.distribution_id, distribution.variance
            )
        logger.info(
            "finalized draft %s as %s for store %s (total %s)",
            draft_id,
            distribution.distribution_id,
            draft.store_id,
            distribution.total_amount,
        )
        return distribution

    # ------------------------------------------------------------------
    # history views
    # ------------------------------------------------------------------
    def list_history(self, store_id: str) -> list[Distribution]:
        distributions = self._repository.list_distributions(store_id)
        return sorted(distributions, key=lambda item: item.periods[0].start_date if item.periods else date.min, reverse=True)

    def distribution_trend(self, store_id: str, limit: int | None = None) -> list[dict[str, object]]:
        """Chronological summary of the most recent finalized distributions."""

        limit = settings.trend_limit() if limit is None else limit
        history = list(reversed(self.list_history(store_id)))
        if limit > 0:
            history = history[-limit:]
        points: list[dict[str, object]] = []
        for distribution in history:
            start = distribution.periods[0].start_date if distribution.periods else None
            points.append(
                {
                    "distribution_id": distribution.distribution_id,
                    "label": _month_day(start) if start else "",
                    "amount": distribution.total_amount,
                    "employees": len(distribution.records),
                }
            )
        return points

    def employee_tip_history(self, employee_id: str) -> dict[str, object]:
        items: list[dict[str, object]] = []
        total = Decimal("0")
        for distribution in self._repository.list_all_distributions():
            amount = distribution.amount_for(employee_id)
            if amount is None:
                continue
            total += amount
            items.append(
                {
                    "distribution_id": distribution.distribution_id,
                    "store_id": distribution.store_id,
                    "start_date": min(period.start_date for period in distribution.periods),
                    "end_date": max(period.end_date for period in distribution.periods),
                    "amount": amount,
                    "status": distribution.status,
                    "finalized_at": distribution.finalized_at,
                }
            )
        items.sort(key=lambda item: item["start_date"], reverse=True)
        return {"employee_id": employee_id, "total": total, "items": items}

    # ------------------------------------------------------------------
    # ingestion
    # ------------------------------------------------------------------
    def import_attendance(self, store_id: str, paths: Iterable[Path]) -> list[int]:
        """Parse every sheet, then store their rows together.

        A sheet that fails to parse leaves the store untouched.
        """

        parsed = [(path, attendance_sheet.parse(path)) for path in paths]
        counts: list[int] = []
        for path, sheet in parsed:
            counts.append(self._repository.add_attendance(store_id, sheet.rows))
            logger.info("imported %s attendance rows for store %s from %s", counts[-1], store_id, path.name)
        return counts

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self._repository.reset()


_repository = InMemoryTipPoolRepository()
_service = TipPoolService(_repository)


def get_tip_pool_service() -> TipPoolService:
    """Return the singleton tip pool service for the process."""

    return _service


def reset_tip_pool_state() -> None:
    """Reset the in-memory store (used in tests)."""

    _service.reset()
