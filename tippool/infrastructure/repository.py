"""Infrastructure layer for tip pool persistence."""
from __future__ import annotations

from datetime import date
from typing import Iterable, Protocol

from tippool.core.schema import Distribution, ShiftAttendance
from tippool.domain import DistributionDraft


class TipPoolRepository(Protocol):
    """Persistence contract for attendance, drafts and finalized distributions."""

    def add_attendance(self, store_id: str, rows: Iterable[ShiftAttendance]) -> int: ...

    def list_attendance(
        self,
        store_id: str,
        start: date,
        end: date,
        department_ids: Iterable[str] | None = None,
    ) -> list[ShiftAttendance]: ...

    def list_distributions(self, store_id: str) -> list[Distribution]: ...

    def list_all_distributions(self) -> list[Distribution]: ...

    def get_distribution(self, distribution_id: str) -> Distribution | None: ...

    def save_distribution(self, distribution: Distribution) -> None: ...

    def replace_distribution(self, previous_id: str, distribution: Distribution) -> None: ...

    def save_draft(self, draft: DistributionDraft) -> None: ...

    def get_draft(self, draft_id: str) -> DistributionDraft | None: ...

    def next_id(self, prefix: str) -> str: ...

    def reset(self) -> None: ...


class InMemoryTipPoolRepository:
    """Simple in-memory repository for fast iteration and tests."""

    def __init__(self) -> None:
        self._attendance: dict[str, list[ShiftAttendance]] = {}
        self._distributions: dict[str, Distribution] = {}
        self._drafts: dict[str, DistributionDraft] = {}
        self._counters: dict[str, int] = {}

    # ------------------------------------------------------------------
    # attendance source
    # ------------------------------------------------------------------
    def add_attendance(self, store_id: str, rows: Iterable[ShiftAttendance]) -> int:
        bucket = self._attendance.setdefault(store_id, [])
        before = len(bucket)
        bucket.extend(rows)
        return len(bucket) - before

    def list_attendance(
        self,
        store_id: str,
        start: date,
        end: date,
        department_ids: Iterable[str] | None = None,
    ) -> list[ShiftAttendance]:
        departments = set(department_ids or ())
        return [
            row
            for row in self._attendance.get(store_id, [])
            if start <= row.date <= end and (not departments or row.department_id in departments)
        ]

    # ------------------------------------------------------------------
    # distribution history and sink
    # ------------------------------------------------------------------
    def list_distributions(self, store_id: str) -> list[Distribution]:
        return [item for item in self._distributions.values() if item.store_id == store_id]

    def list_all_distributions(self) -> list[Distribution]:
        return list(self._distributions.values())

    def get_distribution(self, distribution_id: str) -> Distribution | None:
        return self._distributions.get(distribution_id)

    def save_distribution(self, distribution: Distribution) -> None:
        self._distributions[distribution.distribution_id] = distribution

    def replace_distribution(self, previous_id: str, distribution: Distribution) -> None:
        self._distributions.pop(previous_id, None)
        self._distributions[distribution.distribution_id] = distribution

    # ------------------------------------------------------------------
    # drafts
    # ------------------------------------------------------------------
    def save_draft(self, draft: DistributionDraft) -> None:
        self._drafts[draft.draft_id] = draft

    def get_draft(self, draft_id: str) -> DistributionDraft | None:
        return self._drafts.get(draft_id)

    def next_id(self, prefix: str) -> str:
        self._counters[prefix] = self._counters.get(prefix, 0) + 1
        return f"{prefix}-{self._counters[prefix]:05d}"

    def reset(self) -> None:
        self._attendance.clear()
        self._distributions.clear()
        self._drafts.clear()
        self._counters.clear()
