"""Draft lifecycle for a distribution being configured and calculated."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from tippool.core.errors import DraftStateError
from tippool.core.schema import AllocationResult, Period, RoundingPolicy


class DraftStatus(str, Enum):
    CONFIGURING = "configuring"
    CALCULATED = "calculated"
    ADJUSTING = "adjusting"
    FINALIZED = "finalized"


_OPEN = (DraftStatus.CONFIGURING, DraftStatus.CALCULATED, DraftStatus.ADJUSTING)
_WITH_RESULT = (DraftStatus.CALCULATED, DraftStatus.ADJUSTING)


@dataclass(slots=True)
class DistributionDraft:
    """In-progress distribution for one store.

    ``editing_distribution_id`` is set when the draft re-opens a finalized
    distribution; that distribution's dates are excluded from history checks.
    """

    draft_id: str
    store_id: str
    periods: list[Period] = field(default_factory=list)
    status: DraftStatus = DraftStatus.CONFIGURING
    result: AllocationResult | None = None
    rounding: RoundingPolicy = field(default_factory=RoundingPolicy)
    department_ids: list[str] = field(default_factory=list)
    editing_distribution_id: str | None = None
    distribution_id: str | None = None

    def _require(self, allowed: tuple[DraftStatus, ...], action: str) -> None:
        if self.status not in allowed:
            raise DraftStateError(f"cannot {action} draft {self.draft_id} while {self.status.value}")

    def configure(self, periods: list[Period]) -> None:
        self._require(_OPEN, "configure")
        self.periods = list(periods)
        self.result = None
        self.status = DraftStatus.CONFIGURING

    def record_calculation(
        self,
        result: AllocationResult,
        rounding: RoundingPolicy,
        department_ids: list[str],
    ) -> None:
        self._require(_OPEN, "calculate")
        self.result = result
        self.rounding = rounding
        self.department_ids = list(department_ids)
        self.status = DraftStatus.CALCULATED

    def record_adjustment(self, result: AllocationResult) -> None:
        self._require(_WITH_RESULT, "adjust")
        self.result = result
        self.status = DraftStatus.ADJUSTING

    def record_reset(self, result: AllocationResult) -> None:
        self._require(_WITH_RESULT, "reset")
        self.result = result
        self.status = DraftStatus.CALCULATED

    def mark_finalized(self, distribution_id: str) -> None:
        self._require(_WITH_RESULT, "finalize")
        self.distribution_id = distribution_id
        self.status = DraftStatus.FINALIZED

    def require_result(self) -> AllocationResult:
        self._require(_WITH_RESULT, "use the calculation of")
        assert self.result is not None
        return self.result

    def summary(self) -> dict[str, object]:
        return {
            "draft_id": self.draft_id,
            "store_id": self.store_id,
            "status": self.status.value,
            "periods": [period.model_dump(mode="json") for period in self.periods],
            "editing_distribution_id": self.editing_distribution_id,
            "distribution_id": self.distribution_id,
            "result": self.result.model_dump(mode="json") if self.result is not None else None,
        }
