import threading
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from tippool.application import get_tip_pool_service
from tippool.core.errors import DraftStateError, InvalidPeriodError
from tippool.core.schema import CENT, Period, RoundingPolicy, ShiftAttendance
from tippool.domain import DraftStatus
from tippool.infrastructure import InMemoryTipPoolRepository
from tippool.application.tips import TipPoolService

TODAY = date(2025, 3, 31)
STORE = "store-1"


def _seed(service, store_id=STORE):
    rows = []
    for employee_id, name, day, minutes, department in [
        ("e1", "Ana", date(2025, 3, 3), 480, "bar"),
        ("e1", "Ana", date(2025, 3, 4), 480, "bar"),
        ("e2", "Rui", date(2025, 3, 5), 480, "kitchen"),
        ("e3", "Eva", date(2025, 3, 6), 780, "bar"),
        ("e1", "Ana", date(2025, 3, 11), 600, "bar"),
        ("e2", "Rui", date(2025, 3, 12), 300, "kitchen"),
    ]:
        rows.append(
            ShiftAttendance(
                employee_id=employee_id,
                employee_name=name,
                date=day,
                duration_minutes=minutes,
                department_id=department,
            )
        )
    service._repository.add_attendance(store_id, rows)


@pytest.fixture()
def service():
    service = get_tip_pool_service()
    _seed(service)
    return service


def _finalize(service, start, amount, **kwargs):
    draft = service.open_draft(STORE, [Period(start_date=start, amount=Decimal(amount))])
    service.calculate_draft(draft.draft_id, reference_date=TODAY, **kwargs)
    return service.finalize_draft(draft.draft_id, reference_date=TODAY, finalized_by="manager")


def test_calculate_adjust_and_finalize(service):
    draft = service.open_draft(STORE, [Period(start_date=date(2025, 3, 3), amount=Decimal("100"))])
    result = service.calculate_draft(draft.draft_id, reference_date=TODAY)
    assert [r.employee_id for r in result.records] == ["e1", "e2", "e3"]
    assert [r.calculated_shares for r in result.records] == [Decimal("2.0"), Decimal("1.0"), Decimal("2.0")]
    assert draft.status is DraftStatus.CALCULATED

    adjusted = service.adjust_draft(draft.draft_id, 1, 3)
    assert draft.status is DraftStatus.ADJUSTING
    assert [r.final_amount.quantize(CENT) for r in adjusted.records] == [
        Decimal("28.57"),
        Decimal("42.86"),
        Decimal("28.57"),
    ]

    distribution = service.finalize_draft(draft.draft_id, reference_date=TODAY, finalized_by="manager")
    assert draft.status is DraftStatus.FINALIZED
    assert distribution.finalized_by == "manager"
    assert distribution.records[1].adjusted_shares == Decimal("3")
    assert service.list_history(STORE) == [distribution]


def test_reset_restores_calculated_shares(service):
    draft = service.open_draft(STORE, [Period(start_date=date(2025, 3, 3), amount=Decimal("50"))])
    service.calculate_draft(draft.draft_id, reference_date=TODAY)
    service.adjust_draft(draft.draft_id, 0, 10)
    result = service.reset_draft(draft.draft_id)
    assert draft.status is DraftStatus.CALCULATED
    assert [r.adjusted_shares for r in result.records] == [r.calculated_shares for r in result.records]


def test_department_filter_and_rounding_are_kept_for_adjustments(service):
    draft = service.open_draft(STORE, [Period(start_date=date(2025, 3, 3), amount=Decimal("10"))])
    result = service.calculate_draft(
        draft.draft_id,
        department_ids=["bar"],
        rounding=RoundingPolicy(enabled=True, step=Decimal("1")),
        reference_date=TODAY,
    )
    assert [r.employee_id for r in result.records] == ["e1", "e3"]
    adjusted = service.adjust_draft(draft.draft_id, 0, 1)
    assert [r.final_amount for r in adjusted.records] == [Decimal("3.00"), Decimal("7.00")]
    assert adjusted.variance == Decimal("0.00")


def test_finalized_dates_are_blocked_for_new_drafts(service):
    _finalize(service, date(2025, 3, 3), "100")
    assert service.is_date_blocked(STORE, date(2025, 3, 9), reference_date=TODAY) is True
    assert service.is_date_blocked(STORE, date(2025, 3, 10), reference_date=TODAY) is False
    # other stores keep their own history
    assert service.is_date_blocked("store-2", date(2025, 3, 9), reference_date=TODAY) is False

    draft = service.open_draft(STORE, [Period(start_date=date(2025, 3, 6), amount=Decimal("5"))])
    with pytest.raises(InvalidPeriodError):
        service.calculate_draft(draft.draft_id, reference_date=TODAY)


def test_eligible_dates_respect_the_draft(service):
    draft = service.open_draft(STORE, [Period(start_date=date(2025, 3, 10), amount=Decimal("5"))])
    eligible = service.eligible_dates(
        STORE, date(2025, 3, 8), date(2025, 3, 18), draft_id=draft.draft_id, reference_date=TODAY
    )
    assert eligible == [date(2025, 3, 8), date(2025, 3, 9), date(2025, 3, 17), date(2025, 3, 18)]
    eligible = service.eligible_dates(
        STORE, date(2025, 3, 8), date(2025, 3, 11), draft_id=draft.draft_id, exclude_index=0, reference_date=TODAY
    )
    assert eligible == [date(2025, 3, 8), date(2025, 3, 9), date(2025, 3, 10), date(2025, 3, 11)]


def test_editing_a_distribution_excludes_its_own_dates(service):
    original = _finalize(service, date(2025, 3, 3), "100")

    draft = service.open_draft(STORE, editing_distribution_id=original.distribution_id)
    assert draft.periods == original.periods
    assert service.is_date_blocked(STORE, date(2025, 3, 3), draft_id=draft.draft_id, exclude_index=0, reference_date=TODAY) is False

    service.configure_draft(draft.draft_id, [Period(start_date=date(2025, 3, 3), amount=Decimal("120"))])
    service.calculate_draft(draft.draft_id, reference_date=TODAY)
    edited = service.finalize_draft(draft.draft_id, reference_date=TODAY)

    history = service.list_history(STORE)
    assert history == [edited]
    assert edited.total_amount == Decimal("120")
    with pytest.raises(KeyError):
        service.get_distribution(original.distribution_id)


def test_editing_requires_a_distribution_of_the_same_store(service):
    original = _finalize(service, date(2025, 3, 3), "100")
    with pytest.raises(KeyError):
        service.open_draft("store-2", editing_distribution_id=original.distribution_id)
    with pytest.raises(KeyError):
        service.open_draft(STORE, editing_distribution_id="dist-99999")


def test_second_overlapping_finalize_is_rejected(service):
    first = service.open_draft(STORE, [Period(start_date=date(2025, 3, 3), amount=Decimal("10"))])
    second = service.open_draft(STORE, [Period(start_date=date(2025, 3, 5), amount=Decimal("10"))])
    service.calculate_draft(first.draft_id, reference_date=TODAY)
    service.calculate_draft(second.draft_id, reference_date=TODAY)

    outcomes = []

    def finalize(draft_id):
        try:
            service.finalize_draft(draft_id, reference_date=TODAY)
            outcomes.append("ok")
        except InvalidPeriodError:
            outcomes.append("rejected")

    threads = [threading.Thread(target=finalize, args=(d.draft_id,)) for d in (first, second)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["ok", "rejected"]
    assert len(service.list_history(STORE)) == 1


def test_finalize_twice_is_a_state_error(service):
    draft = service.open_draft(STORE, [Period(start_date=date(2025, 3, 3), amount=Decimal("10"))])
    service.calculate_draft(draft.draft_id, reference_date=TODAY)
    service.finalize_draft(draft.draft_id, reference_date=TODAY)
    with pytest.raises(DraftStateError):
        service.finalize_draft(draft.draft_id, reference_date=TODAY)


def test_finalize_needs_a_calculation_and_periods(service):
    empty = service.open_draft(STORE)
    with pytest.raises(InvalidPeriodError):
        service.finalize_draft(empty.draft_id, reference_date=TODAY)

    draft = service.open_draft(STORE, [Period(start_date=date(2025, 3, 3), amount=Decimal("10"))])
    with pytest.raises(DraftStateError):
        service.finalize_draft(draft.draft_id, reference_date=TODAY)


def test_zero_share_calculation_is_reported(service):
    draft = service.open_draft(STORE, [Period(start_date=date(2025, 2, 3), amount=Decimal("200"))])
    result = service.calculate_draft(draft.draft_id, reference_date=TODAY)
    assert result.records == []
    assert result.zero_share_warning
    assert result.variance == Decimal("200")


def test_history_trend_and_employee_history(service):
    _finalize(service, date(2025, 3, 3), "100")
    _finalize(service, date(2025, 3, 10), "40")

    history = service.list_history(STORE)
    assert [d.periods[0].start_date for d in history] == [date(2025, 3, 10), date(2025, 3, 3)]

    trend = service.distribution_trend(STORE)
    assert [point["label"] for point in trend] == ["Mar 3", "Mar 10"]
    assert [point["amount"] for point in trend] == [Decimal("100"), Decimal("40")]
    assert service.distribution_trend(STORE, limit=1)[0]["label"] == "Mar 10"

    ana = service.employee_tip_history("e1")
    # newest first: 1.5 of 2 shares of 40, then 2 of 5 shares of 100
    assert [item["amount"].quantize(CENT) for item in ana["items"]] == [Decimal("30.00"), Decimal("40.00")]
    assert ana["total"].quantize(CENT) == Decimal("70.00")
    assert service.employee_tip_history("nobody")["items"] == []


def test_unknown_draft_raises_key_error(service):
    with pytest.raises(KeyError):
        service.calculate_draft("draft-missing")


def test_service_can_run_on_its_own_repository():
    service = TipPoolService(InMemoryTipPoolRepository())
    _seed(service)
    draft = service.open_draft(STORE, [Period(start_date=date(2025, 3, 3), amount=Decimal("5"))])
    service.calculate_draft(draft.draft_id, reference_date=TODAY)
    distribution = service.finalize_draft(
        draft.draft_id,
        reference_date=TODAY,
        now=datetime(2025, 3, 20, tzinfo=timezone.utc),
    )
    assert distribution.created_at == datetime(2025, 3, 20, tzinfo=timezone.utc)
    assert get_tip_pool_service().list_history(STORE) == []
