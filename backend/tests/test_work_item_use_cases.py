from __future__ import annotations

from datetime import date, timedelta
from uuid import uuid4

import pytest

from app.domain_errors import DomainError, WorkItemClosedError
from app.use_cases.follow_ups import (
    mark_followed_up_use_case,
    recalculate_all_follow_ups_use_case,
    snooze_follow_up_use_case,
    toggle_waiting_use_case,
)
from app.use_cases.work_item_transitions import (
    record_initial_status,
    transition_work_item_use_case,
    work_item_timeline_use_case,
)
from fakes import FIXED_NOW, InMemoryOpsRepository


def test_transition_writes_event_with_previous_status() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(status="new_inquiry")
    later = FIXED_NOW + timedelta(hours=1)

    outcome = transition_work_item_use_case(
        repo=repo, work_item_id=item.id, to_status="info_sent", changed_by="user", now=later
    )

    assert item.status == "info_sent"
    assert item.status_changed_at == later
    assert outcome.event.from_status == "new_inquiry"
    assert outcome.event.to_status == "info_sent"
    assert item.next_follow_up_at == later + timedelta(days=3)
    assert repo.commit_calls == 1


def test_closing_sets_closed_at_and_clears_follow_up() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(status="info_sent", next_follow_up_at=FIXED_NOW)

    transition_work_item_use_case(
        repo=repo,
        work_item_id=item.id,
        to_status="closed_lost",
        changed_by="user",
        note="Went with another vendor",
        now=FIXED_NOW,
    )

    assert item.closed_at == FIXED_NOW
    assert item.next_follow_up_at is None
    assert repo.events_for(item.id)[-1].note == "Went with another vendor"


def test_closed_item_rejects_transition_without_writing_event() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(status="closed_won", closed_at=FIXED_NOW)

    with pytest.raises(WorkItemClosedError) as exc_info:
        transition_work_item_use_case(
            repo=repo, work_item_id=item.id, to_status="in_design", note="reopen", now=FIXED_NOW
        )

    assert exc_info.value.http_status == 409
    assert item.status == "closed_won"
    assert repo.events_for(item.id) == []
    assert repo.commit_calls == 0


@pytest.mark.parametrize(
    "call",
    [
        lambda repo, item_id: mark_followed_up_use_case(repo=repo, work_item_id=item_id, now=FIXED_NOW),
        lambda repo, item_id: snooze_follow_up_use_case(repo=repo, work_item_id=item_id, days=2, now=FIXED_NOW),
        lambda repo, item_id: toggle_waiting_use_case(repo=repo, work_item_id=item_id, now=FIXED_NOW),
    ],
)
def test_follow_up_actions_refuse_closed_items(call) -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(status="closed", type="customify_order", closed_at=FIXED_NOW)

    with pytest.raises(WorkItemClosedError):
        call(repo, item.id)
    assert item.next_follow_up_at is None


def test_same_status_is_a_no_op_without_event() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(status="in_design")

    outcome = transition_work_item_use_case(repo=repo, work_item_id=item.id, to_status="in_design", now=FIXED_NOW)

    assert outcome.event is None
    assert repo.events_for(item.id) == []


def test_missing_work_item_is_not_found() -> None:
    with pytest.raises(DomainError) as exc_info:
        transition_work_item_use_case(repo=InMemoryOpsRepository(), work_item_id=uuid4(), to_status="info_sent")
    assert exc_info.value.code == "WORK_ITEM_NOT_FOUND"
    assert exc_info.value.http_status == 404


def test_mark_followed_up_restarts_cadence() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(status="proof_sent", status_changed_at=FIXED_NOW - timedelta(days=5))
    later = FIXED_NOW + timedelta(hours=3)

    mark_followed_up_use_case(repo=repo, work_item_id=item.id, now=later)

    assert item.last_contact_at == later
    assert item.next_follow_up_at == later + timedelta(days=2)


def test_snooze_pushes_follow_up_out() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item()

    snooze_follow_up_use_case(repo=repo, work_item_id=item.id, days=4, now=FIXED_NOW)

    assert item.next_follow_up_at == FIXED_NOW + timedelta(days=4)


def test_snooze_requires_positive_days() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item()

    with pytest.raises(DomainError) as exc_info:
        snooze_follow_up_use_case(repo=repo, work_item_id=item.id, days=0, now=FIXED_NOW)
    assert exc_info.value.code == "INVALID_SNOOZE_DAYS"


def test_toggle_waiting_clears_and_restores_follow_up() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(status="new_inquiry", next_follow_up_at=FIXED_NOW)

    toggle_waiting_use_case(repo=repo, work_item_id=item.id, now=FIXED_NOW)
    assert item.is_waiting is True
    assert item.next_follow_up_at is None

    toggle_waiting_use_case(repo=repo, work_item_id=item.id, is_waiting=False, now=FIXED_NOW)
    assert item.is_waiting is False
    assert item.next_follow_up_at == FIXED_NOW + timedelta(days=1)


def test_recalculate_reports_only_changed_items() -> None:
    repo = InMemoryOpsRepository()
    stale = repo.seed_work_item(status="info_sent", next_follow_up_at=None)
    current = repo.seed_work_item(status="new_inquiry", next_follow_up_at=FIXED_NOW + timedelta(days=1))
    rush = repo.seed_work_item(status="invoice_sent", event_date=date(2026, 3, 20))
    repo.seed_work_item(status="closed_won", closed_at=FIXED_NOW)

    changes = recalculate_all_follow_ups_use_case(repo=repo, now=FIXED_NOW)

    changed_ids = {change.work_item_id for change in changes}
    assert changed_ids == {stale.id, rush.id}
    assert current.id not in changed_ids
    assert rush.next_follow_up_at == FIXED_NOW + timedelta(days=1)
    assert recalculate_all_follow_ups_use_case(repo=repo, now=FIXED_NOW) == []


def test_timeline_merges_events_and_emails_in_time_order() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(status="new_inquiry")
    record_initial_status(repo=repo, item=item, changed_by="system:form", now=FIXED_NOW)
    repo.seed_communication(
        work_item_id=item.id, subject="Quote request", received_at=FIXED_NOW + timedelta(minutes=5)
    )
    transition_work_item_use_case(
        repo=repo,
        work_item_id=item.id,
        to_status="info_sent",
        changed_by="user",
        note="Sent catalog",
        now=FIXED_NOW + timedelta(minutes=10),
    )

    timeline = work_item_timeline_use_case(repo=repo, work_item_id=item.id)

    assert [entry.kind for entry in timeline] == ["status_change", "email_inbound", "status_change"]
    assert timeline[0].summary == "Created as New Inquiry"
    assert timeline[2].summary == "New Inquiry -> Info Sent: Sent catalog"


def test_snooze_survives_nightly_recalculation() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(status="info_sent")
    snooze_follow_up_use_case(repo=repo, work_item_id=item.id, days=14, now=FIXED_NOW)

    changes = recalculate_all_follow_ups_use_case(repo=repo, now=FIXED_NOW + timedelta(hours=12))

    assert changes == []
    assert item.snoozed_until == FIXED_NOW + timedelta(days=14)
    assert item.next_follow_up_at == FIXED_NOW + timedelta(days=14)


def test_same_status_transition_keeps_snooze() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(status="info_sent")
    snooze_follow_up_use_case(repo=repo, work_item_id=item.id, days=10, now=FIXED_NOW)

    transition_work_item_use_case(repo=repo, work_item_id=item.id, to_status="info_sent", now=FIXED_NOW)

    assert item.next_follow_up_at == FIXED_NOW + timedelta(days=10)


def test_status_change_and_follow_up_clear_snooze() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(status="new_inquiry")
    snooze_follow_up_use_case(repo=repo, work_item_id=item.id, days=10, now=FIXED_NOW)
    later = FIXED_NOW + timedelta(hours=1)

    transition_work_item_use_case(repo=repo, work_item_id=item.id, to_status="info_sent", changed_by="user", now=later)

    assert item.snoozed_until is None
    assert item.next_follow_up_at == later + timedelta(days=3)

    snooze_follow_up_use_case(repo=repo, work_item_id=item.id, days=10, now=later)
    mark_followed_up_use_case(repo=repo, work_item_id=item.id, now=later)

    assert item.snoozed_until is None
    assert item.next_follow_up_at == later + timedelta(days=3)
