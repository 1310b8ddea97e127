"""Work item status change use-cases.

Every status change goes through ``apply_status_change`` so that the status
event log, ``closed_at`` and the follow-up date stay consistent.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from ..models import WorkItem, WorkItemStatusEvent
from ..repositories.base import OpsRepository
from ..services.follow_up import DEFAULT_POLICY, FollowUpPolicy
from ..services.work_item_status import (
    TransitionAnalysis,
    is_terminal_status,
    status_groups,
    status_label,
    validate_status_transition,
)
from .common import ensure_open, get_work_item_or_404, now_utc
from .follow_ups import recompute_follow_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionOutcome:
    work_item: WorkItem
    event: WorkItemStatusEvent | None
    analysis: TransitionAnalysis


@dataclass(frozen=True)
class TimelineEntry:
    kind: str
    at: datetime | None
    summary: str
    reference_id: UUID


@dataclass(frozen=True)
class StatusOptions:
    work_item_id: UUID
    work_item_type: str
    current_status: str
    is_closed: bool
    groups: list[dict[str, object]]


def record_initial_status(
    *,
    repo: OpsRepository,
    item: WorkItem,
    changed_by: str,
    now: datetime,
    note: str | None = None,
) -> WorkItemStatusEvent:
    event = WorkItemStatusEvent(
        id=uuid.uuid4(),
        work_item_id=item.id,
        from_status=None,
        to_status=item.status,
        note=note,
        changed_by=changed_by,
        created_at=now,
    )
    return repo.add_status_event(event)


def apply_status_change(
    *,
    repo: OpsRepository,
    item: WorkItem,
    to_status: str,
    changed_by: str | None,
    note: str | None = None,
    is_system: bool = False,
    now: datetime,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> TransitionOutcome:
    """Validate and apply a status change on a loaded item without committing."""
    ensure_open(item)
    analysis = validate_status_transition(
        work_item_type=item.type,
        current_status=item.status,
        next_status=to_status,
        note=note,
        is_system=is_system,
    )

    if to_status == item.status:
        recompute_follow_up(item, now=now, policy=policy)
        repo.save_work_item(item)
        return TransitionOutcome(work_item=item, event=None, analysis=analysis)

    from_status = item.status
    item.status = to_status
    item.status_changed_at = now
    item.updated_at = now
    item.snoozed_until = None
    if is_terminal_status(to_status):
        item.closed_at = now
        item.next_follow_up_at = None
    else:
        recompute_follow_up(item, now=now, policy=policy)

    event = WorkItemStatusEvent(
        id=uuid.uuid4(),
        work_item_id=item.id,
        from_status=from_status,
        to_status=to_status,
        note=note.strip() if note else None,
        changed_by=changed_by,
        created_at=now,
    )
    repo.add_status_event(event)
    repo.save_work_item(item)
    logger.info(f"Work item {item.id}: {from_status} -> {to_status} by {changed_by}")
    return TransitionOutcome(work_item=item, event=event, analysis=analysis)


def transition_work_item_use_case(
    *,
    repo: OpsRepository,
    work_item_id: UUID,
    to_status: str,
    changed_by: str | None = None,
    note: str | None = None,
    is_system: bool = False,
    now: datetime | None = None,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> TransitionOutcome:
    item = get_work_item_or_404(repo=repo, work_item_id=work_item_id)
    outcome = apply_status_change(
        repo=repo,
        item=item,
        to_status=to_status,
        changed_by=changed_by,
        note=note,
        is_system=is_system,
        now=now or now_utc(),
        policy=policy,
    )
    repo.commit()
    return outcome


def work_item_timeline_use_case(*, repo: OpsRepository, work_item_id: UUID) -> list[TimelineEntry]:
    """Status events and linked communications, oldest first."""
    item = get_work_item_or_404(repo=repo, work_item_id=work_item_id)

    entries: list[TimelineEntry] = []
    for event in repo.list_status_events(item.id):
        if event.from_status:
            summary = f"{status_label(event.from_status)} -> {status_label(event.to_status)}"
        else:
            summary = f"Created as {status_label(event.to_status)}"
        if event.note:
            summary = f"{summary}: {event.note}"
        entries.append(TimelineEntry(kind="status_change", at=event.created_at, summary=summary, reference_id=event.id))

    for communication in repo.list_communications_for_work_item(item.id):
        at = communication.received_at or communication.sent_at or communication.created_at
        entries.append(
            TimelineEntry(
                kind=f"email_{communication.direction}",
                at=at,
                summary=communication.subject or "(no subject)",
                reference_id=communication.id,
            )
        )

    entries.sort(key=lambda entry: (entry.at is None, entry.at.timestamp() if entry.at else 0.0))
    return entries


def status_options_use_case(*, repo: OpsRepository, work_item_id: UUID) -> StatusOptions:
    item = get_work_item_or_404(repo=repo, work_item_id=work_item_id)
    return StatusOptions(
        work_item_id=item.id,
        work_item_type=item.type,
        current_status=item.status,
        is_closed=item.closed_at is not None,
        groups=status_groups(item.type, current_status=item.status),
    )
