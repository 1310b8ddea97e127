"""Follow-up scheduling use-cases."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from ..domain_errors import DomainError
from ..models import WorkItem
from ..repositories.base import OpsRepository
from ..services.follow_up import DEFAULT_POLICY, FollowUpPolicy, compute_next_follow_up
from .common import ensure_open, get_work_item_or_404, now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FollowUpChange:
    work_item_id: UUID
    old_follow_up_at: datetime | None
    new_follow_up_at: datetime | None


def recompute_follow_up(item: WorkItem, *, now: datetime, policy: FollowUpPolicy = DEFAULT_POLICY) -> bool:
    """Store the computed follow-up on the item; True when it changed."""
    next_at = compute_next_follow_up(item, now=now, policy=policy)
    if next_at == item.next_follow_up_at:
        return False
    item.next_follow_up_at = next_at
    return True


def mark_followed_up_use_case(
    *,
    repo: OpsRepository,
    work_item_id: UUID,
    now: datetime | None = None,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> WorkItem:
    current = now or now_utc()
    item = get_work_item_or_404(repo=repo, work_item_id=work_item_id)
    ensure_open(item)

    item.last_contact_at = current
    item.updated_at = current
    item.snoozed_until = None
    recompute_follow_up(item, now=current, policy=policy)
    repo.save_work_item(item)
    repo.commit()
    return item


def snooze_follow_up_use_case(
    *,
    repo: OpsRepository,
    work_item_id: UUID,
    days: int,
    now: datetime | None = None,
) -> WorkItem:
    if days <= 0:
        raise DomainError(
            code="INVALID_SNOOZE_DAYS",
            http_status=400,
            message="Snooze days must be a positive number",
            details={"days": days},
        )
    current = now or now_utc()
    item = get_work_item_or_404(repo=repo, work_item_id=work_item_id)
    ensure_open(item)

    # Later recalculations never pull the follow-up before this point.
    item.snoozed_until = current + timedelta(days=days)
    item.next_follow_up_at = item.snoozed_until
    item.updated_at = current
    repo.save_work_item(item)
    repo.commit()
    return item


def toggle_waiting_use_case(
    *,
    repo: OpsRepository,
    work_item_id: UUID,
    is_waiting: bool | None = None,
    now: datetime | None = None,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> WorkItem:
    """Pause or resume the follow-up cadence. ``None`` flips the current flag."""
    current = now or now_utc()
    item = get_work_item_or_404(repo=repo, work_item_id=work_item_id)
    ensure_open(item)

    item.is_waiting = (not item.is_waiting) if is_waiting is None else is_waiting
    if item.is_waiting:
        item.next_follow_up_at = None
    else:
        recompute_follow_up(item, now=current, policy=policy)
    item.updated_at = current
    repo.save_work_item(item)
    repo.commit()
    return item


def recalculate_all_follow_ups_use_case(
    *,
    repo: OpsRepository,
    now: datetime | None = None,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> list[FollowUpChange]:
    current = now or now_utc()
    changes: list[FollowUpChange] = []
    for item in repo.list_open_work_items():
        previous = item.next_follow_up_at
        if recompute_follow_up(item, now=current, policy=policy):
            repo.save_work_item(item)
            changes.append(
                FollowUpChange(
                    work_item_id=item.id,
                    old_follow_up_at=previous,
                    new_follow_up_at=item.next_follow_up_at,
                )
            )
    repo.commit()
    logger.info(f"Recalculated follow-ups: {len(changes)} work items changed")
    return changes
