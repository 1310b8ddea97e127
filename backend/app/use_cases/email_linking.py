"""Email to work item linking.

The cascade tries, in order: an already linked message in the same
conversation thread, order numbers found in the subject and body, the most
recently active open item for the sender, and finally a title match on the
reply-stripped subject. The first strategy that yields an open work item
wins.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from ..config import settings
from ..domain_errors import DomainError
from ..models import Communication, WorkItem
from ..repositories.base import OpsRepository
from ..services.order_numbers import extract_order_numbers, linkable_order_numbers, strip_reply_prefixes
from .common import ensure_open, get_work_item_or_404, now_utc

logger = logging.getLogger(__name__)

THREAD = "thread"
ORDER_NUMBER = "order_number"
RECENCY = "recency"
SUBJECT = "subject"
MIN_SUBJECT_MATCH_LENGTH = 5


@dataclass(frozen=True)
class LinkResolution:
    work_item_id: UUID | None = None
    strategy: str | None = None
    detail: str | None = None

    @property
    def is_linked(self) -> bool:
        return self.work_item_id is not None


NO_MATCH = LinkResolution()


def _match_order_number(repo: OpsRepository, number: str) -> WorkItem | None:
    for candidate in (f"#{number}", number):
        exact = repo.find_open_work_items_by_order_number(candidate, exact=True)
        if exact:
            return exact[0]
    partial = repo.find_open_work_items_by_order_number(number, exact=False)
    if partial:
        return partial[0]
    by_title = repo.find_open_work_items_by_title(number)
    if by_title:
        return by_title[0]
    return None


def resolve_work_item_for_email(
    *,
    repo: OpsRepository,
    from_email: str,
    subject: str | None,
    body_text: str | None,
    provider_thread_id: str | None,
    now: datetime,
    recency_window_days: int | None = None,
) -> LinkResolution:
    if provider_thread_id:
        thread_item_id = repo.find_thread_work_item_id(provider_thread_id)
        if thread_item_id:
            return LinkResolution(work_item_id=thread_item_id, strategy=THREAD, detail=provider_thread_id)

    for match in linkable_order_numbers(extract_order_numbers(subject, body_text)):
        item = _match_order_number(repo, match.order_number)
        if item:
            return LinkResolution(
                work_item_id=item.id,
                strategy=ORDER_NUMBER,
                detail=f"{match.order_number} ({match.confidence}, {match.source})",
            )

    window_days = recency_window_days if recency_window_days is not None else settings.RECENCY_LINK_WINDOW_DAYS
    sender = from_email.strip().lower()
    if sender:
        recent = repo.find_recent_open_work_item_by_email(sender, since=now - timedelta(days=window_days))
        if recent:
            return LinkResolution(work_item_id=recent.id, strategy=RECENCY, detail=sender)

    stripped = strip_reply_prefixes(subject)
    if len(stripped) > MIN_SUBJECT_MATCH_LENGTH:
        by_title = repo.find_open_work_items_by_title(stripped)
        if by_title:
            return LinkResolution(work_item_id=by_title[0].id, strategy=SUBJECT, detail=stripped)

    return NO_MATCH


def auto_link_customer_emails(
    *,
    repo: OpsRepository,
    item: WorkItem,
    order_created_at: datetime | None,
    cap_at_now: bool,
    now: datetime,
    window_days: int | None = None,
) -> int:
    """Attach unlinked inbound mail from the item's customer sent around the order date.

    ``cap_at_now`` limits the window end to ``now``; design-service orders use
    it because the design conversation continues after the fee is paid.
    """
    if not item.customer_email or item.closed_at is not None:
        return 0
    days = window_days if window_days is not None else settings.AUTO_LINK_WINDOW_DAYS
    anchor = order_created_at or now
    window_start = anchor - timedelta(days=days)
    window_end = now if cap_at_now else anchor + timedelta(days=days)

    linked = 0
    for communication in repo.list_unlinked_inbound_communications(
        item.customer_email,
        received_from=window_start,
        received_to=window_end,
    ):
        communication.work_item_id = item.id
        communication.triage_status = "attached"
        repo.save_communication(communication)
        linked += 1

    if linked:
        logger.info(f"Auto-linked {linked} emails from {item.customer_email} to work item {item.id}")
    return linked


def link_email_to_work_item_use_case(
    *,
    repo: OpsRepository,
    communication_id: UUID,
    work_item_id: UUID,
    now: datetime | None = None,
) -> Communication:
    communication = repo.get_communication(communication_id)
    if not communication:
        raise DomainError(
            code="COMMUNICATION_NOT_FOUND",
            http_status=404,
            message="Email not found",
        )
    item = get_work_item_or_404(repo=repo, work_item_id=work_item_id)
    ensure_open(item)

    communication.work_item_id = item.id
    communication.triage_status = "attached"
    repo.save_communication(communication)

    item.updated_at = now or now_utc()
    repo.save_work_item(item)
    repo.commit()
    return communication
