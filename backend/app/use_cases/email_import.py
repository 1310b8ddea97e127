"""Mailbox message import: dedup, categorize, link or create a form lead."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from uuid import UUID

from ..config import settings
from ..domain_errors import DomainError, DuplicateRecordError
from ..models import Communication, WorkItem
from ..repositories.base import OpsRepository
from ..services.email_categorizer import PRIMARY, categorize_email, match_filter_category
from ..services.email_dedup import (
    FINGERPRINT,
    INTERNET_MESSAGE_ID,
    NOT_DUPLICATE,
    PROVIDER_MESSAGE_ID,
    UNIQUE_CONSTRAINT,
    DuplicateCheck,
    DuplicateGroup,
    find_duplicate_groups,
    fingerprint_window,
)
from ..services.follow_up import DEFAULT_POLICY, FollowUpPolicy
from ..services.form_email_parser import (
    ParsedFormData,
    is_form_submission_email,
    is_valid_form_submission,
    parse_form_email,
)
from ..services.html_text import html_to_plain_text, smart_truncate
from ..services.work_item_status import ASSISTED_PROJECT
from .common import now_utc, system_actor
from .email_linking import resolve_work_item_for_email
from .follow_ups import recompute_follow_up
from .work_item_transitions import apply_status_change, record_initial_status

logger = logging.getLogger(__name__)

INSERTED = "inserted"
DUPLICATE = "duplicate"
ERROR = "error"

_EVENT_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%B %d, %Y", "%b %d, %Y")


def _parse_graph_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class IncomingEmail:
    provider_message_id: str | None
    from_email: str
    subject: str | None = None
    internet_message_id: str | None = None
    from_name: str | None = None
    to_emails: list[str] = field(default_factory=list)
    body_html: str | None = None
    body_text: str | None = None
    body_preview: str | None = None
    received_at: datetime | None = None
    sent_at: datetime | None = None
    conversation_id: str | None = None

    @classmethod
    def from_graph_message(cls, message: dict[str, Any]) -> "IncomingEmail":
        sender = (message.get("from") or {}).get("emailAddress") or {}
        body = message.get("body") or {}
        content = body.get("content")
        is_html = (body.get("contentType") or "html").lower() == "html"
        return cls(
            provider_message_id=message.get("id"),
            internet_message_id=message.get("internetMessageId"),
            subject=message.get("subject"),
            from_email=(sender.get("address") or "").strip().lower(),
            from_name=sender.get("name"),
            to_emails=[
                ((recipient.get("emailAddress") or {}).get("address") or "").lower()
                for recipient in message.get("toRecipients") or []
                if (recipient.get("emailAddress") or {}).get("address")
            ],
            body_html=content if is_html else None,
            body_text=None if is_html else content,
            body_preview=message.get("bodyPreview"),
            received_at=_parse_graph_datetime(message.get("receivedDateTime")),
            sent_at=_parse_graph_datetime(message.get("sentDateTime")),
            conversation_id=message.get("conversationId"),
        )

    @property
    def plain_text(self) -> str:
        return self.body_text or html_to_plain_text(self.body_html)


@dataclass(frozen=True)
class EmailImportResult:
    action: str
    communication_id: UUID | None = None
    work_item_id: UUID | None = None
    direction: str | None = None
    strategy: str | None = None
    error: str | None = None


@dataclass
class CleanupReport:
    dry_run: bool
    groups: list[DuplicateGroup]
    deleted_count: int = 0

    @property
    def duplicate_count(self) -> int:
        return sum(len(group.duplicate_ids) for group in self.groups)


def find_duplicate_email(
    *,
    repo: OpsRepository,
    message: IncomingEmail,
    window_seconds: int | None = None,
) -> DuplicateCheck:
    if message.provider_message_id:
        existing = repo.find_communication_by_provider_message_id(message.provider_message_id)
        if existing:
            return DuplicateCheck(True, PROVIDER_MESSAGE_ID, existing.id)

    if message.internet_message_id:
        existing = repo.find_communication_by_internet_message_id(message.internet_message_id)
        if existing:
            return DuplicateCheck(True, INTERNET_MESSAGE_ID, existing.id)

    if message.from_email and message.subject is not None and message.received_at:
        seconds = window_seconds if window_seconds is not None else settings.DEDUP_FINGERPRINT_WINDOW_SECONDS
        start, end = fingerprint_window(message.received_at, seconds)
        existing = repo.find_communication_by_fingerprint(
            from_email=message.from_email,
            subject=message.subject,
            received_from=start,
            received_to=end,
        )
        if existing:
            return DuplicateCheck(True, FINGERPRINT, existing.id)

    return NOT_DUPLICATE


def _direction(message: IncomingEmail, mailbox: str | None) -> str:
    if mailbox and message.from_email == mailbox.strip().lower():
        return "outbound"
    return "inbound"


def _category(repo: OpsRepository, message: IncomingEmail) -> str:
    override = match_filter_category(message.from_email, repo.list_active_email_filters())
    if override:
        return override
    return categorize_email(
        from_email=message.from_email,
        subject=message.subject,
        body_text=message.body_text,
        body_html=message.body_html,
    )


def _parse_event_date(raw: str | None) -> date | None:
    if not raw:
        return None
    for fmt in _EVENT_DATE_FORMATS:
        try:
            return datetime.strptime(raw.strip(), fmt).date()
        except ValueError:
            continue
    return None


def reconcile_duplicate_leads(
    *,
    repo: OpsRepository,
    customer_email: str,
    now: datetime,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> WorkItem | None:
    """Merge open, order-less new inquiries for one customer into the oldest one.

    Returns the surviving lead, or None when the customer has no such lead.
    """
    leads = [
        item
        for item in repo.list_open_work_items_for_email(customer_email, work_item_type=ASSISTED_PROJECT)
        if item.status == "new_inquiry" and not item.shopify_order_id and not item.design_fee_order_id
    ]
    if not leads:
        return None
    leads.sort(key=lambda item: (item.created_at or now, str(item.id)))
    keeper, duplicates = leads[0], leads[1:]

    for duplicate in duplicates:
        for communication in repo.list_communications_for_work_item(duplicate.id):
            communication.work_item_id = keeper.id
            repo.save_communication(communication)
        apply_status_change(
            repo=repo,
            item=duplicate,
            to_status="closed_lost",
            changed_by=system_actor("lead_reconciliation"),
            note=f"Duplicate lead merged into {keeper.id}",
            is_system=True,
            now=now,
            policy=policy,
        )
    if duplicates:
        keeper.updated_at = now
        repo.save_work_item(keeper)
        logger.info(f"Merged {len(duplicates)} duplicate leads for {customer_email} into {keeper.id}")
    return keeper


def create_form_lead(
    *,
    repo: OpsRepository,
    parsed: ParsedFormData,
    communication: Communication,
    now: datetime,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> WorkItem:
    email = parsed.customer_email.strip().lower()
    item = WorkItem(
        id=uuid.uuid4(),
        type=ASSISTED_PROJECT,
        source="form",
        title=parsed.organization or parsed.customer_name or email,
        customer_email=email,
        customer_name=parsed.customer_name,
        alternate_emails=[],
        event_date=_parse_event_date(parsed.event_date),
        status="new_inquiry",
        status_changed_at=now,
        is_waiting=False,
        last_contact_at=communication.received_at or now,
        reason_included={
            "detectedVia": "form_submission",
            "formProvider": communication.from_email,
            "organization": parsed.organization,
            "projectDetails": parsed.project_details,
            "eventDate": parsed.event_date,
            "additionalFields": parsed.additional_fields,
        },
        created_at=now,
        updated_at=now,
    )
    recompute_follow_up(item, now=now, policy=policy)
    repo.add_work_item(item)
    record_initial_status(repo=repo, item=item, changed_by=system_actor("form"), now=now)

    communication.work_item_id = item.id
    communication.triage_status = "created_lead"
    repo.save_communication(communication)
    logger.info(f"Created form lead {item.id} for {email}")

    keeper = reconcile_duplicate_leads(repo=repo, customer_email=email, now=now, policy=policy)
    return keeper or item


def _touch_linked_item(
    *,
    repo: OpsRepository,
    work_item_id: UUID,
    contact_at: datetime,
    now: datetime,
    policy: FollowUpPolicy,
) -> None:
    item = repo.get_work_item(work_item_id)
    if item is None or item.closed_at is not None:
        return
    if item.last_contact_at is None or contact_at > item.last_contact_at:
        item.last_contact_at = contact_at
    item.is_waiting = False
    item.updated_at = now
    recompute_follow_up(item, now=now, policy=policy)
    repo.save_work_item(item)


def import_email_use_case(
    *,
    repo: OpsRepository,
    message: IncomingEmail,
    mailbox: str | None = None,
    now: datetime | None = None,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> EmailImportResult:
    current = now or now_utc()
    if not message.from_email:
        logger.warning(f"Email {message.provider_message_id} has no sender address")
        return EmailImportResult(action=ERROR, error="Missing sender address")

    duplicate = find_duplicate_email(repo=repo, message=message)
    if duplicate.is_duplicate:
        logger.info(f"Duplicate email {message.provider_message_id} via {duplicate.strategy}")
        return EmailImportResult(
            action=DUPLICATE,
            communication_id=duplicate.existing_communication_id,
            strategy=duplicate.strategy,
        )

    direction = _direction(message, mailbox if mailbox is not None else settings.MAILBOX_EMAIL)
    text = message.plain_text
    is_form = direction == "inbound" and is_form_submission_email(message.from_email)

    communication = Communication(
        id=uuid.uuid4(),
        direction=direction,
        from_email=message.from_email,
        to_emails=list(message.to_emails),
        subject=message.subject,
        body_html=message.body_html,
        body_preview=smart_truncate(text) if text else message.body_preview,
        received_at=message.received_at,
        sent_at=message.sent_at,
        provider="m365",
        provider_message_id=message.provider_message_id,
        internet_message_id=message.internet_message_id,
        provider_thread_id=message.conversation_id,
        triage_status="untriaged",
        category=PRIMARY,
        created_at=current,
    )

    resolution = None
    if direction == "outbound":
        communication.triage_status = "archived"
        if message.conversation_id:
            thread_item_id = repo.find_thread_work_item_id(message.conversation_id)
            communication.work_item_id = thread_item_id
    elif not is_form:
        communication.category = _category(repo, message)
        resolution = resolve_work_item_for_email(
            repo=repo,
            from_email=message.from_email,
            subject=message.subject,
            body_text=text,
            provider_thread_id=message.conversation_id,
            now=current,
        )
        if resolution.is_linked:
            communication.work_item_id = resolution.work_item_id
            communication.triage_status = "attached"

    try:
        repo.insert_communication(communication)
    except DuplicateRecordError:
        existing = None
        if message.provider_message_id:
            existing = repo.find_communication_by_provider_message_id(message.provider_message_id)
        if existing is None and message.internet_message_id:
            existing = repo.find_communication_by_internet_message_id(message.internet_message_id)
        logger.info(f"Email {message.provider_message_id} lost an insert race; treating as duplicate")
        return EmailImportResult(
            action=DUPLICATE,
            communication_id=existing.id if existing else None,
            strategy=UNIQUE_CONSTRAINT,
        )

    work_item_id = communication.work_item_id
    strategy = resolution.strategy if resolution else None
    try:
        if is_form:
            parsed = parse_form_email(
                from_email=message.from_email,
                body_text=message.body_text,
                body_html=message.body_html,
            )
            if is_valid_form_submission(parsed):
                lead = create_form_lead(
                    repo=repo,
                    parsed=parsed,
                    communication=communication,
                    now=current,
                    policy=policy,
                )
                work_item_id = lead.id
                strategy = "form_submission"
            else:
                logger.warning(f"Form email {message.provider_message_id} had no valid customer email")
        elif direction == "inbound" and work_item_id:
            _touch_linked_item(
                repo=repo,
                work_item_id=work_item_id,
                contact_at=message.received_at or current,
                now=current,
                policy=policy,
            )
    except DomainError as exc:
        repo.rollback()
        logger.error(f"Email import failed for {message.provider_message_id}: {exc}", exc_info=True)
        return EmailImportResult(action=ERROR, direction=direction, error=str(exc))

    repo.commit()
    return EmailImportResult(
        action=INSERTED,
        communication_id=communication.id,
        work_item_id=work_item_id,
        direction=direction,
        strategy=strategy,
    )


def cleanup_duplicate_emails_use_case(
    *,
    repo: OpsRepository,
    dry_run: bool = True,
    window_seconds: int | None = None,
) -> CleanupReport:
    seconds = window_seconds if window_seconds is not None else settings.DEDUP_FINGERPRINT_WINDOW_SECONDS
    records = repo.list_all_communications()
    groups = find_duplicate_groups(records, window_seconds=seconds)
    report = CleanupReport(dry_run=dry_run, groups=groups)
    if dry_run or not groups:
        return report

    by_id = {record.id: record for record in records}
    for group in groups:
        keeper = by_id[group.keep_id]
        if keeper.work_item_id is None:
            linked = next(
                (by_id[dup_id] for dup_id in group.duplicate_ids if by_id[dup_id].work_item_id),
                None,
            )
            if linked is not None:
                keeper.work_item_id = linked.work_item_id
                keeper.triage_status = linked.triage_status
                repo.save_communication(keeper)

    to_delete = [dup_id for group in groups for dup_id in group.duplicate_ids]
    report.deleted_count = repo.delete_communications(to_delete)
    repo.commit()
    logger.info(f"Removed {report.deleted_count} duplicate emails in {len(groups)} groups")
    return report
