"""SQLAlchemy/PostgreSQL implementation of the persistence port."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Iterable, Sequence
from uuid import UUID

from fastapi import Depends
from sqlalchemy import and_, or_
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import get_db
from ..domain_errors import DuplicateRecordError
from ..models import Communication, EmailFilter, WebhookEvent, WorkItem, WorkItemStatusEvent
from ..services.webhook_state import COMPLETED, PENDING, PROCESSING, sources_for

logger = logging.getLogger(__name__)


def title_contains(fragment: str):
    """Case-insensitive substring match; LIKE wildcards in ``fragment`` are literal."""
    return WorkItem.title.icontains(fragment, autoescape=True)


class SqlAlchemyOpsRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Webhook log
    # ------------------------------------------------------------------
    def upsert_webhook_event(
        self,
        *,
        provider: str,
        event_type: str,
        external_event_id: str,
        payload: dict[str, Any],
        now: datetime,
    ) -> WebhookEvent:
        """INSERT ... ON CONFLICT DO UPDATE; completed rows are left untouched."""
        stmt = insert(WebhookEvent).values(
            id=uuid.uuid4(),
            provider=provider,
            event_type=event_type,
            external_event_id=external_event_id,
            payload=payload,
            processing_status=PENDING,
            retry_count=0,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_webhook_provider_event",
            set_={
                "retry_count": WebhookEvent.retry_count + 1,
                "last_retry_at": now,
                "payload": stmt.excluded.payload,
                "updated_at": now,
            },
            where=WebhookEvent.processing_status != COMPLETED,
        )
        self.db.execute(stmt)
        self.db.flush()
        return (
            self.db.query(WebhookEvent)
            .populate_existing()
            .filter(
                WebhookEvent.provider == provider,
                WebhookEvent.external_event_id == external_event_id,
            )
            .one()
        )

    def claim_webhook_event(
        self,
        event_id: UUID,
        *,
        now: datetime,
        stale_before: datetime,
        count_retry: bool = False,
    ) -> bool:
        values: dict[Any, Any] = {
            WebhookEvent.processing_status: PROCESSING,
            WebhookEvent.processing_started_at: now,
            WebhookEvent.updated_at: now,
        }
        if count_retry:
            values[WebhookEvent.retry_count] = WebhookEvent.retry_count + 1
            values[WebhookEvent.last_retry_at] = now

        claimed = (
            self.db.query(WebhookEvent)
            .filter(
                WebhookEvent.id == event_id,
                or_(
                    WebhookEvent.processing_status.in_(sorted(sources_for(PROCESSING))),
                    and_(
                        WebhookEvent.processing_status == PROCESSING,
                        or_(
                            WebhookEvent.processing_started_at.is_(None),
                            WebhookEvent.processing_started_at <= stale_before,
                        ),
                    ),
                ),
            )
            .update(values, synchronize_session=False)
        )
        return claimed == 1

    def finish_webhook_event(
        self,
        event_id: UUID,
        *,
        status: str,
        error: str | None,
        now: datetime,
    ) -> bool:
        finished = (
            self.db.query(WebhookEvent)
            .filter(
                WebhookEvent.id == event_id,
                WebhookEvent.processing_status.in_(sorted(sources_for(status))),
            )
            .update(
                {
                    WebhookEvent.processing_status: status,
                    WebhookEvent.processing_error: error,
                    WebhookEvent.processed_at: now,
                    WebhookEvent.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        return finished == 1

    def get_webhook_event(self, event_id: UUID) -> WebhookEvent | None:
        return (
            self.db.query(WebhookEvent)
            .populate_existing()
            .filter(WebhookEvent.id == event_id)
            .first()
        )

    def list_webhook_events(
        self,
        *,
        statuses: Iterable[str],
        max_retry_count: int | None = None,
        limit: int = 100,
    ) -> list[WebhookEvent]:
        query = self.db.query(WebhookEvent).filter(WebhookEvent.processing_status.in_(list(statuses)))
        if max_retry_count is not None:
            query = query.filter(WebhookEvent.retry_count < max_retry_count)
        return query.order_by(WebhookEvent.created_at.desc()).limit(limit).all()

    # ------------------------------------------------------------------
    # Work items
    # ------------------------------------------------------------------
    def get_work_item(self, work_item_id: UUID) -> WorkItem | None:
        return self.db.query(WorkItem).filter(WorkItem.id == work_item_id).first()

    def find_work_item_by_order_id(self, order_id: str) -> WorkItem | None:
        return (
            self.db.query(WorkItem)
            .filter(or_(WorkItem.shopify_order_id == order_id, WorkItem.design_fee_order_id == order_id))
            .first()
        )

    def find_work_item_by_production_order_id(self, order_id: str) -> WorkItem | None:
        return self.db.query(WorkItem).filter(WorkItem.shopify_order_id == order_id).first()

    def find_open_work_items_by_order_number(self, order_number: str, *, exact: bool) -> list[WorkItem]:
        query = self.db.query(WorkItem).filter(WorkItem.closed_at.is_(None))
        if exact:
            query = query.filter(WorkItem.shopify_order_number == order_number)
        else:
            query = query.filter(WorkItem.shopify_order_number.contains(order_number))
        return query.order_by(WorkItem.updated_at.desc()).all()

    def find_open_work_items_by_title(self, fragment: str) -> list[WorkItem]:
        return (
            self.db.query(WorkItem)
            .filter(WorkItem.closed_at.is_(None), title_contains(fragment))
            .order_by(WorkItem.updated_at.desc())
            .all()
        )

    def find_recent_open_work_item_by_email(self, email: str, *, since: datetime) -> WorkItem | None:
        return (
            self.db.query(WorkItem)
            .filter(
                WorkItem.closed_at.is_(None),
                WorkItem.updated_at >= since,
                or_(WorkItem.customer_email == email, WorkItem.alternate_emails.any(email)),
            )
            .order_by(WorkItem.updated_at.desc())
            .first()
        )

    def list_open_work_items_for_email(self, email: str, *, work_item_type: str | None = None) -> list[WorkItem]:
        query = self.db.query(WorkItem).filter(
            WorkItem.closed_at.is_(None),
            or_(WorkItem.customer_email == email, WorkItem.alternate_emails.any(email)),
        )
        if work_item_type:
            query = query.filter(WorkItem.type == work_item_type)
        return query.order_by(WorkItem.created_at.asc()).all()

    def list_open_work_items(self) -> list[WorkItem]:
        return self.db.query(WorkItem).filter(WorkItem.closed_at.is_(None)).all()

    def add_work_item(self, item: WorkItem) -> WorkItem:
        try:
            with self.db.begin_nested():
                self.db.add(item)
                self.db.flush()
        except IntegrityError as exc:
            logger.warning(f"Work item insert conflict: {exc.orig}")
            raise DuplicateRecordError("work_item", item.shopify_order_id or item.design_fee_order_id) from exc
        return item

    def save_work_item(self, item: WorkItem) -> WorkItem:
        try:
            with self.db.begin_nested():
                self.db.add(item)
                self.db.flush()
        except IntegrityError as exc:
            raise DuplicateRecordError("work_item", str(item.id)) from exc
        return item

    def add_status_event(self, event: WorkItemStatusEvent) -> WorkItemStatusEvent:
        self.db.add(event)
        self.db.flush()
        return event

    def list_status_events(self, work_item_id: UUID) -> list[WorkItemStatusEvent]:
        return (
            self.db.query(WorkItemStatusEvent)
            .filter(WorkItemStatusEvent.work_item_id == work_item_id)
            .order_by(WorkItemStatusEvent.created_at.asc())
            .all()
        )

    # ------------------------------------------------------------------
    # Communications
    # ------------------------------------------------------------------
    def get_communication(self, communication_id: UUID) -> Communication | None:
        return self.db.query(Communication).filter(Communication.id == communication_id).first()

    def find_communication_by_provider_message_id(self, provider_message_id: str) -> Communication | None:
        return (
            self.db.query(Communication)
            .filter(Communication.provider_message_id == provider_message_id)
            .first()
        )

    def find_communication_by_internet_message_id(self, internet_message_id: str) -> Communication | None:
        return (
            self.db.query(Communication)
            .filter(Communication.internet_message_id == internet_message_id)
            .first()
        )

    def find_communication_by_fingerprint(
        self,
        *,
        from_email: str,
        subject: str,
        received_from: datetime,
        received_to: datetime,
    ) -> Communication | None:
        return (
            self.db.query(Communication)
            .filter(
                Communication.from_email == from_email,
                Communication.subject == subject,
                Communication.received_at >= received_from,
                Communication.received_at <= received_to,
            )
            .order_by(Communication.created_at.asc())
            .first()
        )

    def find_thread_work_item_id(self, provider_thread_id: str) -> UUID | None:
        row = (
            self.db.query(Communication.work_item_id)
            .join(WorkItem, WorkItem.id == Communication.work_item_id)
            .filter(
                Communication.provider_thread_id == provider_thread_id,
                Communication.work_item_id.isnot(None),
                WorkItem.closed_at.is_(None),
            )
            .order_by(Communication.received_at.desc())
            .first()
        )
        return row[0] if row else None

    def list_unlinked_inbound_communications(
        self,
        email: str,
        *,
        received_from: datetime,
        received_to: datetime,
    ) -> list[Communication]:
        return (
            self.db.query(Communication)
            .filter(
                Communication.work_item_id.is_(None),
                Communication.direction == "inbound",
                Communication.from_email == email,
                Communication.received_at >= received_from,
                Communication.received_at <= received_to,
            )
            .all()
        )

    def list_communications_for_work_item(self, work_item_id: UUID) -> list[Communication]:
        return (
            self.db.query(Communication)
            .filter(Communication.work_item_id == work_item_id)
            .order_by(Communication.received_at.asc())
            .all()
        )

    def list_all_communications(self) -> list[Communication]:
        return self.db.query(Communication).order_by(Communication.created_at.asc()).all()

    def insert_communication(self, communication: Communication) -> Communication:
        try:
            with self.db.begin_nested():
                self.db.add(communication)
                self.db.flush()
        except IntegrityError as exc:
            raise DuplicateRecordError(
                "communication",
                communication.provider_message_id or communication.internet_message_id,
            ) from exc
        return communication

    def save_communication(self, communication: Communication) -> Communication:
        self.db.add(communication)
        self.db.flush()
        return communication

    def delete_communications(self, communication_ids: Sequence[UUID]) -> int:
        if not communication_ids:
            return 0
        return (
            self.db.query(Communication)
            .filter(Communication.id.in_(list(communication_ids)))
            .delete(synchronize_session=False)
        )

    # ------------------------------------------------------------------
    # Email filters
    # ------------------------------------------------------------------
    def list_active_email_filters(self) -> list[EmailFilter]:
        return self.db.query(EmailFilter).filter(EmailFilter.is_active.is_(True)).all()

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()


def get_repository(db: Session = Depends(get_db)) -> SqlAlchemyOpsRepository:
    return SqlAlchemyOpsRepository(db)
