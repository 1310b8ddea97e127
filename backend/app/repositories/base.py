"""Persistence port used by the use-cases.

Use-cases only talk to this protocol so they can run against the SQLAlchemy
adapter in production and an in-memory fake in tests.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Protocol, Sequence
from uuid import UUID

from ..models import Communication, EmailFilter, WebhookEvent, WorkItem, WorkItemStatusEvent


class OpsRepository(Protocol):
    # Webhook log
    def upsert_webhook_event(
        self,
        *,
        provider: str,
        event_type: str,
        external_event_id: str,
        payload: dict[str, Any],
        now: datetime,
    ) -> WebhookEvent: ...

    def claim_webhook_event(
        self,
        event_id: UUID,
        *,
        now: datetime,
        stale_before: datetime,
        count_retry: bool = False,
    ) -> bool: ...

    def finish_webhook_event(
        self,
        event_id: UUID,
        *,
        status: str,
        error: str | None,
        now: datetime,
    ) -> bool: ...

    def get_webhook_event(self, event_id: UUID) -> WebhookEvent | None: ...

    def list_webhook_events(
        self,
        *,
        statuses: Iterable[str],
        max_retry_count: int | None = None,
        limit: int = 100,
    ) -> list[WebhookEvent]: ...

    # Work items
    def get_work_item(self, work_item_id: UUID) -> WorkItem | None: ...

    def find_work_item_by_order_id(self, order_id: str) -> WorkItem | None: ...

    def find_work_item_by_production_order_id(self, order_id: str) -> WorkItem | None: ...

    def find_open_work_items_by_order_number(self, order_number: str, *, exact: bool) -> list[WorkItem]: ...

    def find_open_work_items_by_title(self, fragment: str) -> list[WorkItem]: ...

    def find_recent_open_work_item_by_email(self, email: str, *, since: datetime) -> WorkItem | None: ...

    def list_open_work_items_for_email(self, email: str, *, work_item_type: str | None = None) -> list[WorkItem]: ...

    def list_open_work_items(self) -> list[WorkItem]: ...

    def add_work_item(self, item: WorkItem) -> WorkItem: ...

    def save_work_item(self, item: WorkItem) -> WorkItem: ...

    def add_status_event(self, event: WorkItemStatusEvent) -> WorkItemStatusEvent: ...

    def list_status_events(self, work_item_id: UUID) -> list[WorkItemStatusEvent]: ...

    # Communications
    def get_communication(self, communication_id: UUID) -> Communication | None: ...

    def find_communication_by_provider_message_id(self, provider_message_id: str) -> Communication | None: ...

    def find_communication_by_internet_message_id(self, internet_message_id: str) -> Communication | None: ...

    def find_communication_by_fingerprint(
        self,
        *,
        from_email: str,
        subject: str,
        received_from: datetime,
        received_to: datetime,
    ) -> Communication | None: ...

    def find_thread_work_item_id(self, provider_thread_id: str) -> UUID | None: ...

    def list_unlinked_inbound_communications(
        self,
        email: str,
        *,
        received_from: datetime,
        received_to: datetime,
    ) -> list[Communication]: ...

    def list_communications_for_work_item(self, work_item_id: UUID) -> list[Communication]: ...

    def list_all_communications(self) -> list[Communication]: ...

    def insert_communication(self, communication: Communication) -> Communication: ...

    def save_communication(self, communication: Communication) -> Communication: ...

    def delete_communications(self, communication_ids: Sequence[UUID]) -> int: ...

    # Email filters
    def list_active_email_filters(self) -> list[EmailFilter]: ...

    # Unit of work
    def commit(self) -> None: ...

    def rollback(self) -> None: ...
