"""Helpers shared by the work item use-cases."""
from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from ..domain_errors import DomainError, WorkItemClosedError
from ..models import WorkItem
from ..repositories.base import OpsRepository


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def system_actor(source: str) -> str:
    return f"system:{source}"


def get_work_item_or_404(*, repo: OpsRepository, work_item_id: UUID) -> WorkItem:
    item = repo.get_work_item(work_item_id)
    if not item:
        raise DomainError(
            code="WORK_ITEM_NOT_FOUND",
            http_status=404,
            message="Work item not found",
        )
    return item


def ensure_open(item: WorkItem) -> None:
    if item.closed_at is not None:
        raise WorkItemClosedError(item.id)
