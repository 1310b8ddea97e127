"""Work item status and follow-up endpoints."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from ..repositories import OpsRepository, get_repository
from ..schemas import (
    CommunicationResponse,
    LinkEmailRequest,
    SnoozeRequest,
    StatusEventResponse,
    StatusOptionsResponse,
    TimelineEntryResponse,
    ToggleWaitingRequest,
    TransitionRequest,
    TransitionResponse,
    WorkItemResponse,
)
from ..use_cases.email_linking import link_email_to_work_item_use_case
from ..use_cases.follow_ups import (
    mark_followed_up_use_case,
    snooze_follow_up_use_case,
    toggle_waiting_use_case,
)
from ..use_cases.work_item_transitions import (
    status_options_use_case,
    transition_work_item_use_case,
    work_item_timeline_use_case,
)

router = APIRouter(prefix="/work-items", tags=["work-items"])


@router.post("/{work_item_id}/transition", response_model=TransitionResponse)
def transition_work_item(
    work_item_id: UUID,
    data: TransitionRequest,
    repo: OpsRepository = Depends(get_repository),
):
    """Change status. Backwards, skipping and closing moves need a note."""
    outcome = transition_work_item_use_case(
        repo=repo,
        work_item_id=work_item_id,
        to_status=data.to_status,
        changed_by=data.changed_by or "user",
        note=data.note,
    )
    return TransitionResponse(
        work_item=WorkItemResponse.model_validate(outcome.work_item),
        event=StatusEventResponse.model_validate(outcome.event) if outcome.event else None,
        warning=outcome.analysis.warning,
    )


@router.post("/{work_item_id}/mark-followed-up", response_model=WorkItemResponse)
def mark_followed_up(work_item_id: UUID, repo: OpsRepository = Depends(get_repository)):
    return mark_followed_up_use_case(repo=repo, work_item_id=work_item_id)


@router.post("/{work_item_id}/snooze", response_model=WorkItemResponse)
def snooze(work_item_id: UUID, data: SnoozeRequest, repo: OpsRepository = Depends(get_repository)):
    return snooze_follow_up_use_case(repo=repo, work_item_id=work_item_id, days=data.days)


@router.post("/{work_item_id}/toggle-waiting", response_model=WorkItemResponse)
def toggle_waiting(
    work_item_id: UUID,
    data: ToggleWaitingRequest | None = None,
    repo: OpsRepository = Depends(get_repository),
):
    return toggle_waiting_use_case(
        repo=repo,
        work_item_id=work_item_id,
        is_waiting=data.is_waiting if data else None,
    )


@router.post("/{work_item_id}/link-email", response_model=CommunicationResponse)
def link_email(work_item_id: UUID, data: LinkEmailRequest, repo: OpsRepository = Depends(get_repository)):
    return link_email_to_work_item_use_case(
        repo=repo,
        communication_id=data.email_id,
        work_item_id=work_item_id,
    )


@router.get("/{work_item_id}/timeline", response_model=list[TimelineEntryResponse])
def timeline(work_item_id: UUID, repo: OpsRepository = Depends(get_repository)):
    return work_item_timeline_use_case(repo=repo, work_item_id=work_item_id)


@router.get("/{work_item_id}/status-options", response_model=StatusOptionsResponse)
def status_options(work_item_id: UUID, repo: OpsRepository = Depends(get_repository)):
    """Grouped statuses for the change-status dialog."""
    return status_options_use_case(repo=repo, work_item_id=work_item_id)
