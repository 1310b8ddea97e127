"""Manual email import and duplicate cleanup."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..domain_errors import DomainError
from ..repositories import OpsRepository, get_repository
from ..schemas import CleanupRequest, CleanupResponse, DuplicateGroupResponse, EmailImportRequest, EmailImportResponse
from ..use_cases.email_import import IncomingEmail, cleanup_duplicate_emails_use_case, import_email_use_case
from ..use_cases.webhook_processing import WebhookHooks
from .webhooks import get_webhook_hooks

router = APIRouter(prefix="/emails", tags=["emails"])


@router.post("/import", response_model=EmailImportResponse)
def import_email(
    data: EmailImportRequest,
    repo: OpsRepository = Depends(get_repository),
    hooks: WebhookHooks = Depends(get_webhook_hooks),
):
    if data.message is not None:
        raw = data.message
    elif data.message_id:
        raw = hooks.fetch_graph_message(data.message_id)
    else:
        raise DomainError(
            code="EMAIL_IMPORT_INVALID",
            http_status=400,
            message="Provide either messageId or message",
        )
    return import_email_use_case(repo=repo, message=IncomingEmail.from_graph_message(raw))


@router.post("/cleanup-duplicates", response_model=CleanupResponse)
def cleanup_duplicates(
    data: CleanupRequest,
    repo: OpsRepository = Depends(get_repository),
):
    """Dry run by default; pass ``dry_run=false`` to delete."""
    report = cleanup_duplicate_emails_use_case(repo=repo, dry_run=data.dry_run)
    return CleanupResponse(
        dry_run=report.dry_run,
        duplicate_count=report.duplicate_count,
        deleted_count=report.deleted_count,
        groups=[DuplicateGroupResponse.model_validate(group) for group in report.groups],
    )
