"""Scheduled jobs callable over HTTP (guarded by CRON_SECRET)."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header

from ..config import settings
from ..domain_errors import DomainError
from ..repositories import OpsRepository, get_repository
from ..schemas import FollowUpChangeResponse, RecalculateResponse
from ..use_cases.common import now_utc
from ..use_cases.follow_ups import recalculate_all_follow_ups_use_case

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    if not settings.CRON_SECRET:
        logger.error("CRON_SECRET not configured")
        raise DomainError(
            code="CRON_SECRET_NOT_CONFIGURED",
            http_status=500,
            message="Cron secret not configured",
        )
    if authorization != f"Bearer {settings.CRON_SECRET}":
        logger.warning("Unauthorized cron request")
        raise DomainError(
            code="CRON_UNAUTHORIZED",
            http_status=401,
            message="Unauthorized",
        )


@router.api_route(
    "/recalculate-follow-ups",
    methods=["GET", "POST"],
    response_model=RecalculateResponse,
    dependencies=[Depends(require_cron_secret)],
)
def recalculate_follow_ups(repo: OpsRepository = Depends(get_repository)):
    now = now_utc()
    changes = recalculate_all_follow_ups_use_case(repo=repo, now=now)
    return RecalculateResponse(
        updated=len(changes),
        timestamp=now,
        changes=[FollowUpChangeResponse.model_validate(change) for change in changes],
    )
